from __future__ import annotations

from openai import AzureOpenAI

from rulelens_core.providers.base import BaseReviewer
from rulelens_core.providers.openai import OpenAIReviewer


class AzureOpenAIReviewer(OpenAIReviewer):
    """OpenAI reviewer talking to an Azure OpenAI resource.

    ``model`` is the Azure deployment name; the request shape is identical to
    the public OpenAI API, so only the client differs.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        api_version: str = "2024-10-21",
        model: str | None = None,
        review_level: str = "standard",
    ):
        BaseReviewer.__init__(self, model, review_level)
        self.client = AzureOpenAI(api_key=api_key, azure_endpoint=endpoint, api_version=api_version)
