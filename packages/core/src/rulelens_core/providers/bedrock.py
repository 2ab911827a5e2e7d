from __future__ import annotations

from anthropic import AnthropicBedrock

from rulelens_core.providers.anthropic import AnthropicReviewer
from rulelens_core.providers.base import BaseReviewer


class BedrockReviewer(AnthropicReviewer):
    """Claude models served through AWS Bedrock.

    ``model`` is a Bedrock model ID. Keys left unset fall back to the default
    AWS credential chain (environment, shared config, instance role).
    """

    DEFAULT_MODEL = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    DEFAULT_REGION = "us-east-1"

    def __init__(
        self,
        region: str | None = None,
        model: str | None = None,
        review_level: str = "standard",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
    ):
        BaseReviewer.__init__(self, model, review_level)
        self.region = region or self.DEFAULT_REGION
        self.client = AnthropicBedrock(
            aws_region=self.region,
            aws_access_key=access_key_id,
            aws_secret_key=secret_access_key,
            aws_session_token=session_token,
        )
