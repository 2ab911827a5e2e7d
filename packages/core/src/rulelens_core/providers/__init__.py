from __future__ import annotations

import logging

from rulelens_core.config import ConfigError, ReviewOptions
from rulelens_core.providers.anthropic import AnthropicReviewer
from rulelens_core.providers.azure import AzureOpenAIReviewer
from rulelens_core.providers.base import BaseReviewer, ProviderError
from rulelens_core.providers.bedrock import BedrockReviewer
from rulelens_core.providers.openai import OpenAIReviewer

logger = logging.getLogger(__name__)

__all__ = ["BaseReviewer", "ProviderError", "get_reviewer"]


def get_reviewer(options: ReviewOptions) -> BaseReviewer:
    """Build the reviewer for the configured (or auto-detected) provider."""
    provider = options.resolved_provider()
    model = options.resolved_model()
    logger.info("Using AI provider %s with model %s", provider, model)

    if provider == "openai":
        if not options.openai_api_key:
            raise ConfigError("OPENAI_API_KEY is required when provider is 'openai'.")
        return OpenAIReviewer(api_key=options.openai_api_key, model=model, review_level=options.review_level)
    if provider == "anthropic":
        if not options.anthropic_api_key:
            raise ConfigError("ANTHROPIC_API_KEY is required when provider is 'anthropic'.")
        return AnthropicReviewer(api_key=options.anthropic_api_key, model=model, review_level=options.review_level)
    if provider == "azure":
        if not (options.azure_openai_api_key and options.azure_openai_endpoint):
            raise ConfigError("AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT are required when provider is 'azure'.")
        return AzureOpenAIReviewer(
            api_key=options.azure_openai_api_key,
            endpoint=options.azure_openai_endpoint,
            api_version=options.azure_openai_api_version,
            model=model,
            review_level=options.review_level,
        )
    if provider == "bedrock":
        return BedrockReviewer(
            region=options.bedrock_region,
            model=model,
            review_level=options.review_level,
            access_key_id=options.bedrock_access_key_id,
            secret_access_key=options.bedrock_secret_access_key,
            session_token=options.bedrock_session_token,
        )
    raise ConfigError(f"Unknown provider: {provider!r}. Choose 'openai', 'anthropic', 'azure' or 'bedrock'.")
