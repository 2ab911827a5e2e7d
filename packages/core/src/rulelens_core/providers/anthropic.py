from __future__ import annotations

from anthropic import Anthropic
from anthropic.types import TextBlock

from rulelens_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.1

    def __init__(self, api_key: str, model: str | None = None, review_level: str = "standard"):
        super().__init__(model, review_level)
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
        # No native JSON mode; the system prompt already demands JSON-only output.
        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=max_tokens,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
