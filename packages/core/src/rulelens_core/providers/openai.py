from __future__ import annotations

from openai import OpenAI

from rulelens_core.providers.base import BaseReviewer

# Model families that accept response_format={"type": "json_object"}.
JSON_MODE_MODELS = (
    "gpt-5",
    "o3",
    "o4-mini",
    "gpt-4.1",
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-3.5-turbo",
)


def supports_json_mode(model: str) -> bool:
    return model.startswith(JSON_MODE_MODELS)


class OpenAIReviewer(BaseReviewer):
    DEFAULT_MODEL = "gpt-4o"
    # Low temperature keeps the JSON output structured and repeatable.
    TEMPERATURE = 0.1

    def __init__(self, api_key: str, model: str | None = None, review_level: str = "standard"):
        super().__init__(model, review_level)
        self.client = OpenAI(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
        kwargs = {}
        if json_mode and supports_json_mode(self.model):
            kwargs["response_format"] = {"type": "json_object"}
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=max_tokens,
            **kwargs,
        )
        return response.choices[0].message.content or ""
