from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from revlens_core.net.errors import ServiceError
from revlens_core.providers.base import BaseReviewer


def resolve_model_name(api_url: str, provider_id: str, model_id: str) -> str:
    """OpenRouter routes by ``provider/model``; everyone else takes the bare id."""
    if not model_id or "/" in model_id:
        return model_id
    if "openrouter.ai" in (api_url or "").lower():
        return f"{provider_id.strip()}/{model_id}"
    return model_id


class OpenAIReviewer(BaseReviewer):
    """Any OpenAI-compatible chat-completions endpoint (OpenAI, DeepSeek, GLM, OpenRouter...)."""

    MODEL = "gpt-4o"
    PROVIDER = "openai"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None, base_url: str | None = None, provider_id: str = ""):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'revlens[openai]'"
            )
        self.model = resolve_model_name(base_url or "", provider_id, model or self.MODEL)
        self.base_url = base_url
        self.client = _OpenAI(api_key=api_key, base_url=base_url)

    def _disable_thinking(self) -> bool:
        # GLM models think by default and may then return only reasoning_content.
        return "bigmodel.cn" in (self.base_url or "").lower() or self.model.lower().startswith("glm-")

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        extra_body = {"thinking": {"type": "disabled", "clear_thinking": True}} if self._disable_thinking() else None
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            response_format={"type": "json_object"},
            extra_body=extra_body,
        )
        if not response.choices:
            raise ServiceError(self.PROVIDER, "AI returned an empty response", retryable=False)
        choice = response.choices[0]
        if choice.message.content:
            return choice.message.content
        if choice.finish_reason == "length":
            raise ServiceError(self.PROVIDER, "AI output was truncated at the max_tokens limit", retryable=False)
        raise ServiceError(self.PROVIDER, "AI returned empty content", retryable=False)
