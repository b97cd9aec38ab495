from __future__ import annotations

from revlens_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    PROVIDER = "anthropic"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None, base_url: str | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'revlens[anthropic]'"
            )
        self.model = model or self.MODEL
        kwargs = {"api_key": api_key}
        # The SDK appends /v1 itself; a configured ".../v1" URL would double it.
        if base_url:
            kwargs["base_url"] = base_url.rstrip("/").removesuffix("/v1")
        self.client = Anthropic(**kwargs)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
