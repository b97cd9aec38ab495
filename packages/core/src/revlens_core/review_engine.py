"""Single entry point to the AI review backend.

Callers hand over an AIConfig snapshot and a diff; provider selection,
validation and timing happen here so nothing upstream knows which SDK runs.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from revlens_core.net.errors import ReviewBackendNotConfiguredError
from revlens_core.providers.base import BaseReviewer, ReviewRequest, ReviewResult

if TYPE_CHECKING:
    from revlens_core.net.cancel import CancelToken

logger = logging.getLogger(__name__)

_NOT_CONFIGURED = "Configure and select an AI provider and model first."


@dataclass
class AIProvider:
    id: str
    name: str = ""
    api_url: str = ""
    api_key: str = ""
    models: list[str] = field(default_factory=list)

    @property
    def is_anthropic(self) -> bool:
        return self.id == "anthropic" or "anthropic.com" in self.api_url.lower()


@dataclass
class AIConfig:
    provider_id: str | None = None
    model_id: str | None = None
    providers: list[AIProvider] = field(default_factory=list)
    language: str = "English"
    rules: list[str] = field(default_factory=list)

    def selected_provider(self) -> AIProvider | None:
        if not self.provider_id:
            return None
        return next((p for p in self.providers if p.id == self.provider_id), None)


def validate_config(config: AIConfig) -> str | None:
    """Return an error message when no usable provider+model is selected."""
    provider = config.selected_provider()
    if provider is None or not provider.api_url or not provider.api_key:
        return _NOT_CONFIGURED
    if not config.model_id or (provider.models and config.model_id not in provider.models):
        return _NOT_CONFIGURED
    return None


def get_reviewer(config: AIConfig) -> BaseReviewer:
    error = validate_config(config)
    if error:
        raise ReviewBackendNotConfiguredError(error)
    provider = config.selected_provider()
    if provider.is_anthropic:
        from revlens_core.providers.anthropic import AnthropicReviewer

        return AnthropicReviewer(api_key=provider.api_key, model=config.model_id, base_url=provider.api_url)

    from revlens_core.providers.openai import OpenAIReviewer

    return OpenAIReviewer(
        api_key=provider.api_key,
        model=config.model_id,
        base_url=provider.api_url,
        provider_id=provider.id,
    )


def execute_review(config: AIConfig, diff: str, cancel: CancelToken | None = None) -> ReviewResult:
    """Review ``diff`` with the configured provider.

    Raises ReviewBackendNotConfiguredError when no provider/model is selected
    and propagates provider failures unchanged.
    """
    reviewer = get_reviewer(config)
    start = time.monotonic()
    result = reviewer.review(
        ReviewRequest(diff=diff, rules=tuple(config.rules), language=config.language),
        cancel=cancel,
    )
    result.duration_ms = int((time.monotonic() - start) * 1000)
    logger.debug("Review finished in %dms with %d comment(s)", result.duration_ms, len(result.comments))
    return result
