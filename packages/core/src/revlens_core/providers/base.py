"""Base reviewer implementing the Template Method pattern.

All AI providers share the same review algorithm:
    review() → _build_system_prompt()
             → _call_with_retry() → _call_api()   ← only this differs per provider
             → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Prompt construction, JSON parsing and retry live here so every provider
returns the same ReviewResult shape.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from revlens_core.net.errors import ServiceError
from revlens_core.net.retry_policy import with_retry

if TYPE_CHECKING:
    from revlens_core.net.cancel import CancelToken

logger = logging.getLogger(__name__)

_MAX_RETRIES = 2
_MAX_TOKENS = 4000

SEVERITIES = ("error", "warning", "info")
# Older prompt formats used a four-level scale.
_SEVERITY_ALIASES = {"critical": "error", "major": "error", "minor": "warning", "nitpick": "info"}
_DEFAULT_RULES = ("Check for potential bugs and logic errors",)
PARSE_FAILURE_SUMMARY = "Could not parse the review result; check the AI response format."
_NO_SUMMARY = "No summary"


@dataclass(frozen=True)
class ReviewRequest:
    diff: str
    rules: tuple[str, ...] = ()
    language: str = "English"


@dataclass
class ReviewComment:
    line: int
    content: str
    severity: str = "info"


@dataclass
class ReviewResult:
    summary: str
    comments: list[ReviewComment] = field(default_factory=list)
    duration_ms: int | None = None


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    PROVIDER: str = "system"

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review(self, request: ReviewRequest, cancel: CancelToken | None = None) -> ReviewResult:
        """Review one diff and return the summary plus line comments."""
        system = self._build_system_prompt(request.rules, request.language)
        raw = self._call_with_retry(system, request.diff, cancel)
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        Should raise on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str, cancel: CancelToken | None = None) -> str:
        if cancel is not None:
            cancel.raise_if_cancelled(self.PROVIDER)
        try:
            raw = with_retry(
                lambda: self._call_api(system_prompt, user_prompt),
                max_retries=self.MAX_RETRIES,
                cancel=cancel,
            )
        except Exception as e:
            logger.error("%s API call failed: %s", self.__class__.__name__, e)
            raise
        # The SDK call itself cannot be interrupted; drop its answer instead.
        if cancel is not None:
            cancel.raise_if_cancelled(self.PROVIDER)
        if not raw:
            raise ServiceError(self.PROVIDER, "AI returned an empty response", retryable=False)
        return raw

    def _build_system_prompt(self, rules: tuple[str, ...] | list[str], language: str) -> str:
        rules_text = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules or _DEFAULT_RULES, 1))
        return f"""You are a professional code reviewer. Review the code diff according to these rules:

{rules_text}

Return the review as JSON and nothing else:
{{
  "summary": "overall assessment (under 100 words)",
  "comments": [
    {{
      "line": 10,
      "content": "issue or suggestion",
      "severity": "error|warning|info"
    }}
  ]
}}

Requirements:
1. Keep the summary under 100 words and focused on the main issues.
2. Only include meaningful, specific and actionable comments.
3. "line" is the line number in the new file for added lines.
4. Do not include reasoning steps or any text outside the JSON.

Important: write every response in {language or "English"}."""

    def _parse(self, raw: str) -> ReviewResult:
        """Parse the model's raw text response into a ReviewResult.

        Unparseable responses become a result with a fixed summary and no
        comments rather than an error: the call itself succeeded.
        """
        try:
            fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", raw)
            payload: Any = json.loads(fenced.group(1).strip() if fenced else raw.strip())
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
            return ReviewResult(summary=PARSE_FAILURE_SUMMARY)

        if isinstance(payload, list):
            payload = {"comments": payload}
        if not isinstance(payload, dict):
            return ReviewResult(summary=PARSE_FAILURE_SUMMARY)

        comments = []
        for item in payload.get("comments") or []:
            if not isinstance(item, dict):
                continue
            line = item.get("line")
            severity = str(item.get("severity", "info")).lower()
            severity = _SEVERITY_ALIASES.get(severity, severity)
            comments.append(
                ReviewComment(
                    line=line if isinstance(line, int) and not isinstance(line, bool) else 1,
                    content=str(item.get("content") or item.get("comment") or ""),
                    severity=severity if severity in SEVERITIES else "info",
                )
            )
        return ReviewResult(summary=payload.get("summary") or _NO_SUMMARY, comments=comments)
