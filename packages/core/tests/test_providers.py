"""Tests for AI provider implementations.

Shared behaviour (_parse, _build_system_prompt, _call_with_retry) lives in
BaseReviewer and is tested once via a lightweight stub, not duplicated per
provider. Provider-specific tests cover only what differs between
implementations: the SDK client setup and _call_api.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from revlens_core.net.cancel import CancelToken
from revlens_core.net.errors import ServiceError, UserCancelledError
from revlens_core.providers.anthropic import AnthropicReviewer
from revlens_core.providers.base import PARSE_FAILURE_SUMMARY, BaseReviewer, ReviewRequest
from revlens_core.providers.openai import OpenAIReviewer, resolve_model_name

VALID_JSON = json.dumps(
    {
        "summary": "One bug found",
        "comments": [{"line": 3, "severity": "error", "content": "Missing error handling"}],
    }
)


class _StubReviewer(BaseReviewer):
    """Minimal concrete subclass used to test BaseReviewer shared methods."""

    def __init__(self, response=VALID_JSON):
        self.response = response
        self.prompts = []

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append((system_prompt, user_prompt))
        return self.response


# ---------------------------------------------------------------------------
# Shared behaviour, tested once through the stub, not per provider
# ---------------------------------------------------------------------------


class TestBaseReviewerParse:
    def test_parses_valid_json(self):
        result = _StubReviewer()._parse(VALID_JSON)
        assert result.summary == "One bug found"
        assert len(result.comments) == 1
        assert result.comments[0].line == 3
        assert result.comments[0].severity == "error"

    def test_strips_markdown_code_fences(self):
        result = _StubReviewer()._parse(f"```json\n{VALID_JSON}\n```")
        assert result.summary == "One bug found"

    def test_unparseable_response_yields_fixed_summary(self):
        result = _StubReviewer()._parse("not json at all")
        assert result.summary == PARSE_FAILURE_SUMMARY
        assert result.comments == []

    def test_unknown_severity_becomes_info(self):
        raw = json.dumps({"summary": "s", "comments": [{"line": 1, "content": "x", "severity": "blocker"}]})
        assert _StubReviewer()._parse(raw).comments[0].severity == "info"

    def test_legacy_severity_aliases(self):
        raw = json.dumps({"summary": "s", "comments": [{"line": 1, "content": "x", "severity": "major"}]})
        assert _StubReviewer()._parse(raw).comments[0].severity == "error"

    def test_non_integer_line_becomes_one(self):
        raw = json.dumps({"summary": "s", "comments": [{"line": "12", "content": "x"}, {"content": "y"}]})
        assert [c.line for c in _StubReviewer()._parse(raw).comments] == [1, 1]

    def test_bare_list_accepted(self):
        raw = json.dumps([{"line": 3, "severity": "minor", "comment": "legacy"}])
        result = _StubReviewer()._parse(raw)
        assert result.comments[0].content == "legacy"
        assert result.comments[0].severity == "warning"

    def test_missing_summary(self):
        assert _StubReviewer()._parse('{"comments": []}').summary == "No summary"


class TestBaseReviewerPrompts:
    def test_rules_numbered_in_system_prompt(self):
        prompt = _StubReviewer()._build_system_prompt(["No print", "Use types"], "English")
        assert "1. No print" in prompt
        assert "2. Use types" in prompt

    def test_default_rule_when_none_given(self):
        assert "potential bugs" in _StubReviewer()._build_system_prompt((), "English")

    def test_language_in_system_prompt(self):
        assert "Deutsch" in _StubReviewer()._build_system_prompt((), "Deutsch")

    def test_diff_sent_as_user_prompt(self):
        stub = _StubReviewer()
        stub.review(ReviewRequest(diff="+added line"))
        assert stub.prompts[0][1] == "+added line"


class TestBaseReviewerRetry:
    def test_non_retryable_error_propagates(self):
        class _AlwaysFailReviewer(BaseReviewer):
            calls = 0

            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                type(self).calls += 1
                raise ServiceError("openai", "bad request", status=400)

        with pytest.raises(ServiceError):
            _AlwaysFailReviewer().review(ReviewRequest(diff="+x"))
        assert _AlwaysFailReviewer.calls == 1

    def test_retries_on_transient_failure(self):
        call_count = 0

        class _FailOnceThenSucceed(BaseReviewer):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise ConnectionError("transient")
                return VALID_JSON

        result = _FailOnceThenSucceed().review(ReviewRequest(diff="+x"))
        assert len(result.comments) == 1
        assert call_count == 2

    def test_empty_response_is_an_error(self):
        with pytest.raises(ServiceError):
            _StubReviewer(response="").review(ReviewRequest(diff="+x"))

    def test_cancelled_token_skips_call(self):
        token = CancelToken()
        token.cancel()
        stub = _StubReviewer()
        with pytest.raises(UserCancelledError):
            stub.review(ReviewRequest(diff="+x"), cancel=token)
        assert stub.prompts == []


# ---------------------------------------------------------------------------
# Provider-specific: only what differs between Anthropic and OpenAI
# ---------------------------------------------------------------------------


class TestAnthropicReviewer:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError):
                AnthropicReviewer(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicReviewer.MODEL

    def test_strips_v1_from_base_url(self, mocker):
        client_cls = mocker.patch("anthropic.Anthropic")
        AnthropicReviewer(api_key="key", base_url="https://api.anthropic.com/v1/")
        client_cls.assert_called_once_with(api_key="key", base_url="https://api.anthropic.com")

    def test_call_api_joins_text_blocks(self, mocker):
        from anthropic.types import TextBlock

        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[TextBlock(type="text", text=" {\"summary\": "), TextBlock(type="text", text="\"s\"} ")]
        )
        mocker.patch("anthropic.Anthropic", return_value=client)
        reviewer = AnthropicReviewer(api_key="key", model="claude-test")
        assert reviewer._call_api("sys", "user") == '{"summary": "s"}'
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "sys"


class TestOpenAIReviewer:
    def test_raises_import_error_without_sdk(self):
        import revlens_core.providers.openai as openai_mod

        real_openai = openai_mod._OpenAI
        openai_mod._OpenAI = None
        try:
            with pytest.raises(ImportError):
                OpenAIReviewer(api_key="key")
        finally:
            openai_mod._OpenAI = real_openai

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIReviewer.MODEL

    def _reviewer(self, mocker, content="{}", finish_reason="stop", **kwargs):
        client = MagicMock()
        choice = SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)
        client.chat.completions.create.return_value = SimpleNamespace(choices=[choice])
        mocker.patch("revlens_core.providers.openai._OpenAI", return_value=client)
        return OpenAIReviewer(api_key="key", **kwargs), client

    def test_requests_json_object(self, mocker):
        reviewer, client = self._reviewer(mocker, content=VALID_JSON)
        assert reviewer._call_api("sys", "user") == VALID_JSON
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["extra_body"] is None

    def test_glm_disables_thinking(self, mocker):
        reviewer, client = self._reviewer(mocker, model="glm-4.6", base_url="https://open.bigmodel.cn/api/paas/v4")
        reviewer._call_api("sys", "user")
        assert client.chat.completions.create.call_args.kwargs["extra_body"]["thinking"]["type"] == "disabled"

    def test_truncated_output_raises(self, mocker):
        reviewer, _ = self._reviewer(mocker, content="", finish_reason="length")
        with pytest.raises(ServiceError, match="truncated"):
            reviewer._call_api("sys", "user")

    def test_openrouter_prefixes_provider(self, mocker):
        reviewer, _ = self._reviewer(
            mocker, model="gpt-4o", base_url="https://openrouter.ai/api/v1", provider_id="openai"
        )
        assert reviewer.model == "openai/gpt-4o"


class TestResolveModelName:
    def test_plain_endpoint_keeps_id(self):
        assert resolve_model_name("https://api.openai.com/v1", "openai", "gpt-4o") == "gpt-4o"

    def test_already_qualified_id_untouched(self):
        assert resolve_model_name("https://openrouter.ai/api/v1", "openai", "anthropic/claude") == "anthropic/claude"
