"""Tests for configuration loading."""

import pytest

from revlens_core.config import ai_config, load_config, platform_config, retry_options, timeout_ms, token_env_var
from revlens_core.platform.types import PlatformType


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for var in ("GITLAB_TOKEN", "GITHUB_TOKEN", "OPENAI_API_KEY", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(var, raising=False)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["platform"] == "gitlab"
    assert config["gitlab"]["url"] == "https://gitlab.com"
    assert config["http"]["max_retries"] == 2
    assert config["ai"]["language"] == "English"
    assert config["exclude"] == []


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".revlens.yml"
    cfg.write_text("platform: github\ngithub:\n  url: https://ghe.example.com\n")
    config = load_config(config_path=str(cfg))
    assert config["platform"] == "github"
    assert config["github"]["url"] == "https://ghe.example.com"


def test_sections_are_merged_key_by_key(tmp_path):
    cfg = tmp_path / ".revlens.yml"
    cfg.write_text("http:\n  max_retries: 5\n")
    config = load_config(config_path=str(cfg))
    assert config["http"]["max_retries"] == 5
    assert config["http"]["timeout_ms"] == 30_000


def test_exclude_patterns_loaded(tmp_path):
    cfg = tmp_path / ".revlens.yml"
    cfg.write_text("exclude:\n  - migrations/\n  - '*.lock'\n")
    config = load_config(config_path=str(cfg))
    assert "migrations/" in config["exclude"]
    assert "*.lock" in config["exclude"]


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".revlens.yml"
    cfg.write_text("platform: github\n")
    config = load_config(config_path=str(cfg), cli_overrides={"platform": "gitlab"})
    assert config["platform"] == "gitlab"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".revlens.yml"
    cfg.write_text("platform: github\n")
    config = load_config(config_path=str(cfg), cli_overrides={"platform": None})
    assert config["platform"] == "github"


def test_env_vars_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("GITLAB_TOKEN", "gl-token")
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
    monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["gitlab_token"] == "gl-token"
    assert config["github_token"] == "gh-token"
    assert config["anthropic_api_key"] == "ant-key"
    assert config["openai_api_key"] == "oai-key"


def test_defaults_are_not_shared_references(tmp_path):
    """Mutating one config's lists or sections must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["exclude"].append("migrations/")
    config_a["http"]["max_retries"] = 9
    config_a["ai"]["rules"].append("x")
    assert config_b["exclude"] == []
    assert config_b["http"]["max_retries"] == 2
    assert config_b["ai"]["rules"] == []


class TestPlatformConfig:
    def test_uses_env_token_for_selected_platform(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
        config = load_config(config_path=str(tmp_path / "x.yml"), cli_overrides={"platform": "github"})
        pc = platform_config(config)
        assert pc.type == PlatformType.GITHUB
        assert pc.url == "https://github.com"
        assert pc.token == "gh-token"

    def test_explicit_token_wins(self, tmp_path):
        config = load_config(config_path=str(tmp_path / "x.yml"))
        assert platform_config(config, token="explicit").token == "explicit"

    def test_trailing_slash_stripped(self):
        config = {"platform": "gitlab", "gitlab": {"url": "https://git.corp/"}}
        assert platform_config(config).url == "https://git.corp"

    def test_unknown_platform_raises(self):
        with pytest.raises(ValueError):
            platform_config({"platform": "bitbucket"})

    @pytest.mark.parametrize(
        "platform, env_var", [(PlatformType.GITLAB, "GITLAB_TOKEN"), (PlatformType.GITHUB, "GITHUB_TOKEN")]
    )
    def test_token_env_var(self, platform, env_var):
        assert token_env_var(platform) == env_var


class TestAIConfig:
    def test_preset_fills_missing_api_url(self, tmp_path):
        cfg = tmp_path / ".revlens.yml"
        cfg.write_text(
            "ai:\n"
            "  provider: deepseek\n"
            "  model: deepseek-chat\n"
            "  providers:\n"
            "    - id: deepseek\n"
            "      api_key: sk-1\n"
            "      models: [deepseek-chat]\n"
        )
        ai = ai_config(load_config(config_path=str(cfg)))
        provider = ai.selected_provider()
        assert provider.api_url == "https://api.deepseek.com/v1"
        assert provider.name == "DeepSeek"
        assert ai.model_id == "deepseek-chat"

    def test_env_key_used_when_entry_has_none(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
        cfg = tmp_path / ".revlens.yml"
        cfg.write_text("ai:\n  provider: openai\n  model: gpt-4o\n  providers:\n    - id: openai\n")
        ai = ai_config(load_config(config_path=str(cfg)))
        assert ai.selected_provider().api_key == "oai-key"

    def test_bare_provider_with_env_key(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
        cfg = tmp_path / ".revlens.yml"
        cfg.write_text("ai:\n  provider: anthropic\n  model: claude-sonnet-4-20250514\n")
        provider = ai_config(load_config(config_path=str(cfg))).selected_provider()
        assert provider is not None
        assert provider.api_url == "https://api.anthropic.com/v1"
        assert provider.api_key == "ant-key"

    def test_rules_and_language(self, tmp_path):
        cfg = tmp_path / ".revlens.yml"
        cfg.write_text("ai:\n  language: Deutsch\n  rules:\n    - No print statements\n")
        ai = ai_config(load_config(config_path=str(cfg)))
        assert ai.language == "Deutsch"
        assert ai.rules == ["No print statements"]


def test_retry_options_and_timeout(tmp_path):
    cfg = tmp_path / ".revlens.yml"
    cfg.write_text("http:\n  max_retries: 4\n  base_delay_ms: 10\n  timeout_ms: 500\n")
    config = load_config(config_path=str(cfg))
    opts = retry_options(config)
    assert opts.max_retries == 4
    assert opts.base_delay_ms == 10
    assert opts.max_delay_ms == 10_000
    assert timeout_ms(config) == 500
