import os
from pathlib import Path
from typing import Optional

import yaml

from revlens_core.net.retry_policy import RetryOptions
from revlens_core.platform.types import PlatformConfig, PlatformType
from revlens_core.review_engine import AIConfig, AIProvider

DEFAULT_CONFIG: dict = {
    "platform": "gitlab",
    "gitlab": {"url": "https://gitlab.com"},
    "github": {"url": "https://github.com"},
    "ai": {
        "provider": None,
        "model": None,
        "providers": [],
        "language": "English",
        "rules": [],
    },
    "http": {
        "timeout_ms": 30_000,
        "max_retries": 2,
        "base_delay_ms": 1000,
        "max_delay_ms": 10_000,
    },
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
}

# Endpoints filled in when a provider entry omits api_url.
PROVIDER_PRESETS: dict[str, dict] = {
    "openai": {"name": "OpenAI", "api_url": "https://api.openai.com/v1", "env": "OPENAI_API_KEY"},
    "anthropic": {"name": "Anthropic", "api_url": "https://api.anthropic.com/v1", "env": "ANTHROPIC_API_KEY"},
    "deepseek": {"name": "DeepSeek", "api_url": "https://api.deepseek.com/v1", "env": None},
    "openrouter": {"name": "OpenRouter", "api_url": "https://openrouter.ai/api/v1", "env": None},
}

_TOKEN_ENV = {PlatformType.GITLAB: "GITLAB_TOKEN", PlatformType.GITHUB: "GITHUB_TOKEN"}


def _fresh_defaults() -> dict:
    config = {}
    for key, value in DEFAULT_CONFIG.items():
        if isinstance(value, dict):
            config[key] = {k: list(v) if isinstance(v, list) else v for k, v in value.items()}
        elif isinstance(value, list):
            config[key] = list(value)
        else:
            config[key] = value
    return config


def load_config(config_path: str = ".revlens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .revlens.yml in the current directory
      3. CLI argument overrides

    Sections (gitlab, github, ai, http) are merged key by key so a file that
    sets only ``http.max_retries`` keeps the other http defaults.
    """
    config = _fresh_defaults()

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        for key, value in file_config.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["gitlab_token"] = os.environ.get("GITLAB_TOKEN")
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

    return config


def platform_config(config: dict, token: Optional[str] = None) -> PlatformConfig:
    """Build the PlatformConfig for the configured platform.

    ``token`` wins over the token read from the environment.
    """
    platform = PlatformType(str(config.get("platform", "gitlab")).lower())
    section = config.get(platform.value) or {}
    url = section.get("url") or DEFAULT_CONFIG[platform.value]["url"]
    return PlatformConfig(
        type=platform,
        url=url.rstrip("/"),
        token=token or config.get(f"{platform.value}_token") or "",
    )


def token_env_var(platform: PlatformType) -> str:
    return _TOKEN_ENV[platform]


def ai_config(config: dict) -> AIConfig:
    """Build the AIConfig snapshot handed to the review backend.

    Provider entries may omit ``api_url`` for the built-in presets, and
    ``api_key`` for openai/anthropic when the matching env var is set.
    """
    section = config.get("ai") or {}
    providers = []
    for entry in section.get("providers") or []:
        provider_id = str(entry.get("id", "")).strip()
        if not provider_id:
            continue
        preset = PROVIDER_PRESETS.get(provider_id, {})
        api_key = entry.get("api_key") or ""
        if not api_key and preset.get("env"):
            api_key = config.get(preset["env"].lower()) or ""
        providers.append(
            AIProvider(
                id=provider_id,
                name=entry.get("name") or preset.get("name", provider_id),
                api_url=entry.get("api_url") or preset.get("api_url", ""),
                api_key=api_key,
                models=[str(m) for m in entry.get("models") or []],
            )
        )

    provider_id = section.get("provider")
    # A bare "provider: openai" with an env key works without a providers list.
    if provider_id and provider_id in PROVIDER_PRESETS and not any(p.id == provider_id for p in providers):
        preset = PROVIDER_PRESETS[provider_id]
        env_key = config.get(preset["env"].lower()) if preset.get("env") else None
        if env_key:
            providers.append(
                AIProvider(id=provider_id, name=preset["name"], api_url=preset["api_url"], api_key=env_key)
            )

    return AIConfig(
        provider_id=provider_id,
        model_id=section.get("model"),
        providers=providers,
        language=section.get("language") or "English",
        rules=[str(r) for r in section.get("rules") or []],
    )


def retry_options(config: dict) -> RetryOptions:
    http = config.get("http") or {}
    defaults = DEFAULT_CONFIG["http"]
    return RetryOptions(
        max_retries=int(http.get("max_retries", defaults["max_retries"])),
        base_delay_ms=int(http.get("base_delay_ms", defaults["base_delay_ms"])),
        max_delay_ms=int(http.get("max_delay_ms", defaults["max_delay_ms"])),
    )


def timeout_ms(config: dict) -> int:
    http = config.get("http") or {}
    return int(http.get("timeout_ms", DEFAULT_CONFIG["http"]["timeout_ms"]))
