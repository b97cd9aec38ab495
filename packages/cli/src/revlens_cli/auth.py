"""Platform token resolution with gh/glab CLI fallback.

Resolution order (stops at first success):
  1. GITHUB_TOKEN / GITLAB_TOKEN environment variable (CI / explicit override)
  2. `gh auth token` / `glab auth token` (the platform CLI's stored session)
"""

from __future__ import annotations

import logging
import os
import subprocess

from revlens_core.config import token_env_var
from revlens_core.platform.types import PlatformType

logger = logging.getLogger(__name__)

_CLI_COMMANDS = {
    PlatformType.GITHUB: ["gh", "auth", "token"],
    PlatformType.GITLAB: ["glab", "auth", "token"],
}


def resolve_platform_token(platform: PlatformType | str) -> str | None:
    """Return a token for ``platform`` or None if no valid source is available.

    Never raises; callers should check for None and emit a UsageError.
    """
    platform = PlatformType(platform)

    token = os.environ.get(token_env_var(platform))
    if token:
        return token

    command = _CLI_COMMANDS[platform]
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            cli_token = result.stdout.strip()
            if cli_token:
                logger.debug("Resolved %s token via %s CLI session.", platform.value, command[0])
                return cli_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # CLI not installed or timed out; fall through.
        pass

    return None
