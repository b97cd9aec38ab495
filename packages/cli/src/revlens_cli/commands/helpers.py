"""Shared plumbing for commands that talk to the active platform."""

from __future__ import annotations

import contextlib

import click

from revlens_core.config import token_env_var
from revlens_core.net.errors import AdapterNotInitializedError, ServiceError
from revlens_core.platform.base import PlatformAdapter
from revlens_core.platform.diff_utils import resolve_position
from revlens_core.platform.types import CommentPosition, DiffRefs, FileDiff, PlatformType


def require_adapter(ctx: click.Context) -> PlatformAdapter:
    session = ctx.obj["session"]
    try:
        return session.require_adapter()
    except AdapterNotInitializedError:
        platform = PlatformType(ctx.obj["config"].get("platform") or "gitlab")
        env_var = token_env_var(platform)
        cli = "gh" if platform == PlatformType.GITHUB else "glab"
        raise click.UsageError(f"No {platform.value} token found. Set {env_var} or run `{cli} auth login` first.")


@contextlib.contextmanager
def platform_errors():
    """Turn platform failures into a clean CLI error instead of a traceback."""
    try:
        yield
    except ServiceError as e:
        raise click.ClickException(str(e))


def anchored_position(change: FileDiff, body: str, refs: DiffRefs | None) -> CommentPosition | None:
    """Where ``body`` should be posted on ``change``, or None for a general comment."""
    anchor = resolve_position(change, body)
    if anchor is None or refs is None:
        return None
    return CommentPosition(
        old_path=anchor.old_path,
        new_path=anchor.new_path,
        old_line=anchor.old_line,
        new_line=anchor.new_line,
        base_sha=refs.base_sha,
        head_sha=refs.head_sha,
        start_sha=refs.start_sha,
    )
