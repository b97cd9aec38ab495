"""CLI entry point for revlens.

Commands:
  orgs     list groups / organizations (or subgroups with --parent)
  repos    list repositories, optionally within one org
  reviews  list merge requests / pull requests of a repository
  show     changed files, discussions and (optionally) line authors of a review
  review   run the AI review over a review's changed files
  comment  post a comment on a review
  merge    merge a review
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from revlens_cli.commands.browse import orgs_cmd, repos_cmd, reviews_cmd, show_cmd
from revlens_cli.commands.manage import comment_cmd, merge_cmd
from revlens_cli.commands.review import review_cmd

console = Console()


def _build_session(config: dict):
    """Connect a PlatformSession for the configured platform.

    Without a token the session stays empty; commands then report the
    missing token through require_adapter() instead of failing here, so
    ``--help`` keeps working unauthenticated.
    """
    from revlens_core.config import platform_config, retry_options, timeout_ms
    from revlens_core.platform.factory import PlatformSession
    from revlens_cli.auth import resolve_platform_token

    session = PlatformSession()
    platform = platform_config(config)
    token = resolve_platform_token(platform.type)
    if not token:
        return session

    platform.token = token
    session.connect(platform, timeout_ms=timeout_ms(config), retry=retry_options(config))
    return session


@click.group()
@click.version_option(
    version=importlib.metadata.version("revlens"),
    prog_name="revlens",
)
@click.option(
    "--config",
    "config_path",
    default=".revlens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REVLENS_CONFIG",
)
@click.option(
    "--platform",
    type=click.Choice(["gitlab", "github"]),
    default=None,
    help="Code-hosting platform. Overrides config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, platform: str | None, verbose: bool):
    """Review GitLab merge requests and GitHub pull requests with AI."""
    from revlens_core.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)

    config = load_config(config_path, cli_overrides={"platform": platform})
    session = _build_session(config)

    ctx.obj["config"] = config
    ctx.obj["session"] = session

    def _close():
        if session.adapter is not None:
            session.adapter.close()
        session.disconnect()

    ctx.call_on_close(_close)


main.add_command(orgs_cmd)
main.add_command(repos_cmd)
main.add_command(reviews_cmd)
main.add_command(show_cmd)
main.add_command(review_cmd)
main.add_command(comment_cmd)
main.add_command(merge_cmd)
