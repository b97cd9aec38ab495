"""Write commands: comment, merge."""

from __future__ import annotations

import click
from rich.console import Console

from revlens_core.platform.types import MergeOptions, MergeStrategy, PostCommentParams
from revlens_cli.commands.helpers import anchored_position, platform_errors, require_adapter

console = Console()


@click.command("comment")
@click.option("--repo", "repo_id", type=int, required=True, help="Repository id.")
@click.option("--review", "review_iid", type=int, required=True, help="Merge request / pull request number.")
@click.option("--file", "file_path", default=None, help="Anchor the comment to a changed line of this file.")
@click.option("--body", required=True, help="Comment text. Mention \"line N\" to pick the anchored line.")
@click.pass_context
def comment_cmd(ctx, repo_id: int, review_iid: int, file_path: str | None, body: str):
    """Post a comment on a review.

    Without --file the comment is a general one. With --file it is placed on
    the line the body mentions when that line changed, else on the file's
    first changed line.
    """
    adapter = require_adapter(ctx)
    position = None
    with platform_errors():
        if file_path:
            review = adapter.get_review_with_changes(repo_id, review_iid)
            change = next((c for c in review.changes if file_path in (c.new_path, c.old_path)), None)
            if change is None:
                raise click.UsageError(f"{file_path} is not changed in #{review_iid}.")
            position = anchored_position(change, body, review.diff_refs)
        adapter.post_comment(PostCommentParams(repo_id=repo_id, review_iid=review_iid, body=body, position=position))

    if position is not None:
        line = position.new_line if position.new_line is not None else position.old_line
        console.print(f"[green]Comment posted on {file_path}:{line}.[/green]")
    else:
        console.print("[green]Comment posted.[/green]")


@click.command("merge")
@click.option("--repo", "repo_id", type=int, required=True, help="Repository id.")
@click.option("--review", "review_iid", type=int, required=True, help="Merge request / pull request number.")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in MergeStrategy]),
    default=MergeStrategy.IMMEDIATE.value,
    show_default=True,
    help="Merge strategy.",
)
@click.option("--remove-source-branch", is_flag=True, help="Delete the source branch after merging (GitLab).")
@click.option("--squash", is_flag=True, help="Squash commits when merging.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def merge_cmd(
    ctx,
    repo_id: int,
    review_iid: int,
    strategy: str,
    remove_source_branch: bool,
    squash: bool,
    yes: bool,
):
    """Merge a merge request / pull request."""
    adapter = require_adapter(ctx)
    if not yes and not click.confirm(f"Merge #{review_iid}?", default=False):
        return

    options = MergeOptions(
        strategy=MergeStrategy(strategy),
        should_remove_source_branch=remove_source_branch,
        squash=squash,
    )
    with platform_errors():
        adapter.merge_review(repo_id, review_iid, options)
    console.print(f"[green]Merged #{review_iid}.[/green]")
