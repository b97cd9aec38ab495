"""review command: run the AI review over a review's changed files."""

from __future__ import annotations

import threading

import click
from rich.console import Console
from rich.markup import escape

from revlens_core.config import ai_config
from revlens_core.orchestrator import ReviewOrchestrator
from revlens_core.platform.types import PostCommentParams
from revlens_core.review_engine import validate_config
from revlens_core.utils.code import should_review
from revlens_cli.commands.helpers import anchored_position, platform_errors, require_adapter

console = Console()

_SEVERITY_STYLE = {"error": "red", "warning": "yellow", "info": "cyan"}


def format_comment_body(line: int, content: str, severity: str) -> str:
    """Comment text posted to the platform; the "Line N" prefix anchors it."""
    return f"**[{severity}]** Line {line}: {content}"


def _print_progress(file_path: str | None, orchestrator: ReviewOrchestrator) -> None:
    if file_path is None:
        return
    state = orchestrator.get_file_state(file_path)
    if state.loading:
        batch = orchestrator.batch_state
        console.print(f"\n[[{batch.completed + batch.failed + 1}/{batch.total}]] Reviewing: {escape(file_path)}")
    elif state.error:
        console.print(f"  [red]Failed: {escape(state.error)}[/red]")
    elif state.result is not None:
        console.print(f"  [green]Done[/green] ({len(state.result.comments)} comment(s))")


def _run_batch(orchestrator: ReviewOrchestrator, changes) -> None:
    """Run the batch on a worker thread so Ctrl-C can stop it between files."""
    worker = threading.Thread(target=orchestrator.review_all, args=(changes,), daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping after the current file...[/yellow]")
        orchestrator.stop()
        worker.join()


@click.command("review")
@click.option("--repo", "repo_id", type=int, required=True, help="Repository id.")
@click.option("--review", "review_iid", type=int, required=True, help="Merge request / pull request number.")
@click.option("--file", "file_path", default=None, help="Review only this file.")
@click.option("--post", is_flag=True, help="Post the review comments to the platform.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.pass_context
def review_cmd(ctx, repo_id: int, review_iid: int, file_path: str | None, post: bool, yes: bool):
    """Review every changed file of a merge request / pull request with AI.

    Files are reviewed one at a time. Press Ctrl-C to stop after the file
    currently being reviewed.

    \b
    Required configuration (.revlens.yml):
      ai.provider / ai.model    the provider and model to use
      ai.providers              api_url / api_key per provider (or
                                OPENAI_API_KEY / ANTHROPIC_API_KEY)
    """
    config = ctx.obj["config"]
    ai = ai_config(config)
    error = validate_config(ai)
    if error:
        raise click.UsageError(error)

    adapter = require_adapter(ctx)
    with platform_errors():
        review = adapter.get_review_with_changes(repo_id, review_iid)

    exclude = config.get("exclude") or []
    changes = []
    for change in review.changes:
        if file_path and change.path != file_path:
            continue
        if change.deleted_file or not should_review(change.path, exclude):
            console.print(f"  Skipping: {escape(change.path)}")
            continue
        changes.append(change)

    if not changes:
        console.print("[yellow]No files to review.[/yellow]")
        return

    orchestrator = ReviewOrchestrator(ai, on_change=_print_progress)
    _run_batch(orchestrator, changes)

    batch = orchestrator.batch_state
    status = "stopped" if batch.stopped else "finished"
    console.print(f"\nReview {status}: {batch.completed} completed, {batch.failed} failed of {batch.total}.")

    results = []
    for change in changes:
        state = orchestrator.get_file_state(change.path)
        if state.result is None:
            continue
        results.append((change, state.result))
        console.print(f"\n[bold]{escape(change.path)}[/bold]")
        console.print(f"  {escape(state.result.summary)}")
        for c in state.result.comments:
            style = _SEVERITY_STYLE.get(c.severity, "white")
            console.print(f"  [{style}]{c.severity}[/{style}] line {c.line}: {escape(c.content)}")

    if not post:
        return

    total = sum(len(result.comments) for _, result in results)
    if total == 0:
        console.print("[green]No comments to post.[/green]")
        return
    if not yes and not click.confirm(f"\nPost {total} comment(s) to #{review.iid}?", default=False):
        return

    refs = review.diff_refs
    posted = 0
    with platform_errors():
        for change, result in results:
            for c in result.comments:
                body = format_comment_body(c.line, c.content, c.severity)
                position = anchored_position(change, body, refs)
                adapter.post_comment(
                    PostCommentParams(repo_id=repo_id, review_iid=review_iid, body=body, position=position)
                )
                posted += 1
    console.print(f"[green]Posted {posted} comment(s).[/green]")
