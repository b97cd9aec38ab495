"""Read-only commands: orgs, repos, reviews, show."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revlens_core.platform.diff_utils import group_file_discussions, parse_changed_lines
from revlens_core.platform.types import ReviewState
from revlens_cli.commands.helpers import platform_errors, require_adapter

console = Console()

_STATE_STYLE = {
    ReviewState.OPEN: "green",
    ReviewState.MERGED: "magenta",
    ReviewState.CLOSED: "red",
}


@click.command("orgs")
@click.option("--parent", "parent_id", default=None, help="List the subgroups of this group id instead.")
@click.pass_context
def orgs_cmd(ctx, parent_id: str | None):
    """List groups (GitLab) or organizations (GitHub) you can contribute to."""
    adapter = require_adapter(ctx)
    with platform_errors():
        orgs = adapter.get_sub_orgs(parent_id) if parent_id else adapter.get_orgs()

    if not orgs:
        console.print("[yellow]No organizations found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Path")
    table.add_column("Name")
    for org in orgs:
        table.add_row(str(org.id), org.full_path, org.full_name)
    console.print(table)


@click.command("repos")
@click.option("--org", "org_id", default=None, help="Only list repositories of this group/org id.")
@click.pass_context
def repos_cmd(ctx, org_id: str | None):
    """List repositories."""
    adapter = require_adapter(ctx)
    with platform_errors():
        repos = adapter.get_org_repos(org_id) if org_id else adapter.get_repos()

    if not repos:
        console.print("[yellow]No repositories found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Repository")
    table.add_column("Default branch")
    for repo in repos:
        table.add_row(str(repo.id), repo.full_name, repo.default_branch)
    console.print(table)


@click.command("reviews")
@click.option("--repo", "repo_id", type=int, required=True, help="Repository id.")
@click.option(
    "--state",
    type=click.Choice([s.value for s in ReviewState]),
    default=ReviewState.OPEN.value,
    show_default=True,
    help="Filter by review state.",
)
@click.pass_context
def reviews_cmd(ctx, repo_id: int, state: str):
    """List merge requests / pull requests of a repository."""
    adapter = require_adapter(ctx)
    with platform_errors():
        reviews = adapter.get_reviews(repo_id, ReviewState(state))

    if not reviews:
        console.print(f"[yellow]No {state} reviews found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", width=6)
    table.add_column("Title", max_width=50)
    table.add_column("Author")
    table.add_column("Branches")
    table.add_column("State")
    for r in reviews:
        style = _STATE_STYLE.get(r.state, "white")
        table.add_row(
            str(r.iid),
            r.title,
            r.author.username,
            f"{r.source_branch} → {r.target_branch}",
            f"[{style}]{r.state.value}[/{style}]",
        )
    console.print(table)


@click.command("show")
@click.option("--repo", "repo_id", type=int, required=True, help="Repository id.")
@click.option("--review", "review_iid", type=int, required=True, help="Merge request / pull request number.")
@click.option("--authors", is_flag=True, help="Also show who last touched each changed line.")
@click.pass_context
def show_cmd(ctx, repo_id: int, review_iid: int, authors: bool):
    """Show the changed files of a review with their discussion threads."""
    adapter = require_adapter(ctx)
    session = ctx.obj["session"]
    with platform_errors():
        review = adapter.get_review_with_changes(repo_id, review_iid)
        discussions = adapter.get_review_discussions(repo_id, review_iid)
        author_data = session.get_author_data(repo_id, review_iid) if authors else None

    console.print(f"[bold]#{review.iid}[/bold] {escape(review.title)}")
    author = review.author.name or review.author.username
    console.print(f"  {review.source_branch} → {review.target_branch}  by {escape(author)}")
    if review.web_url:
        console.print(f"  {review.web_url}")

    if not review.changes:
        console.print("[yellow]No changed files.[/yellow]")
        return

    for change in review.changes:
        changed = parse_changed_lines(change.diff or "")
        threads = group_file_discussions(discussions, change.old_path, change.new_path)
        label = change.path
        if change.renamed_file and change.old_path != change.new_path:
            label = f"{change.old_path} → {change.new_path}"
        flags = "new " if change.new_file else "deleted " if change.deleted_file else ""
        notes = f"  💬 {threads.total_count}" if threads.total_count else ""
        console.print(
            f"\n[bold]{flags}{label}[/bold]  "
            f"[green]+{len(changed.additions)}[/green] [red]-{len(changed.deletions)}[/red]{notes}"
        )

        if author_data is not None and change.path in author_data.file_authors:
            console.print(f"  Authors: {', '.join(author_data.file_authors[change.path])}")

        for thread in threads.file_threads:
            _print_thread("file", thread)
        for line, line_threads in sorted(threads.line_threads.additions.items()):
            for thread in line_threads:
                _print_thread(f"+{line}", thread)
        for line, line_threads in sorted(threads.line_threads.deletions.items()):
            for thread in line_threads:
                _print_thread(f"-{line}", thread)

        if author_data is not None:
            committers = author_data.line_committers.get(change.path)
            if committers:
                for line in changed.additions:
                    info = committers.additions.get(line)
                    if info:
                        who = f"{escape(info.author_name)} {info.commit_id[:8]} {escape(info.title)}"
                        console.print(f"    [dim]+{line} {who}[/dim]")


def _print_thread(anchor: str, thread) -> None:
    resolved = " [green](resolved)[/green]" if thread.resolved else ""
    for i, note in enumerate(thread.notes):
        prefix = escape(f"  [{anchor}]") if i == 0 else "    ↳"
        suffix = resolved if i == 0 else ""
        console.print(f"{prefix} [cyan]{escape(note.author_name)}[/cyan]: {escape(note.body)}{suffix}")
