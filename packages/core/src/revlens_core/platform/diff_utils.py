"""Unified-diff line mapping shared by both platforms.

GitLab and GitHub hand back the same hunk format, so every line number we
attach a comment or an author to is recovered here and nowhere else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from revlens_core.platform.types import Discussion, FileDiff, Note, Position

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,\d+)? \+(\d+)(?:,\d+)? @@")

# "行 12" (Chinese) is tried before "line 12"; the first match wins.
_MENTIONED_LINE_RES = (
    re.compile(r"(?:^|[^\d])行\s*(\d+)(?!\d)", re.MULTILINE),
    re.compile(r"(?:^|[^\d])line\s*(\d+)(?!\d)", re.MULTILINE | re.IGNORECASE),
)


@dataclass
class ChangedLines:
    additions: list[int] = field(default_factory=list)
    deletions: list[int] = field(default_factory=list)

    @property
    def first_addition(self) -> int | None:
        return self.additions[0] if self.additions else None

    @property
    def first_deletion(self) -> int | None:
        return self.deletions[0] if self.deletions else None


def parse_changed_lines(diff_text: str) -> ChangedLines:
    """Recover added (new-file) and deleted (old-file) line numbers from hunks.

    Lines before the first ``@@`` header are ignored, which also keeps
    ``--- a/x`` / ``+++ b/x`` file headers from being read as content. Inside a
    hunk, lines with any other prefix (``\\ No newline at end of file``) are
    skipped without leaving the hunk.
    """
    result = ChangedLines()
    old_line = new_line = 0
    in_hunk = False

    for line in diff_text.split("\n"):
        match = _HUNK_HEADER_RE.match(line)
        if match:
            old_line = int(match.group(1))
            new_line = int(match.group(2))
            in_hunk = True
            continue

        if not in_hunk:
            continue

        if line.startswith("+") and not line.startswith("+++ "):
            result.additions.append(new_line)
            new_line += 1
        elif line.startswith("-") and not line.startswith("--- "):
            result.deletions.append(old_line)
            old_line += 1
        elif line.startswith(" "):
            old_line += 1
            new_line += 1

    return result


def extract_mentioned_line(text: str) -> int | None:
    """Return the first line number named in free text ("line 12", "行 12")."""
    for pattern in _MENTIONED_LINE_RES:
        match = pattern.search(text)
        if match:
            line = int(match.group(1))
            if line > 0:
                return line
    return None


def resolve_position(file_diff: FileDiff, text: str) -> Position | None:
    """Pick the diff line a comment should anchor to, or None for a general comment.

    An explicitly mentioned line wins when it is a changed line; otherwise the
    first addition, then the first deletion. Only lines present in the parsed
    hunk sets are ever returned, so the provider will accept the anchor.
    """
    changed = parse_changed_lines(file_diff.diff or "")
    mentioned = extract_mentioned_line(text)
    old_path = file_diff.old_path or file_diff.new_path or None
    new_path = file_diff.new_path or file_diff.old_path or None

    if mentioned is not None:
        if mentioned in changed.additions:
            return Position(old_path=old_path, new_path=new_path, new_line=mentioned)
        if mentioned in changed.deletions:
            return Position(old_path=old_path, new_path=new_path, old_line=mentioned)

    if changed.first_addition is not None:
        return Position(old_path=old_path, new_path=new_path, new_line=changed.first_addition)
    if changed.first_deletion is not None:
        return Position(old_path=old_path, new_path=new_path, old_line=changed.first_deletion)
    return None


def build_unified_diff(file_diff: FileDiff) -> str:
    """Prefix file headers to a stored hunk body so it reads as a standalone diff."""
    return f"--- a/{file_diff.old_path}\n+++ b/{file_diff.new_path}\n{file_diff.diff or ''}"


# ---------------------------------------------------------------------------
# Discussions per file
# ---------------------------------------------------------------------------


@dataclass
class FileLineDiscussions:
    additions: dict[int, list[Discussion]] = field(default_factory=dict)
    deletions: dict[int, list[Discussion]] = field(default_factory=dict)


@dataclass
class FileDiscussions:
    file_threads: list[Discussion] = field(default_factory=list)
    line_threads: FileLineDiscussions = field(default_factory=FileLineDiscussions)
    total_count: int = 0


def _visible(discussion: Discussion) -> Discussion:
    notes: list[Note] = [n for n in discussion.notes if not n.system]
    return Discussion(
        id=discussion.id,
        notes=notes,
        position=discussion.position,
        resolved=bool(discussion.resolved),
    )


def group_file_discussions(discussions: list[Discussion], old_path: str, new_path: str) -> FileDiscussions:
    """Attach the positioned discussions of one file to their diff lines.

    Threads matching the file but carrying no line land in ``file_threads``.
    System notes are dropped and threads left empty are skipped.
    ``total_count`` counts visible notes, not threads.
    """
    grouped = FileDiscussions()

    for discussion in discussions:
        position = discussion.position
        if position is None:
            continue

        thread = _visible(discussion)
        if not thread.notes:
            continue

        on_new = bool(position.new_path and position.new_path == new_path)
        on_old = bool(position.old_path and position.old_path == old_path)
        if not on_new and not on_old:
            continue

        grouped.total_count += len(thread.notes)

        if not position.has_line:
            grouped.file_threads.append(thread)
            continue

        if on_new and isinstance(position.new_line, int):
            grouped.line_threads.additions.setdefault(position.new_line, []).append(thread)
        if on_old and isinstance(position.old_line, int):
            grouped.line_threads.deletions.setdefault(position.old_line, []).append(thread)

    return grouped
