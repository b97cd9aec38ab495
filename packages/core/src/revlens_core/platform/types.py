"""Provider-independent records returned by every platform adapter.

Adapters translate GitLab/GitHub payloads into these types; nothing outside
revlens_core.platform should ever see a provider-native shape (except the
opaque ``Review.raw`` payload).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PlatformType(str, Enum):
    GITLAB = "gitlab"
    GITHUB = "github"


class ReviewState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"
    ALL = "all"


class MergeStrategy(str, Enum):
    """Shared merge vocabulary.

    GitLab understands immediate/pipeline; GitHub understands
    merge/squash/rebase. Each adapter maps the rest onto its native field.
    """

    IMMEDIATE = "immediate"
    PIPELINE = "pipeline"
    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"


@dataclass
class PlatformConfig:
    type: PlatformType
    url: str
    token: str


@dataclass
class User:
    id: int
    username: str
    name: str
    avatar_url: str | None = None
    web_url: str | None = None


@dataclass
class Org:
    id: int | str
    name: str
    path: str
    full_name: str
    full_path: str
    description: str | None = None
    avatar_url: str | None = None
    web_url: str | None = None
    parent_id: int | str | None = None  # GitLab subgroups only


@dataclass
class Namespace:
    id: int
    name: str
    path: str


@dataclass
class Repo:
    id: int
    name: str
    full_name: str  # GitLab path_with_namespace, GitHub owner/name
    default_branch: str
    description: str | None = None
    web_url: str | None = None
    namespace: Namespace | None = None


@dataclass
class DiffRefs:
    base_sha: str
    head_sha: str
    start_sha: str


@dataclass
class Review:
    id: int
    iid: int  # GitLab iid / GitHub number, what users see
    title: str
    state: ReviewState
    source_branch: str
    target_branch: str
    author: User
    description: str | None = None
    web_url: str | None = None
    created_at: str = ""
    updated_at: str = ""
    diff_refs: DiffRefs | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass
class FileDiff:
    old_path: str
    new_path: str
    diff: str  # hunk body only, no ---/+++ headers
    new_file: bool = False
    renamed_file: bool = False
    deleted_file: bool = False

    @property
    def path(self) -> str:
        return self.new_path or self.old_path


@dataclass
class ReviewWithChanges(Review):
    changes: list[FileDiff] = field(default_factory=list)


@dataclass
class Position:
    old_path: str | None = None
    new_path: str | None = None
    old_line: int | None = None
    new_line: int | None = None

    @property
    def has_line(self) -> bool:
        return isinstance(self.old_line, int) or isinstance(self.new_line, int)


@dataclass
class CommentPosition(Position):
    base_sha: str | None = None
    head_sha: str | None = None
    start_sha: str | None = None


@dataclass
class Note:
    id: int | str
    body: str
    author_name: str
    created_at: str
    system: bool = False
    resolved: bool | None = None
    author_avatar_url: str | None = None


@dataclass
class Discussion:
    id: str
    notes: list[Note] = field(default_factory=list)
    position: Position | None = None
    resolved: bool | None = None


@dataclass
class CommitAuthorInfo:
    commit_id: str
    author_name: str
    title: str
    created_at: str
    web_url: str | None = None


@dataclass
class LineCommitters:
    """Latest commit touching each changed line, keyed by line number."""

    additions: dict[int, CommitAuthorInfo] = field(default_factory=dict)
    deletions: dict[int, CommitAuthorInfo] = field(default_factory=dict)


@dataclass
class ReviewAuthorData:
    file_authors: dict[str, list[str]] = field(default_factory=dict)
    line_committers: dict[str, LineCommitters] = field(default_factory=dict)


@dataclass
class PostCommentParams:
    repo_id: int
    review_iid: int
    body: str
    position: CommentPosition | None = None


@dataclass
class MergeOptions:
    strategy: MergeStrategy = MergeStrategy.IMMEDIATE
    should_remove_source_branch: bool = False  # GitLab only; GitHub follows repo settings
    squash: bool = False
