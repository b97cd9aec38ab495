"""GitLab adapter (REST API v4, ``PRIVATE-TOKEN`` auth).

GitLab returns one capped page per call and pre-groups discussion threads, so
this adapter is mostly field renaming. Projects are addressed by numeric id
directly in URLs.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from revlens_core.platform.base import PlatformAdapter, parse_timestamp
from revlens_core.platform.types import (
    CommitAuthorInfo,
    DiffRefs,
    Discussion,
    FileDiff,
    MergeOptions,
    MergeStrategy,
    Namespace,
    Note,
    Org,
    PlatformType,
    Position,
    PostCommentParams,
    Repo,
    Review,
    ReviewAuthorData,
    ReviewState,
    ReviewWithChanges,
    User,
)

logger = logging.getLogger(__name__)

_PER_PAGE = 100
_REVIEWS_PER_PAGE = 50
# Developer access: enough to comment on and merge MRs.
_MIN_ACCESS_LEVEL = 30
_UNKNOWN_AUTHOR = "Unknown user"
_UNTITLED_COMMIT = "Untitled commit"

_STATE_FROM_GITLAB = {"opened": ReviewState.OPEN, "closed": ReviewState.CLOSED, "merged": ReviewState.MERGED}


def _to_user(raw: dict[str, Any]) -> User:
    return User(
        id=raw["id"],
        username=raw.get("username", ""),
        name=raw.get("name") or raw.get("username", ""),
        avatar_url=raw.get("avatar_url"),
        web_url=raw.get("web_url"),
    )


def _to_org(raw: dict[str, Any]) -> Org:
    return Org(
        id=raw["id"],
        name=raw["name"],
        path=raw["path"],
        full_name=raw.get("full_name") or raw["name"],
        full_path=raw.get("full_path") or raw["path"],
        description=raw.get("description") or None,
        avatar_url=raw.get("avatar_url") or None,
        web_url=raw.get("web_url"),
        parent_id=raw.get("parent_id"),
    )


def _to_repo(raw: dict[str, Any]) -> Repo:
    ns = raw.get("namespace")
    return Repo(
        id=raw["id"],
        name=raw["name"],
        full_name=raw["path_with_namespace"],
        default_branch=raw.get("default_branch") or "",
        description=raw.get("description") or None,
        web_url=raw.get("web_url"),
        namespace=Namespace(id=ns["id"], name=ns["name"], path=ns["path"]) if ns else None,
    )


def _to_review_state(state: str) -> ReviewState:
    return _STATE_FROM_GITLAB.get(state, ReviewState.CLOSED)


def _to_gitlab_state(state: ReviewState | None) -> str | None:
    if state is None or state == ReviewState.ALL:
        return None
    if state == ReviewState.OPEN:
        return "opened"
    return state.value


def _to_review_fields(raw: dict[str, Any]) -> dict[str, Any]:
    refs = raw.get("diff_refs")
    return dict(
        id=raw["id"],
        iid=raw["iid"],
        title=raw["title"],
        state=_to_review_state(raw["state"]),
        source_branch=raw["source_branch"],
        target_branch=raw["target_branch"],
        author=_to_user(raw["author"]),
        description=raw.get("description") or None,
        web_url=raw.get("web_url"),
        created_at=raw.get("created_at", ""),
        updated_at=raw.get("updated_at", ""),
        diff_refs=(
            DiffRefs(base_sha=refs["base_sha"], head_sha=refs["head_sha"], start_sha=refs["start_sha"])
            if refs
            else None
        ),
        raw=raw,
    )


def _to_review(raw: dict[str, Any]) -> Review:
    return Review(**_to_review_fields(raw))


def _to_diff(raw: dict[str, Any]) -> FileDiff:
    return FileDiff(
        old_path=raw["old_path"],
        new_path=raw["new_path"],
        diff=raw.get("diff") or "",
        new_file=bool(raw.get("new_file")),
        renamed_file=bool(raw.get("renamed_file")),
        deleted_file=bool(raw.get("deleted_file")),
    )


def _author_name(author: dict[str, Any] | None) -> str:
    if not author:
        return _UNKNOWN_AUTHOR
    return author.get("name") or author.get("username") or _UNKNOWN_AUTHOR


def _to_discussion(raw: dict[str, Any]) -> Discussion:
    notes = raw.get("notes") or []
    positioned = next((n["position"] for n in notes if n.get("position")), None)
    return Discussion(
        id=str(raw["id"]),
        notes=[
            Note(
                id=n["id"],
                body=n.get("body", ""),
                author_name=_author_name(n.get("author")),
                author_avatar_url=(n.get("author") or {}).get("avatar_url") or None,
                created_at=n.get("created_at", ""),
                system=bool(n.get("system", False)),
                resolved=n.get("resolved"),
            )
            for n in notes
        ],
        position=(
            Position(
                old_path=positioned.get("old_path"),
                new_path=positioned.get("new_path"),
                old_line=positioned.get("old_line"),
                new_line=positioned.get("new_line"),
            )
            if positioned
            else None
        ),
        resolved=any(n.get("resolved") is True for n in notes),
    )


class GitLabAdapter(PlatformAdapter):
    type = PlatformType.GITLAB

    def __init__(self, base_url: str, token: str, **kwargs):
        super().__init__(token, **kwargs)
        self.base_url = base_url.rstrip("/")

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/api/v4{endpoint}"

    def _default_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "PRIVATE-TOKEN": self._token}

    def get_current_user(self) -> User:
        return _to_user(self._request("/user"))

    def get_orgs(self) -> list[Org]:
        raw = self._request(f"/groups?min_access_level={_MIN_ACCESS_LEVEL}&per_page={_PER_PAGE}")
        return [_to_org(g) for g in raw or []]

    def get_sub_orgs(self, org_id: int | str) -> list[Org]:
        raw = self._request(
            f"/groups/{quote(str(org_id), safe='')}/subgroups?min_access_level={_MIN_ACCESS_LEVEL}&per_page={_PER_PAGE}"
        )
        return [_to_org(g) for g in raw or []]

    def get_org_repos(self, org_id: int | str) -> list[Repo]:
        raw = self._request(
            f"/groups/{quote(str(org_id), safe='')}/projects"
            f"?min_access_level={_MIN_ACCESS_LEVEL}&per_page={_PER_PAGE}&include_subgroups=true"
        )
        return [_to_repo(p) for p in raw or []]

    def get_repos(self) -> list[Repo]:
        raw = self._request(f"/projects?membership=true&min_access_level={_MIN_ACCESS_LEVEL}&per_page={_PER_PAGE}")
        return [_to_repo(p) for p in raw or []]

    def get_reviews(self, repo_id: int, state: ReviewState | None = None) -> list[Review]:
        endpoint = f"/projects/{repo_id}/merge_requests?per_page={_REVIEWS_PER_PAGE}"
        gitlab_state = _to_gitlab_state(state)
        if gitlab_state:
            endpoint += f"&state={gitlab_state}"
        return [_to_review(mr) for mr in self._request(endpoint) or []]

    def get_review_with_changes(self, repo_id: int, review_iid: int) -> ReviewWithChanges:
        base = f"/projects/{repo_id}/merge_requests/{review_iid}"
        mr_raw, diffs_raw = self._parallel(self._request, [base, f"{base}/diffs?per_page={_PER_PAGE}"])
        changes = [_to_diff(d) for d in diffs_raw] if isinstance(diffs_raw, list) else []
        return ReviewWithChanges(**_to_review_fields(mr_raw), changes=changes)

    def get_review_discussions(self, repo_id: int, review_iid: int) -> list[Discussion]:
        raw = self._request(f"/projects/{repo_id}/merge_requests/{review_iid}/discussions?per_page={_PER_PAGE}")
        return [_to_discussion(d) for d in raw or []]

    def get_review_author_data(self, repo_id: int, review_iid: int) -> ReviewAuthorData:
        raw_commits = self._request(f"/projects/{repo_id}/merge_requests/{review_iid}/commits?per_page={_PER_PAGE}")
        commits = sorted(raw_commits or [], key=lambda c: parse_timestamp(c.get("created_at")))
        commits = [c for c in commits if (c.get("author_name") or "").strip()]

        def commit_files(commit: dict[str, Any]) -> list[tuple[str, str]]:
            diffs = self._request(f"/projects/{repo_id}/repository/commits/{commit['id']}/diff?per_page={_PER_PAGE}")
            return [(d.get("new_path") or d.get("old_path") or "", d.get("diff") or "") for d in diffs or []]

        files_per_commit = self._parallel(commit_files, commits)
        logger.debug("Attributing %d commit(s) for MR !%s", len(commits), review_iid)
        return self._build_author_data(
            [
                (
                    CommitAuthorInfo(
                        commit_id=c["id"],
                        author_name=c["author_name"].strip(),
                        title=c.get("title") or _UNTITLED_COMMIT,
                        created_at=c.get("created_at", ""),
                        web_url=c.get("web_url"),
                    ),
                    files,
                )
                for c, files in zip(commits, files_per_commit)
            ]
        )

    def get_file_content(self, repo_id: int, file_path: str, ref: str) -> str:
        encoded = quote(file_path, safe="")
        content = self._request(f"/projects/{repo_id}/repository/files/{encoded}/raw?ref={quote(ref, safe='')}")
        return content if isinstance(content, str) else ""

    def post_comment(self, params: PostCommentParams) -> None:
        base = f"/projects/{params.repo_id}/merge_requests/{params.review_iid}"
        pos = params.position
        has_path = bool(pos and (pos.old_path or pos.new_path))
        has_refs = bool(pos and pos.base_sha and pos.head_sha and pos.start_sha)

        if pos is not None and has_path and pos.has_line and has_refs:
            position: dict[str, Any] = {
                "base_sha": pos.base_sha,
                "head_sha": pos.head_sha,
                "start_sha": pos.start_sha,
                "position_type": "text",
            }
            if pos.old_path:
                position["old_path"] = pos.old_path
            if pos.new_path:
                position["new_path"] = pos.new_path
            if isinstance(pos.old_line, int):
                position["old_line"] = pos.old_line
            if isinstance(pos.new_line, int):
                position["new_line"] = pos.new_line
            self._request(f"{base}/discussions", method="POST", body={"body": params.body, "position": position})
        else:
            self._request(f"{base}/notes", method="POST", body={"body": params.body})

    def merge_review(self, repo_id: int, review_iid: int, options: MergeOptions | None = None) -> None:
        options = options or MergeOptions()
        self._request(
            f"/projects/{repo_id}/merge_requests/{review_iid}/merge",
            method="PUT",
            body={
                "merge_when_pipeline_succeeds": options.strategy == MergeStrategy.PIPELINE,
                "should_remove_source_branch": options.should_remove_source_branch,
                "squash": options.squash or options.strategy == MergeStrategy.SQUASH,
            },
        )
