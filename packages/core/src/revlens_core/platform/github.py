"""GitHub adapter (REST API, ``Authorization: Bearer`` auth).

GitHub differs from the common model in three ways this adapter absorbs:

- Repositories are addressed as ``owner/name`` in URLs while callers key them
  by numeric id. Every repo we see is recorded in a process-wide id → name
  cache; a miss costs one ``/repositories/:id`` lookup.
- Lists paginate through the ``Link`` response header (``rel="next"``), which
  we follow up to a fixed page ceiling.
- Review comments arrive as a flat list linked by ``in_reply_to_id`` plus a
  separate list of general (issue) comments; threads are rebuilt here.
"""

from __future__ import annotations

import logging
import re
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
# 10 pages x 100 items bounds the worst case at 10 requests per listing.
_MAX_PAGES = 10
_API_VERSION = "2022-11-28"
_PUBLIC_HOSTS = ("https://github.com", "http://github.com")
_PUBLIC_API = "https://api.github.com"
_UNKNOWN_AUTHOR = "Unknown user"
_UNTITLED_COMMIT = "Untitled commit"

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

# Writes are idempotent (an id always maps to the same name), so concurrent
# fills from adapter threads need no locking.
_repo_full_names: dict[int, str] = {}


def parse_next_page_url(link_header: str | None) -> str | None:
    if not link_header:
        return None
    for part in link_header.split(","):
        match = _NEXT_LINK_RE.search(part)
        if match:
            return match.group(1)
    return None


def _to_user(raw: dict[str, Any]) -> User:
    return User(
        id=raw["id"],
        username=raw["login"],
        name=raw.get("name") or raw["login"],
        avatar_url=raw.get("avatar_url"),
        web_url=raw.get("html_url"),
    )


def _to_org(raw: dict[str, Any]) -> Org:
    login = raw["login"]
    return Org(
        id=raw["id"],
        name=login,
        path=login,
        full_name=login,
        full_path=login,
        description=raw.get("description") or None,
        avatar_url=raw.get("avatar_url"),
        web_url=raw.get("html_url"),
    )


def _to_repo(raw: dict[str, Any]) -> Repo:
    _repo_full_names[raw["id"]] = raw["full_name"]
    owner = raw.get("owner")
    return Repo(
        id=raw["id"],
        name=raw["name"],
        full_name=raw["full_name"],
        default_branch=raw.get("default_branch") or "",
        description=raw.get("description") or None,
        web_url=raw.get("html_url"),
        namespace=Namespace(id=owner["id"], name=owner["login"], path=owner["login"]) if owner else None,
    )


def _to_review_state(raw: dict[str, Any]) -> ReviewState:
    if raw.get("merged") or raw.get("merged_at"):
        return ReviewState.MERGED
    if raw.get("state") == "closed":
        return ReviewState.CLOSED
    return ReviewState.OPEN


def _to_review_fields(raw: dict[str, Any]) -> dict[str, Any]:
    return dict(
        id=raw["id"],
        iid=raw["number"],
        title=raw["title"],
        state=_to_review_state(raw),
        source_branch=raw["head"]["ref"],
        target_branch=raw["base"]["ref"],
        author=_to_user(raw["user"]),
        description=raw.get("body") or None,
        web_url=raw.get("html_url"),
        created_at=raw.get("created_at", ""),
        updated_at=raw.get("updated_at", ""),
        # GitHub has no merge-base SHA on the PR object; base doubles as start.
        diff_refs=DiffRefs(
            base_sha=raw["base"]["sha"],
            head_sha=raw["head"]["sha"],
            start_sha=raw["base"]["sha"],
        ),
        raw=raw,
    )


def _to_review(raw: dict[str, Any]) -> Review:
    return Review(**_to_review_fields(raw))


def _to_diff(raw: dict[str, Any]) -> FileDiff:
    status = raw.get("status")
    return FileDiff(
        old_path=raw.get("previous_filename") or raw["filename"],
        new_path=raw["filename"],
        diff=raw.get("patch") or "",
        new_file=status == "added",
        renamed_file=status in ("renamed", "copied"),
        deleted_file=status == "removed",
    )


def _to_note(raw: dict[str, Any]) -> Note:
    user = raw.get("user") or {}
    return Note(
        id=raw["id"],
        body=raw.get("body", ""),
        author_name=user.get("name") or user.get("login") or _UNKNOWN_AUTHOR,
        author_avatar_url=user.get("avatar_url"),
        created_at=raw.get("created_at", ""),
        system=False,
    )


def _build_discussions(review_comments: list[dict], issue_comments: list[dict]) -> list[Discussion]:
    """Rebuild threads from GitHub's two flat comment lists.

    Thread ids are prefixed by kind (``review-`` / ``issue-``) because the two
    id spaces are independent and may overlap.
    """
    replies: dict[int, list[dict]] = {}
    roots: list[dict] = []
    for comment in review_comments:
        parent = comment.get("in_reply_to_id")
        if parent:
            replies.setdefault(parent, []).append(comment)
        else:
            roots.append(comment)

    discussions: list[Discussion] = []
    for root in roots:
        thread = [root, *replies.get(root["id"], [])]
        # LEFT comments carry old-file line numbers only.
        left = root.get("side") == "LEFT"
        line = root.get("line")
        discussions.append(
            Discussion(
                id=f"review-{root['id']}",
                notes=[_to_note(c) for c in thread],
                position=Position(
                    old_path=root.get("path"),
                    new_path=root.get("path"),
                    new_line=None if left else line,
                    old_line=(line if line is not None else root.get("original_line")) if left else None,
                ),
            )
        )

    for comment in issue_comments:
        discussions.append(Discussion(id=f"issue-{comment['id']}", notes=[_to_note(comment)]))

    return discussions


class GitHubAdapter(PlatformAdapter):
    type = PlatformType.GITHUB
    MAX_PAGES: int = _MAX_PAGES

    def __init__(self, url: str, token: str, **kwargs):
        super().__init__(token, **kwargs)
        clean = url.rstrip("/")
        self.api_base = _PUBLIC_API if clean in _PUBLIC_HOSTS or not clean else f"{clean}/api/v3"

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.api_base}{endpoint}"

    def _default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": _API_VERSION,
        }

    def _fetch_all_pages(self, endpoint: str) -> list[dict[str, Any]]:
        sep = "&" if "?" in endpoint else "?"
        url: str | None = f"{self._url(endpoint)}{sep}per_page={_PER_PAGE}"
        results: list[dict[str, Any]] = []
        pages = 0
        while url and pages < self.MAX_PAGES:
            response = self._fetch(url)
            results.extend(response.data or [])
            url = parse_next_page_url(response.headers.get("link"))
            pages += 1
        if url:
            logger.warning("Stopped paging %s after %d pages; results are truncated", endpoint, pages)
        return results

    def _repo_full_name(self, repo_id: int) -> str:
        cached = _repo_full_names.get(repo_id)
        if cached:
            return cached
        raw = self._request(f"/repositories/{repo_id}")
        _repo_full_names[raw["id"]] = raw["full_name"]
        return raw["full_name"]

    def get_current_user(self) -> User:
        return _to_user(self._request("/user"))

    def get_orgs(self) -> list[Org]:
        return [_to_org(o) for o in self._fetch_all_pages("/user/orgs")]

    def get_sub_orgs(self, org_id: int | str) -> list[Org]:
        return []

    def get_org_repos(self, org_id: int | str) -> list[Repo]:
        if isinstance(org_id, int) or str(org_id).isdigit():
            login = self._request(f"/organizations/{org_id}")["login"]
        else:
            login = str(org_id)
        return [_to_repo(r) for r in self._fetch_all_pages(f"/orgs/{quote(login, safe='')}/repos")]

    def get_repos(self) -> list[Repo]:
        raw = self._fetch_all_pages("/user/repos?affiliation=owner,collaborator,organization_member&sort=updated")
        return [_to_repo(r) for r in raw]

    def get_reviews(self, repo_id: int, state: ReviewState | None = None) -> list[Review]:
        full_name = self._repo_full_name(repo_id)
        if state in (ReviewState.CLOSED, ReviewState.MERGED):
            gh_state = "closed"
        elif state == ReviewState.ALL:
            gh_state = "all"
        else:
            gh_state = "open"

        reviews = [
            _to_review(pr)
            for pr in self._fetch_all_pages(f"/repos/{full_name}/pulls?state={gh_state}&sort=updated&direction=desc")
        ]
        # GitHub has no merged filter; merged PRs are a subset of closed ones.
        if state == ReviewState.MERGED:
            reviews = [r for r in reviews if r.state == ReviewState.MERGED]
        return reviews

    def get_review_with_changes(self, repo_id: int, review_iid: int) -> ReviewWithChanges:
        full_name = self._repo_full_name(repo_id)
        pr_raw, files_raw = self._parallel(
            lambda fetch: fetch(),
            [
                lambda: self._request(f"/repos/{full_name}/pulls/{review_iid}"),
                lambda: self._fetch_all_pages(f"/repos/{full_name}/pulls/{review_iid}/files"),
            ],
        )
        return ReviewWithChanges(**_to_review_fields(pr_raw), changes=[_to_diff(f) for f in files_raw])

    def get_review_discussions(self, repo_id: int, review_iid: int) -> list[Discussion]:
        full_name = self._repo_full_name(repo_id)
        review_comments, issue_comments = self._parallel(
            self._fetch_all_pages,
            [f"/repos/{full_name}/pulls/{review_iid}/comments", f"/repos/{full_name}/issues/{review_iid}/comments"],
        )
        return _build_discussions(review_comments, issue_comments)

    def get_review_author_data(self, repo_id: int, review_iid: int) -> ReviewAuthorData:
        full_name = self._repo_full_name(repo_id)
        raw_commits = self._fetch_all_pages(f"/repos/{full_name}/pulls/{review_iid}/commits")
        commits = sorted(raw_commits, key=lambda c: parse_timestamp(c["commit"]["author"].get("date")))
        commits = [c for c in commits if (c["commit"]["author"].get("name") or "").strip()]

        def commit_files(commit: dict[str, Any]) -> list[tuple[str, str]]:
            # The PR commits listing omits files; the single-commit endpoint has them.
            files = commit.get("files")
            if files is None:
                files = self._request(f"/repos/{full_name}/commits/{commit['sha']}").get("files") or []
            return [(f.get("filename") or "", f.get("patch") or "") for f in files]

        files_per_commit = self._parallel(commit_files, commits)
        logger.debug("Attributing %d commit(s) for PR #%s", len(commits), review_iid)
        return self._build_author_data(
            [
                (
                    CommitAuthorInfo(
                        commit_id=c["sha"],
                        author_name=c["commit"]["author"]["name"].strip(),
                        title=(c["commit"].get("message") or "").split("\n")[0] or _UNTITLED_COMMIT,
                        created_at=c["commit"]["author"].get("date", ""),
                        web_url=c.get("html_url"),
                    ),
                    files,
                )
                for c, files in zip(commits, files_per_commit)
            ]
        )

    def get_file_content(self, repo_id: int, file_path: str, ref: str) -> str:
        full_name = self._repo_full_name(repo_id)
        content = self._request(
            f"/repos/{full_name}/contents/{quote(file_path)}?ref={quote(ref, safe='')}",
            headers={"Accept": "application/vnd.github.raw+json"},
            retry=False,
        )
        return content if isinstance(content, str) else ""

    def post_comment(self, params: PostCommentParams) -> None:
        full_name = self._repo_full_name(params.repo_id)
        pos = params.position
        has_path = bool(pos and (pos.old_path or pos.new_path))

        if pos is not None and has_path and pos.has_line and pos.head_sha:
            payload: dict[str, Any] = {
                "body": params.body,
                "commit_id": pos.head_sha,
                "path": pos.new_path or pos.old_path,
            }
            if isinstance(pos.new_line, int):
                payload["line"] = pos.new_line
                payload["side"] = "RIGHT"
            else:
                payload["line"] = pos.old_line
                payload["side"] = "LEFT"
            self._request(f"/repos/{full_name}/pulls/{params.review_iid}/comments", method="POST", body=payload)
        else:
            self._request(
                f"/repos/{full_name}/issues/{params.review_iid}/comments", method="POST", body={"body": params.body}
            )

    def merge_review(self, repo_id: int, review_iid: int, options: MergeOptions | None = None) -> None:
        options = options or MergeOptions()
        full_name = self._repo_full_name(repo_id)
        if options.strategy in (MergeStrategy.SQUASH, MergeStrategy.REBASE, MergeStrategy.MERGE):
            method = options.strategy.value
        else:
            # immediate, and pipeline which GitHub cannot gate on
            method = "squash" if options.squash else "merge"
        self._request(f"/repos/{full_name}/pulls/{review_iid}/merge", method="PUT", body={"merge_method": method})
