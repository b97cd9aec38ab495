"""Abstract platform adapter.

Every code-hosting provider implements this interface. Callers depend on
PlatformAdapter (not on a concrete provider) and only ever receive the
records from revlens_core.platform.types, so no code outside an adapter
branches on which provider it is talking to.

Subclasses implement two things for transport:
  - _url: turn an endpoint path into an absolute API URL
  - _default_headers: the provider's auth/accept headers

and the twelve operations below. Request execution, parallel fan-out and
author-attribution assembly are shared here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, TypeVar

import requests

from revlens_core.net import http_client
from revlens_core.net.retry_policy import RetryOptions
from revlens_core.platform.diff_utils import parse_changed_lines
from revlens_core.platform.types import LineCommitters, ReviewAuthorData

if TYPE_CHECKING:
    from revlens_core.net.cancel import CancelToken
    from revlens_core.net.http_client import HttpResponse
    from revlens_core.platform.types import (
        CommitAuthorInfo,
        Discussion,
        MergeOptions,
        Org,
        PlatformType,
        PostCommentParams,
        Repo,
        Review,
        ReviewState,
        ReviewWithChanges,
        User,
    )

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_MAX_WORKERS = 8
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO-8601 API timestamp; unparseable values sort first."""
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class PlatformAdapter(ABC):
    type: PlatformType
    MAX_WORKERS: int = _MAX_WORKERS

    def __init__(
        self,
        token: str,
        timeout_ms: int = http_client.DEFAULT_TIMEOUT_MS,
        retry: RetryOptions | None = None,
        session: requests.Session | None = None,
        cancel: CancelToken | None = None,
    ):
        self._token = token
        self._timeout_ms = timeout_ms
        self._retry = retry or RetryOptions()
        self._session = session or requests.Session()
        self.cancel = cancel

    # ------------------------------------------------------------------ #
    # Transport                                                          #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _url(self, endpoint: str) -> str:
        """Absolute URL for an endpoint path; absolute URLs pass through."""

    @abstractmethod
    def _default_headers(self) -> dict[str, str]:
        """Auth and content-negotiation headers sent with every call."""

    def _fetch(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
        retry: bool = True,
    ) -> HttpResponse:
        merged = {**self._default_headers(), **(headers or {})}
        return http_client.fetch(
            self._url(endpoint),
            method=method,
            headers=merged,
            body=body,
            timeout_ms=self._timeout_ms,
            cancel=self.cancel,
            provider=self.type.value,
            retry=self._retry if retry else False,
            session=self._session,
        )

    def _request(self, endpoint: str, method: str = "GET", body: Any = None, **kwargs) -> Any:
        return self._fetch(endpoint, method=method, body=body, **kwargs).data

    def _parallel(self, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
        """Run ``fn`` over ``items`` concurrently, preserving input order.

        The first exception raised by any call propagates to the caller.
        """
        items = list(items)
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=min(self.MAX_WORKERS, len(items))) as pool:
            return list(pool.map(fn, items))

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------ #
    # Shared assembly                                                    #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _build_author_data(commits: list[tuple[CommitAuthorInfo, list[tuple[str, str]]]]) -> ReviewAuthorData:
        """Fold (commit, [(path, patch), ...]) pairs into per-line attribution.

        ``commits`` must already be sorted oldest first: each commit overwrites
        the entries of the ones before it, so the newest commit touching a line
        is the one recorded.
        """
        data = ReviewAuthorData()
        for info, files in commits:
            for path, patch in files:
                if not path:
                    continue
                authors = data.file_authors.setdefault(path, [])
                if info.author_name not in authors:
                    authors.append(info.author_name)

                committers = data.line_committers.setdefault(path, LineCommitters())
                changed = parse_changed_lines(patch or "")
                for line in changed.additions:
                    committers.additions[line] = info
                for line in changed.deletions:
                    committers.deletions[line] = info
        return data

    # ------------------------------------------------------------------ #
    # Operations                                                         #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_current_user(self) -> User:
        """Return the authenticated user; doubles as a connection check."""

    @abstractmethod
    def get_orgs(self) -> list[Org]:
        """Return groups/organizations the user can contribute to."""

    @abstractmethod
    def get_sub_orgs(self, org_id: int | str) -> list[Org]:
        """Return child groups; empty on providers without nesting."""

    @abstractmethod
    def get_org_repos(self, org_id: int | str) -> list[Repo]:
        pass

    @abstractmethod
    def get_repos(self) -> list[Repo]:
        pass

    @abstractmethod
    def get_reviews(self, repo_id: int, state: ReviewState | None = None) -> list[Review]:
        pass

    @abstractmethod
    def get_review_with_changes(self, repo_id: int, review_iid: int) -> ReviewWithChanges:
        pass

    @abstractmethod
    def get_review_discussions(self, repo_id: int, review_iid: int) -> list[Discussion]:
        pass

    @abstractmethod
    def get_review_author_data(self, repo_id: int, review_iid: int) -> ReviewAuthorData:
        """Attribute every changed line of the review to the latest commit touching it."""

    @abstractmethod
    def get_file_content(self, repo_id: int, file_path: str, ref: str) -> str:
        pass

    @abstractmethod
    def post_comment(self, params: PostCommentParams) -> None:
        """Post a positioned comment when position and SHAs allow it, else a general one."""

    @abstractmethod
    def merge_review(self, repo_id: int, review_iid: int, options: MergeOptions | None = None) -> None:
        pass
