"""Adapter construction and the active-platform session.

The session is an explicit object handed to whoever needs the current
adapter (CLI commands, orchestration code, tests), never a module-level
global, so several independent sessions can coexist.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from revlens_core.net.errors import AdapterNotInitializedError
from revlens_core.platform.base import PlatformAdapter
from revlens_core.platform.types import PlatformConfig, PlatformType, ReviewAuthorData

logger = logging.getLogger(__name__)


def create_adapter(config: PlatformConfig, **options: Any) -> PlatformAdapter:
    """Instantiate the adapter for ``config.type``.

    ``options`` (timeout_ms, retry, session, cancel) pass through to the
    adapter constructor.
    """
    platform = PlatformType(config.type)
    if platform == PlatformType.GITLAB:
        from revlens_core.platform.gitlab import GitLabAdapter

        return GitLabAdapter(config.url, config.token, **options)
    if platform == PlatformType.GITHUB:
        from revlens_core.platform.github import GitHubAdapter

        return GitHubAdapter(config.url, config.token, **options)
    raise ValueError(f"Unsupported platform type: {config.type!r}")


class PlatformSession:
    """Holds the single authoritative adapter for one client.

    Switching adapters bumps ``generation``. Calls already running against the
    previous adapter are not cancelled; callers capture ``generation`` before
    a call and drop the result when ``is_current()`` turns False.
    """

    def __init__(self, adapter: PlatformAdapter | None = None):
        self._adapter: PlatformAdapter | None = None
        self._generation = 0
        self._author_cache: dict[tuple[int, int], ReviewAuthorData] = {}
        self._lock = threading.Lock()
        if adapter is not None:
            self.activate(adapter)

    @property
    def adapter(self) -> PlatformAdapter | None:
        return self._adapter

    @property
    def has_adapter(self) -> bool:
        return self._adapter is not None

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def connect(self, config: PlatformConfig, **options: Any) -> PlatformAdapter:
        adapter = create_adapter(config, **options)
        self.activate(adapter)
        logger.debug("Connected to %s at %s", config.type, config.url)
        return adapter

    def activate(self, adapter: PlatformAdapter | None) -> None:
        with self._lock:
            self._adapter = adapter
            self._generation += 1
            self._author_cache.clear()

    def disconnect(self) -> None:
        self.activate(None)

    def require_adapter(self) -> PlatformAdapter:
        adapter = self._adapter
        if adapter is None:
            raise AdapterNotInitializedError()
        return adapter

    def get_author_data(self, repo_id: int, review_iid: int) -> ReviewAuthorData:
        """Line attribution for a review, computed once per session."""
        key = (repo_id, review_iid)
        cached = self._author_cache.get(key)
        if cached is not None:
            return cached

        generation = self._generation
        data = self.require_adapter().get_review_author_data(repo_id, review_iid)
        with self._lock:
            if self.is_current(generation):
                self._author_cache[key] = data
        return data
