"""Per-file and whole-review AI review orchestration.

Per file:   Idle → Loading → Result | Error → (clear) → Idle
            A second request for a path that is already Loading is rejected.
Per batch:  Idle → Running → Completed | Stopped

A batch reviews files one at a time, so at most one backend call is in flight
per batch. stop() is cooperative: the call already running is allowed to
finish and the loop exits before starting the next file. Interrupting a call
mid-file is intentionally not supported.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable

from revlens_core.net.cancel import CancelToken
from revlens_core.platform.diff_utils import build_unified_diff
from revlens_core.review_engine import execute_review

if TYPE_CHECKING:
    from revlens_core.platform.types import FileDiff
    from revlens_core.providers.base import ReviewResult
    from revlens_core.review_engine import AIConfig

logger = logging.getLogger(__name__)

_REVIEW_FAILED = "Review failed"


@dataclass
class FileReviewState:
    loading: bool = False
    result: ReviewResult | None = None
    error: str | None = None


@dataclass
class BatchReviewState:
    running: bool = False
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_file_path: str | None = None
    stopped: bool = False


@dataclass
class _BatchRun:
    run_id: int
    token: CancelToken


class ReviewOrchestrator:
    """Drives single-file and batch reviews and keeps their state.

    ``on_change(path, orchestrator)`` is called after every state transition;
    ``path`` is None for batch-level changes. Callbacks run on whichever
    thread performed the transition.
    """

    def __init__(
        self,
        ai_config: AIConfig,
        execute: Callable[..., ReviewResult] = execute_review,
        on_change: Callable[[str | None, ReviewOrchestrator], None] | None = None,
    ):
        self.ai_config = ai_config
        self._execute = execute
        self._on_change = on_change
        self._files: dict[str, FileReviewState] = {}
        self._pending: set[str] = set()
        self._batch = BatchReviewState()
        self._run: _BatchRun | None = None
        self._run_id = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # State access                                                       #
    # ------------------------------------------------------------------ #

    @property
    def batch_state(self) -> BatchReviewState:
        return replace(self._batch)

    @property
    def run_id(self) -> int:
        return self._run_id

    def get_file_state(self, file_path: str) -> FileReviewState:
        state = self._files.get(file_path)
        return replace(state) if state else FileReviewState()

    def files_state(self) -> dict[str, FileReviewState]:
        return {path: replace(state) for path, state in self._files.items()}

    def _update_file(self, file_path: str, **changes) -> None:
        with self._lock:
            current = self._files.get(file_path, FileReviewState())
            self._files[file_path] = replace(current, **changes)
        self._notify(file_path)

    def _update_batch(self, **changes) -> None:
        with self._lock:
            self._batch = replace(self._batch, **changes)
        self._notify(None)

    def _notify(self, file_path: str | None) -> None:
        if self._on_change is not None:
            self._on_change(file_path, self)

    # ------------------------------------------------------------------ #
    # Single file                                                        #
    # ------------------------------------------------------------------ #

    def review_file(self, diff_text: str, file_path: str) -> bool:
        """Review one file; return True on success.

        Returns False without calling the backend when the same path is
        already being reviewed. Failures are stored in the file state, never
        raised.
        """
        with self._lock:
            if file_path in self._pending:
                logger.debug("Review already in flight for %s", file_path)
                return False
            self._pending.add(file_path)

        try:
            self._update_file(file_path, loading=True, error=None, result=None)
            try:
                result = self._execute(self.ai_config, diff_text)
            except Exception as e:
                logger.error("Review of %s failed: %s", file_path, e)
                self._update_file(file_path, loading=False, result=None, error=str(e) or _REVIEW_FAILED)
                return False
            self._update_file(file_path, loading=False, result=result, error=None)
            return True
        finally:
            with self._lock:
                self._pending.discard(file_path)

    # ------------------------------------------------------------------ #
    # Batch                                                              #
    # ------------------------------------------------------------------ #

    def review_all(self, changes: list[FileDiff]) -> BatchReviewState:
        """Review every changed file in order and return the final batch state.

        A call made while another batch is running returns the current state
        without starting a second run.
        """
        queue = [(c.path, build_unified_diff(c)) for c in changes if c.path]

        with self._lock:
            if self._batch.running:
                return replace(self._batch)
            self._run_id += 1
            run = _BatchRun(run_id=self._run_id, token=CancelToken())
            self._run = run
        self._update_batch(
            running=True, total=len(queue), completed=0, failed=0, current_file_path=None, stopped=False
        )
        logger.info("Batch review %d started: %d file(s)", run.run_id, len(queue))

        completed = failed = 0
        stopped = False
        try:
            for index, (file_path, diff_text) in enumerate(queue, 1):
                if run.token.cancelled or self._run_id != run.run_id:
                    logger.info("Batch review %d stopped before %s", run.run_id, file_path)
                    stopped = True
                    break

                logger.debug("[%d/%d] Reviewing %s", index, len(queue), file_path)
                self._update_batch(current_file_path=file_path)
                if self.review_file(diff_text, file_path):
                    completed += 1
                else:
                    failed += 1
                if self._run is run:
                    self._update_batch(completed=completed, failed=failed)
        finally:
            # Always release the batch, even when a callback raised mid-run.
            if self._run is run:
                self._update_batch(running=False, current_file_path=None, stopped=stopped)

        if not stopped:
            logger.info("Batch review %d finished: %d completed, %d failed", run.run_id, completed, failed)
        return replace(self._batch)

    def stop(self) -> None:
        """Stop the running batch once its current file finishes."""
        with self._lock:
            if not self._batch.running or self._run is None:
                return
            self._run.token.cancel()
            self._run_id += 1

    def reset_batch(self) -> None:
        with self._lock:
            if self._run is not None:
                self._run.token.cancel()
            self._run = None
            self._run_id += 1
        self._update_batch(**vars(BatchReviewState()))

    def clear_file_result(self, file_path: str) -> None:
        self._update_file(file_path, loading=False, result=None, error=None)

    def clear_all_results(self) -> None:
        with self._lock:
            self._files.clear()
            self._pending.clear()
        self._notify(None)
