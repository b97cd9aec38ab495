"""Cooperative cancellation shared by the HTTP executor, retry policy and orchestrator."""

from __future__ import annotations

import threading

from revlens_core.net.errors import cancelled_error


class CancelToken:
    """A one-shot cancellation flag that can be waited on.

    Backed by a threading.Event so a token set from one thread (e.g. a CLI
    signal handler) is seen immediately by a worker blocked in wait().
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True as soon as the token is cancelled."""
        return self._event.wait(seconds)

    def raise_if_cancelled(self, provider: str = "system") -> None:
        if self._event.is_set():
            raise cancelled_error(provider)
