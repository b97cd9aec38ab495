"""Shared fakes for the HTTP boundary.

Adapters and the HTTP executor only ever call ``session.request(...)`` and
read ``status_code``, ``headers``, ``encoding``, ``iter_content`` and
``close`` from the result, so that is all FakeSession/FakeResponse model.
"""

import json
import threading

import pytest

from revlens_core.platform import github as github_module


class FakeResponse:
    def __init__(self, status=200, body=None, text=None, headers=None, chunks=None):
        self.status_code = status
        self.encoding = "utf-8"
        self.headers = dict(headers or {})
        if chunks is not None:
            self._chunks = list(chunks)
        else:
            if text is None:
                text = "" if body is None else json.dumps(body)
                self.headers.setdefault("Content-Type", "application/json")
            self._chunks = [text.encode("utf-8")] if text else []
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """Routes (method, url) to queued responses.

    A URL is matched exactly first, then without its query string. When a
    route has several queued responses they are returned in order and the
    last one repeats. A queued exception instance is raised instead.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, method, url, *responses):
        self.routes[(method.upper(), url)] = list(responses)
        return self

    def request(self, method, url, headers=None, data=None, timeout=None, stream=False):
        with self._lock:
            self.calls.append({"method": method, "url": url, "headers": headers or {}, "data": data})
            key = (method.upper(), url)
            if key not in self.routes:
                key = (method.upper(), url.split("?")[0])
            if key not in self.routes:
                raise AssertionError(f"Unexpected request: {method} {url}")
            queue = self.routes[key]
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    def close(self):
        pass

    def calls_to(self, url_part, method=None):
        return [
            c for c in self.calls if url_part in c["url"] and (method is None or c["method"].upper() == method.upper())
        ]

    def json_body(self, call):
        return json.loads(call["data"])


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture(autouse=True)
def no_retry_sleep(mocker):
    """Retries back off with time.sleep; tests never wait for real."""
    return mocker.patch("revlens_core.net.retry_policy.time.sleep")


@pytest.fixture(autouse=True)
def _clear_github_repo_cache():
    github_module._repo_full_names.clear()
    yield
    github_module._repo_full_names.clear()
