"""Unified HTTP executor: timeout, cancellation, retry and error classification.

Every platform and AI call goes through ``request`` / ``fetch`` so failures
surface as the same ServiceError hierarchy regardless of which service
produced them.

The body is streamed in chunks so both the caller's CancelToken and the total
deadline are honoured while a slow response is still arriving, not only
before the request is sent.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import requests

from revlens_core.net.errors import RequestTimeoutError, cancelled_error, create_service_error
from revlens_core.net.retry_policy import RetryOptions, retry_call

if TYPE_CHECKING:
    from revlens_core.net.cancel import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
_CHUNK_SIZE = 64 * 1024
# Error bodies can be whole HTML pages (proxies, maintenance screens).
_ERROR_BODY_LIMIT = 500
_REQUEST_ID_HEADERS = ("x-request-id", "x-github-request-id")

_default_session: requests.Session | None = None


@dataclass
class HttpResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None


def _get_default_session() -> requests.Session:
    global _default_session
    if _default_session is None:
        _default_session = requests.Session()
    return _default_session


def _encode_body(body: Any) -> str | bytes | None:
    if body is None or isinstance(body, (str, bytes)):
        return body
    return json.dumps(body)


def _timeout_error(provider: str, timeout_ms: int) -> RequestTimeoutError:
    return RequestTimeoutError(provider, f"Request timed out ({timeout_ms / 1000:g}s)")


def _error_detail(text: str) -> str:
    """Pull the human-readable message out of a GitLab/GitHub/OpenAI error body."""
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:_ERROR_BODY_LIMIT]
    if isinstance(payload, dict):
        detail = payload.get("message") or payload.get("error_description") or payload.get("error")
        if isinstance(detail, dict):
            detail = detail.get("message") or json.dumps(detail)
        if detail is not None and not isinstance(detail, str):
            detail = json.dumps(detail)
        if detail:
            return detail[:_ERROR_BODY_LIMIT]
    return text[:_ERROR_BODY_LIMIT]


def _error_code(text: str) -> str | None:
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    if isinstance(payload, dict):
        code = payload.get("code")
        if code is None and isinstance(payload.get("error"), dict):
            code = payload["error"].get("code")
        return str(code) if code is not None else None
    return None


def _send(
    url: str,
    method: str,
    headers: dict[str, str] | None,
    body: Any,
    timeout_ms: int,
    cancel: CancelToken | None,
    provider: str,
    session: requests.Session,
) -> HttpResponse:
    if cancel is not None:
        cancel.raise_if_cancelled(provider)

    deadline = time.monotonic() + timeout_ms / 1000
    logger.debug("%s %s", method, url)

    try:
        response = session.request(
            method,
            url,
            headers=headers,
            data=_encode_body(body),
            timeout=timeout_ms / 1000,
            stream=True,
        )
    except requests.Timeout:
        raise _timeout_error(provider, timeout_ms)
    except requests.RequestException as e:
        raise create_service_error(provider, f"Network error: {e}")

    try:
        chunks: list[bytes] = []
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if cancel is not None and cancel.cancelled:
                raise cancelled_error(provider)
            if time.monotonic() > deadline:
                raise _timeout_error(provider, timeout_ms)
            chunks.append(chunk)
        if cancel is not None and cancel.cancelled:
            raise cancelled_error(provider)
    except requests.Timeout:
        raise _timeout_error(provider, timeout_ms)
    except requests.RequestException as e:
        raise create_service_error(provider, f"Network error: {e}")
    finally:
        response.close()

    text = b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")
    response_headers = {k.lower(): v for k, v in response.headers.items()}
    status = response.status_code

    if not 200 <= status < 300:
        request_id = next((response_headers[h] for h in _REQUEST_ID_HEADERS if h in response_headers), None)
        raise create_service_error(
            provider,
            f"HTTP {status}: {_error_detail(text)}",
            status=status,
            code=_error_code(text),
            request_id=request_id,
        )

    content_type = response_headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = json.loads(text) if text.strip() else None
        except ValueError:
            raise create_service_error(
                provider, f"Invalid JSON response: {text[:_ERROR_BODY_LIMIT]}", status=status
            ) from None
    else:
        data = text
    return HttpResponse(status=status, headers=response_headers, data=data)


def fetch(
    url: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    body: Any = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    cancel: CancelToken | None = None,
    provider: str = "system",
    retry: RetryOptions | bool = True,
    session: requests.Session | None = None,
) -> HttpResponse:
    """Send one request and return status, lower-cased headers and parsed body.

    Raises a ServiceError subclass on failure. With ``retry`` left at True the
    call is retried under the default RetryOptions; pass False to send once.
    """
    session = session or _get_default_session()

    def attempt() -> HttpResponse:
        return _send(url, method, headers, body, timeout_ms, cancel, provider, session)

    if retry is False:
        return attempt()
    options = retry if isinstance(retry, RetryOptions) else None
    return retry_call(attempt, options, cancel=cancel)


def request(
    url: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    body: Any = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    cancel: CancelToken | None = None,
    provider: str = "system",
    retry: RetryOptions | bool = True,
    session: requests.Session | None = None,
) -> Any:
    """Like fetch() but return only the parsed body (JSON or text)."""
    return fetch(url, method, headers, body, timeout_ms, cancel, provider, retry, session).data
