"""Tests for the unified HTTP executor."""

import pytest
import requests

from conftest import FakeResponse
from revlens_core.net import http_client
from revlens_core.net.cancel import CancelToken
from revlens_core.net.errors import (
    CANCELLED,
    TIMEOUT,
    ClientError,
    NetworkError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
    UserCancelledError,
)
from revlens_core.net.retry_policy import RetryOptions

URL = "https://gitlab.example.com/api/v4/user"


class TestFetch:
    def test_parses_json_and_lowercases_headers(self, fake_session):
        fake_session.add("GET", URL, FakeResponse(body={"id": 1}, headers={"X-Total": "3"}))
        response = http_client.fetch(URL, session=fake_session)
        assert response.status == 200
        assert response.data == {"id": 1}
        assert response.headers["x-total"] == "3"
        assert response.headers["content-type"] == "application/json"

    def test_non_json_body_returned_as_text(self, fake_session):
        fake_session.add("GET", URL, FakeResponse(text="raw file", headers={"Content-Type": "text/plain"}))
        assert http_client.request(URL, session=fake_session) == "raw file"

    def test_empty_json_body_is_none(self, fake_session):
        fake_session.add("PUT", URL, FakeResponse(status=204, text="", headers={"Content-Type": "application/json"}))
        assert http_client.request(URL, method="PUT", session=fake_session) is None

    def test_malformed_json_body_is_client_error(self, fake_session):
        fake_session.add(
            "GET", URL, FakeResponse(text="<html>proxy</html>", headers={"Content-Type": "application/json"})
        )
        with pytest.raises(ClientError, match="Invalid JSON response") as exc:
            http_client.request(URL, session=fake_session)
        assert exc.value.retryable is False
        assert exc.value.status == 200
        assert len(fake_session.calls) == 1

    def test_dict_body_sent_as_json(self, fake_session):
        fake_session.add("POST", URL, FakeResponse(body={}))
        http_client.fetch(URL, method="POST", body={"body": "hi"}, session=fake_session)
        assert fake_session.json_body(fake_session.calls[0]) == {"body": "hi"}

    def test_response_always_closed(self, fake_session):
        resp = FakeResponse(status=404, body={"message": "404 Not Found"})
        fake_session.add("GET", URL, resp)
        with pytest.raises(ClientError):
            http_client.fetch(URL, session=fake_session)
        assert resp.closed is True


class TestErrorClassification:
    def test_404_raises_client_error_once(self, fake_session):
        fake_session.add(
            "GET",
            URL,
            FakeResponse(status=404, body={"message": "404 Project Not Found"}, headers={"X-Request-Id": "abc"}),
        )
        with pytest.raises(ClientError) as exc_info:
            http_client.fetch(URL, provider="gitlab", session=fake_session)
        error = exc_info.value
        assert error.status == 404
        assert error.provider == "gitlab"
        assert error.request_id == "abc"
        assert error.retryable is False
        assert "404 Project Not Found" in str(error)
        assert len(fake_session.calls) == 1

    def test_503_twice_then_success_makes_three_calls(self, fake_session):
        fake_session.add(
            "GET",
            URL,
            FakeResponse(status=503, text="busy"),
            FakeResponse(status=503, text="busy"),
            FakeResponse(body={"ok": True}),
        )
        assert http_client.request(URL, session=fake_session) == {"ok": True}
        assert len(fake_session.calls) == 3

    def test_429_is_rate_limited(self, fake_session):
        fake_session.add("GET", URL, FakeResponse(status=429, body={"message": "slow down"}))
        with pytest.raises(RateLimitedError):
            http_client.fetch(URL, retry=RetryOptions(max_retries=0), session=fake_session)

    def test_500_exhausts_retries(self, fake_session):
        fake_session.add("GET", URL, FakeResponse(status=500, text="oops"))
        with pytest.raises(ServerError):
            http_client.fetch(URL, session=fake_session)
        assert len(fake_session.calls) == 3

    def test_retry_false_sends_once(self, fake_session):
        fake_session.add("GET", URL, FakeResponse(status=502, text="bad gateway"))
        with pytest.raises(ServerError):
            http_client.fetch(URL, retry=False, session=fake_session)
        assert len(fake_session.calls) == 1

    def test_error_code_from_body(self, fake_session):
        fake_session.add("GET", URL, FakeResponse(status=400, body={"error": {"code": "bad_param", "message": "no"}}))
        with pytest.raises(ClientError) as exc_info:
            http_client.fetch(URL, session=fake_session)
        assert exc_info.value.code == "bad_param"
        assert "no" in exc_info.value.message

    def test_connection_error_is_network_error_and_retried(self, fake_session):
        fake_session.add(
            "GET",
            URL,
            requests.ConnectionError("reset"),
            FakeResponse(body=[]),
        )
        assert http_client.request(URL, session=fake_session) == []
        assert len(fake_session.calls) == 2

    def test_network_error_has_no_status(self, fake_session):
        fake_session.add("GET", URL, requests.ConnectionError("reset"))
        with pytest.raises(NetworkError) as exc_info:
            http_client.fetch(URL, retry=False, session=fake_session)
        assert exc_info.value.status is None
        assert exc_info.value.retryable is True


class TestTimeoutAndCancel:
    def test_requests_timeout_maps_to_timeout_and_is_not_retried(self, fake_session):
        fake_session.add("GET", URL, requests.Timeout("read timed out"))
        with pytest.raises(RequestTimeoutError) as exc_info:
            http_client.fetch(URL, timeout_ms=2000, session=fake_session)
        assert exc_info.value.code == TIMEOUT
        assert "2s" in str(exc_info.value)
        assert len(fake_session.calls) == 1

    def test_deadline_enforced_while_streaming(self, fake_session, mocker):
        fake_session.add("GET", URL, FakeResponse(chunks=[b'{"a":', b"1}"], headers={"Content-Type": "application/json"}))
        clock = mocker.patch("revlens_core.net.http_client.time")
        clock.monotonic.side_effect = [0.0, 0.5, 5.0]
        with pytest.raises(RequestTimeoutError):
            http_client.fetch(URL, timeout_ms=1000, session=fake_session)

    def test_already_cancelled_token_sends_nothing(self, fake_session):
        token = CancelToken()
        token.cancel()
        with pytest.raises(UserCancelledError) as exc_info:
            http_client.fetch(URL, cancel=token, session=fake_session)
        assert exc_info.value.code == CANCELLED
        assert fake_session.calls == []

    def test_cancel_while_streaming(self, fake_session):
        token = CancelToken()

        class _CancellingResponse(FakeResponse):
            def iter_content(self, chunk_size=1):
                yield b"{"
                token.cancel()
                yield b"}"

        fake_session.add("GET", URL, _CancellingResponse(text="{}", headers={"Content-Type": "application/json"}))
        with pytest.raises(UserCancelledError):
            http_client.fetch(URL, cancel=token, session=fake_session)
        assert len(fake_session.calls) == 1
