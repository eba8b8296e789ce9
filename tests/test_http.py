"""Tests for the shared HTTP session, rate limiter and downloader."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from minecraft_mod_manager.core.async_utils import CancelToken
from minecraft_mod_manager.core.http import (
    USER_AGENT,
    Downloader,
    RateLimitedSession,
    RateLimiter,
    RetryPolicy,
    download_file,
)
from minecraft_mod_manager.errors import DownloadError, OperationCancelledError


def _response(status, chunks=(b"",)):
    response = MagicMock()
    response.status_code = status
    response.iter_content.return_value = iter(chunks)
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def session():
    http = RateLimitedSession(retry=RetryPolicy(max_retries=2, interval=0.0))
    fake = MagicMock()
    with patch.object(http, "_get_session", return_value=fake):
        yield http, fake


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------


class TestRateLimiter:
    def test_unlimited_never_waits(self):
        limiter = RateLimiter()
        token = CancelToken()
        for _ in range(100):
            limiter.wait(token)

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter(0)

    def test_cancelled_wait_raises(self):
        limiter = RateLimiter(requests_per_second=0.001)
        token = CancelToken()
        limiter.wait(token)  # burst token
        token.cancel()
        with pytest.raises(OperationCancelledError):
            limiter.wait(token)

    def test_throttles_after_burst(self):
        limiter = RateLimiter(requests_per_second=1, burst=1)
        token = CancelToken()
        limiter.wait(token)
        with patch.object(token, "wait", return_value=False) as wait:
            limiter.wait(token)
        wait.assert_called_once()
        assert wait.call_args[0][0] > 0


# ---------------------------------------------------------------------------
# RateLimitedSession
# ---------------------------------------------------------------------------


class TestRateLimitedSession:
    def test_user_agent(self):
        http = RateLimitedSession()
        assert http.session.headers["User-Agent"] == USER_AGENT

    def test_default_timeout(self, session):
        http, fake = session
        fake.request.return_value = _response(200)
        http.get("https://api.example.com/x", CancelToken())
        assert fake.request.call_args[1]["timeout"] == http.metadata_timeout

    def test_retries_server_errors(self, session):
        http, fake = session
        fake.request.side_effect = [_response(502), _response(503), _response(200)]
        response = http.get("https://api.example.com/x", CancelToken())
        assert response.status_code == 200
        assert fake.request.call_count == 3

    def test_gives_up_after_max_retries(self, session):
        http, fake = session
        fake.request.side_effect = [_response(500)] * 3
        response = http.get("https://api.example.com/x", CancelToken())
        assert response.status_code == 500
        assert fake.request.call_count == 3

    def test_client_errors_not_retried(self, session):
        http, fake = session
        fake.request.return_value = _response(404)
        response = http.get("https://api.example.com/x", CancelToken())
        assert response.status_code == 404
        assert fake.request.call_count == 1

    def test_transport_errors_not_retried(self, session):
        http, fake = session
        fake.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(requests.ConnectionError):
            http.get("https://api.example.com/x", CancelToken())
        assert fake.request.call_count == 1

    def test_cancelled_before_request(self, session):
        http, fake = session
        token = CancelToken()
        token.cancel()
        with pytest.raises(OperationCancelledError):
            http.get("https://api.example.com/x", token)
        fake.request.assert_not_called()


# ---------------------------------------------------------------------------
# download_file
# ---------------------------------------------------------------------------


class TestDownloadFile:
    def test_writes_body(self, session, tmp_path):
        http, fake = session
        fake.request.return_value = _response(200, [b"ab", b"cd"])
        destination = tmp_path / "x.jar.mmm.1.tmp"

        Downloader(http)("https://cdn.example.com/x.jar", destination, CancelToken())

        assert destination.read_bytes() == b"abcd"
        kwargs = fake.request.call_args[1]
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == http.download_timeout

    def test_non_2xx_raises(self, session, tmp_path):
        http, fake = session
        fake.request.return_value = _response(403)
        destination = tmp_path / "x.jar.mmm.1.tmp"
        with pytest.raises(DownloadError, match="403"):
            download_file(
                "https://cdn.example.com/x.jar", destination, http, CancelToken()
            )
        assert not destination.exists()

    def test_mid_stream_failure_removes_partial_file(self, session, tmp_path):
        http, fake = session

        def chunks():
            yield b"partial"
            raise requests.ConnectionError("reset")

        response = _response(200)
        response.iter_content.return_value = chunks()
        fake.request.return_value = response
        destination = tmp_path / "x.jar.mmm.1.tmp"

        with pytest.raises(DownloadError, match="reset"):
            download_file(
                "https://cdn.example.com/x.jar", destination, http, CancelToken()
            )
        assert not destination.exists()

    def test_cancel_mid_stream_removes_partial_file(self, session, tmp_path):
        http, fake = session
        token = CancelToken()

        def chunks():
            yield b"first"
            token.cancel()
            yield b"second"

        response = _response(200)
        response.iter_content.return_value = chunks()
        fake.request.return_value = response
        destination = tmp_path / "x.jar.mmm.1.tmp"

        with pytest.raises(OperationCancelledError):
            download_file("https://cdn.example.com/x.jar", destination, http, token)
        assert not destination.exists()
