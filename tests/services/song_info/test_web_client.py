"""Tests for the snapshot HTTP client."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from songfeed.config import RetryConfig, WebClientConfig
from songfeed.core.errors import SourceUnavailable
from songfeed.services.song_info.web_client import SongFeedWebClient

URL = "https://snapshots.example/songDetails.json.gz"


@dataclass
class MockResponse:
    status_code: int = 200
    body: bytes = b""
    reason: str = "OK"
    closed: bool = False
    raw: Any = field(init=False)

    def __post_init__(self) -> None:
        self.raw = io.BytesIO(self.body)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, outcomes: list[MockResponse | Exception]) -> None:
        self._outcomes = outcomes
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> MockResponse:
        if not self._outcomes:
            raise AssertionError("No more responses queued")
        self.calls.append((url, kwargs))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


def _client(outcomes: list[MockResponse | Exception], attempts: int = 3) -> tuple[SongFeedWebClient, FakeSession]:
    config = WebClientConfig(timeout_sec=2.0, retries=RetryConfig(max_attempts=attempts, backoff_ms=1, max_backoff_ms=1))
    session = FakeSession(outcomes)
    return SongFeedWebClient(config, session=session), session


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("songfeed.services.song_info.web_client.time.sleep", lambda *_: None)


def test_fetch_streams_body() -> None:
    client, session = _client([MockResponse(body=b"payload")])

    with client.fetch(URL) as response:
        assert response.ok
        assert response.status_code == 200
        assert response.body.read() == b"payload"

    assert session.calls[0][0] == URL
    assert session.calls[0][1]["stream"] is True
    assert session.calls[0][1]["timeout"] == 2.0


def test_fetch_retries_retryable_status() -> None:
    busy = MockResponse(status_code=503, reason="Service Unavailable")
    client, session = _client([busy, MockResponse(body=b"ok")])

    response = client.fetch(URL)

    assert response.ok
    assert busy.closed
    assert len(session.calls) == 2


def test_fetch_retries_transport_errors_then_raises() -> None:
    client, session = _client(
        [requests.ConnectionError("refused"), requests.Timeout("slow")],
        attempts=2,
    )

    with pytest.raises(SourceUnavailable):
        client.fetch(URL)
    assert len(session.calls) == 2


def test_final_error_status_is_returned() -> None:
    client, session = _client([MockResponse(status_code=404, reason="Not Found")])

    response = client.fetch(URL)

    assert not response.ok
    assert response.status_code == 404
    assert len(session.calls) == 1


def test_retryable_status_on_last_attempt_is_returned() -> None:
    client, _ = _client([MockResponse(status_code=502), MockResponse(status_code=502)], attempts=2)

    response = client.fetch(URL)

    assert response.status_code == 502
    assert not response.ok


def test_response_close_releases_connection() -> None:
    mock = MockResponse(body=b"x")
    client, _ = _client([mock])

    response = client.fetch(URL)
    response.close()
    response.close()

    assert mock.closed


def test_injected_session_is_not_closed() -> None:
    client, session = _client([])

    client.close()

    assert not session.closed


def test_default_session_uses_configured_headers() -> None:
    client = SongFeedWebClient(WebClientConfig(user_agent="SongFeedTest/2.0", trust_env=True))
    try:
        assert client.session.headers["User-Agent"] == "SongFeedTest/2.0"
        assert client.session.trust_env is True
    finally:
        client.close()
