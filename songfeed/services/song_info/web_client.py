"""HTTP fetch helper used to download scraped snapshots."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Callable

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException, Timeout

from songfeed.config import WebClientConfig
from songfeed.core.errors import SourceUnavailable

LOGGER = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass(slots=True)
class FetchResponse:
    """Status and body stream of a fetch; close() releases the connection."""

    url: str
    status_code: int
    reason: str
    body: BinaryIO
    _closer: Callable[[], None] | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def close(self) -> None:
        closer = self._closer
        self._closer = None
        if closer is not None:
            closer()

    def __enter__(self) -> "FetchResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SongFeedWebClient:
    """Streaming GET helper wrapping retries and session setup."""

    def __init__(
        self,
        config: WebClientConfig | None = None,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or WebClientConfig()
        self._owns_session = session is None
        self._session = session or self._build_session(self._config)
        self._logger = logger or LOGGER

    @property
    def session(self) -> requests.Session:
        return self._session

    def fetch(self, url: str) -> FetchResponse:
        """GET *url*, retrying transport errors and retryable statuses.

        Raises:
            SourceUnavailable: When every attempt failed at the transport level.
        """

        retries = self._config.retries
        attempts = max(1, retries.max_attempts)
        base_backoff = max(0.05, retries.backoff_ms / 1000.0)
        max_backoff = max(base_backoff, retries.max_backoff_ms / 1000.0)
        last_exc: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = self._session.get(url, stream=True, timeout=self._config.timeout_sec)
            except Timeout as exc:
                last_exc = exc
                self._logger.warning("song_info.http timeout url=%s attempt=%d", url, attempt)
            except RequestException as exc:
                last_exc = exc
                self._logger.warning(
                    "song_info.http connection_error url=%s attempt=%d error=%s",
                    url,
                    attempt,
                    type(exc).__name__,
                )
            else:
                status = response.status_code
                if status in RETRYABLE_STATUS and attempt < attempts:
                    self._logger.warning(
                        "song_info.http retryable_status url=%s status=%d attempt=%d", url, status, attempt
                    )
                    response.close()
                else:
                    return self._wrap(url, response)

            if attempt < attempts:
                self._sleep_with_backoff(base_backoff, max_backoff, attempt)

        raise SourceUnavailable(f"Failed to fetch {url}: {last_exc}", source=url) from last_exc

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "SongFeedWebClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Internal helpers -------------------------------------------------

    @staticmethod
    def _build_session(config: WebClientConfig) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": config.user_agent, "Accept": "*/*"})
        session.trust_env = config.trust_env
        adapter = HTTPAdapter(max_retries=0, pool_connections=2, pool_maxsize=2)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @staticmethod
    def _wrap(url: str, response: requests.Response) -> FetchResponse:
        raw = response.raw
        if hasattr(raw, "decode_content"):
            # Undo HTTP content encoding only; the snapshot's own gzip layer stays intact.
            raw.decode_content = True
        return FetchResponse(
            url=url,
            status_code=response.status_code,
            reason=response.reason or "",
            body=raw,
            _closer=response.close,
        )

    def _sleep_with_backoff(self, base: float, maximum: float, attempt: int) -> None:
        delay = min(maximum, base * (2 ** (attempt - 1)))
        jitter = random.uniform(0, delay / 2)
        time.sleep(delay + jitter)


__all__ = ["FetchResponse", "RETRYABLE_STATUS", "SongFeedWebClient"]
