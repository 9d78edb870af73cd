"""Resolve the current scraped snapshot from the local cache file and the web."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

from songfeed.config import DEFAULT_MAX_AGE
from songfeed.core.errors import DecodeFailure, PersistFailure, SourceUnavailable
from songfeed_persist.stores.snapshot_store import SnapshotStore

from .codec import decode_snapshot, decompress
from .models import Snapshot
from .web_client import FetchResponse

LOGGER = logging.getLogger(__name__)


class SnapshotFetcher(Protocol):
    """Anything able to GET a URL and hand back a status plus body stream."""

    def fetch(self, url: str) -> FetchResponse:  # pragma: no cover - interface definition
        ...


class SnapshotSourceLoader:
    """Load one snapshot, preferring a fresh cache file and falling back to the web.

    Every source failure is logged and treated as "that source produced nothing";
    ``load`` itself never raises.
    """

    def __init__(self, client: SnapshotFetcher | None, *, logger: logging.Logger | None = None) -> None:
        self._client = client
        self.logger = logger or LOGGER

    def load(
        self,
        local_path: str | Path | None,
        remote_url: str | None,
        *,
        max_age: timedelta = DEFAULT_MAX_AGE,
        allow_web_fetch: bool = True,
        cache_to_disk: bool = False,
        now: datetime | None = None,
    ) -> Snapshot | None:
        current = now or datetime.now(timezone.utc)
        store = self._open_store(local_path)

        snapshot: Snapshot | None = None
        fetch_web = allow_web_fetch
        if store is not None:
            snapshot = self._load_file(store)
            if snapshot is not None:
                if snapshot.age(current) < max_age:
                    fetch_web = False
                else:
                    self.logger.debug("Cached data is outdated (%s).", snapshot.scrape_time.isoformat())

        if fetch_web:
            web_snapshot = self._load_web(remote_url, store if cache_to_disk else None)
            if web_snapshot is not None:
                snapshot = web_snapshot
            elif snapshot is not None:
                self.logger.warning(
                    "Unable to fetch updated data from web, using stale cached data from %s (scraped %s).",
                    snapshot.source,
                    snapshot.scrape_time.isoformat(),
                )
        return snapshot

    def _open_store(self, local_path: str | Path | None) -> SnapshotStore | None:
        if not local_path:
            return None
        try:
            return SnapshotStore(local_path, logger=self.logger)
        except RuntimeError as exc:
            # expanduser() on an unknown ~user
            self.logger.warning("Unusable song info file path '%s': %s", local_path, exc)
            return None

    def _load_file(self, store: SnapshotStore) -> Snapshot | None:
        try:
            if not store.exists():
                self.logger.debug("No cached song info file at '%s'", store.path)
                return None
            payload = store.read_bytes()
            return decode_snapshot(payload, source=f"File|{store.path}")
        except DecodeFailure as exc:
            self.logger.warning("Failed to load song info file at '%s': %s", store.path, exc)
        except SourceUnavailable as exc:
            self.logger.warning("Error reading song info file at '%s': %s", store.path, exc)
        return None

    def _load_web(self, remote_url: str | None, store: SnapshotStore | None) -> Snapshot | None:
        if not remote_url:
            self.logger.warning("No snapshot URL configured, skipping web fetch.")
            return None
        if self._client is None:
            self.logger.warning("No web client available, skipping web fetch of %s.", remote_url)
            return None

        try:
            response = self._client.fetch(remote_url)
        except SourceUnavailable as exc:
            self.logger.warning("Error loading scraped data from %s: %s", remote_url, exc)
            return None
        except Exception as exc:  # noqa: BLE001 - custom fetchers may raise transport errors directly
            self.logger.warning("Error loading scraped data from %s: %s", remote_url, exc)
            return None

        with response:
            if not response.ok:
                self.logger.warning(
                    "Error loading scraped data from %s: HTTP %d %s",
                    remote_url,
                    response.status_code,
                    response.reason,
                )
                return None
            try:
                payload = decompress(response.body)
                snapshot = decode_snapshot(payload, source=f"Web|{remote_url}")
            except DecodeFailure as exc:
                self.logger.warning("Invalid scraped data received from %s: %s", remote_url, exc)
                return None
            except Exception as exc:  # noqa: BLE001 - body read errors surface from the transport layer
                self.logger.warning("Error reading scraped data from %s: %s", remote_url, exc)
                return None

        if store is not None:
            try:
                store.write_bytes(payload)
            except PersistFailure as exc:
                self.logger.warning("Error caching scraped data to file '%s': %s", store.path, exc)
        return snapshot


__all__ = ["SnapshotFetcher", "SnapshotSourceLoader"]
