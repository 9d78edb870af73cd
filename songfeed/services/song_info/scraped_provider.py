"""Song info provider backed by the scraped catalog snapshot.

PROCESS OVERVIEW
1. The first lookup (from any thread or event loop) starts exactly one
   initialization attempt on a worker thread; later callers join it.
2. The attempt asks the source loader for a snapshot (cache file first, then web).
3. The snapshot is indexed by hash and by key, the index is published in one
   assignment, availability is set, and only then does the attempt settle.
4. Lookups answer from the published index. Nothing is refetched for the
   lifetime of the instance; create a new provider to refresh.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Mapping

from songfeed.config import DEFAULT_MAX_AGE, ScrapedInfoSettings
from songfeed.core.logger import get_logger
from songfeed_persist.utils.paths import default_snapshot_path

from .models import ScrapedSong, Snapshot
from .source_loader import SnapshotFetcher, SnapshotSourceLoader
from .web_client import SongFeedWebClient

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _SongIndex:
    by_hash: Mapping[str, ScrapedSong] = field(default_factory=dict)
    by_key: Mapping[str, ScrapedSong] = field(default_factory=dict)


class ScrapedInfoProvider:
    """Serve scraped song records by hash or key with lazy, single-flight loading."""

    name = "scraped_info"

    def __init__(
        self,
        client: SnapshotFetcher | None = None,
        *,
        file_path: str | Path | None = None,
        source_url: str = "",
        max_age: timedelta = DEFAULT_MAX_AGE,
        allow_web_fetch: bool = True,
        cache_to_disk: bool = False,
        loader: SnapshotSourceLoader | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.file_path = Path(file_path) if file_path else None
        self.source_url = source_url
        self.max_age = max_age
        self.allow_web_fetch = allow_web_fetch
        self.cache_to_disk = cache_to_disk
        self.logger = logger or LOGGER
        self._loader = loader or SnapshotSourceLoader(client, logger=self.logger)
        self._init_lock = threading.Lock()
        self._init_future: Future[bool] | None = None
        self._index = _SongIndex()
        self._available = False

    @classmethod
    def from_settings(
        cls,
        settings: ScrapedInfoSettings,
        *,
        client: SnapshotFetcher | None = None,
        logger: logging.Logger | None = None,
    ) -> "ScrapedInfoProvider":
        """Build a provider (and its web client) from resolved settings.

        With ``cache_to_disk`` and no ``file_path`` the cache lives under the
        persistence root (see ``songfeed_persist.utils.paths``).
        """

        if logger is None and settings.log_dir is not None:
            logger = get_logger(settings.log_dir).getChild(cls.name)
        if client is None and settings.allow_web_fetch:
            client = SongFeedWebClient(settings.web, logger=logger)
        file_path = settings.file_path
        if file_path is None and settings.cache_to_disk:
            file_path = default_snapshot_path()
        return cls(
            client,
            file_path=file_path,
            source_url=settings.source_url,
            max_age=settings.max_age,
            allow_web_fetch=settings.allow_web_fetch,
            cache_to_disk=settings.cache_to_disk,
            logger=logger,
        )

    @property
    def available(self) -> bool:
        """True once a non-empty snapshot has been indexed. Never blocks."""

        return self._available

    def is_available(self) -> bool:
        return self._available

    def initialize(self) -> Future[bool]:
        """Start the initialization attempt if none exists and return it."""

        start = False
        with self._init_lock:
            future = self._init_future
            if future is None:
                future = Future()
                # A running future can no longer be cancelled by any waiter.
                future.set_running_or_notify_cancel()
                self._init_future = future
                start = True
        if start:
            self._start_worker(future)
        return future

    def get_song_by_hash(self, song_hash: str, timeout: float | None = None) -> ScrapedSong | None:
        """Return the song with *song_hash*, waiting for initialization if needed.

        ``timeout`` bounds only this caller's wait; the shared attempt keeps running.
        """

        self.initialize().result(timeout)
        return _lookup(self._index.by_hash, song_hash)

    def get_song_by_key(self, key: str, timeout: float | None = None) -> ScrapedSong | None:
        """Return the song with *key*, waiting for initialization if needed."""

        self.initialize().result(timeout)
        return _lookup(self._index.by_key, key)

    async def get_song_by_hash_async(self, song_hash: str) -> ScrapedSong | None:
        await self._wait_initialized()
        return _lookup(self._index.by_hash, song_hash)

    async def get_song_by_key_async(self, key: str) -> ScrapedSong | None:
        await self._wait_initialized()
        return _lookup(self._index.by_key, key)

    # Internal helpers -------------------------------------------------

    async def _wait_initialized(self) -> None:
        future = self.initialize()
        if future.done():
            return
        # The waiter is local to this loop; cancelling it leaves the shared attempt alone.
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()

        def _wake(_: Future[bool]) -> None:
            try:
                loop.call_soon_threadsafe(_settle_waiter, waiter)
            except RuntimeError:
                self.logger.debug("Initialization finished after the waiting event loop closed.")

        future.add_done_callback(_wake)
        await waiter

    def _start_worker(self, future: Future[bool]) -> None:
        worker = threading.Thread(
            target=self._run_initialization,
            args=(future,),
            name="scraped-info-init",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError as exc:
            self.logger.warning("Unable to start background initialization, loading inline: %s", exc)
            self._run_initialization(future)

    def _run_initialization(self, future: Future[bool]) -> None:
        try:
            self._initialize_data()
        finally:
            future.set_result(True)

    def _initialize_data(self) -> None:
        try:
            snapshot = self._loader.load(
                self.file_path,
                self.source_url,
                max_age=self.max_age,
                allow_web_fetch=self.allow_web_fetch,
                cache_to_disk=self.cache_to_disk,
            )
            if snapshot is None:
                self.logger.warning("Unable to load scraped song data.")
                return
            self._index_snapshot(snapshot)
        except Exception as exc:  # noqa: BLE001 - a broken source degrades to "no answers"
            self.logger.warning("Error loading scraped song data: %s", exc)

    def _index_snapshot(self, snapshot: Snapshot) -> None:
        by_hash: dict[str, ScrapedSong] = {}
        by_key: dict[str, ScrapedSong] = {}
        for song in snapshot.songs:
            if song.hash:
                by_hash[song.hash.lower()] = song
            if song.key:
                by_key[song.key.lower()] = song
        self._index = _SongIndex(by_hash=by_hash, by_key=by_key)
        if not snapshot.songs:
            self.logger.warning("Scraped song data from '%s' contained no songs.", snapshot.source)
            return
        self._available = True
        self.logger.info(
            "%d songs loaded from '%s', format version %d, last updated %s",
            len(snapshot.songs),
            snapshot.source,
            snapshot.format_version,
            snapshot.scrape_time.isoformat(),
        )


def _settle_waiter(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


def _lookup(index: Mapping[str, ScrapedSong], identifier: str | None) -> ScrapedSong | None:
    if not identifier:
        return None
    return index.get(identifier.lower())


__all__ = ["ScrapedInfoProvider"]
