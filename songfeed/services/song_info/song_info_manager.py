"""Ordered lookup across several song info providers."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from .models import ScrapedSong

LOGGER = logging.getLogger(__name__)


class SongInfoProvider(Protocol):
    """Protocol for song info providers."""

    name: str

    @property
    def available(self) -> bool:  # pragma: no cover - interface definition
        ...

    def get_song_by_hash(self, song_hash: str, timeout: float | None = None) -> ScrapedSong | None:  # pragma: no cover - interface definition
        ...

    def get_song_by_key(self, key: str, timeout: float | None = None) -> ScrapedSong | None:  # pragma: no cover - interface definition
        ...

    async def get_song_by_hash_async(self, song_hash: str) -> ScrapedSong | None:  # pragma: no cover - interface definition
        ...

    async def get_song_by_key_async(self, key: str) -> ScrapedSong | None:  # pragma: no cover - interface definition
        ...


class SongInfoManager:
    """Query providers in priority order and return the first hit."""

    def __init__(self, providers: Iterable[SongInfoProvider]) -> None:
        self._providers = list(providers)
        if not self._providers:
            raise ValueError("SongInfoManager requires at least one provider")

    @property
    def providers(self) -> tuple[SongInfoProvider, ...]:
        return tuple(self._providers)

    def get_song_by_hash(self, song_hash: str) -> tuple[ScrapedSong, str] | None:
        """Return ``(song, provider_name)`` for *song_hash* or None."""

        for provider in self._providers:
            song = provider.get_song_by_hash(song_hash)
            if song is not None:
                return song, provider.name
            self._note_miss(provider, "hash", song_hash)
        return None

    def get_song_by_key(self, key: str) -> tuple[ScrapedSong, str] | None:
        """Return ``(song, provider_name)`` for *key* or None."""

        for provider in self._providers:
            song = provider.get_song_by_key(key)
            if song is not None:
                return song, provider.name
            self._note_miss(provider, "key", key)
        return None

    async def get_song_by_hash_async(self, song_hash: str) -> tuple[ScrapedSong, str] | None:
        for provider in self._providers:
            song = await provider.get_song_by_hash_async(song_hash)
            if song is not None:
                return song, provider.name
            self._note_miss(provider, "hash", song_hash)
        return None

    async def get_song_by_key_async(self, key: str) -> tuple[ScrapedSong, str] | None:
        for provider in self._providers:
            song = await provider.get_song_by_key_async(key)
            if song is not None:
                return song, provider.name
            self._note_miss(provider, "key", key)
        return None

    @staticmethod
    def _note_miss(provider: SongInfoProvider, kind: str, value: str) -> None:
        if provider.available:
            LOGGER.debug("Song %s '%s' not found via %s", kind, value, provider.name)
        else:
            LOGGER.debug("Provider %s unavailable for %s '%s'", provider.name, kind, value)


__all__ = ["SongInfoManager", "SongInfoProvider"]
