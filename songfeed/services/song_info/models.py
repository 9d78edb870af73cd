"""Domain models for scraped song information."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class ScrapedSong:
    """One entry of the scraped song catalog.

    ``hash`` and ``key`` are the lookup identifiers; every other field is
    carried through from the snapshot unchanged.
    """

    hash: str
    key: str | None = None
    song_name: str | None = None
    song_author_name: str | None = None
    level_author_name: str | None = None
    uploaded_at: datetime | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """A complete load of the scraped catalog with its production timestamp."""

    format_version: int
    scrape_time: datetime
    songs: tuple[ScrapedSong, ...]
    source: str = "None"

    def age(self, now: datetime | None = None) -> timedelta:
        current = now or datetime.now(timezone.utc)
        return current - self.scrape_time


__all__ = ["ScrapedSong", "Snapshot"]
