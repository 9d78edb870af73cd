"""Scraped song info service package."""

from .models import ScrapedSong, Snapshot
from .scraped_provider import ScrapedInfoProvider
from .song_info_manager import SongInfoManager, SongInfoProvider
from .source_loader import SnapshotSourceLoader
from .web_client import FetchResponse, SongFeedWebClient

__all__ = [
    "FetchResponse",
    "ScrapedInfoProvider",
    "ScrapedSong",
    "Snapshot",
    "SnapshotSourceLoader",
    "SongFeedWebClient",
    "SongInfoManager",
    "SongInfoProvider",
]
