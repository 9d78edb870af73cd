"""Snapshot (de)serialization for the scraped song catalog.

The wire payload is a gzip-compressed orjson document::

    {"formatVersion": 2, "scrapeTime": 1700000000, "songs": [{"hash": "...", "key": "1a2b", ...}]}

The local cache file holds the same document either compressed or as the
decompressed bytes received from the network; ``decode_snapshot`` accepts both.
"""

from __future__ import annotations

import gzip
import zlib
from datetime import datetime, timezone
from typing import Any, BinaryIO, Mapping

import orjson

from songfeed.core.errors import DecodeFailure

from .models import ScrapedSong, Snapshot

GZIP_MAGIC = b"\x1f\x8b"
CURRENT_FORMAT_VERSION = 2

_SONG_FIELD_MAP: dict[str, str] = {
    "hash": "hash",
    "key": "key",
    "songName": "song_name",
    "songAuthorName": "song_author_name",
    "levelAuthorName": "level_author_name",
    "uploaded": "uploaded_at",
}


def decompress(stream: BinaryIO) -> bytes:
    """Return the gunzipped content of *stream*."""

    try:
        with gzip.GzipFile(fileobj=stream, mode="rb") as gz_stream:
            return gz_stream.read()
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeFailure(f"Invalid gzip stream: {exc}") from exc


def read_snapshot(stream: BinaryIO, *, source: str = "") -> Snapshot:
    """Decode a snapshot from a binary file-like object."""

    return decode_snapshot(stream.read(), source=source)


def decode_snapshot(payload: bytes, *, source: str = "") -> Snapshot:
    """Decode raw (optionally gzip-compressed) snapshot bytes."""

    if payload[:2] == GZIP_MAGIC:
        try:
            payload = gzip.decompress(payload)
        except (OSError, EOFError, zlib.error) as exc:
            raise DecodeFailure(f"Invalid gzip payload: {exc}", source=source or None) from exc
    try:
        document = orjson.loads(payload)
    except orjson.JSONDecodeError as exc:
        raise DecodeFailure(f"Invalid snapshot document: {exc}", source=source or None) from exc
    if not isinstance(document, Mapping):
        raise DecodeFailure("Snapshot document must be an object", source=source or None)

    format_version = document.get("formatVersion")
    if isinstance(format_version, bool) or not isinstance(format_version, int):
        raise DecodeFailure("Snapshot header lacks an integer formatVersion", source=source or None)
    scrape_time = _parse_timestamp(document.get("scrapeTime"))
    if scrape_time is None:
        raise DecodeFailure("Snapshot header lacks a valid scrapeTime", source=source or None)

    raw_songs = document.get("songs")
    if raw_songs is None:
        raw_songs = []
    if not isinstance(raw_songs, list):
        raise DecodeFailure("Snapshot songs must be a list", source=source or None)

    songs = tuple(_parse_song(raw, idx) for idx, raw in enumerate(raw_songs))
    return Snapshot(
        format_version=format_version,
        scrape_time=scrape_time,
        songs=songs,
        source=source or "None",
    )


def encode_snapshot(snapshot: Snapshot, *, compress: bool = True) -> bytes:
    """Serialize *snapshot* into the wire format."""

    document = {
        "formatVersion": snapshot.format_version,
        "scrapeTime": int(snapshot.scrape_time.timestamp()),
        "songs": [_song_to_dict(song) for song in snapshot.songs],
    }
    payload = orjson.dumps(document)
    if compress:
        return gzip.compress(payload)
    return payload


def _parse_song(raw: Any, idx: int) -> ScrapedSong:
    if not isinstance(raw, Mapping):
        raise DecodeFailure(f"Song entry {idx} must be an object")
    values: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for name, value in raw.items():
        attr = _SONG_FIELD_MAP.get(name)
        if attr is None:
            extra[name] = value
        elif attr == "uploaded_at":
            values[attr] = _parse_timestamp(value)
        else:
            values[attr] = _optional_str(value, name, idx)
    hash_value = values.pop("hash", None) or ""
    return ScrapedSong(hash=hash_value, extra=extra, **values)


def _song_to_dict(song: ScrapedSong) -> dict[str, Any]:
    payload: dict[str, Any] = dict(song.extra)
    payload["hash"] = song.hash
    if song.key:
        payload["key"] = song.key
    if song.song_name is not None:
        payload["songName"] = song.song_name
    if song.song_author_name is not None:
        payload["songAuthorName"] = song.song_author_name
    if song.level_author_name is not None:
        payload["levelAuthorName"] = song.level_author_name
    if song.uploaded_at is not None:
        payload["uploaded"] = int(song.uploaded_at.timestamp())
    return payload


def _optional_str(value: Any, name: str, idx: int) -> str | None:
    if value is None or isinstance(value, str):
        return value
    raise DecodeFailure(f"Song entry {idx} field '{name}' must be a string")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


__all__ = [
    "CURRENT_FORMAT_VERSION",
    "GZIP_MAGIC",
    "decode_snapshot",
    "decompress",
    "encode_snapshot",
    "read_snapshot",
]
