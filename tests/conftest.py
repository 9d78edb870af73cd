from __future__ import annotations

import faulthandler
import io
import socket
import sys
import threading
import traceback
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import FrameType
from typing import Callable, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

faulthandler.enable()  # Ensure crashes emit tracebacks.
socket.setdefaulttimeout(10)

from songfeed.core import logger as core_logger
from songfeed.core.errors import SourceUnavailable
from songfeed.services.song_info.codec import CURRENT_FORMAT_VERSION, encode_snapshot
from songfeed.services.song_info.models import ScrapedSong, Snapshot
from songfeed.services.song_info.web_client import FetchResponse


def _snapshot_thread_stacks() -> Dict[int, str]:
    frames: Dict[int, FrameType] = sys._current_frames()  # type: ignore[attr-defined]
    stacks: Dict[int, str] = {}
    for ident, frame in frames.items():
        stacks[ident] = "".join(traceback.format_stack(frame))
    return stacks


@pytest.fixture(autouse=True, scope="session")
def _thread_diagnostics() -> None:
    """Dump live non-daemon threads at the end of the test session."""

    yield

    stacks = _snapshot_thread_stacks()
    lingering: list[threading.Thread] = []
    for thread in threading.enumerate():
        if thread.daemon or thread is threading.current_thread():
            continue
        thread.join(timeout=2)
        if thread.is_alive():
            lingering.append(thread)

    if lingering:
        print("\n[pytest] lingering threads detected:", file=sys.stderr)
        for thread in lingering:
            stack = stacks.get(thread.ident, "<no stack>\n")
            print(
                f"- Thread {thread.name} (ident={thread.ident}) still alive after tests", file=sys.stderr
            )
            print(stack, file=sys.stderr)


@pytest.fixture(autouse=True)
def _reset_app_logger() -> None:
    yield
    core_logger.reset_logger()


def build_snapshot(
    songs: list[ScrapedSong] | None = None,
    *,
    age: timedelta = timedelta(hours=1),
    format_version: int = CURRENT_FORMAT_VERSION,
) -> Snapshot:
    if songs is None:
        songs = [
            ScrapedSong(hash="ABC123", key="1a2b", song_name="First"),
            ScrapedSong(hash="DEF456", key="3c4d", song_name="Second"),
        ]
    scrape_time = (datetime.now(timezone.utc) - age).replace(microsecond=0)
    return Snapshot(format_version=format_version, scrape_time=scrape_time, songs=tuple(songs))


class FakeFetcher:
    """Queue of canned fetch outcomes; records calls and closed bodies."""

    def __init__(self, outcomes: list[tuple[int, bytes] | Exception]) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[str] = []
        self.closed: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResponse:
        with self._lock:
            self.calls.append(url)
            if not self._outcomes:
                raise AssertionError("No more fetch outcomes queued")
            outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        status, payload = outcome
        return FetchResponse(
            url=url,
            status_code=status,
            reason="OK" if status < 400 else "Error",
            body=io.BytesIO(payload),
            _closer=lambda: self.closed.append(url),
        )


@pytest.fixture()
def make_snapshot() -> Callable[..., Snapshot]:
    return build_snapshot


@pytest.fixture()
def fake_fetcher() -> type[FakeFetcher]:
    return FakeFetcher


@pytest.fixture()
def snapshot_payload() -> Callable[..., bytes]:
    def _payload(snapshot: Snapshot, *, compress: bool = True) -> bytes:
        return encode_snapshot(snapshot, compress=compress)

    return _payload


@pytest.fixture()
def unreachable() -> SourceUnavailable:
    return SourceUnavailable("connection refused", source="https://snapshots.example/songs.gz")
