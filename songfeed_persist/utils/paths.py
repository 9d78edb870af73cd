"""
RESPONSIBILITIES
- Resolve and create the ~/SongFeed directory scaffold used for persistence.
- Provide the default location of the scraped snapshot cache file.
PROCESS OVERVIEW
1. resolve_root() expands user input, SONGFEED_HOME, or falls back to ~/SongFeed.
2. ensure_structure() materializes store/tmp/logs directories.
3. default_snapshot_path() returns the canonical cache file location.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

ROOT_ENV_VAR = "SONGFEED_HOME"
SNAPSHOT_FILENAME = "songDetails.json.gz"

_DEFAULT_SUBDIRS: tuple[str, ...] = ("store", "tmp", "logs")


def resolve_root(root: str | os.PathLike[str] | None = None) -> Path:
    """Return the persistence root, defaulting to $SONGFEED_HOME or ~/SongFeed."""

    if root is None:
        env_root = os.getenv(ROOT_ENV_VAR, "").strip()
        base = Path(env_root) if env_root else Path.home() / "SongFeed"
    else:
        base = Path(root)
    return base.expanduser().resolve()


def ensure_structure(root: str | os.PathLike[str] | None = None, *, subdirs: Iterable[str] | None = None) -> dict[str, Path]:
    """Ensure persistence directories exist and return a mapping."""

    base = resolve_root(root)
    resolved: dict[str, Path] = {}
    requested = tuple(subdirs) if subdirs is not None else _DEFAULT_SUBDIRS
    base.mkdir(parents=True, exist_ok=True)
    for name in requested:
        target = base / name
        target.mkdir(parents=True, exist_ok=True)
        resolved[name] = target
    return resolved


def default_snapshot_path(root: str | os.PathLike[str] | None = None) -> Path:
    """Return the absolute path of the snapshot cache file under \"store\"."""

    directories = ensure_structure(root, subdirs=("store",))
    return directories["store"] / SNAPSHOT_FILENAME
