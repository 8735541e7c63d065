"""Synchronous on-disk cache for the persisted bundle and the session pointer."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from ..models import PersistedBundle, SessionPointer

logger = logging.getLogger(__name__)

BUNDLE_KEY = "smartreceipts_bundle"
SESSION_KEY = "smartreceipts_session"


class LocalCache:
    """Stores one JSON blob per fixed key under a cache directory.

    Every read and write is blocking. Corrupt or unreadable blobs are
    reported as missing.
    """

    def __init__(self, cache_dir: str | Path = "~/.config/smartreceipts") -> None:
        self._dir = Path(cache_dir).expanduser()

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def _read(self, key: str) -> dict | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Unreadable cache entry %s, ignoring it", path)
            return None

    def _write(self, key: str, data: dict) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    def read_bundle(self) -> PersistedBundle | None:
        raw = self._read(BUNDLE_KEY)
        if raw is None:
            return None
        try:
            return PersistedBundle.from_dict(raw)
        except (TypeError, ValueError, AttributeError):
            logger.warning("Malformed cached bundle, treating cache as empty")
            return None

    def write_bundle(self, bundle: PersistedBundle) -> None:
        self._write(BUNDLE_KEY, bundle.to_dict())

    def read_session(self) -> SessionPointer | None:
        raw = self._read(SESSION_KEY)
        if raw is None:
            return None
        try:
            return SessionPointer.from_dict(raw)
        except (TypeError, ValueError):
            logger.warning("Malformed session pointer, ignoring it")
            return None

    def write_session(self, session: SessionPointer) -> None:
        self._write(SESSION_KEY, session.to_dict())

    def clear_all(self) -> None:
        """Remove both the session pointer and the bundle."""
        for key in (SESSION_KEY, BUNDLE_KEY):
            self._path(key).unlink(missing_ok=True)
