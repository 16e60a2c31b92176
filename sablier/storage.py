"""File storage for persisted sessions."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)


class StorageDisabledError(RuntimeError):
    """Raised when a disabled storage is read or written."""


class FileStorage:
    """Stores sessions in a JSON file; disabled when no path is given."""

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self._path = Path(path) if path else None
        if self._path is None:
            logger.warning("no storage configuration provided. all states will be lost upon exit")
            return
        self._path.touch(exist_ok=True)
        if self._path.stat().st_size == 0:
            self._path.write_text("{}", encoding="utf-8")
        logger.info("initialized storage to %s", self._path)

    @property
    def path(self) -> Path | None:
        return self._path

    def enabled(self) -> bool:
        return self._path is not None

    def _require_path(self) -> Path:
        if self._path is None:
            raise StorageDisabledError("file storage is not enabled")
        return self._path

    def reader(self) -> IO[str]:
        path = self._require_path()
        path.touch(exist_ok=True)
        return path.open("r", encoding="utf-8")

    def writer(self) -> IO[str]:
        return self._require_path().open("w", encoding="utf-8")