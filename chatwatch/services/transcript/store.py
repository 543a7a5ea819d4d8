"""Authoritative transcript file access.

The file on disk is the source of truth: it is read fully on every pass and
only ever appended to, one ``write`` call per reply.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class TranscriptIOError(Exception):
    pass


class TranscriptStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def ensure_exists(self) -> None:
        """Create an empty transcript if none exists yet."""
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch()
        except OSError as exc:
            raise TranscriptIOError(f"Cannot create transcript {self.path}: {exc}") from exc
        logger.info("init: created empty transcript %s", self.path)

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise TranscriptIOError(f"Cannot read transcript {self.path}: {exc}") from exc

    def read_or_empty(self) -> str:
        try:
            return self.read()
        except TranscriptIOError as exc:
            logger.warning("load: starting from empty buffer (%s)", exc)
            return ""

    def append(self, text: str) -> None:
        try:
            with self.path.open("a", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as exc:
            raise TranscriptIOError(f"Cannot append to transcript {self.path}: {exc}") from exc
