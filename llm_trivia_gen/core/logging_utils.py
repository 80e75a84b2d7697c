from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

LOGGER_NAME = "llm_trivia_gen"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, "").strip() or default)
    except ValueError:
        return default


@dataclass(frozen=True)
class LogRotation:
    """Startup rotation policy for the package log file.

    A zero ``max_bytes`` or ``max_age_hours`` disables that trigger; a zero
    ``max_files`` keeps every rotated file.
    """

    max_bytes: int = 5 * 1024 * 1024
    max_age_hours: int = 24
    max_files: int = 5

    @classmethod
    def from_env(cls) -> "LogRotation":
        return cls(
            max_bytes=_env_int("TRIVIA_GEN_LOG_MAX_BYTES", cls.max_bytes),
            max_age_hours=_env_int("TRIVIA_GEN_LOG_MAX_AGE_HOURS", cls.max_age_hours),
            max_files=_env_int("TRIVIA_GEN_LOG_MAX_FILES", cls.max_files),
        )

    @property
    def enabled(self) -> bool:
        return self.max_bytes > 0 or self.max_age_hours > 0

    def is_due(self, path: Path, now: datetime) -> bool:
        try:
            stat = path.stat()
        except FileNotFoundError:
            return False
        if self.max_bytes > 0 and stat.st_size >= self.max_bytes:
            return True
        if self.max_age_hours <= 0:
            return False
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return (now - modified).total_seconds() >= self.max_age_hours * 3600

    def rotate(self, path: Path) -> Optional[Path]:
        """Move ``path`` aside when a trigger fires; returns the rotated file."""
        if not self.enabled or not path.is_file():
            return None
        now = datetime.now(timezone.utc)
        if not self.is_due(path, now):
            return None
        rotated = path.with_name(f"{path.stem}.{now:%Y%m%d-%H%M%S}{path.suffix}")
        shutil.move(str(path), str(rotated))
        self.prune(path)
        return rotated

    def prune(self, path: Path) -> None:
        if self.max_files <= 0:
            return
        backups = sorted(
            path.parent.glob(f"{path.stem}.*{path.suffix}"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for stale in backups[self.max_files :]:
            stale.unlink(missing_ok=True)


def rotate_log_if_needed(path: Path, rotation: Optional[LogRotation] = None) -> Optional[Path]:
    return (rotation or LogRotation.from_env()).rotate(path)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; structured ``fields`` extras are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(
    log_path: Path | None = None,
    level: int = logging.INFO,
    rotation: Optional[LogRotation] = None,
) -> logging.Logger:
    """Attach a JSON file handler (rotated on startup) to the package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if log_path is None:
        return logger
    target = str(log_path.resolve())
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return logger

    log_path.parent.mkdir(parents=True, exist_ok=True)
    rotated = rotate_log_if_needed(log_path, rotation)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    if rotated is not None:
        logger.info("log_rotated", extra={"fields": {"rotated_to": str(rotated)}})
    return logger
