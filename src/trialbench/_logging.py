"""Centralized logging configuration for trialbench."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

_STREAM_HANDLER_ID = "trialbench_stream"
_FILE_HANDLER_ID = "trialbench_file"
_FORMAT = "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"


def _level_from_name(raw: str) -> int | None:
    name = raw.strip().upper()
    if not name:
        return None
    resolved = getattr(logging, name, None)
    return int(resolved) if isinstance(resolved, int) else None


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        resolved = _level_from_name(level)
        if resolved is not None:
            return resolved
    env_level = _level_from_name(os.environ.get("TRIALBENCH_LOG_LEVEL", ""))
    return logging.WARNING if env_level is None else env_level


def _tagged(root: logging.Logger, handler_id: str) -> logging.Handler | None:
    for handler in root.handlers:
        if getattr(handler, "_trialbench_handler_id", None) == handler_id:
            return handler
    return None


def _attach(root: logging.Logger, handler: logging.Handler, handler_id: str) -> None:
    setattr(handler, "_trialbench_handler_id", handler_id)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)


def format_event(event: str, **fields: Any) -> str:
    """Render ``event key=value ...`` in the order the fields were given."""
    parts = [event]
    parts.extend(f"{key}={value}" for key, value in fields.items())
    return " ".join(parts)


def setup_logging(*, level: int | str | None = None) -> None:
    """Configure the root ``trialbench`` logger.

    The stream level comes from *level* (a number or a level name) or the
    ``TRIALBENCH_LOG_LEVEL`` environment variable and defaults to WARNING so
    the interactive screens stay clean. Log records go to stderr; operator
    screens go to stdout. When ``TRIALBENCH_LOG_FILE`` is set, every trial
    lifecycle event (INFO and up) is also appended to that file.
    """
    stream_level = _resolve_level(level)

    root = logging.getLogger("trialbench")
    stream_handler = _tagged(root, _STREAM_HANDLER_ID)
    if stream_handler is None:
        stream_handler = logging.StreamHandler()
        _attach(root, stream_handler, _STREAM_HANDLER_ID)
    stream_handler.setLevel(stream_level)

    file_handler = _tagged(root, _FILE_HANDLER_ID)
    file_path_raw = os.environ.get("TRIALBENCH_LOG_FILE", "").strip()
    file_level: int | None = None
    if not file_path_raw:
        if file_handler is not None:
            root.removeHandler(file_handler)
            file_handler.close()
    else:
        file_path = Path(file_path_raw).expanduser().resolve()
        stale = (
            file_handler is not None
            and isinstance(file_handler, logging.FileHandler)
            and Path(file_handler.baseFilename).resolve() != file_path
        )
        if stale and file_handler is not None:
            root.removeHandler(file_handler)
            file_handler.close()
            file_handler = None
        if file_handler is None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(file_path, encoding="utf-8")
            _attach(root, file_handler, _FILE_HANDLER_ID)
        file_level = min(stream_level, logging.INFO)
        file_handler.setLevel(file_level)

    root.setLevel(stream_level if file_level is None else min(stream_level, file_level))
