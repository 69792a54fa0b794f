"""Loguru sinks and structured events for library operations.

Every record emitted inside a scan carries the session's `run_id`; events
logged through `log_event` also carry an `action` name (``folder_added``,
``file_read_error``, ...) plus their fields as extras, which is what ends up
in the JSON lines file.
"""
from __future__ import annotations

import sys
import uuid
from typing import Any, Dict, Optional

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def configure(level: str = "INFO", json_path: Optional[str] = None) -> None:
    """Console sink on stderr, plus a serialized sink when `json_path` is given."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT, backtrace=False, diagnose=False)
    if json_path:
        setup_json(json_path)


def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)


def bind_run(run_id: Optional[str] = None) -> str:
    """Tag all following records with a scan session id and return it."""
    rid = run_id or uuid.uuid4().hex[:12]
    logger.configure(extra={"run_id": rid})
    return rid


def log_event(action: str, **fields: Any) -> None:
    # `msg` and `level` steer the record; None-valued fields are dropped
    extras: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    message = extras.pop("msg", action)
    level = str(extras.pop("level", "INFO")).upper()
    logger.bind(action=action, **extras).log(level, message)


def shorten(text: str, max_len: int = 300) -> str:
    """First line of `text`, cut to `max_len` characters for user-facing messages."""
    lines = (text or "").strip().splitlines()
    first = lines[0] if lines else ""
    if len(first) > max_len:
        return first[: max_len - 3].rstrip() + "..."
    return first
