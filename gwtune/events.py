from __future__ import annotations

import logging
import sys

from .settings import settings

SOURCE = "gwtune-watchdog"

logger = logging.getLogger(SOURCE)


def configure_logging(level: str | None = None) -> None:
    """Send events to stderr; the service manager forwards it to the journal."""
    if logger.handlers:
        return
    logger.setLevel(resolve_level(level or settings.log_level))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(name)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def resolve_level(name: str, default: int = logging.INFO) -> int:
    """Numeric level for `name`; unknown names fall back to `default`."""
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else default


def _render(value: object) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, (set, frozenset)):
        text = ",".join(sorted(str(v) for v in value))
    elif isinstance(value, (list, tuple)):
        text = ",".join(str(v) for v in value)
    else:
        text = " ".join(str(value).split())
    if not text or " " in text or '"' in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


def format_event(message: str, **fields: object) -> str:
    """One line: `<message> key=value ...` with keys in call order."""
    parts = [" ".join(message.split())]
    parts.extend(f"{k}={_render(v)}" for k, v in fields.items())
    return " ".join(parts)


def log_event(level: str, message: str, **fields: object) -> None:
    logger.log(logging.getLevelName(level.upper()), format_event(message, **fields))
