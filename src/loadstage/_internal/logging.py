"""Structured logging setup for loadstage."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

# Record attributes copied into JSON output when a call site passes them
# through ``extra=``.
_CONTEXT_FIELDS = ("vu", "iteration", "group", "step")

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _JsonFormatter(logging.Formatter):
    """One-line JSON formatter.

    Emits ``timestamp``, ``level``, ``logger`` and ``message``, plus any
    virtual-user context (``vu``, ``iteration``, ``group``, ``step``)
    attached to the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return logging.Formatter(_TEXT_FORMAT, datefmt=_TEXT_DATEFMT)


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the ``loadstage`` root logger.

    Repeated calls reuse the existing handler, updating its level and
    formatter instead of stacking new handlers.

    Args:
        level: Logging level, e.g. ``logging.DEBUG``.
        json_format: Emit one JSON object per line instead of plain text.

    Returns:
        The configured ``loadstage`` logger.
    """
    logger = logging.getLogger("loadstage")
    logger.setLevel(level)

    handler = next(
        (h for h in logger.handlers if getattr(h, "_loadstage_handler", False)),
        None,
    )
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler._loadstage_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    handler.setLevel(level)
    handler.setFormatter(_make_formatter(json_format))

    # Avoid duplicate lines through the root logger.
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``loadstage`` namespace.

    Args:
        name: Dotted suffix, e.g. ``"engine.session"`` for
            ``loadstage.engine.session``.

    Returns:
        The child logger.
    """
    return logging.getLogger(f"loadstage.{name}")
