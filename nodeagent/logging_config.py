# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Logging setup for the nodeagent command line.

JSON lines by default so a run can be shipped to a log collector as is;
``text`` for people reading a terminal. Lifecycle code attaches
``safe_id`` and ``state`` through ``extra=`` and both formats show them.
"""

import json
import logging
import sys
from typing import Any, Optional

# Record attributes promoted into every log line when a caller sets them.
CONTEXT_FIELDS = ("safe_id", "state")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s%(context)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Always present: ``timestamp``, ``level``, ``logger``, ``message``.
    ``safe_id``/``state`` appear when the record carries them, and
    ``exception`` holds the traceback text when there is one.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with context shown as ``[key=value ...]``."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        pairs = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        record.context = f" [{' '.join(pairs)}]" if pairs else ""
        return super().format(record)


def configure_logging(
    level: str = "INFO",
    fmt: str = "json",
    logfile: Optional[str] = None,
) -> logging.Handler:
    """Install a single root handler and return it.

    Earlier handlers are dropped, so calling this twice in one process
    (tests, repeated CLI invocations) does not duplicate lines. Output
    goes to ``logfile`` when given, otherwise stderr; stdout is left to
    the command's own result.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler: logging.Handler
    if logfile:
        handler = logging.FileHandler(logfile)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # httpx logs every request at INFO.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return handler
