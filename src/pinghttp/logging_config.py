"""
=============================================================================
LOGGING SETUP
=============================================================================

Every module logs through `logging.getLogger(__name__)`; this module only
decides where those records go and what they look like.

    pinghttp.server          startup, shutdown, "internal server error ..."
    pinghttp.core.*          connection and event-loop detail (DEBUG)
    pinghttp.lifecycle       signal notices
    pinghttp.access          one line per request (DEBUG)

=============================================================================
FORMATS
=============================================================================

text:
    2026-10-17 12:00:00 [INFO] pinghttp.server: http/1 server listening at: http://127.0.0.1:8080/

json (one object per line, for ELK / Loki / Datadog):
    {"time": "2026-10-17T12:00:00.123+00:00", "level": "INFO",
     "logger": "pinghttp.server", "msg": "http/1 server listening at: ..."}

=============================================================================
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry)


def resolve_level(level: str) -> int:
    """
    Map a level name to its number. Unknown names fall back to INFO.

        resolve_level("debug")  → logging.DEBUG
        resolve_level("warn")   → logging.WARNING
        resolve_level("loud")   → logging.INFO
    """
    name = level.upper()
    if name == "WARN":
        name = "WARNING"

    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    stream: Optional[object] = None,
) -> logging.Handler:
    """
    Configure the root logger.

    Replaces any handlers already on the root logger so calling this twice
    does not duplicate output.

    Args:
        level: Level name (see resolve_level).
        log_format: "text" or "json".
        stream: Where to write; stderr when None.

    Returns:
        The installed handler.
    """
    handler = logging.StreamHandler(stream)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT))

    numeric_level = resolve_level(level)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    logging.getLogger("pinghttp").setLevel(numeric_level)

    return handler
