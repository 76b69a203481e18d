from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from datapanel.config import settings

_CONFIGURED = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None, *, json_output: bool | None = None) -> None:
    """Install a single stream handler on the ``datapanel`` logger tree.

    Safe to call more than once; later calls only adjust the level.
    """
    global _CONFIGURED
    logger = logging.getLogger("datapanel")
    logger.setLevel((level or settings.log_level).upper())
    if _CONFIGURED:
        return

    handler = logging.StreamHandler()
    use_json = settings.log_json if json_output is None else json_output
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    logger.addHandler(handler)
    _CONFIGURED = True
