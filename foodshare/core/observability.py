"""Structured logging setup.

JSON lines in production, plain text for local runs. ``setup_logging`` is
called once from the app lifespan; modules just use
``logging.getLogger(__name__)`` and pass ids through ``extra``.
"""
import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "donation_id", "user_id", "party", "error_code",
    "from_status", "to_status", "path", "method", "status", "latency_ms",
)


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


_HANDLER_NAME = "foodshare"


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger()
    # lifespan can run more than once per process (tests, --reload)
    for h in list(root.handlers):
        if h.get_name() == _HANDLER_NAME:
            root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
