"""
Structured JSON logging for tamperwatch commands.
One JSON object per line on stdout, ready for grep/jq triage of long batches.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    "run_id",
    "command",
    "step",
    "url",
    "dump",
    "error_code",
    "heuristic",
    "kind",
    "xpath",
    "raw",
    "whitelist",
    "residual",
    "verifications",
    "total",
    "equal",
    "clean",
    "flagged",
    "missing",
    "errors",
)


class JsonFormatter(logging.Formatter):
    """Format logs as structured JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter whose per-call ``extra`` adds to the defaults instead of replacing them."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def setup(level=logging.INFO, **defaults) -> ContextAdapter:
    """
    Set up structured logging with default context.
    Example:
        log = setup(command="compare", run_id=run_id)
        log.info("flagged", extra={"dump": name, "residual": 3})
    """

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    return ContextAdapter(logging.getLogger("tamperwatch"), defaults)
