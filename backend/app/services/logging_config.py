"""Structured logging configuration for the Locoman cost dashboard."""
import logging
import json
import sys
from datetime import datetime, timezone

# Extra attributes copied from the LogRecord into the output when present
CONTEXT_FIELDS = (
    "project_id",
    "duration_ms",
    "request_id",
    "http_method",
    "http_path",
    "http_status",
    "function",
)

NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "LiteLLM", "sqlalchemy.engine")


def _context(record: logging.LogRecord) -> dict:
    return {f: getattr(record, f) for f in CONTEXT_FIELDS if hasattr(record, f)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, context fields flattened into the top level."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ContextTextFormatter(logging.Formatter):
    """Human-readable dev format; context fields appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s [%(name)s] %(levelname)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        context = _context(record)
        if context:
            line += " | " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


def setup_logging(level: str = "INFO", json_output: bool = True):
    """Route all logging to stdout with the chosen formatter."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else ContextTextFormatter())
    root.handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
