"""Structured logging for the sync worker and API."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from resale_market.config import settings

SERVICE_NAME = "resale-market"

# Context keys promoted to top-level JSON fields when present
CONTEXT_FIELDS = ("marketplace", "sku", "run_id", "currency")


class MarketJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record, with sync context lifted to the top level."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        log_record["service"] = SERVICE_NAME
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.filename}:{record.lineno}"

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = value


class ContextFilter(logging.Filter):
    """Renders ``[stockx DD1391-100]`` before console messages that carry context."""

    def filter(self, record: logging.LogRecord) -> bool:
        parts = [str(getattr(record, key)) for key in ("marketplace", "sku") if getattr(record, key, None)]
        record.context = f"[{' '.join(parts)}] " if parts else ""
        return True


def setup_logging(base_dir: str | Path | None = None):
    """Configure logging for the application.

    Args:
        base_dir: Directory that holds ``logs/``; defaults to the working directory.
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / "logs"
    logs_dir.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.addFilter(ContextFilter())
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(context)s%(message)s")
    )
    root_logger.addHandler(console_handler)

    json_formatter = MarketJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    app_handler = logging.FileHandler(logs_dir / "app.log")
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(json_formatter)
    root_logger.addHandler(app_handler)

    error_handler = logging.FileHandler(logs_dir / "error.log")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(json_formatter)
    root_logger.addHandler(error_handler)

    # httpx logs every marketplace request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors").setLevel(logging.WARNING)

    return root_logger


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Merges fixed context (marketplace, sku, run id) into every record."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> ContextLoggerAdapter:
    """
    Logger carrying context fields, e.g. ``get_logger(__name__, marketplace="alias")``.
    """
    return ContextLoggerAdapter(logging.getLogger(name), context)
