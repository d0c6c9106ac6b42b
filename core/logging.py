"""
Logging configuration

Indexer warnings carry their tx hash, log index and block in
``extra={"error_context": ...}``. ErrorContextFilter renders that dict onto
the log line so per-log skips can be traced without a structured sink.
"""

import logging
import sys
from typing import Optional

from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s%(error_context_text)s"

# Libraries that are chatty at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "httpcore", "aiosqlite")

CONTEXT_KEYS = ("event", "raffle_id", "tx_hash", "log_index", "block_number", "method", "block")


class ErrorContextFilter(logging.Filter):
    """Append the interesting parts of ``record.error_context`` to the message"""

    def filter(self, record: logging.LogRecord) -> bool:
        context = getattr(record, "error_context", None)
        if isinstance(context, dict) and isinstance(context.get("context"), dict):
            # IndexerException.to_dict() nests the context
            context = context["context"]

        text = ""
        if isinstance(context, dict):
            parts = [f"{key}={context[key]}" for key in CONTEXT_KEYS if context.get(key) is not None]
            if parts:
                text = " [" + " ".join(parts) + "]"

        record.error_context_text = text
        return True


def setup_logging(level: Optional[str] = None):
    """Configure application logging"""

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ErrorContextFilter())

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler]
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")
