"""
Logging configuration. Modules log through logging.getLogger(__name__) and pass
structured context in `extra`; the JSON formatter keeps those fields as keys.
"""

import logging.config
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from app.core.config import settings


class ContextJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always emits level and logger name."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


def build_logging_config(level: str, use_json: bool) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": ContextJsonFormatter,
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if use_json else "standard",
            },
        },
        "loggers": {
            "app": {"level": level.upper(), "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
    }


def configure_logging() -> None:
    logging.config.dictConfig(build_logging_config(settings.log_level, settings.log_json))
