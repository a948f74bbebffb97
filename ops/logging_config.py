"""
Structured logging configuration.

Production writes one JSON object per line to stdout; debug runs get a
readable console format. Ledger context passed through `extra=` (company,
voucher, report, difference) ends up under "extra" in the JSON line.

Environment variables:
- LOG_FORMAT: "json" or "console" (default: json unless DEBUG)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO, DEBUG when DEBUG)
"""
import json
import logging
import os
from datetime import datetime, timezone


# Project apps that get their own non-propagating logger.
APP_LOGGERS = (
    "accounts",
    "accounting",
    "documents",
    "reports",
    "events",
    "ops",
)

_STANDARD_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


def _formatters(log_format: str) -> tuple[dict, str]:
    if log_format == "json":
        return {"json": {"()": "ops.logging_config.JsonFormatter"}}, "json"
    return {
        "verbose": {
            "format": "[{asctime}] {levelname} {name} {message}",
            "style": "{",
        },
    }, "verbose"


def _loggers(log_level: str, debug: bool) -> dict:
    loggers = {
        "": {"handlers": ["console"], "level": log_level},
        "django": {"handlers": ["console"], "level": log_level, "propagate": False},
        "django.request": {
            "handlers": ["console"],
            "level": log_level if debug else "ERROR",
            "propagate": False,
        },
        # SQL only in debug
        "django.db.backends": {
            "handlers": ["console"] if debug else ["null"],
            "level": "DEBUG" if debug else "INFO",
            "propagate": False,
        },
    }
    for app_name in APP_LOGGERS:
        loggers[app_name] = {"handlers": ["console"], "level": log_level, "propagate": False}
    return loggers


def get_logging_config(debug: bool = False) -> dict:
    """
    Build the Django LOGGING dict.

    Args:
        debug: settings.DEBUG

    Returns:
        dictConfig-compatible dict
    """
    log_level = os.environ.get("LOG_LEVEL", "DEBUG" if debug else "INFO")
    log_format = os.environ.get("LOG_FORMAT", "console" if debug else "json")
    formatters, formatter_name = _formatters(log_format)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter_name,
                "stream": "ext://sys.stdout",
            },
            "null": {"class": "logging.NullHandler"},
        },
        "loggers": _loggers(log_level, debug),
    }


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record:

        {"timestamp", "level", "logger", "message", "location",
         "exception"?, "extra"?}

    Extras that json cannot encode (Decimal amounts, dates, model
    instances) are written with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extras = {
            key: self._jsonable(value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS
        }
        if extras:
            entry["extra"] = extras
        return json.dumps(entry)

    @staticmethod
    def _jsonable(value):
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            return str(value)
        return value
