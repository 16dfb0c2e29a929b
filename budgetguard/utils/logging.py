"""
Logging setup for the webhook server and the CLI.

Decisions are logged per tenant scope: records emitted through
``get_scope_logger`` carry a ``scope`` attribute, which the structured
formatter lifts to a top-level JSON field so one team's admissions can be
filtered out of a shared stream.
"""

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from budgetguard.http.models import LoggingSettings
from budgetguard.utils.errors import ConfigurationError

# Attributes every LogRecord has; anything else was passed through `extra`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

ROOT_LOGGER = "budgetguard"
STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with the tenant scope as a top-level field."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        scope = getattr(record, "scope", None)
        if scope is not None:
            entry["scope"] = scope

        extra = {
            k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and k != "scope"
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class ScopeLoggerAdapter(logging.LoggerAdapter):
    """Stamps every record with the tenant scope under review."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Any:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs


def build_logging_config(settings: LoggingSettings) -> Dict[str, Any]:
    """
    Translate the ``logging`` section of GuardConfig into a dictConfig schema.

    Args:
        settings: Level, format (standard or structured) and optional file

    Returns:
        Dictionary accepted by logging.config.dictConfig
    """
    level = settings.level.upper()

    if settings.format == "structured":
        formatter: Dict[str, Any] = {"()": StructuredFormatter}
    else:
        formatter = {"format": STANDARD_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"}

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "guard",
        }
    }
    if settings.file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": settings.file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "guard",
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"guard": formatter},
        "handlers": handlers,
        "loggers": {
            ROOT_LOGGER: {"level": level, "handlers": list(handlers), "propagate": False},
        },
    }


def configure_logging(settings: LoggingSettings) -> None:
    """
    Apply the logging section of the configuration.

    Raises:
        ConfigurationError: If the level is unknown or the log file cannot be opened
    """
    if settings.file:
        Path(settings.file).parent.mkdir(parents=True, exist_ok=True)

    try:
        logging.config.dictConfig(build_logging_config(settings))
    except (ValueError, TypeError, OSError) as e:
        raise ConfigurationError(f"Failed to configure logging: {e}") from e

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"level": settings.level, "format": settings.format, "log_file": settings.file},
    )


def get_scope_logger(name: str, scope: str) -> ScopeLoggerAdapter:
    """Get a logger that tags records with the tenant scope."""
    return ScopeLoggerAdapter(logging.getLogger(name), {"scope": scope})
