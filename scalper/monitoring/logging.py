"""Structured logging setup: JSON events on stdout, errors to a rotating file."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from scalper.config.settings import MonitoringConfig

ERROR_LOG_NAME = "errors.log"
REDACTED = "***"
SIGNED_FIELDS = frozenset({"nonce", "otp", "api-key", "api-sign", "api_key", "api_secret", "secret"})


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SIGNED_FIELDS else _redact(item)
            for key, item in value.items()
        }
    return value


def redact_signed_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credentials and signing inputs wherever they appear in an event."""
    return _redact(event_dict)


def _error_file_handler(logs_path: str, monitoring: MonitoringConfig) -> RotatingFileHandler:
    log_dir = Path(logs_path)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / ERROR_LOG_NAME,
        maxBytes=monitoring.error_log_max_bytes,
        backupCount=monitoring.error_log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(
    log_level: str = "INFO",
    logs_path: str | None = None,
    monitoring: MonitoringConfig | None = None,
) -> None:
    monitoring = monitoring or MonitoringConfig()
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    if logs_path:
        logging.getLogger().addHandler(_error_file_handler(logs_path, monitoring))
    for noisy_logger in ("httpx", "httpcore"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    # stdlib factory so ERROR events also reach errors.log
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            redact_signed_fields,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
