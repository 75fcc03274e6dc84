"""
Structured logging setup for the bundler
Uses structlog on top of stdlib logging
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from structlog.typing import EventDict, Processor


# Event keys that must never reach a log sink
SECRET_KEYS = frozenset({"private_key", "privateKey", "secret", "main_private_key", "userPrivateKey"})


def add_timestamp(logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO timestamp to log events"""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_log_level(logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add log level to event dict"""
    event_dict["level"] = method_name
    return event_dict


def redact_secrets(logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask wallet secrets passed as event context"""
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "console",
    output_file: Optional[str] = None
) -> None:
    """
    Configure structured logging for the application

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        format: Output format ("json" or "console")
        output_file: Optional file path for log output
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )

    if output_file:
        log_path = Path(output_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(output_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        logging.root.addHandler(file_handler)

    # aiohttp is chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(max(numeric_level, logging.WARNING))

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        add_log_level,
        add_timestamp,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
