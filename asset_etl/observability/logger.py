"""
Structured logging for the asset import pipeline

Module loggers (get_logger(__name__)) are children of the "asset_etl" logger,
which owns the only handler. Output is JSON via python-json-logger unless
LOG_FORMAT=text is set for local development.
"""
import logging
import os
import sys
import time

from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "asset_etl"

JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s - %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, level, logger and call-site fields

    Extra fields passed through ``extra=`` (job_id, phase, rule, ...) are
    emitted as top-level keys by the base formatter.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", self.formatTime(record, self.datefmt))
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName


def _build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "text":
        return logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    return CustomJsonFormatter(fmt=JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    Attach a single stdout handler to a logger, replacing any it had

    Args:
        name: Logger name
        level: Log level name (defaults to env var LOG_LEVEL, then INFO)
        format_type: "json" or "text" (defaults to env var LOG_FORMAT, then json)

    Returns:
        Configured logger instance
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(format_type or os.getenv("LOG_FORMAT", "json")))

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger; the package logger is configured on first use

    Args:
        name: Logger name, usually __name__

    Returns:
        Logger instance
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        setup_logger(ROOT_LOGGER_NAME)

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    if not logger.handlers:
        return setup_logger(name)
    return logger


class log_operation:
    """
    Context manager logging the start, end and duration of an operation

    Usage:
        with log_operation("Phase CLEAN", logger=logger, job_id=job_id):
            ...
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.extra_fields = extra_fields
        self.start_time: float | None = None
        self.duration_seconds: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"Starting: {self.operation_name}",
            extra={"operation": self.operation_name, **self.extra_fields},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_seconds = time.perf_counter() - self.start_time
        fields = {
            "operation": self.operation_name,
            "duration_seconds": round(self.duration_seconds, 3),
            **self.extra_fields,
        }

        if exc_type is None:
            self.logger.info(f"Completed: {self.operation_name}", extra={**fields, "status": "success"})
        else:
            self.logger.error(
                f"Failed: {self.operation_name}: {exc_val}",
                extra={**fields, "status": "error", "error_type": exc_type.__name__},
            )
        return False
