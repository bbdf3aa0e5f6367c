"""Structured JSON logging configuration."""

import logging
import sys
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from examdesk.exams.config import LOG_LEVEL


class ExamJsonFormatter(JsonFormatter):
    """JSON formatter with the fields every service log line carries."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["function"] = record.funcName


def setup_logging() -> None:
    """Configure the root logger once at startup."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = ExamJsonFormatter(
        "%(timestamp)s %(level)s %(logger)s %(function)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
