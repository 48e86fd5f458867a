"""
Process-wide logging setup.

The API logs to stdout (gunicorn and the container runtime collect it).
The client CLI logs to stderr so its JSON output stays clean.

LOG_FORMAT=json switches to one JSON object per line for log shippers.
"""
import logging
import sys
from typing import TextIO

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _formatter(log_format: str, app_name: str) -> logging.Formatter:
    if log_format.lower() == "json":
        from pythonjsonlogger.json import JsonFormatter

        return JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "logger",
            },
            static_fields={"app": app_name},
        )
    return logging.Formatter(_FORMAT)


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    log_format: str = "text",
    app_name: str = "doglog-api",
) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicate output on reload
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(_formatter(log_format, app_name))
    root_logger.addHandler(handler)
