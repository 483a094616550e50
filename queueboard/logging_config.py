"""
Logging configuration for queueboard.

Health check traffic is dropped from the uvicorn access
log; everything else goes to stdout.
"""

import logging
from typing import Any, Dict

HEALTH_PATHS = ("/health", "/healthz")


class HealthCheckFilter(logging.Filter):
    """Drop uvicorn access records for GET requests on the health endpoints."""

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn access args: (client_addr, method, path, http_version, status_code)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            method, path = args[1], str(args[2]).split("?", 1)[0]
            return not (method == "GET" and path in HEALTH_PATHS)
        return True


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """dictConfig for the app and uvicorn, with the queueboard logger at level."""
    level = level.upper()

    def logger(handler: str, logger_level: str = "INFO") -> Dict[str, Any]:
        return {"handlers": [handler], "level": logger_level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"health_check": {"()": HealthCheckFilter}},
        "formatters": {
            "default": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["health_check"],
            },
        },
        "loggers": {
            "uvicorn": logger("default"),
            "uvicorn.error": logger("default"),
            "uvicorn.access": logger("access"),
            "queueboard": logger("default", level),
        },
        "root": {"level": level, "handlers": ["default"]},
    }
