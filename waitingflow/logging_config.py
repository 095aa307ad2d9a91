"""
Logging setup for the waitingflow service.

Uvicorn access lines for health checks, metrics scrapes and the waiting-room rank
poll are dropped: every waiting browser polls its rank every few seconds, so
those lines would bury everything else. Failed requests on those paths are
still logged.
"""

import logging
import logging.config
from typing import Any, Dict, Iterable, Optional, Tuple

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
QUIET_ACCESS_PATHS = ("/health", "/healthz", "/metrics", "/api/v1/queue/rank")
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error")


class AccessPathFilter(logging.Filter):
    """Drop successful GET access records for a set of request paths."""

    def __init__(self, paths: Iterable[str] = QUIET_ACCESS_PATHS):
        super().__init__()
        self.paths = frozenset(paths)

    @staticmethod
    def _request(record: logging.LogRecord) -> Optional[Tuple[str, str, int]]:
        # uvicorn.access args: (client_addr, method, full_path, http_version, status_code)
        if not isinstance(record.args, tuple) or len(record.args) != 5:
            return None
        _, method, full_path, _, status_code = record.args
        return str(method), str(full_path).split("?", 1)[0], int(status_code)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name != "uvicorn.access":
            return True
        request = self._request(record)
        if request is None:
            return True
        method, path, status_code = request
        return not (method == "GET" and path in self.paths and status_code < 400)


def _stream_handler(formatter: str, filters: Iterable[str] = ()) -> Dict[str, Any]:
    handler = {"class": "logging.StreamHandler", "formatter": formatter, "stream": "ext://sys.stdout"}
    if filters:
        handler["filters"] = list(filters)
    return handler


def _logger(handler: str, level: str) -> Dict[str, Any]:
    return {"handlers": [handler], "level": level, "propagate": False}


def get_logging_config(level: str = "INFO", quiet_paths: Iterable[str] = QUIET_ACCESS_PATHS) -> Dict[str, Any]:
    """
    dictConfig for the service and for uvicorn.

    Args:
        level: Level of the waitingflow loggers; uvicorn stays at INFO
        quiet_paths: Request paths whose successful GETs are not access-logged
    """
    loggers = {name: _logger("default", "INFO") for name in UVICORN_LOGGERS}
    loggers["uvicorn.access"] = _logger("access", "INFO")
    loggers["waitingflow"] = _logger("default", level.upper())

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"quiet_access": {"()": AccessPathFilter, "paths": tuple(quiet_paths)}},
        "formatters": {
            "default": {"format": LOG_FORMAT},
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "default": _stream_handler("default"),
            "access": _stream_handler("access", ["quiet_access"]),
        },
        "loggers": loggers,
        "root": {"level": "INFO", "handlers": ["default"]},
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(get_logging_config(level))
