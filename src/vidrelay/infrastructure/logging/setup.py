"""structlog on top of stdlib logging, emitted off the event loop.

Every record (ours, uvicorn's, httpx's) is rendered by structlog's
``ProcessorFormatter``.  Records are queued by the calling coroutine and
written by a background ``QueueListener``: DEBUG..WARNING to stdout,
ERROR and above to stderr.
"""

from __future__ import annotations

import atexit
import copy
import logging
import logging.config
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any

import structlog
from uvicorn.config import LOGGING_CONFIG as UVICORN_LOGGING_CONFIG

from vidrelay.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

# Upstream request chatter; only shown at DEBUG.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def _drop_color_message(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("color_message", None)
    return event_dict


def _stamp_record_time(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Use the stdlib record's creation time, not the listener's format time."""
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = created.isoformat().replace("+00:00", "Z")
    return event_dict


def _formatter_kwargs(config: AppConfig) -> dict[str, Any]:
    renderer: structlog.typing.Processor = (
        structlog.processors.JSONRenderer()
        if config.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    return {
        "foreign_pre_chain": [
            _drop_color_message,
            structlog.contextvars.merge_contextvars,
            _stamp_record_time,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ],
        "processors": [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    }


def build_logging_config(config: AppConfig) -> dict[str, Any]:
    """uvicorn's dictConfig with both handlers switched to structlog.

    The configured level goes to uvicorn's loggers and the root logger;
    httpx/httpcore stay at WARNING unless the level is DEBUG.
    """
    cfg = copy.deepcopy(UVICORN_LOGGING_CONFIG)
    cfg["formatters"]["structlog"] = {
        "()": structlog.stdlib.ProcessorFormatter,
        **_formatter_kwargs(config),
    }
    for handler in cfg["handlers"].values():
        handler["formatter"] = "structlog"

    level = config.log_level
    for logger_cfg in cfg["loggers"].values():
        logger_cfg["level"] = level
    quiet = "DEBUG" if level == "DEBUG" else "WARNING"
    cfg["loggers"].update({name: {"level": quiet} for name in _CHATTY_LOGGERS})
    cfg["root"] = {"handlers": ["default"], "level": level}
    return cfg


class _RecordQueueHandler(QueueHandler):
    # The base prepare() formats record.msg to a string; ProcessorFormatter
    # needs the structlog event dict untouched.
    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy.copy(record)


class _QueuedEmission:
    """Owns the queue listener that writes log records in the background."""

    def __init__(self) -> None:
        self._listener: QueueListener | None = None

    def stop(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()

    def start(self, config: AppConfig) -> None:
        self.stop()
        formatter = structlog.stdlib.ProcessorFormatter(**_formatter_kwargs(config))

        out = logging.StreamHandler(stream=sys.stdout)
        out.addFilter(lambda record: record.levelno < logging.ERROR)
        err = logging.StreamHandler(stream=sys.stderr)
        err.setLevel(logging.ERROR)
        for handler in (out, err):
            handler.setFormatter(formatter)

        records: queue.Queue[logging.LogRecord] = queue.Queue()
        root = logging.getLogger()
        root.handlers[:] = [_RecordQueueHandler(records)]
        root.setLevel(config.log_level)

        # dictConfig gave uvicorn its own handlers; send everything via root.
        for name in list(logging.root.manager.loggerDict):
            logger = logging.getLogger(name)
            logger.handlers.clear()
            logger.propagate = True
            if name.split(".")[0] not in _CHATTY_LOGGERS:
                logger.setLevel(config.log_level)

        self._listener = QueueListener(records, out, err, respect_handler_level=True)
        self._listener.start()


_EMISSION = _QueuedEmission()
atexit.register(_EMISSION.stop)


def configure_logging(config: AppConfig) -> dict[str, Any]:
    """Configure structlog and stdlib logging; returns uvicorn's ``log_config``."""
    structlog.configure(
        processors=[
            _drop_color_message,
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    cfg = build_logging_config(config)
    logging.config.dictConfig(cfg)
    _EMISSION.start(config)

    log.info(
        "logging_configured", log_format=config.log_format, log_level=config.log_level
    )
    return cfg
