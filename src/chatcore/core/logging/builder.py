"""
Logging builder: build and apply a dictConfig from Settings, optionally moving
handler IO to a background QueueListener.

    setup_logging(get_settings())
    ...
    stop_queue_logging()   # at shutdown, flushes queued records

Handlers by configuration:

| LOG_TO_STDOUT | LOG_DIR | Active handlers                 |
| ------------- | ------- | ------------------------------- |
| true          | any     | console + error_console         |
| false         | unset   | console + error_console         |
| false         | set     | console + file + error_file     |
"""
import logging
import logging.config
import queue
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path

from ...config.settings import Settings
from ...utils.metadata import get_project_name
from .filters import CorrelationIdFilter, RedactFilter
from .formatters import ColorFormatter, JsonFormatter
from .handlers import (
    get_console_handler,
    get_error_console_handler,
    get_error_file_handler,
    get_file_handler,
)

_QUEUE_LISTENER: QueueListener | None = None

STANDARD_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(correlation_id)s | %(message)s"


def _writes_files(settings: Settings) -> bool:
    return (not settings.LOG_TO_STDOUT) and bool(settings.LOG_DIR)


def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping:
      - formatters: "standard" (colored in text mode) and "json"
      - filters: "correlation_id", "redact"
      - handlers: see the module table
      - loggers: root, the `chatcore` package, sqlalchemy.engine
    """
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": STANDARD_FORMAT,
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "correlation_id": {"()": CorrelationIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}
    if _writes_files(settings):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers),
                "level": settings.LOG_LEVEL,
            },
            "chatcore": {
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # statements and bound parameters may carry message content
            "sqlalchemy.engine": {
                "level": "INFO" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    """
    Apply the logging configuration.

    With LOG_USE_QUEUE the handlers built by dictConfig are detached from the
    root logger and driven by a QueueListener thread; the root logger gets a
    QueueHandler instead. Filters are attached to that QueueHandler too so the
    correlation id is read in the producing context, not in the listener thread.
    """
    global _QUEUE_LISTENER

    stop_queue_logging()

    if _writes_files(settings):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))

    if not settings.LOG_USE_QUEUE:
        return

    root_logger = logging.getLogger()
    real_handlers = list(root_logger.handlers)
    for handler in real_handlers:
        root_logger.removeHandler(handler)

    log_queue: queue.Queue = queue.Queue()
    listener = QueueListener(log_queue, *real_handlers, respect_handler_level=True)
    listener.start()

    queue_handler = QueueHandler(log_queue)
    queue_handler.addFilter(CorrelationIdFilter())
    queue_handler.addFilter(RedactFilter())
    root_logger.addHandler(queue_handler)

    _QUEUE_LISTENER = listener


def stop_queue_logging() -> None:
    """Stop the QueueListener (flushing pending records). No-op when not running."""
    global _QUEUE_LISTENER
    listener = _QUEUE_LISTENER
    if listener is None:
        return
    try:
        listener.stop()
    finally:
        _QUEUE_LISTENER = None


def is_queue_logging_active() -> bool:
    return _QUEUE_LISTENER is not None
