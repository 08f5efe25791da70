# core/logging/
# ├─ __init__.py      # public API
# ├─ builder.py       # make_dict_config(settings) + setup_logging(settings)
# ├─ formatters.py    # JsonFormatter, ColorFormatter
# ├─ filters.py       # CorrelationIdFilter, RedactFilter (+ contextvar helpers)
# └─ handlers.py      # handler dict factories (console/file/error)

from .builder import make_dict_config, setup_logging, stop_queue_logging
from .filters import (
    CorrelationIdFilter,
    RedactFilter,
    get_correlation_id,
    new_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = [
    "setup_logging",
    "make_dict_config",
    "stop_queue_logging",
    "CorrelationIdFilter",
    "RedactFilter",
    "set_correlation_id",
    "reset_correlation_id",
    "get_correlation_id",
    "new_correlation_id",
]
