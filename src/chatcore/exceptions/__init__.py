from .base import (
    ChatError,
    NotFoundError,
    BadRequestError,
    InvalidFieldError,
    ForbiddenError,
    ConflictError,
    DuplicateError,
    UnauthorizedError,
    RepositoryError,
)

__all__ = [
    "ChatError",
    "NotFoundError",
    "BadRequestError",
    "InvalidFieldError",
    "ForbiddenError",
    "ConflictError",
    "DuplicateError",
    "UnauthorizedError",
    "RepositoryError",
]

# exceptions/
# ├── __init__.py
# ├── base.py                    # App-level errors (ChatError and its kinds)
# ├── integrity_classifier.py    # SQL-level / DB-specific labels
# └── mapper.py                  # Map SQL-level errors to app-level errors
