import pytest

from chatcore.exceptions import (
    BadRequestError,
    ChatError,
    ConflictError,
    DuplicateError,
    ForbiddenError,
    InvalidFieldError,
    NotFoundError,
    RepositoryError,
    UnauthorizedError,
)


@pytest.mark.parametrize(
    "exc_cls, code, status",
    [
        (NotFoundError, "not_found", 404),
        (BadRequestError, "bad_request", 400),
        (InvalidFieldError, "invalid_field", 422),
        (ForbiddenError, "forbidden", 403),
        (ConflictError, "conflict", 409),
        (DuplicateError, "duplicate", 409),
        (UnauthorizedError, "unauthorized", 401),
        (RepositoryError, "internal", 500),
    ],
)
def test_error_kinds(exc_cls, code, status):
    err = exc_cls("boom")
    assert isinstance(err, ChatError)
    assert err.error_code == code
    assert err.http_status() == status


def test_subclass_relationships():
    assert issubclass(DuplicateError, ConflictError)
    assert issubclass(InvalidFieldError, BadRequestError)


def test_payload_omits_constraint():
    err = DuplicateError("Conversation already exists", fields=["direct_key"], constraint="uq_conversations_direct_key")

    assert err.to_payload() == {
        "detail": "Conversation already exists",
        "code": "duplicate",
        "fields": ["direct_key"],
    }
    assert "uq_conversations_direct_key" in str(err)


def test_default_message():
    assert NotFoundError().message == "Not found"


def test_unknown_code_defaults_to_400():
    assert ChatError("x", error_code="something_else").http_status() == 400
