import pytest
from pydantic import ValidationError

from chatcore.tests.conftest import make_test_settings


class TestSettings:

    def test_log_fields_are_normalized(self):
        s = make_test_settings(LOG_LEVEL=" warning ", LOG_FORMAT="TEXT")

        assert s.LOG_LEVEL == "WARNING"
        assert s.LOG_FORMAT == "text"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            make_test_settings(LOG_LEVEL="chatty")

    def test_database_url_from_parts(self):
        s = make_test_settings(
            TESTING=False,
            DATABASE_URL_OVERRIDE=None,
            POSTGRES_USERNAME="chat",
            POSTGRES_PASSWORD="pw",
            POSTGRES_HOST="db",
            POSTGRES_PORT=6543,
            POSTGRES_DB="chat_prod",
        )

        assert s.DATABASE_URL == "postgresql+asyncpg://chat:pw@db:6543/chat_prod"

    def test_testing_uses_test_database(self):
        s = make_test_settings(TEST_POSTGRES_DB="chat_test", DATABASE_URL_OVERRIDE=None)

        assert s.DATABASE_URL.endswith("/chat_test")

    def test_override_wins(self):
        s = make_test_settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite://", TEST_POSTGRES_DB="chat_test")

        assert s.DATABASE_URL == "sqlite+aiosqlite://"

    def test_page_limits_defaults(self):
        s = make_test_settings()

        assert (s.MESSAGE_PAGE_DEFAULT, s.MESSAGE_PAGE_MAX, s.GROUP_NAME_MAX_LENGTH) == (20, 50, 100)
