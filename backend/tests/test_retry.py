"""
Retry and lock-wait tests.

Verifies:
- Lock contention that outlasts the retries becomes LockTimeoutError
- Other OperationalErrors are re-raised unchanged
- SQLite waits for the configured lock timeout
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from kavara import create_app
from kavara.services.concurrency import is_lock_contention, run_with_retry
from kavara.services.errors import LockTimeoutError


def _operational(message):
    return OperationalError("BEGIN IMMEDIATE", {}, Exception(message))


class TestRunWithRetry:

    def test_returns_first_success(self, db_session):
        outcomes = [_operational("database is locked"), "done"]

        def op():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert run_with_retry(op, attempts=2, backoff_base=0) == "done"

    def test_exhausted_contention_is_lock_timeout(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise _operational("database is locked")

        with pytest.raises(LockTimeoutError) as exc_info:
            run_with_retry(op, attempts=3, backoff_base=0)

        assert len(calls) == 3
        assert exc_info.value.retryable is True
        assert exc_info.value.details == {"attempts": 3}
        assert isinstance(exc_info.value.__cause__, OperationalError)

    def test_stale_version_is_lock_timeout(self, db_session):
        def op():
            raise StaleDataError("UPDATE statement on table 'orders' expected to update 1 row(s)")

        with pytest.raises(LockTimeoutError):
            run_with_retry(op, attempts=1, backoff_base=0)

    def test_other_operational_error_is_reraised(self, db_session):
        error = _operational("no such table: orders")

        def op():
            raise error

        with pytest.raises(OperationalError) as exc_info:
            run_with_retry(op, attempts=2, backoff_base=0)

        assert exc_info.value is error

    def test_attempts_default_to_config(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "SETTLEMENT_RETRY_ATTEMPTS", 2)
        calls = []

        def op():
            calls.append(1)
            raise _operational("database is locked")

        with pytest.raises(LockTimeoutError):
            run_with_retry(op, backoff_base=0)

        assert len(calls) == 2


class TestLockContention:

    @pytest.mark.parametrize(
        "message",
        ["database is locked", "canceling statement due to lock timeout", "deadlock detected"],
    )
    def test_lock_messages(self, message):
        assert is_lock_contention(_operational(message))

    def test_postgres_code(self):
        class PgError(Exception):
            pgcode = "55P03"

        assert is_lock_contention(OperationalError("SELECT", {}, PgError("lock not available")))

    def test_unrelated_error(self):
        assert not is_lock_contention(_operational("disk I/O error"))


class TestSqliteBusyTimeout:

    def test_lock_timeout_reaches_the_driver(self):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SETTLEMENT_LOCK_TIMEOUT_MS": 250,
        })

        assert app.config["SQLALCHEMY_ENGINE_OPTIONS"]["connect_args"]["timeout"] == 0.25

    def test_explicit_driver_timeout_wins(self):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 9}},
        })

        assert app.config["SQLALCHEMY_ENGINE_OPTIONS"]["connect_args"]["timeout"] == 9
