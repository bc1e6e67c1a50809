"""
Tests for the session provider, unit of work and retry policy.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ccm.connection import (
    DatabaseSettings,
    UnitOfWork,
    close_db,
    create_retry_decorator,
    get_db_provider,
    init_db,
)
from ccm.models import CCMInstruction, Customer


def count_customers(provider):
    with provider.session_scope() as session:
        return session.scalar(select(func.count()).select_from(Customer))


class TestSharedProvider:
    """Tests for init_db/close_db over a file-backed SQLite database."""

    def test_init_create_and_close(self, tmp_path):
        """Test the shared provider connects from a URL and builds the tables."""
        settings = DatabaseSettings(url=f"sqlite:///{tmp_path / 'ccm.db'}")
        try:
            provider = init_db(settings)
            assert get_db_provider() is provider
            assert provider.engine.dialect.name == "sqlite"

            provider.create_tables()
            with provider.session_scope() as session:
                assert session.scalar(select(func.count()).select_from(CCMInstruction)) == 0
        finally:
            close_db()

    def test_uninitialized_provider(self, tmp_path):
        """Test the engine is unavailable before init."""
        provider = get_db_provider(DatabaseSettings(url=f"sqlite:///{tmp_path / 'ccm.db'}"))
        try:
            with pytest.raises(RuntimeError):
                provider.engine
        finally:
            close_db()


class TestTransactions:
    """Tests for commit and rollback boundaries."""

    def test_session_scope_rolls_back_on_error(self, provider, hierarchy):
        """Test an exception inside session_scope discards the work."""
        with pytest.raises(RuntimeError):
            with provider.session_scope() as session:
                session.add(Customer(customer_code="TMP", customer_name="Temporary"))
                session.flush()
                raise RuntimeError("abort")
        assert count_customers(provider) == 2

    def test_unit_of_work_commit(self, provider, hierarchy):
        """Test committed work is visible afterwards."""
        with provider.get_unit_of_work() as uow:
            uow.session.add(Customer(customer_code="NEW", customer_name="New Customer"))
            uow.commit()
        assert count_customers(provider) == 3

    def test_unit_of_work_without_commit(self, provider, hierarchy):
        """Test leaving the block without commit discards the work."""
        with provider.get_unit_of_work() as uow:
            uow.session.add(Customer(customer_code="NEW", customer_name="New Customer"))
            uow.session.flush()
        assert count_customers(provider) == 2

    def test_unit_of_work_outside_block(self, provider):
        """Test the session is only available inside the with-block."""
        uow = UnitOfWork(provider.session_factory)
        with pytest.raises(RuntimeError):
            uow.session


class TestRetry:
    """Tests for the engine-creation retry policy."""

    def test_operational_errors_retried(self):
        """Test connection failures are retried up to the attempt limit."""
        calls = []

        @create_retry_decorator(max_attempts=3, min_wait=0, max_wait=0)
        def connect():
            calls.append(1)
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(OperationalError):
            connect()
        assert len(calls) == 3

    def test_other_errors_not_retried(self):
        """Test non-connection errors fail on the first attempt."""
        calls = []

        @create_retry_decorator(max_attempts=3, min_wait=0, max_wait=0)
        def connect():
            calls.append(1)
            raise ValueError("bad url")

        with pytest.raises(ValueError):
            connect()
        assert len(calls) == 1
