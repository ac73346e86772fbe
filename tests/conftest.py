"""
Pytest fixtures for the budget ledger test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- An in-memory SQLite store per test (tables created, audit listeners on)
- Deterministic clocks and pre-wired kernel services / managers (versions,
  transactions, payroll, rate cards, categories, templates)
- Small builders for line items, transactions and payroll records
"""

import json
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from io import StringIO

import pytest

from budget_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from budget_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from budget_kernel.domain.clock import DeterministicClock
from budget_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from budget_kernel.services.audit_trail import AuditTrail
from budget_kernel.services.key_value_store import KeyValueStore
from budget_modules.ledger.categories import CategoryManager
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.migration import MigrationManager
from budget_modules.ledger.models import BudgetLineItem, BudgetTransaction, TransactionType
from budget_modules.ledger.service import VersionManager
from budget_modules.ledger.templates import TemplateManager
from budget_modules.payroll.models import PayrollLineItem, PayrollPayPeriod
from budget_modules.rate_cards.service import RateCardManager

MEMORY_URL = "sqlite+pysqlite:///:memory:"
FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _session_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _isolated_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Parsed JSON records written under ``budget_kernel`` during the test.

    Call the fixture value to read what has been logged so far::

        version_manager.lock_version(version_id)
        assert "version_mutated" in {r["message"] for r in captured_logs()}
    """
    buffer = StringIO()
    capture = logging.StreamHandler(buffer)
    capture.setFormatter(StructuredFormatter())
    namespace = logging.getLogger("budget_kernel")
    previous_level = namespace.level
    namespace.setLevel(logging.DEBUG)
    namespace.addHandler(capture)
    try:
        yield lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]
    finally:
        namespace.removeHandler(capture)
        namespace.setLevel(previous_level)


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def session_factory():
    """A fresh in-memory database for each test."""
    init_engine_from_url(MEMORY_URL)
    create_tables()
    register_immutability_listeners()
    yield get_session_factory()
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def ledger_config():
    return LedgerConfig.with_defaults()


@pytest.fixture
def audit_trail(session_factory, deterministic_clock):
    return AuditTrail(session_factory, deterministic_clock)


@pytest.fixture
def kv_store(session_factory):
    return KeyValueStore(session_factory)


@pytest.fixture
def migration_manager(session_factory, kv_store, deterministic_clock, ledger_config):
    return MigrationManager(session_factory, kv_store, deterministic_clock, ledger_config)


@pytest.fixture
def make_version_manager(session_factory, audit_trail, kv_store, deterministic_clock):
    """Factory for an unstarted VersionManager; pass a config to override."""

    def _make(config: LedgerConfig | None = None) -> VersionManager:
        config = config or LedgerConfig.with_defaults()
        return VersionManager(
            session_factory,
            audit_trail,
            kv_store,
            clock=deterministic_clock,
            config=config,
            migration=MigrationManager(session_factory, kv_store, deterministic_clock, config),
        )

    return _make


@pytest.fixture
def version_manager(make_version_manager):
    """A started VersionManager over an empty store (one default version)."""
    return make_version_manager().start()


@pytest.fixture
def payroll(version_manager):
    return version_manager.payroll


@pytest.fixture
def transactions(version_manager):
    return version_manager.transactions


@pytest.fixture
def rate_card_manager(session_factory, audit_trail):
    return RateCardManager(session_factory, audit_trail)


@pytest.fixture
def category_manager(session_factory, kv_store, audit_trail, ledger_config):
    return CategoryManager(session_factory, kv_store, audit_trail, ledger_config)


@pytest.fixture
def template_manager(version_manager, category_manager, session_factory, kv_store, audit_trail, deterministic_clock):
    return TemplateManager(
        version_manager, category_manager, session_factory, kv_store, audit_trail,
        clock=deterministic_clock,
    )


# =============================================================================
# Builders
# =============================================================================


def line_item(name="Camera Rental", qty="1", days="1", cost="100", **kwargs) -> BudgetLineItem:
    return BudgetLineItem(
        name=name,
        quantity=Decimal(qty),
        days=Decimal(days),
        unit_cost=Decimal(cost),
        **kwargs,
    )


def transaction(amount="50", **kwargs) -> BudgetTransaction:
    kwargs.setdefault("date", FIXED_NOW - timedelta(days=1))
    kwargs.setdefault("transaction_type", TransactionType.EXPENSE)
    return BudgetTransaction(amount=Decimal(amount), **kwargs)


def pay_period(name="Week 1", gross="1000", deductions="0", **kwargs) -> PayrollPayPeriod:
    kwargs.setdefault("start_date", FIXED_NOW - timedelta(days=7))
    kwargs.setdefault("end_date", FIXED_NOW - timedelta(days=1))
    return PayrollPayPeriod(
        period_name=name,
        gross_amount=Decimal(gross),
        deductions=Decimal(deductions),
        **kwargs,
    )


def payroll_item(person="Alex Doe", role="Gaffer", budget="5000", **kwargs) -> PayrollLineItem:
    return PayrollLineItem(
        person_name=person,
        role=role,
        total_budgeted_amount=Decimal(budget),
        **kwargs,
    )
