"""
Ledger wiring (``budget_modules.ledger.bootstrap``).

``bootstrap_ledger`` initializes the engine from a ``LedgerConfig``, creates
the tables, registers the audit immutability listeners, and constructs
every service exactly once in dependency order.  The ``LedgerServices``
it returns is the handle an application keeps for its lifetime.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.logging_config import get_logger
from budget_kernel.services.audit_trail import AuditTrail
from budget_kernel.services.key_value_store import KeyValueStore
from budget_modules.ledger.categories import CategoryManager
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.migration import MigrationManager
from budget_modules.ledger.service import VersionManager
from budget_modules.ledger.templates import TemplateManager
from budget_modules.ledger.transactions import TransactionManager
from budget_modules.payroll.service import PayrollManager
from budget_modules.rate_cards.service import RateCardManager

logger = get_logger("modules.ledger.bootstrap")


@dataclass(frozen=True)
class LedgerServices:
    """Every ledger service, sharing one session factory, clock and trail."""

    config: LedgerConfig
    clock: Clock
    session_factory: sessionmaker[Session]
    audit_trail: AuditTrail
    key_value_store: KeyValueStore
    migration: MigrationManager
    versions: VersionManager
    rate_cards: RateCardManager
    categories: CategoryManager
    templates: TemplateManager

    @property
    def payroll(self) -> PayrollManager:
        return self.versions.payroll

    @property
    def transactions(self) -> TransactionManager:
        return self.versions.transactions


def build_services(
    session_factory: sessionmaker[Session],
    config: LedgerConfig | None = None,
    clock: Clock | None = None,
) -> LedgerServices:
    """Construct and start the services over an already-initialized store."""
    config = config or LedgerConfig.with_defaults()
    clock = clock or SystemClock()

    audit_trail = AuditTrail(session_factory, clock, default_actor=config.default_actor)
    key_value_store = KeyValueStore(session_factory)
    migration = MigrationManager(session_factory, key_value_store, clock, config)
    versions = VersionManager(
        session_factory, audit_trail, key_value_store,
        clock=clock, config=config, migration=migration,
    )
    rate_cards = RateCardManager(session_factory, audit_trail)

    # Migration must finish before anything reads versions.
    versions.start()
    categories = CategoryManager(session_factory, key_value_store, audit_trail, config)
    templates = TemplateManager(
        versions, categories, session_factory, key_value_store, audit_trail,
        clock=clock, config=config,
    )

    return LedgerServices(
        config=config,
        clock=clock,
        session_factory=session_factory,
        audit_trail=audit_trail,
        key_value_store=key_value_store,
        migration=migration,
        versions=versions,
        rate_cards=rate_cards,
        categories=categories,
        templates=templates,
    )


def bootstrap_ledger(
    config: LedgerConfig | None = None,
    clock: Clock | None = None,
) -> LedgerServices:
    """Initialize the store described by ``config`` and start the ledger."""
    config = config or LedgerConfig.with_defaults()
    init_engine_from_url(config.database_url)
    create_tables()
    register_immutability_listeners()
    services = build_services(get_session_factory(), config, clock)
    logger.info(
        "ledger_bootstrapped",
        extra={"version_count": len(services.versions.versions)},
    )
    return services
