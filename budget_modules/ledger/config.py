"""
Budget Ledger Configuration (``budget_modules.ledger.config``).

Responsibility
--------------
Declarative settings for the ledger: where the relational store lives, the
name and currency of the version created on first boot, legacy store keys
used by migration, and small query knobs such as the upcoming-payment
window.

Architecture position
---------------------
**Modules layer** -- configuration schema only.  ``bootstrap_ledger`` takes a
``LedgerConfig``; no manager reads files or environment variables itself.

Invariants enforced
-------------------
* ``__post_init__`` validates every field; an invalid value never reaches a
  manager.
* ``default_currency`` is a known ISO-4217 code.

Failure modes
-------------
* ``ConfigurationError`` at construction if any constraint is violated.
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import yaml

from budget_kernel.domain.currency import CurrencyRegistry
from budget_kernel.exceptions import ConfigurationError
from budget_kernel.logging_config import get_logger

logger = get_logger("modules.ledger.config")


@dataclass
class LedgerConfig:
    """Settings for one ledger instance.

    Contract: constructed once at startup and treated as read-only.
    Guarantees: validated at construction via ``__post_init__``.
    """

    database_url: str = "sqlite+pysqlite:///:memory:"
    default_version_name: str = "Budget v1.0"
    default_currency: str = "USD"
    default_actor: str = "system"
    # Renaming a locked version is refused unless this is set.
    allow_rename_when_locked: bool = False
    legacy_store_key: str = "budgetVersions"
    backup_key_prefix: str = "budgetVersions_backup_"
    expanded_sections_key_prefix: str = "budgetExpandedSections_"
    custom_categories_key: str = "budgetCustomCategories"
    custom_templates_key: str = "budget_custom_templates"
    # YAML or JSON template document; None uses the bundled standard template.
    standard_template_path: str | None = None
    upcoming_payment_window_days: int = 7
    recent_audit_limit: int = 50

    def __post_init__(self):
        if not self.database_url.strip():
            raise ConfigurationError("database_url", "cannot be empty")
        if not self.default_version_name.strip():
            raise ConfigurationError("default_version_name", "cannot be empty")
        if not CurrencyRegistry.is_valid(self.default_currency):
            raise ConfigurationError(
                "default_currency", f"unknown currency code {self.default_currency!r}",
            )
        self.default_currency = self.default_currency.upper()
        if not self.default_actor.strip():
            raise ConfigurationError("default_actor", "cannot be empty")
        for key_field in (
            "legacy_store_key", "backup_key_prefix", "expanded_sections_key_prefix",
            "custom_categories_key", "custom_templates_key",
        ):
            if not getattr(self, key_field):
                raise ConfigurationError(key_field, "cannot be empty")
        if self.backup_key_prefix == self.legacy_store_key:
            raise ConfigurationError(
                "backup_key_prefix", "must differ from legacy_store_key",
            )
        if self.upcoming_payment_window_days < 0:
            raise ConfigurationError("upcoming_payment_window_days", "cannot be negative")
        if self.recent_audit_limit <= 0:
            raise ConfigurationError("recent_audit_limit", "must be positive")

        logger.debug(
            "ledger_config_initialized",
            extra={
                "default_version_name": self.default_version_name,
                "default_currency": self.default_currency,
                "allow_rename_when_locked": self.allow_rename_when_locked,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults (in-memory SQLite)."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a mapping, e.g. a parsed YAML document.

        Preconditions:
            - Every key of ``data`` names a ``LedgerConfig`` field.
        Raises:
            ConfigurationError: on an unknown key or an invalid value.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(unknown[0], "unknown configuration key")
        logger.info(
            "ledger_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Load config from a YAML file.

        An empty file yields the defaults.  A top-level ``ledger:`` section,
        if present, is used instead of the document root.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError("<root>", "YAML document must be a mapping")
        if isinstance(data.get("ledger"), dict):
            data = data["ledger"]
        return cls.from_dict(data)
