"""
Typed Exception Hierarchy for the Budget Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The ledger separates three kinds of failure:

  1. Validation failures -- expected business-rule rejections (empty name,
     locked version, negative amount).  These are NOT exceptions; they are
     returned as ``ValidationResult`` / ``LedgerResult`` data.
  2. Persistence failures -- the store refused a read or write.  Services
     catch the driver error, roll back, log, and report a failed result.
  3. Programming errors -- an unknown id, a tampered audit row, a broken
     configuration.  These raise the typed exceptions below.

Every exception carries:
  - a ``code`` class attribute (machine-readable, stable)
  - structured attributes (not just a message string)

Example:
    try:
        manager.select_version(version_id)
    except VersionNotFoundError as e:
        log.warning("unknown version", extra={"version_id": e.version_id})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BudgetLedgerError (base)
    |
    +-- VersionError
    |   +-- VersionNotFoundError
    |
    +-- TransactionNotFoundError
    |
    +-- CategoryError
    |   +-- CategoryNotFoundError
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- TemplateFormatError
    |
    +-- PayrollError
    |   +-- PayrollItemNotFoundError
    |   +-- PayPeriodNotFoundError
    |
    +-- RateCardError
    |   +-- RateCardNotFoundError
    |
    +-- PersistenceError
    |
    +-- MigrationError
    |   +-- LegacyDataDecodeError
    |
    +-- AuditError
    |   +-- AuditWriteError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError
"""


class BudgetLedgerError(Exception):
    """Base exception for all budget ledger errors."""

    code: str = "BUDGET_LEDGER_ERROR"


# Version exceptions


class VersionError(BudgetLedgerError):
    """Base exception for budget version errors."""

    code: str = "VERSION_ERROR"


class VersionNotFoundError(VersionError):
    """No budget version exists with the given id."""

    code: str = "VERSION_NOT_FOUND"

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Budget version not found: {version_id}")


class TransactionNotFoundError(BudgetLedgerError):
    """The selected version has no transaction with the given id."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Category and template exceptions


class CategoryError(BudgetLedgerError):
    code: str = "CATEGORY_ERROR"


class CategoryNotFoundError(CategoryError):
    """No custom category exists with the given id."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Custom category not found: {category_id}")


class TemplateError(BudgetLedgerError):
    """Base exception for budget template errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """A template file or saved custom template does not exist."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template: str):
        self.template = template
        super().__init__(f"Template not found: {template}")


class TemplateFormatError(TemplateError):
    """A template document is malformed or yields no line items."""

    code: str = "TEMPLATE_FORMAT_ERROR"

    def __init__(self, template: str, reason: str):
        self.template = template
        self.reason = reason
        super().__init__(f"Invalid template '{template}': {reason}")


# Payroll exceptions


class PayrollError(BudgetLedgerError):
    """Base exception for payroll errors."""

    code: str = "PAYROLL_ERROR"


class PayrollItemNotFoundError(PayrollError):
    """No payroll line item exists with the given id."""

    code: str = "PAYROLL_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Payroll item not found: {item_id}")


class PayPeriodNotFoundError(PayrollError):
    """The payroll item has no pay period with the given id."""

    code: str = "PAY_PERIOD_NOT_FOUND"

    def __init__(self, item_id: str, period_id: str):
        self.item_id = item_id
        self.period_id = period_id
        super().__init__(f"Pay period {period_id} not found on payroll item {item_id}")


# Rate card exceptions


class RateCardError(BudgetLedgerError):
    """Base exception for rate card errors."""

    code: str = "RATE_CARD_ERROR"


class RateCardNotFoundError(RateCardError):
    """No rate card exists with the given id."""

    code: str = "RATE_CARD_NOT_FOUND"

    def __init__(self, rate_card_id: str):
        self.rate_card_id = rate_card_id
        super().__init__(f"Rate card not found: {rate_card_id}")


# Persistence exceptions


class PersistenceError(BudgetLedgerError):
    """
    The relational store rejected a read or write.

    Raised by low-level helpers; managers convert it into a failed
    ``LedgerResult`` after rolling back.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


# Migration exceptions


class MigrationError(BudgetLedgerError):
    """Base exception for legacy data migration errors."""

    code: str = "MIGRATION_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Legacy migration failed: {reason}")


class LegacyDataDecodeError(MigrationError):
    """The legacy flat-store blob could not be decoded."""

    code: str = "LEGACY_DATA_DECODE_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"cannot decode legacy data under '{key}': {reason}")


# Audit exceptions


class AuditError(BudgetLedgerError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditWriteError(AuditError):
    """An audit entry could not be appended."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Failed to record audit entry for {entity_type} {entity_id}: {reason}"
        )


# Immutability exceptions


class ImmutabilityError(BudgetLedgerError):
    """Base exception for append-only violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(BudgetLedgerError):
    """A configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for '{field}': {reason}")
