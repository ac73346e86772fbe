"""
Budget Ledger Module (``budget_modules.ledger``).

Responsibility
--------------
Named, lockable budget versions holding line items, transactions and payroll
records; the validation gates and pure calculations over them; the JSON
codec and relational persistence; and the one-shot migration from the
legacy flat store.

Architecture position
---------------------
**Modules layer** -- ``VersionManager`` (``service.py``) is the facade every
caller goes through; it owns ``TransactionManager`` for single-transaction
edits.  ``CategoryManager`` and ``TemplateManager`` keep custom categories
and saved templates in the key-value store.  ``bootstrap.py`` wires them
together with the kernel audit trail.

Invariants enforced
-------------------
* A locked version accepts only unlock, delete and duplicate.
* At least one version exists once the manager has started.
* Migration is idempotent and runs before the first load.

Failure modes
-------------
* Business-rule violations come back as ``LedgerResult`` data.
* Store failures are rolled back and reported as ``PERSISTENCE_FAILED``.

Audit relevance
---------------
Every applied mutation appends to the kernel ``AuditTrail`` in the same
transaction as the version write.
"""

from budget_modules.ledger.models import (
    BudgetCategory,
    BudgetLineItem,
    BudgetTransaction,
    BudgetTemplateType,
    BudgetVersion,
    ContactType,
    CustomCategory,
    CustomTemplate,
    Projection,
    Summary,
    TransactionCategory,
    TransactionType,
    Variance,
    VarianceStatus,
)
from budget_modules.ledger.config import LedgerConfig

__all__ = [
    "BudgetCategory",
    "BudgetLineItem",
    "BudgetTransaction",
    "BudgetTemplateType",
    "BudgetVersion",
    "ContactType",
    "CustomCategory",
    "CustomTemplate",
    "Projection",
    "Summary",
    "TransactionCategory",
    "TransactionType",
    "Variance",
    "VarianceStatus",
    "LedgerConfig",
]
