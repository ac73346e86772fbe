"""
ORM-Level Append-Only Enforcement for the Budget Audit Trail.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted.
The listeners registered here intercept those events for audit rows:

    session.flush()
         |
         v
    [before_update event] --> _check_audit_entry_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_audit_entry_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

When a check fails the flush is aborted and the database is never touched.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity             | When Immutable           | Why
-------------------|--------------------------|-------------------------------
AuditEntryModel    | ALWAYS (from creation)   | The audit trail is append-only

Budget versions are NOT protected here: locking is a business rule enforced
by ValidationLayer.can_modify, and a locked version may still be deleted.
"""

from sqlalchemy import event

from budget_kernel.exceptions import ImmutabilityViolationError
from budget_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_audit_entry_immutability(mapper, connection, target):
    """Prevent any updates to audit rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEntry",
        entity_id=str(target.id),
        reason="Audit entries are immutable and cannot be modified",
    )


def _check_audit_entry_delete(mapper, connection, target):
    """Prevent deletion of audit rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEntry",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEntry",
        entity_id=str(target.id),
        reason="Audit entries are append-only and cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Call once during application initialization, after models are imported.
    Calling it again is a no-op.
    """
    from budget_kernel.models.audit_entry import AuditEntryModel

    if not event.contains(AuditEntryModel, "before_update", _check_audit_entry_immutability):
        event.listen(AuditEntryModel, "before_update", _check_audit_entry_immutability)
    if not event.contains(AuditEntryModel, "before_delete", _check_audit_entry_delete):
        event.listen(AuditEntryModel, "before_delete", _check_audit_entry_delete)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that deliberately tamper with rows to
    verify detection.
    """
    from budget_kernel.models.audit_entry import AuditEntryModel

    for name, fn in (
        ("before_update", _check_audit_entry_immutability),
        ("before_delete", _check_audit_entry_delete),
    ):
        if event.contains(AuditEntryModel, name, fn):
            event.remove(AuditEntryModel, name, fn)
