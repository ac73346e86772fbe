"""Kernel ORM models: the append-only audit log and the key-value side store."""

from budget_kernel.models.audit_entry import AuditAction, AuditEntryModel
from budget_kernel.models.key_value import KeyValueEntryModel

__all__ = ["AuditAction", "AuditEntryModel", "KeyValueEntryModel"]
