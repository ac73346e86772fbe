"""Kernel services shared by every budgeting module."""

from budget_kernel.services.audit_trail import AuditEntry, AuditTrail
from budget_kernel.services.key_value_store import KeyValueStore

__all__ = ["AuditEntry", "AuditTrail", "KeyValueStore"]
