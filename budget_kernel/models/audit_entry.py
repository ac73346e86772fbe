"""
Module: budget_kernel.models.audit_entry
Responsibility: ORM persistence for the append-only budget audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.
Invariants enforced:
    - Audit rows are append-only; UPDATE and DELETE are blocked by the
      listeners in db/immutability.py.
    - seq is strictly increasing in insertion order; AuditTrail allocates it
      while holding its writer lock.
Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
Audit relevance:
    AuditEntryModel IS the audit trail.  Every version, payroll and rate-card
    mutation produces exactly one row.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, UTCDateTime, UUIDString


class AuditAction(str, Enum):
    """Kinds of change recorded in the audit trail."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    EXPORTED = "exported"
    IMPORTED = "imported"
    DUPLICATED = "duplicated"
    TEMPLATE_LOADED = "template_loaded"
    VERSION_SELECTED = "version_selected"


class AuditEntryModel(Base):
    """
    One immutable audit trail row.

    Maps to the ``AuditEntry`` DTO in ``budget_kernel.services.audit_trail``.
    """

    __tablename__ = "budget_audit_entries"

    __table_args__ = (
        Index("idx_budget_audit_entity", "entity_type", "entity_id"),
        Index("idx_budget_audit_action", "action"),
        Index("idx_budget_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    # Free-form tag, e.g. "BudgetVersion", "PayrollPayPeriod", "RateCard"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    detail: Mapped[str] = mapped_column(Text, nullable=False, default="")
    previous_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor: Mapped[str] = mapped_column(String(255), nullable=False, default="system")
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def to_dto(self):
        from budget_kernel.services.audit_trail import AuditEntry

        return AuditEntry(
            id=self.id,
            seq=self.seq,
            action=AuditAction(self.action),
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            detail=self.detail,
            previous_value=self.previous_value,
            new_value=self.new_value,
            actor=self.actor,
            occurred_at=self.occurred_at,
        )

    def __repr__(self) -> str:
        return f"<AuditEntryModel #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"
