"""
Budget Ledger ORM Models (``budget_modules.ledger.orm``).

Responsibility
--------------
SQLAlchemy persistence for budget versions.  Each version is one row; its
line items, transactions and payroll items are stored as three independent
JSON text columns produced by ``budget_modules.ledger.codec``.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``budget_kernel.db.base`` and
sibling modules.  MUST NOT be imported by ``budget_kernel``.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TrackedBase
from budget_modules.ledger import codec


class BudgetVersionModel(TrackedBase):
    """
    ORM model for a budget version.

    Maps to the ``BudgetVersion`` frozen dataclass.

    Guarantees:
        - id is the version's identity and is preserved across migration.
        - The three ``*_json`` columns are always valid JSON arrays.
    """

    __tablename__ = "budget_versions"

    __table_args__ = (
        Index("idx_budget_versions_created_date", "created_date"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_date: Mapped[datetime] = mapped_column(nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    notes: Mapped[str] = mapped_column(Text, default="")
    line_items_json: Mapped[str] = mapped_column(Text, default="[]")
    transactions_json: Mapped[str] = mapped_column(Text, default="[]")
    payroll_items_json: Mapped[str] = mapped_column(Text, default="[]")

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from budget_modules.ledger.models import BudgetVersion

        return BudgetVersion(
            id=self.id,
            name=self.name,
            created_date=self.created_date,
            line_items=codec.decode_line_items(self.line_items_json),
            transactions=codec.decode_transactions(self.transactions_json),
            payroll_items=codec.decode_payroll_items(self.payroll_items_json),
            is_locked=self.is_locked,
            locked_at=self.locked_at,
            locked_by=self.locked_by,
            currency=self.currency,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str = "system") -> BudgetVersionModel:
        """Create ORM model from frozen dataclass."""
        model = cls(id=dto.id, created_by=created_by)
        model.apply(dto)
        return model

    def apply(self, dto, updated_by: str | None = None) -> None:
        """Overwrite every column from ``dto``; the id is left alone."""
        self.name = dto.name
        self.created_date = dto.created_date
        self.is_locked = dto.is_locked
        self.locked_at = dto.locked_at
        self.locked_by = dto.locked_by
        self.currency = dto.currency
        self.notes = dto.notes
        self.line_items_json = codec.encode_line_items(dto.line_items)
        self.transactions_json = codec.encode_transactions(dto.transactions)
        self.payroll_items_json = codec.encode_payroll_items(dto.payroll_items)
        if updated_by is not None:
            self.updated_by = updated_by

    def __repr__(self) -> str:
        return f"<BudgetVersionModel {self.name}{' (locked)' if self.is_locked else ''}>"
