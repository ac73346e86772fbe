"""
Module: budget_kernel.models.key_value
Responsibility: ORM persistence for small keyed blobs.

Two consumers share this table:
    - the legacy flat store read by MigrationManager (key ``budgetVersions``)
      and the timestamped backups it writes next to it;
    - per-version UI side-channel state such as expanded sections.

Values are opaque text; callers own their encoding.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TrackedBase


class KeyValueEntryModel(TrackedBase):
    """A single keyed text blob."""

    __tablename__ = "budget_key_values"

    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<KeyValueEntryModel {self.key} ({len(self.value or '')} chars)>"
