"""
Template Manager (``budget_modules.ledger.templates``).

Responsibility
--------------
Starting points for a budget: the bundled standard feature-film template, the
built-in short-film template, and user-saved custom templates.  Applying a
template replaces the target version's line items, resets the custom
categories to match, and records one ``template_loaded`` audit entry.

Architecture position
---------------------
**Modules layer** -- service.  Line items go through
``VersionManager.update_line_items`` (lock gate, write and audit in one
transaction); categories through ``CategoryManager``.  Custom templates are
one JSON document under ``LedgerConfig.custom_templates_key``.

Invariants enforced
-------------------
* Template documents are parsed into zero-cost line items: section rows set
  the current section and account code, subtotal rows are skipped.
* Loading a custom template never reuses saved ids; contact links and the
  parent/child hierarchy are dropped.
* ``custom_templates`` is ordered most recently modified first.
* Categories are reset only after the line items were applied.

Failure modes
-------------
* Missing template file or unknown custom template id ->
  ``TemplateNotFoundError``.
* Unparseable document, or one yielding no line items ->
  ``TemplateFormatError``.
* Locked version -> ``REJECTED`` ``LedgerResult``; nothing changes.
* Store failures raise ``PersistenceError`` (custom template CRUD) or return
  ``PERSISTENCE_FAILED`` (applying a template).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import yaml
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import PersistenceError, TemplateFormatError, TemplateNotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.audit_entry import AuditAction
from budget_kernel.services.audit_trail import AuditTrail
from budget_kernel.services.key_value_store import KeyValueStore
from budget_modules.ledger.audit import append_record
from budget_modules.ledger.categories import CategoryManager
from budget_modules.ledger.codec import decode_custom_templates, encode_custom_templates
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.models import (
    ZERO,
    BudgetCategory,
    BudgetLineItem,
    BudgetTemplateType,
    CustomCategory,
    CustomTemplate,
)
from budget_modules.ledger.results import AuditRecord, LedgerResult
from budget_modules.ledger.service import VERSION_ENTITY, VersionManager

logger = get_logger("modules.ledger.templates")

TEMPLATE_DIR = Path(__file__).parent / "data"
STANDARD_TEMPLATE_PATH = TEMPLATE_DIR / "standard_template.yaml"
STANDARD_TEMPLATE_NAME = "Standard Feature Film"
SHORT_FILM_TEMPLATE_NAME = "Short Film"
TEMPLATE_ENTITY = "CustomTemplate"

_ONE = Decimal("1")

_SHEET_CATEGORIES = {
    "Above the Line": BudgetCategory.ABOVE_THE_LINE,
    "Production Expenses": BudgetCategory.BELOW_THE_LINE,
    "Post-Production Expenses": BudgetCategory.POST_PRODUCTION,
    "Post-Production": BudgetCategory.POST_PRODUCTION,
    "Other Expenses": BudgetCategory.OTHER,
}

# First match wins; more specific phrases come before the words they contain.
_ACCOUNT_RULES: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("10-00", lambda s: "development" in s),
    ("11-00", lambda s: "story" in s and "rights" in s),
    ("12-00", lambda s: "producer" in s),
    ("13-00", lambda s: "director" in s),
    ("14-00", lambda s: "cast" in s),
    ("15-00", lambda s: "travel" in s and "living" in s),
    ("20-00", lambda s: "production staff" in s),
    ("21-00", lambda s: "extra talent" in s),
    ("22-00", lambda s: "set design" in s),
    ("23-00", lambda s: "set construction" in s),
    ("24-00", lambda s: "pre-rig" in s or "strike" in s),
    ("25-00", lambda s: "set operations" in s),
    ("26-00", lambda s: "set dressing" in s),
    ("27-00", lambda s: "property" in s),
    ("28-00", lambda s: "wardrobe" in s),
    ("29-00", lambda s: "electric" in s),
    ("30-00", lambda s: "camera" in s),
    ("48-00", lambda s: "post production sound" in s or "post-production sound" in s),
    ("49-00", lambda s: "post production film" in s or "post-production film" in s),
    ("31-00", lambda s: "production sound" in s),
    ("32-00", lambda s: "makeup" in s or "hair" in s),
    ("33-00", lambda s: "transportation" in s),
    ("34-00", lambda s: "locations" in s),
    ("35-00", lambda s: "picture vehicles" in s or "animals" in s),
    ("36-00", lambda s: "special effects" in s),
    ("37-00", lambda s: "visual effects" in s and "post" in s),
    ("38-00", lambda s: "film" in s and "lab" in s),
    ("39-00", lambda s: "btl travel" in s or "below the line travel" in s),
    ("45-00", lambda s: "editing" in s),
    ("46-00", lambda s: "music" in s),
    ("47-00", lambda s: "visual effects" in s),
    ("55-00", lambda s: "publicity" in s),
    ("56-00", lambda s: "legal" in s or "accounting" in s),
    ("57-00", lambda s: "general expense" in s),
    ("58-00", lambda s: "insurance" in s),
)

_SHORT_FILM_ROWS: tuple[tuple[str, str, BudgetCategory, str, str], ...] = (
    ("Lead Cast", "10-01", BudgetCategory.ABOVE_THE_LINE, "Cast", "Add cast members to this category"),
    ("Supporting Cast", "10-02", BudgetCategory.ABOVE_THE_LINE, "Cast", "Add cast members to this category"),
    ("Day Players", "10-03", BudgetCategory.ABOVE_THE_LINE, "Cast", "Add cast members to this category"),
    ("Extras", "10-04", BudgetCategory.ABOVE_THE_LINE, "Cast", "Add cast members to this category"),
    ("Director", "20-01", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Writer", "20-02", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Producer", "20-03", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Cinematographer", "20-04", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Sound", "20-05", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Editor", "20-06", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Lighting", "20-07", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Makeup", "20-08", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Wardrobe", "20-09", BudgetCategory.BELOW_THE_LINE, "Crew", ""),
    ("Food", "30-01", BudgetCategory.OTHER, "Other", ""),
    ("Hard Drives", "30-02", BudgetCategory.OTHER, "Other", ""),
)


# =============================================================================
# Template documents
# =============================================================================


def account_for_section(section_name: str) -> str:
    """Account group code (``"14-00"``) for a section heading, or ``""``."""
    lowered = section_name.lower()
    for code, matches in _ACCOUNT_RULES:
        if matches(lowered):
            return code
    return ""


def _subcategory(row_id: str) -> str:
    head = row_id.split("-")[0]
    return f"Dept {head}" if head else "General"


def line_items_from_template(document: Any, name: str = "template") -> tuple[BudgetLineItem, ...]:
    """
    Convert a ``{sheets: [{name, rows: [...]}]}`` document into line items.

    Raises ``TemplateFormatError`` when the document is malformed or has no
    detail rows.
    """
    if not isinstance(document, Mapping) or not isinstance(document.get("sheets"), list):
        raise TemplateFormatError(name, "expected a mapping with a 'sheets' list")

    items: list[BudgetLineItem] = []
    try:
        for sheet in document["sheets"]:
            category = _SHEET_CATEGORIES.get(sheet["name"], BudgetCategory.OTHER)
            section: str | None = None
            for row in sheet.get("rows") or ():
                if row.get("isSection", False):
                    section = row["description"]
                    continue
                if row.get("isSubtotal", False):
                    continue
                items.append(BudgetLineItem(
                    name=row["description"],
                    account=account_for_section(section) if section else "",
                    category=category.value,
                    subcategory=_subcategory(str(row.get("id", ""))),
                    section=section,
                ))
    except (KeyError, TypeError, AttributeError) as exc:
        raise TemplateFormatError(name, f"malformed sheet or row: {exc!r}") from exc

    if not items:
        raise TemplateFormatError(name, "no line items")
    return tuple(items)


def read_template_file(path: str | Path) -> tuple[BudgetLineItem, ...]:
    """Parse a YAML (or JSON) template document from disk."""
    path = Path(path)
    if not path.is_file():
        raise TemplateNotFoundError(str(path))
    try:
        with open(path) as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise TemplateFormatError(path.name, str(exc)) from exc
    return line_items_from_template(document, path.name)


def short_film_line_items() -> tuple[BudgetLineItem, ...]:
    return tuple(
        BudgetLineItem(
            name=name,
            account=account,
            category=category.value,
            subcategory=group,
            section=group,
            quantity=_ONE,
            days=_ONE,
            unit_cost=ZERO,
            notes=notes,
        )
        for name, account, category, group, notes in _SHORT_FILM_ROWS
    )


def fresh_copies(template: CustomTemplate) -> tuple[tuple[BudgetLineItem, ...], tuple[CustomCategory, ...]]:
    """A custom template's items and categories with new ids and no links."""
    items = tuple(
        replace(
            item,
            id=uuid4(),
            linked_contact_id=None,
            parent_item_id=None,
            child_item_ids=(),
        )
        for item in template.line_items
    )
    categories = tuple(replace(c, id=uuid4()) for c in template.categories)
    return items, categories


# =============================================================================
# Manager
# =============================================================================


class TemplateManager:
    """
    Applies built-in and saved templates to budget versions.

    Contract:
        ``apply_*`` return ``LedgerResult``; custom-template CRUD returns the
        stored ``CustomTemplate`` or raises.
    """

    def __init__(
        self,
        owner: VersionManager,
        categories: CategoryManager,
        session_factory: sessionmaker[Session],
        key_value_store: KeyValueStore,
        audit_trail: AuditTrail,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        config = config or LedgerConfig.with_defaults()
        self._owner = owner
        self._categories = categories
        self._session_factory = session_factory
        self._store = key_value_store
        self._audit = audit_trail
        self._clock = clock or SystemClock()
        self._key = config.custom_templates_key
        self._standard_path = Path(config.standard_template_path or STANDARD_TEMPLATE_PATH)
        self._templates: list[CustomTemplate] = []
        self._current_type = BudgetTemplateType.STANDARD
        self._lock = threading.RLock()
        self.load_custom_templates()

    @property
    def current_template_type(self) -> BudgetTemplateType:
        return self._current_type

    # =========================================================================
    # Built-in templates
    # =========================================================================

    def load_standard_template(self) -> tuple[BudgetLineItem, ...]:
        items = read_template_file(self._standard_path)
        logger.info("template_read", extra={"template": STANDARD_TEMPLATE_NAME, "count": len(items)})
        return items

    def apply_standard_template(self, version_id: UUID | None = None) -> LedgerResult:
        """Replace the version's line items with the standard feature-film set."""
        return self._apply(
            STANDARD_TEMPLATE_NAME,
            self.load_standard_template(),
            version_id,
            BudgetTemplateType.FEATURE_FILM,
            lambda: self._categories.load_defaults(BudgetTemplateType.FEATURE_FILM),
        )

    def apply_short_film_template(self, version_id: UUID | None = None) -> LedgerResult:
        return self._apply(
            SHORT_FILM_TEMPLATE_NAME,
            short_film_line_items(),
            version_id,
            BudgetTemplateType.SHORT_FILM,
            lambda: self._categories.load_defaults(BudgetTemplateType.SHORT_FILM),
        )

    def apply_custom_template(self, template_id: UUID, version_id: UUID | None = None) -> LedgerResult:
        """Load a saved template; its categories replace the current ones when it has any."""
        template = self.custom_template(template_id)
        items, categories = fresh_copies(template)

        def reset_categories() -> None:
            if categories:
                self._categories.replace_categories(categories)

        return self._apply(template.name, items, version_id, BudgetTemplateType.STANDARD, reset_categories)

    def _apply(
        self,
        name: str,
        items: tuple[BudgetLineItem, ...],
        version_id: UUID | None,
        template_type: BudgetTemplateType,
        reset_categories: Callable[[], object],
    ) -> LedgerResult:
        version_id = version_id or self._owner.selected_version.id
        record = AuditRecord(
            AuditAction.TEMPLATE_LOADED, VERSION_ENTITY, version_id,
            f"Loaded template '{name}' ({len(items)} items)",
        )
        result = self._owner.update_line_items(
            items, version_id, audit_records=[record], operation="load_template",
        )
        if not result.is_success:
            logger.warning("template_not_applied", extra={"template": name, "status": result.status.value})
            return result
        reset_categories()
        self._current_type = template_type
        logger.info("template_applied", extra={"template": name, "count": len(items)})
        return result

    # =========================================================================
    # Custom templates
    # =========================================================================

    def load_custom_templates(self) -> None:
        with self._lock:
            stored = decode_custom_templates(self._store.get(self._key), self._key)
            self._templates = sorted(stored, key=lambda t: t.modified_at, reverse=True)
        logger.info("custom_templates_loaded", extra={"count": len(self._templates)})

    def _save(self, templates: list[CustomTemplate], operation: str, record: AuditRecord) -> None:
        try:
            with self._audit.writer(), session_scope(self._session_factory) as session:
                self._store.set(self._key, encode_custom_templates(templates), session=session)
                append_record(self._audit, record, session=session)
        except SQLAlchemyError as exc:
            logger.error(
                "persistence_failed",
                extra={"operation": operation, "template_id": str(record.entity_id), "error": str(exc)},
                exc_info=True,
            )
            raise PersistenceError(operation, str(exc)) from exc
        self._templates = sorted(templates, key=lambda t: t.modified_at, reverse=True)

    @property
    def custom_templates(self) -> tuple[CustomTemplate, ...]:
        return tuple(self._templates)

    def custom_template(self, template_id: UUID) -> CustomTemplate:
        for template in self._templates:
            if template.id == template_id:
                return template
        raise TemplateNotFoundError(str(template_id))

    def save_as_custom_template(
        self,
        name: str,
        description: str = "",
        categories: Iterable[CustomCategory] | None = None,
        line_items: Iterable[BudgetLineItem] | None = None,
    ) -> CustomTemplate:
        """
        Save a template; by default from the current categories and the
        selected version's line items.
        """
        if not name.strip():
            raise TemplateFormatError(name, "name cannot be empty")
        now = self._clock.now()
        template = CustomTemplate(
            name=name,
            description=description,
            created_at=now,
            modified_at=now,
            categories=tuple(self._categories.categories if categories is None else categories),
            line_items=tuple(self._owner.selected_version.line_items if line_items is None else line_items),
        )
        with self._lock:
            self._save(
                [template, *self._templates],
                "save_custom_template",
                AuditRecord(AuditAction.CREATED, TEMPLATE_ENTITY, template.id, f"Created template '{name}'"),
            )
        logger.info("custom_template_saved", extra={"template_id": str(template.id), "count": template.item_count})
        return template

    def update_custom_template(
        self,
        template_id: UUID,
        *,
        name: str | None = None,
        description: str | None = None,
        categories: Iterable[CustomCategory] | None = None,
        line_items: Iterable[BudgetLineItem] | None = None,
    ) -> CustomTemplate:
        """Change only the fields given and bump ``modified_at``."""
        with self._lock:
            current = self.custom_template(template_id)
            if name is not None and not name.strip():
                raise TemplateFormatError(name, "name cannot be empty")
            updated = replace(
                current,
                name=current.name if name is None else name,
                description=current.description if description is None else description,
                categories=current.categories if categories is None else tuple(categories),
                line_items=current.line_items if line_items is None else tuple(line_items),
                modified_at=self._clock.now(),
            )
            self._save(
                [updated if t.id == template_id else t for t in self._templates],
                "update_custom_template",
                AuditRecord(AuditAction.UPDATED, TEMPLATE_ENTITY, template_id, f"Updated template '{updated.name}'"),
            )
        logger.info("custom_template_updated", extra={"template_id": str(template_id)})
        return updated

    def delete_custom_template(self, template_id: UUID) -> None:
        with self._lock:
            deleted = self.custom_template(template_id)
            self._save(
                [t for t in self._templates if t.id != template_id],
                "delete_custom_template",
                AuditRecord(AuditAction.DELETED, TEMPLATE_ENTITY, template_id, f"Deleted template '{deleted.name}'"),
            )
        logger.info("custom_template_deleted", extra={"template_id": str(template_id)})
