"""Import every ORM model so ``Base.metadata`` knows all tables."""


def import_all_orm_models() -> None:
    import budget_kernel.models.audit_entry  # noqa: F401
    import budget_kernel.models.key_value  # noqa: F401
    import budget_modules.ledger.orm  # noqa: F401
    import budget_modules.rate_cards.orm  # noqa: F401
