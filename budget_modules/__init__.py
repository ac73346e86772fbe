"""
Budgeting modules built on ``budget_kernel``.

- ``ledger``      versions, line items, transactions, calculation, migration
- ``payroll``     payroll line items and pay periods
- ``rate_cards``  shared unit rates and their propagation to line items
"""
