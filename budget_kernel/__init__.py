"""
Budget Kernel - shared infrastructure for the versioned budget ledger.

This package provides the pieces every budgeting module builds on:
- Structured JSON logging (``logging_config``)
- Typed exception hierarchy (``exceptions``)
- SQLAlchemy declarative base, engine and session management (``db``)
- Injectable clocks and the ISO-4217 currency registry (``domain``)
- The append-only audit trail and key-value side store (``services``)

Modules under ``budget_modules`` own the budgeting semantics (versions,
payroll, rate cards); the kernel owns nothing domain-specific beyond the
audit log.
"""

__version__ = "0.1.0"
