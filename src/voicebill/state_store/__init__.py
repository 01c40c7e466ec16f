"""
State Store (SQLite-based).

Persistent storage for one or more owners:
- Client directory
- Invoices, estimates and contracts
- Transform job audit trail
- Review sessions

Every read and write is scoped by owner_id.
"""

from .sqlite_store import StateStore, client_from_row, document_from_row, job_from_row

__all__ = [
    "StateStore",
    "client_from_row",
    "document_from_row",
    "job_from_row",
]
