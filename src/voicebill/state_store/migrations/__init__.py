"""
Database migrations for the state store.

Applied in version order and tracked in the migrations table.
"""

from .runner import Migration, MigrationRunner, get_all_migrations

__all__ = ["Migration", "MigrationRunner", "get_all_migrations"]
