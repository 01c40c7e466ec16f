"""
Versioned schema changes for the voicebill state store.

Migration modules live next to this file and are named {version}_{name}.py,
e.g. 001_review_sessions.py. Each one defines:

- VERSION: int
- NAME: str
- upgrade(conn) -> None
- downgrade(conn) -> None  (optional)
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ...schemas.documents import utc_now_iso

logger = logging.getLogger(__name__)

PACKAGE = "voicebill.state_store.migrations"


@dataclass
class Migration:
    """One loaded migration module."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None] | None


def get_all_migrations() -> list[Migration]:
    """Load every migration module, ordered by version.

    A module missing VERSION, NAME or upgrade is an error: applying a
    partial schema silently would leave the store unusable.
    """
    migrations = []
    for py_file in sorted(Path(__file__).parent.glob("[0-9][0-9][0-9]_*.py")):
        module = importlib.import_module(f"{PACKAGE}.{py_file.stem}")
        migrations.append(
            Migration(
                version=module.VERSION,
                name=module.NAME,
                upgrade=module.upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        )
    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """
    Applies pending migrations in version order.

    Applied versions are recorded in the `migrations` table.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    def get_applied_versions(self) -> set[int]:
        """Versions already recorded as applied."""
        rows = self.conn.execute("SELECT version FROM migrations").fetchall()
        return {row[0] for row in rows}

    def get_current_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        result = self.conn.execute("SELECT MAX(version) FROM migrations").fetchone()[0]
        return result if result is not None else 0

    def apply(self, migration: Migration) -> None:
        """Run one upgrade and record it, rolling back on failure."""
        logger.info("Applying migration %03d: %s", migration.version, migration.name)
        try:
            migration.upgrade(self.conn)
            self.conn.execute(
                "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, utc_now_iso()),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            logger.error("Migration %03d (%s) failed", migration.version, migration.name)
            raise

    def revert(self, migration: Migration) -> None:
        """Run one downgrade and forget it."""
        if migration.downgrade is None:
            raise NotImplementedError(
                f"Migration {migration.version} ({migration.name}) cannot be reverted"
            )
        logger.info("Reverting migration %03d: %s", migration.version, migration.name)
        try:
            migration.downgrade(self.conn)
            self.conn.execute("DELETE FROM migrations WHERE version = ?", (migration.version,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            logger.error("Revert of migration %03d failed", migration.version)
            raise

    def run_pending(self) -> list[int]:
        """
        Apply every migration not yet recorded.

        Returns:
            Versions applied by this call
        """
        applied = self.get_applied_versions()
        done = []
        for migration in get_all_migrations():
            if migration.version in applied:
                continue
            self.apply(migration)
            done.append(migration.version)

        if done:
            logger.info("Applied %d migration(s): %s", len(done), done)
        else:
            logger.debug("Schema is up to date")
        return done

    def migrate_to(self, target_version: int) -> None:
        """Upgrade or downgrade until target_version is the current version."""
        current = self.get_current_version()
        by_version = {m.version: m for m in get_all_migrations()}

        if target_version > current:
            for version in range(current + 1, target_version + 1):
                if version in by_version:
                    self.apply(by_version[version])
        elif target_version < current:
            for version in range(current, target_version, -1):
                if version in by_version:
                    self.revert(by_version[version])
