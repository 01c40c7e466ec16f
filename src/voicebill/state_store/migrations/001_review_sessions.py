"""
Migration 001: review sessions.

Stores the in-progress state of a document review (clone, merge, or a
fresh document) so the client can autosave and resume. A session row is
deleted once its review completes.
"""

import sqlite3

VERSION = 1
NAME = "review_sessions"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the review_sessions table."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS review_sessions (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,

            -- in_progress, completed
            status TEXT NOT NULL DEFAULT 'in_progress',

            -- Serialized review state (JSON)
            data_json TEXT,

            created_document_id TEXT,
            created_document_type TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_review_sessions_owner ON review_sessions(owner_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the review_sessions table."""
    conn.execute("DROP INDEX IF EXISTS idx_review_sessions_owner")
    conn.execute("DROP TABLE IF EXISTS review_sessions")
