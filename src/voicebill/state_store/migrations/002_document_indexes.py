"""
Migration 002: document lookup indexes.

Client document listings sort by recency and the number allocator scans
recent numbers, so both get an index.
"""

import sqlite3

VERSION = 2
NAME = "document_indexes"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add indexes for client listings and number lookups."""
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_client_recent
        ON documents(owner_id, client_id, created_at)
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_number
        ON documents(owner_id, number)
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_transform_jobs_source
        ON transform_jobs(source_document_id)
    """)


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the indexes."""
    conn.execute("DROP INDEX IF EXISTS idx_documents_client_recent")
    conn.execute("DROP INDEX IF EXISTS idx_documents_number")
    conn.execute("DROP INDEX IF EXISTS idx_transform_jobs_source")
