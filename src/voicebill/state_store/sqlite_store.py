"""
SQLite-based state store implementation.

Tables:
- clients: Per-owner client directory
- documents: Invoices, estimates and contracts (line items as JSON)
- transform_jobs: Audit trail of document derivations (never deleted)
- review_sessions: In-progress review state (added by migration 001)

Every query is scoped by owner_id. Document numbers carry no uniqueness
constraint; see DocumentNumberAllocator for the known allocation race.
"""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from ..errors import PersistenceError
from ..schemas.documents import (
    Client,
    Document,
    DocumentType,
    LineItem,
    SourceSnapshot,
    TransformJob,
    TransformJobConfig,
    TransformJobStatus,
    new_id,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

CLIENT_FIELDS = ("name", "email", "phone", "address")


def client_from_row(row: sqlite3.Row) -> Client:
    """Create a Client from a database row."""
    return Client(
        id=row["id"],
        owner_id=row["owner_id"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        address=row["address"],
        created_at=row["created_at"],
    )


def document_from_row(row: sqlite3.Row) -> Document:
    """Create a Document from a database row."""
    items = [
        LineItem.from_dict(item, index)
        for index, item in enumerate(json.loads(row["line_items"]) if row["line_items"] else [])
    ]
    return Document(
        id=row["id"],
        owner_id=row["owner_id"],
        type=DocumentType(row["document_type"]),
        number=row["number"],
        client_id=row["client_id"],
        items=items,
        subtotal=Decimal(row["subtotal"]),
        tax_rate=Decimal(row["tax_rate"]),
        tax_amount=Decimal(row["tax_amount"]),
        total=Decimal(row["total"]),
        status=row["status"],
        title=row["title"],
        notes=row["notes"],
        due_date=row["due_date"],
        transform_job_id=row["transform_job_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def job_from_row(row: sqlite3.Row) -> TransformJob:
    """Create a TransformJob from a database row."""
    return TransformJob(
        id=row["id"],
        owner_id=row["owner_id"],
        source=SourceSnapshot(
            document_id=row["source_document_id"],
            document_type=DocumentType(row["source_document_type"]),
            total=Decimal(row["source_total"]),
            client_id=row["source_client_id"],
        ),
        config=TransformJobConfig.from_dict(json.loads(row["config_json"])),
        status=TransformJobStatus(row["status"]),
        generated_document_id=row["generated_document_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
    )


class StateStore:
    """
    SQLite-based state store.

    Implements ClientAccessor, DocumentAccessor, JobAccessor and
    ReviewSessionAccessor. Opens one connection per transaction, so a single
    instance can be shared by the merge fan-out threads.

    Every sqlite3 error surfaces as PersistenceError.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS clients (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    email TEXT,
                    phone TEXT,
                    address TEXT,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    document_type TEXT NOT NULL,
                    number TEXT NOT NULL,
                    client_id TEXT,
                    line_items TEXT,  -- JSON array
                    subtotal TEXT NOT NULL,
                    tax_rate TEXT NOT NULL,
                    tax_amount TEXT NOT NULL,
                    total TEXT NOT NULL,
                    status TEXT NOT NULL,
                    title TEXT,
                    notes TEXT,
                    due_date TEXT,
                    transform_job_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (client_id) REFERENCES clients(id)
                )
            """
            )

            # Source fields are a snapshot taken at creation and never updated
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transform_jobs (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    source_document_id TEXT NOT NULL,
                    source_document_type TEXT NOT NULL,
                    source_total TEXT NOT NULL,
                    source_client_id TEXT,
                    config_json TEXT NOT NULL,
                    status TEXT NOT NULL,
                    generated_document_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                )
            """
            )

            conn.execute("CREATE INDEX IF NOT EXISTS idx_clients_owner ON clients(owner_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transform_jobs_owner ON transform_jobs(owner_id)"
            )

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        except sqlite3.Error as e:
            raise PersistenceError(f"Migration failed: {e}") from e
        finally:
            conn.close()

    def migrate_to(self, target_version: Optional[int] = None) -> int:
        """
        Upgrade or downgrade the schema.

        Args:
            target_version: Version to move to; None means only report

        Returns:
            Schema version after the call
        """
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            if target_version is not None:
                runner.migrate_to(target_version)
            return runner.get_current_version()
        except sqlite3.Error as e:
            raise PersistenceError(f"Migration failed: {e}") from e
        finally:
            conn.close()

    # Client methods

    def list_clients(self, owner_id: str) -> list[Client]:
        """All clients of an owner, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM clients WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC",
                (owner_id,),
            ).fetchall()
            return [client_from_row(row) for row in rows]

    def find_clients_by_name(self, owner_id: str, fragment: str) -> list[Client]:
        """Clients whose name contains fragment, case-insensitively.

        Filtered in Python: SQLite's LOWER() only folds ASCII.
        """
        needle = fragment.strip().casefold()
        if not needle:
            return []
        return [c for c in self.list_clients(owner_id) if needle in c.name.casefold()]

    def get_client(self, owner_id: str, client_id: str) -> Optional[Client]:
        """Get one client of an owner."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM clients WHERE id = ? AND owner_id = ?", (client_id, owner_id)
            ).fetchone()
            return client_from_row(row) if row else None

    def create_client(self, client: Client) -> Client:
        """Insert a new client."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO clients (id, owner_id, name, email, phone, address, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    client.id,
                    client.owner_id,
                    client.name,
                    client.email,
                    client.phone,
                    client.address,
                    client.created_at,
                ),
            )
        return client

    def update_client(self, owner_id: str, client_id: str, **fields: Any) -> bool:
        """Update contact fields of a client.

        Returns:
            True if updated, False if the client was not found for this owner.
        """
        unknown = set(fields) - set(CLIENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown client fields: {sorted(unknown)}")
        if not fields:
            return False

        updates = [f"{name} = ?" for name in fields]
        params: list[Any] = list(fields.values())
        params.extend([client_id, owner_id])

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE clients SET {', '.join(updates)} WHERE id = ? AND owner_id = ?",
                params,
            )
            return cursor.rowcount > 0

    def document_counts(self, owner_id: str) -> dict[str, dict[str, int]]:
        """Document counts per client and type."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT client_id, document_type, COUNT(*) AS n
                FROM documents
                WHERE owner_id = ? AND client_id IS NOT NULL
                GROUP BY client_id, document_type
            """,
                (owner_id,),
            ).fetchall()

        counts: dict[str, dict[str, int]] = {}
        for row in rows:
            counts.setdefault(row["client_id"], {})[row["document_type"]] = row["n"]
        return counts

    # Document methods

    def get_document(self, owner_id: str, document_id: str) -> Optional[Document]:
        """Get one document of an owner."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ? AND owner_id = ?", (document_id, owner_id)
            ).fetchone()
            return document_from_row(row) if row else None

    def find_document_by_number(self, owner_id: str, number: str) -> Optional[Document]:
        """Most recent document carrying this number."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM documents
                WHERE owner_id = ? AND UPPER(number) = UPPER(?)
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
            """,
                (owner_id, number.strip()),
            ).fetchone()
            return document_from_row(row) if row else None

    def list_client_documents(
        self,
        owner_id: str,
        client_id: str,
        document_type: Optional[DocumentType] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """A client's documents, most recent first."""
        query = "SELECT * FROM documents WHERE owner_id = ? AND client_id = ?"
        params: list[Any] = [owner_id, client_id]
        if document_type is not None:
            query += " AND document_type = ?"
            params.append(DocumentType(document_type).value)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [document_from_row(row) for row in rows]

    def recent_document_numbers(self, owner_id: str, number_prefix: str, limit: int) -> list[str]:
        """Numbers starting with number_prefix, most recently created first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT number FROM documents
                WHERE owner_id = ? AND substr(number, 1, ?) = ?
                ORDER BY created_at DESC, number DESC
                LIMIT ?
            """,
                (owner_id, len(number_prefix), number_prefix, limit),
            ).fetchall()
            return [row["number"] for row in rows]

    def create_document(self, document: Document) -> Document:
        """Insert a new document."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents
                (id, owner_id, document_type, number, client_id, line_items, subtotal,
                 tax_rate, tax_amount, total, status, title, notes, due_date,
                 transform_job_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    document.id,
                    document.owner_id,
                    document.type.value,
                    document.number,
                    document.client_id,
                    json.dumps([item.to_dict() for item in document.items]),
                    str(document.subtotal),
                    str(document.tax_rate),
                    str(document.tax_amount),
                    str(document.total),
                    document.status,
                    document.title,
                    document.notes,
                    document.due_date,
                    document.transform_job_id,
                    document.created_at,
                    document.updated_at,
                ),
            )
        return document

    # Transform job methods

    def create_job(self, job: TransformJob) -> TransformJob:
        """Insert a new transform job."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO transform_jobs
                (id, owner_id, source_document_id, source_document_type, source_total,
                 source_client_id, config_json, status, generated_document_id,
                 created_at, updated_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    job.id,
                    job.owner_id,
                    job.source.document_id,
                    job.source.document_type.value,
                    str(job.source.total),
                    job.source.client_id,
                    json.dumps(job.config.to_dict()),
                    job.status.value,
                    job.generated_document_id,
                    job.created_at,
                    job.updated_at,
                    job.completed_at,
                ),
            )
        return job

    def get_job(self, owner_id: str, job_id: str) -> Optional[TransformJob]:
        """Get one transform job of an owner."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transform_jobs WHERE id = ? AND owner_id = ?", (job_id, owner_id)
            ).fetchone()
            return job_from_row(row) if row else None

    def list_jobs(self, owner_id: str, limit: int = 20) -> list[TransformJob]:
        """Most recent transform jobs first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transform_jobs WHERE owner_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
            """,
                (owner_id, limit),
            ).fetchall()
            return [job_from_row(row) for row in rows]

    def update_job_status(
        self,
        owner_id: str,
        job_id: str,
        status: TransformJobStatus,
        generated_document_id: Optional[str] = None,
    ) -> bool:
        """Move a job forward in its lifecycle.

        The allowed predecessor statuses are part of the WHERE clause, so a
        terminal job is never written and a status never reverts.

        Returns:
            True if updated, False if the job is missing or the transition is not allowed.
        """
        status = TransformJobStatus(status)
        predecessors = [s.value for s in TransformJobStatus if s.can_transition_to(status)]
        if not predecessors:
            return False

        now = utc_now_iso()
        completed_at = now if status is TransformJobStatus.COMPLETED else None
        placeholders = ", ".join("?" for _ in predecessors)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE transform_jobs
                SET status = ?,
                    updated_at = ?,
                    completed_at = COALESCE(?, completed_at),
                    generated_document_id = COALESCE(?, generated_document_id)
                WHERE id = ? AND owner_id = ? AND status IN ({placeholders})
            """,
                [status.value, now, completed_at, generated_document_id, job_id, owner_id]
                + predecessors,
            )
            updated = cursor.rowcount > 0

        if not updated:
            logger.warning("Rejected transform job %s transition to %s", job_id, status.value)
        return updated

    # Review session methods

    def create_review_session(self, owner_id: str, data: dict[str, Any]) -> str:
        """Create a review session and return its id."""
        session_id = new_id()
        now = utc_now_iso()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO review_sessions
                (id, owner_id, status, data_json, created_at, updated_at)
                VALUES (?, ?, 'in_progress', ?, ?, ?)
            """,
                (session_id, owner_id, json.dumps(data, default=str), now, now),
            )
        return session_id

    def get_review_session(self, owner_id: str, session_id: str) -> Optional[dict[str, Any]]:
        """Get a review session as a dict."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM review_sessions WHERE id = ? AND owner_id = ?",
                (session_id, owner_id),
            ).fetchone()
            if not row:
                return None
            result = dict(row)
            result["data"] = json.loads(result.pop("data_json") or "{}")
            return result

    def update_review_session(
        self,
        owner_id: str,
        session_id: str,
        data: Optional[dict[str, Any]] = None,
        status: Optional[str] = None,
        created_document_id: Optional[str] = None,
        created_document_type: Optional[str] = None,
    ) -> bool:
        """Patch a review session.

        Returns:
            True if updated, False if the session no longer exists.
        """
        updates = ["updated_at = ?"]
        params: list[Any] = [utc_now_iso()]

        if data is not None:
            updates.append("data_json = ?")
            params.append(json.dumps(data, default=str))
        if status is not None:
            updates.append("status = ?")
            params.append(status)
        if created_document_id is not None:
            updates.append("created_document_id = ?")
            params.append(created_document_id)
        if created_document_type is not None:
            updates.append("created_document_type = ?")
            params.append(created_document_type)

        params.extend([session_id, owner_id])

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE review_sessions SET {', '.join(updates)} WHERE id = ? AND owner_id = ?",
                params,
            )
            return cursor.rowcount > 0

    def delete_review_session(self, owner_id: str, session_id: str) -> bool:
        """Delete a review session."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM review_sessions WHERE id = ? AND owner_id = ?",
                (session_id, owner_id),
            )
            return cursor.rowcount > 0

    # Stats

    def get_stats(self, owner_id: str) -> dict[str, Any]:
        """Counts of clients, documents and jobs for one owner."""
        with self._transaction() as conn:
            clients = conn.execute(
                "SELECT COUNT(*) FROM clients WHERE owner_id = ?", (owner_id,)
            ).fetchone()[0]
            documents = {
                row["document_type"]: row["n"]
                for row in conn.execute(
                    """
                    SELECT document_type, COUNT(*) AS n FROM documents
                    WHERE owner_id = ? GROUP BY document_type
                """,
                    (owner_id,),
                ).fetchall()
            }
            jobs = {
                row["status"]: row["n"]
                for row in conn.execute(
                    """
                    SELECT status, COUNT(*) AS n FROM transform_jobs
                    WHERE owner_id = ? GROUP BY status
                """,
                    (owner_id,),
                ).fetchall()
            }

        return {
            "clients": clients,
            "documents": documents,
            "jobs": jobs,
        }
