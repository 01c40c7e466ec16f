"""
Storage accessor interfaces.

Services receive these explicitly instead of reaching for a module-level
client, so tests can pass doubles. Every method is scoped by owner_id and
implementations must never read across owners.

StateStore implements all four protocols.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from voicebill.schemas.documents import (
        Client,
        Document,
        DocumentType,
        TransformJob,
        TransformJobStatus,
    )


class ClientAccessor(Protocol):
    """Client directory reads and writes."""

    def list_clients(self, owner_id: str) -> list[Client]:
        """All clients of an owner, newest first."""
        ...

    def find_clients_by_name(self, owner_id: str, fragment: str) -> list[Client]:
        """Clients whose name contains fragment (case-insensitive), newest first."""
        ...

    def get_client(self, owner_id: str, client_id: str) -> Optional[Client]:
        """One client, or None if missing or owned by someone else."""
        ...

    def create_client(self, client: Client) -> Client:
        """Persist a new client."""
        ...

    def update_client(self, owner_id: str, client_id: str, **fields: Any) -> bool:
        """Update name/email/phone/address. Returns False if not found."""
        ...

    def document_counts(self, owner_id: str) -> dict[str, dict[str, int]]:
        """Per-client document counts keyed by client id, then document type."""
        ...


class DocumentAccessor(Protocol):
    """Billing document reads and writes."""

    def get_document(self, owner_id: str, document_id: str) -> Optional[Document]:
        """One document, or None if missing or owned by someone else."""
        ...

    def find_document_by_number(self, owner_id: str, number: str) -> Optional[Document]:
        """Document with exactly this number."""
        ...

    def list_client_documents(
        self,
        owner_id: str,
        client_id: str,
        document_type: Optional[DocumentType] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """A client's documents, most recent first."""
        ...

    def recent_document_numbers(self, owner_id: str, number_prefix: str, limit: int) -> list[str]:
        """Numbers starting with number_prefix, most recently created first."""
        ...

    def create_document(self, document: Document) -> Document:
        """Persist a new document."""
        ...


class JobAccessor(Protocol):
    """Transform job audit trail."""

    def create_job(self, job: TransformJob) -> TransformJob:
        """Persist a new job."""
        ...

    def get_job(self, owner_id: str, job_id: str) -> Optional[TransformJob]:
        """One job, or None if missing or owned by someone else."""
        ...

    def update_job_status(
        self,
        owner_id: str,
        job_id: str,
        status: TransformJobStatus,
        generated_document_id: Optional[str] = None,
    ) -> bool:
        """Move a job forward. Returns False when the transition is not allowed."""
        ...

    def list_jobs(self, owner_id: str, limit: int = 20) -> list[TransformJob]:
        """Most recent jobs first."""
        ...


class ReviewSessionAccessor(Protocol):
    """Persistence for in-progress review sessions."""

    def create_review_session(self, owner_id: str, data: dict[str, Any]) -> str:
        """Create a session and return its id."""
        ...

    def get_review_session(self, owner_id: str, session_id: str) -> Optional[dict[str, Any]]:
        """Session row as a dict, or None."""
        ...

    def update_review_session(
        self,
        owner_id: str,
        session_id: str,
        data: Optional[dict[str, Any]] = None,
        status: Optional[str] = None,
        created_document_id: Optional[str] = None,
        created_document_type: Optional[str] = None,
    ) -> bool:
        """Patch a session. Returns False if it no longer exists."""
        ...

    def delete_review_session(self, owner_id: str, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        ...
