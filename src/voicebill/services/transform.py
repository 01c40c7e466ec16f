"""Document transform orchestration.

Coordinates search -> disambiguate -> modify -> persist -> finalize for the
three derivations a contractor can dictate:

- Convert: invoice <-> estimate, tracked as a TransformJob
- Clone: copy a client's document (optionally for another client) with
  keyword-addressed item changes
- Merge: combine several clients' documents into one, after resolving every
  named client concurrently

Job lifecycle: pending -> processing -> completed | cancelled | failed.
A failure before the derived document is written cancels the job; a failure
after it exists marks the job failed. Already-written artifacts are not
rolled back. Storage errors are logged in full and reported to the caller
as a generic message.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from voicebill.errors import ErrorKind, NotAuthenticatedError, PersistenceError, require_owner
from voicebill.schemas.documents import (
    NUMBERED_TYPES,
    ZERO,
    Document,
    DocumentSelector,
    DocumentType,
    LineItem,
    SourceSnapshot,
    TransformJob,
    TransformJobConfig,
    TransformJobStatus,
    new_id,
)
from voicebill.schemas.resolution import Ambiguous, NotFound, Resolved, unhandled_resolution
from voicebill.services.client_directory import ClientDirectory
from voicebill.services.document_search import ClientDocumentSearch
from voicebill.services.numbering import DocumentNumberAllocator
from voicebill.services.reconciler import ItemReconciler, normalize_items
from voicebill.services.results import OperationResult

if TYPE_CHECKING:
    from voicebill.config import Config
    from voicebill.matching.clients import ClientSuggestion
    from voicebill.schemas.documents import Client
    from voicebill.schemas.intents import TargetClient
    from voicebill.schemas.modifications import ItemModifications
    from voicebill.services.accessors import ClientAccessor, DocumentAccessor, JobAccessor

logger = logging.getLogger(__name__)

ALREADY_TARGET_TYPE = "Source document is already the target type"
GENERIC_FAILURE = "Something went wrong while saving. Please try again."


def format_transform_summary(source_type: DocumentType, target_type: DocumentType) -> str:
    """One-line description of a conversion for confirmation prompts."""
    source_type, target_type = DocumentType(source_type), DocumentType(target_type)
    if source_type is target_type:
        return "No conversion needed - already the target type"
    return f"Convert {source_type.value} to {target_type.value}"


class MergeSlotState(str, Enum):
    """Resolution state of one source client in a merge."""

    SELECTED = "selected"
    MANUAL_SELECTION = "manual_selection"


@dataclass
class MergeSlot:
    """One named source client of a merge and its chosen document."""

    index: int
    client_name: str
    state: MergeSlotState = MergeSlotState.MANUAL_SELECTION
    client: Optional[Client] = None
    documents: list[Document] = field(default_factory=list)
    selected: Optional[Document] = None
    candidates: list[ClientSuggestion] = field(default_factory=list)
    suggestions: list[ClientSuggestion] = field(default_factory=list)
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "index": self.index,
            "client_name": self.client_name,
            "state": self.state.value,
            "client": self.client.to_dict() if self.client else None,
            "documents": [d.to_dict() for d in self.documents],
            "selected": self.selected.to_dict() if self.selected else None,
            "candidates": [c.to_dict() for c in self.candidates],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "reason": self.reason,
        }


@dataclass
class MergePreview:
    """All slots of a merge. Executable once every slot is selected."""

    owner_id: str
    slots: list[MergeSlot] = field(default_factory=list)
    document_type: Optional[DocumentType] = None
    target_client: Optional[TargetClient] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def ready(self) -> bool:
        """True when every slot has a selected document."""
        return bool(self.slots) and all(s.state is MergeSlotState.SELECTED for s in self.slots)

    @property
    def pending_slots(self) -> list[MergeSlot]:
        """Slots still waiting for a human choice."""
        return [s for s in self.slots if s.state is not MergeSlotState.SELECTED]

    def combined_items(self) -> list[LineItem]:
        """Normalized items of every selected document, in slot order."""
        items: list[LineItem] = []
        for slot in self.slots:
            if slot.selected is not None:
                items.extend(normalize_items(slot.selected.items))
        return items

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ready": self.ready,
            "document_type": self.document_type.value if self.document_type else None,
            "slots": [s.to_dict() for s in self.slots],
            "error": self.error,
        }


class TransformService:
    """Runs convert, clone and merge requests for one store.

    All collaborators are passed in; nothing is looked up globally.

    Usage:
        service = TransformService(store, store, store, config)
        result = service.execute_transform(owner_id, DocumentType.ESTIMATE,
                                           client_name="john smith",
                                           selector=DocumentSelector.LAST)
    """

    def __init__(
        self,
        clients: ClientAccessor,
        documents: DocumentAccessor,
        jobs: JobAccessor,
        config: Config | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            clients: Client directory accessor.
            documents: Document accessor.
            jobs: Transform job accessor.
            config: Application configuration (defaults when None).
        """
        if config is None:
            from voicebill.config import Config

            config = Config()
        self.clients = clients
        self.documents = documents
        self.jobs = jobs
        self.config = config

        self.search = ClientDocumentSearch(clients, documents, config.matching)
        self.numbers = DocumentNumberAllocator(documents, config.numbering)
        self.reconciler = ItemReconciler()
        self.directory = ClientDirectory(clients, config.matching)

    # Source resolution

    def _resolve_source(
        self,
        owner_id: str,
        source_document_id: Optional[str],
        document_number: Optional[str],
        client_name: Optional[str],
        document_type: Optional[DocumentType],
        selector: Optional[DocumentSelector],
    ) -> OperationResult:
        """Find the single source document, or explain why there is none."""
        if source_document_id:
            doc = self.documents.get_document(owner_id, source_document_id)
            if doc is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Source document not found")
            return OperationResult.ok(document=doc)

        if document_number:
            doc = self.documents.find_document_by_number(owner_id, document_number)
            if doc is not None:
                return OperationResult.ok(document=doc)
            if not client_name:
                return OperationResult.fail(
                    ErrorKind.NOT_FOUND, f"No document numbered {document_number}"
                )

        if not client_name:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "No source client or document given")

        found = self.search.search(owner_id, client_name, document_type, selector)
        if isinstance(found, Resolved):
            match = found.value
            if match.selected is None:
                return OperationResult.fail(
                    ErrorKind.AMBIGUOUS_MATCH,
                    f"{match.client.name} has {len(match.documents)} documents. Which one?",
                    client=match.client,
                    documents=match.documents,
                )
            return OperationResult.ok(
                client=match.client, document=match.selected, documents=match.documents
            )
        if isinstance(found, Ambiguous):
            return OperationResult.fail(
                ErrorKind.AMBIGUOUS_MATCH, found.reason, candidates=found.candidates
            )
        if isinstance(found, NotFound):
            return OperationResult.fail(
                ErrorKind.NOT_FOUND,
                found.reason or f'No documents found for "{client_name}"',
                suggestions=found.suggestions,
            )
        raise unhandled_resolution(found)

    # Convert

    def execute_transform(
        self,
        owner_id: str,
        target_type: DocumentType,
        *,
        source_document_id: Optional[str] = None,
        document_number: Optional[str] = None,
        client_name: Optional[str] = None,
        document_type: Optional[DocumentType] = None,
        selector: Optional[DocumentSelector] = None,
    ) -> OperationResult:
        """
        Convert a document between invoice and estimate.

        The source is found by id, by number, or by client name search (in
        that order). Rejections (not found, ambiguous, already the target
        type) happen before any write and create no job.

        Returns:
            OperationResult with job and document on success; suggestions or
            candidates when the source could not be pinned down.
        """
        try:
            owner_id = require_owner(owner_id)
            target_type = DocumentType(target_type)
            resolved = self._resolve_source(
                owner_id, source_document_id, document_number, client_name, document_type, selector
            )
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except ValueError as e:
            return OperationResult.fail(ErrorKind.INVALID_CONVERSION, str(e))
        except PersistenceError:
            logger.exception("Source lookup failed for transform")
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)

        if not resolved.success:
            return resolved
        source = resolved.document

        if source.type is target_type:
            logger.info("Rejected transform of %s: already %s", source.number, target_type.value)
            return OperationResult.fail(
                ErrorKind.INVALID_CONVERSION, ALREADY_TARGET_TYPE, document=source
            )
        if target_type not in NUMBERED_TYPES or source.type not in NUMBERED_TYPES:
            return OperationResult.fail(
                ErrorKind.INVALID_CONVERSION,
                f"Cannot convert {source.type.value} to {target_type.value}",
                document=source,
            )

        job = TransformJob(
            id=new_id(),
            owner_id=owner_id,
            source=SourceSnapshot(
                document_id=source.id,
                document_type=source.type,
                total=source.total,
                client_id=source.client_id,
            ),
            config=TransformJobConfig(target_type=target_type),
            status=TransformJobStatus.PROCESSING,
        )
        try:
            self.jobs.create_job(job)
        except PersistenceError:
            logger.exception("Failed to create transform job for %s", source.id)
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)
        logger.info(
            "Transform job %s: %s %s -> %s",
            job.id,
            source.type.value,
            source.number,
            target_type.value,
        )

        document: Optional[Document] = None
        try:
            number = self.numbers.generate(owner_id, target_type)
            items = [LineItem.from_dict(item.to_dict(), i) for i, item in enumerate(source.items)]
            document = self.documents.create_document(
                Document(
                    id=new_id(),
                    owner_id=owner_id,
                    type=target_type,
                    number=number,
                    client_id=source.client_id,
                    items=items,
                    subtotal=source.subtotal,
                    tax_rate=ZERO,
                    tax_amount=ZERO,
                    total=source.subtotal,
                    title=f"{target_type.label} - Converted from {source.type.value}",
                    notes=source.notes,
                    transform_job_id=job.id,
                )
            )
            self._finish_job(owner_id, job, TransformJobStatus.COMPLETED, document.id)
        except Exception:
            status = (
                TransformJobStatus.CANCELLED if document is None else TransformJobStatus.FAILED
            )
            logger.exception("Transform job %s failed, marking %s", job.id, status.value)
            self._mark_job(owner_id, job, status)
            return OperationResult.fail(
                ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE, job=job, document=document
            )

        logger.info("Transform job %s completed: created %s", job.id, document.number)
        return OperationResult.ok(
            job=job,
            document=document,
            client=resolved.client,
            message=format_transform_summary(source.type, target_type),
        )

    def _finish_job(
        self,
        owner_id: str,
        job: TransformJob,
        status: TransformJobStatus,
        generated_document_id: Optional[str] = None,
    ) -> None:
        """Write a terminal status; raises if the store refuses it."""
        if not self.jobs.update_job_status(owner_id, job.id, status, generated_document_id):
            raise PersistenceError(f"Job {job.id} could not be moved to {status.value}")
        job.status = status
        job.generated_document_id = generated_document_id or job.generated_document_id

        # The write succeeded; reading back the timestamps is best-effort
        try:
            refreshed = self.jobs.get_job(owner_id, job.id)
        except PersistenceError:
            logger.warning("Could not reload transform job %s after %s", job.id, status.value)
            return
        if refreshed is not None:
            job.updated_at = refreshed.updated_at
            job.completed_at = refreshed.completed_at

    def _mark_job(self, owner_id: str, job: TransformJob, status: TransformJobStatus) -> None:
        """Best-effort terminal status after a failure."""
        try:
            if self.jobs.update_job_status(owner_id, job.id, status):
                job.status = status
        except Exception:
            logger.exception("Could not mark transform job %s as %s", job.id, status.value)

    def get_job(self, owner_id: str, job_id: str) -> OperationResult:
        """Fetch one transform job of the owner."""
        try:
            owner_id = require_owner(owner_id)
            job = self.jobs.get_job(owner_id, job_id)
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except PersistenceError:
            logger.exception("Failed to load transform job %s", job_id)
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)
        if job is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Transform job not found")
        return OperationResult.ok(job=job)

    def cancel_job(self, owner_id: str, job_id: str) -> OperationResult:
        """Cancel a pending or processing job. Terminal jobs are left untouched."""
        current = self.get_job(owner_id, job_id)
        if not current.success:
            return current
        job = current.job
        if job.status.is_terminal:
            return OperationResult.fail(
                ErrorKind.UNSUPPORTED, f"Job is already {job.status.value}", job=job
            )
        try:
            cancelled = self.jobs.update_job_status(
                job.owner_id, job.id, TransformJobStatus.CANCELLED
            )
        except PersistenceError:
            logger.exception("Failed to cancel transform job %s", job_id)
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE, job=job)
        if not cancelled:
            return OperationResult.fail(
                ErrorKind.UNSUPPORTED, "Job can no longer be cancelled", job=job
            )
        job.status = TransformJobStatus.CANCELLED
        logger.warning("Transform job %s cancelled", job.id)
        return OperationResult.ok(job=job)

    # Clone

    def clone_document(
        self,
        owner_id: str,
        source_client: str,
        *,
        target_client: Optional[TargetClient] = None,
        document_type: Optional[DocumentType] = None,
        selector: Optional[DocumentSelector] = None,
        modifications: Optional[ItemModifications] = None,
        source_document_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Copy a client's document, applying item modifications.

        The copy keeps the source type and goes to target_client (resolved
        or created) or, when none is named, to the source client. No job is
        recorded for a clone.
        """
        try:
            owner_id = require_owner(owner_id)
            resolved = self._resolve_source(
                owner_id, source_document_id, None, source_client, document_type, selector
            )
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except PersistenceError:
            logger.exception("Source lookup failed for clone")
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)

        if not resolved.success:
            return resolved
        source = resolved.document
        if source.type not in NUMBERED_TYPES:
            return OperationResult.fail(
                ErrorKind.UNSUPPORTED, f"Cannot clone a {source.type.value}", document=source
            )

        reconciled = self.reconciler.apply_modifications(source.items, modifications)
        try:
            client_id = source.client_id
            client = resolved.client
            if target_client is not None:
                client = self.directory.resolve_or_create(
                    owner_id,
                    target_client.name,
                    email=target_client.email,
                    phone=target_client.phone,
                    address=target_client.address,
                )
                client_id = client.id
            document = self.documents.create_document(
                Document(
                    id=new_id(),
                    owner_id=owner_id,
                    type=source.type,
                    number=self.numbers.generate(owner_id, source.type),
                    client_id=client_id,
                    items=reconciled.items,
                    subtotal=reconciled.subtotal,
                    total=reconciled.total,
                    title=source.title,
                    notes=source.notes,
                )
            )
        except (PersistenceError, ValueError):
            logger.exception("Clone of %s failed", source.id)
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)

        logger.info("Cloned %s as %s", source.number, document.number)
        return OperationResult.ok(
            document=document,
            client=client,
            message=f"Copied {source.type.value} {source.number} as {document.number}",
        )

    # Merge

    def _resolve_slot(
        self, owner_id: str, index: int, name: str, document_type: Optional[DocumentType]
    ) -> MergeSlot:
        slot = MergeSlot(index=index, client_name=name)
        found = self.search.search(owner_id, name, document_type)
        if isinstance(found, Resolved):
            slot.client = found.value.client
            slot.documents = found.value.documents
            if len(slot.documents) == 1:
                slot.selected = slot.documents[0]
                slot.state = MergeSlotState.SELECTED
            else:
                slot.reason = f"{slot.client.name} has {len(slot.documents)} documents"
        elif isinstance(found, Ambiguous):
            slot.candidates = found.candidates
            slot.reason = found.reason
        elif isinstance(found, NotFound):
            slot.suggestions = found.suggestions
            slot.reason = found.reason
        else:
            raise unhandled_resolution(found)
        return slot

    def prepare_merge(
        self,
        owner_id: str,
        source_clients: list[str],
        *,
        document_type: Optional[DocumentType] = None,
        target_client: Optional[TargetClient] = None,
    ) -> MergePreview:
        """
        Resolve every named source client concurrently.

        A client with exactly one matching document is selected
        automatically. Anything else (several documents, several clients,
        a failed search) leaves that slot for manual selection without
        affecting the other slots.
        """
        preview = MergePreview(
            owner_id=owner_id or "", document_type=document_type, target_client=target_client
        )
        try:
            preview.owner_id = require_owner(owner_id)
        except NotAuthenticatedError as e:
            preview.error, preview.error_kind = str(e), ErrorKind.NOT_AUTHENTICATED
            return preview
        if document_type is not None:
            preview.document_type = DocumentType(document_type)

        slots: dict[int, MergeSlot] = {}
        with ThreadPoolExecutor(max_workers=self.config.merge.max_workers) as executor:
            futures = {
                executor.submit(
                    self._resolve_slot, preview.owner_id, index, name, preview.document_type
                ): (index, name)
                for index, name in enumerate(source_clients)
            }
            for future in as_completed(futures):
                index, name = futures[future]
                try:
                    slots[index] = future.result()
                except Exception:
                    logger.exception("Merge search for %r failed", name)
                    slots[index] = MergeSlot(
                        index=index, client_name=name, reason="Search failed, pick manually"
                    )

        preview.slots = [slots[i] for i in range(len(source_clients))]
        logger.info(
            "Merge preview: %d/%d sources selected",
            len(preview.slots) - len(preview.pending_slots),
            len(preview.slots),
        )
        return preview

    def select_merge_document(
        self, preview: MergePreview, slot_index: int, document_id: str
    ) -> OperationResult:
        """Fill one merge slot by hand with a document of the same owner."""
        if not 0 <= slot_index < len(preview.slots):
            return OperationResult.fail(ErrorKind.NOT_FOUND, "No such merge source")
        try:
            owner_id = require_owner(preview.owner_id)
            document = self.documents.get_document(owner_id, document_id)
            client = (
                self.clients.get_client(owner_id, document.client_id)
                if document is not None and document.client_id
                else None
            )
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except PersistenceError:
            logger.exception("Failed to load merge document %s", document_id)
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)
        if document is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Document not found")

        slot = preview.slots[slot_index]
        slot.selected = document
        slot.client = client or slot.client
        slot.state = MergeSlotState.SELECTED
        slot.reason = None
        return OperationResult.ok(document=document, client=slot.client)

    def execute_merge(self, preview: MergePreview) -> OperationResult:
        """
        Persist one draft combining every selected source document.

        The document goes to the named target client (resolved or created),
        or to the first source client when none was named.
        """
        if preview.error_kind is not None:
            return OperationResult.fail(preview.error_kind, preview.error or "Merge failed")
        if not preview.ready:
            names = ", ".join(s.client_name for s in preview.pending_slots)
            return OperationResult.fail(
                ErrorKind.AMBIGUOUS_MATCH, f"Choose a document for: {names}"
            )

        document_type = preview.document_type or preview.slots[0].selected.type
        if document_type not in NUMBERED_TYPES:
            return OperationResult.fail(
                ErrorKind.UNSUPPORTED, f"Cannot merge into a {document_type.value}"
            )

        items = preview.combined_items()
        subtotal = sum((item.total for item in items), ZERO)
        try:
            owner_id = require_owner(preview.owner_id)
            if preview.target_client is not None:
                target = preview.target_client
                client = self.directory.resolve_or_create(
                    owner_id,
                    target.name,
                    email=target.email,
                    phone=target.phone,
                    address=target.address,
                )
            else:
                client = preview.slots[0].client
            sources = ", ".join(s.selected.number for s in preview.slots)
            document = self.documents.create_document(
                Document(
                    id=new_id(),
                    owner_id=owner_id,
                    type=document_type,
                    number=self.numbers.generate(owner_id, document_type),
                    client_id=client.id if client else preview.slots[0].selected.client_id,
                    items=items,
                    subtotal=subtotal,
                    total=subtotal,
                    title=f"{document_type.label} - Merged from {sources}",
                )
            )
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except (PersistenceError, ValueError):
            logger.exception("Merge failed")
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, GENERIC_FAILURE)

        logger.info("Merged %d documents into %s", len(preview.slots), document.number)
        return OperationResult.ok(document=document, client=client)
