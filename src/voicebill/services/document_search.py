"""Client document search.

Resolves a spoken (client name, document type, selector) request to a set
of documents. Direct name containment is tried first; when that yields no
client, or a client with no matching documents, the search falls back to
fuzzy suggestions instead of failing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from voicebill.errors import require_owner
from voicebill.matching.clients import ClientMatcher, ClientSuggestion
from voicebill.schemas.documents import NUMBERED_TYPES, DocumentSelector, DocumentType
from voicebill.schemas.resolution import Ambiguous, NotFound, Resolution, Resolved

if TYPE_CHECKING:
    from voicebill.config import MatchingConfig
    from voicebill.schemas.documents import Client, Document
    from voicebill.services.accessors import ClientAccessor, DocumentAccessor

logger = logging.getLogger(__name__)


@dataclass
class ClientDocuments:
    """A resolved client with its documents, most recent first."""

    client: Client
    documents: list[Document] = field(default_factory=list)
    # Set when a selector was given or the client has exactly one document
    selected: Optional[Document] = None

    @property
    def needs_selection(self) -> bool:
        """True when several documents exist and none was picked."""
        return self.selected is None and len(self.documents) > 1


class ClientDocumentSearch:
    """Finds a client's documents by spoken name.

    Usage:
        search = ClientDocumentSearch(store, store)
        result = search.search(owner_id, "jon smith", DocumentType.INVOICE, "last")
    """

    def __init__(
        self,
        clients: ClientAccessor,
        documents: DocumentAccessor,
        config: MatchingConfig | None = None,
    ) -> None:
        """Initialize the search.

        Args:
            clients: Client directory accessor.
            documents: Document accessor.
            config: Matching thresholds (defaults when None).
        """
        self.clients = clients
        self.documents = documents
        self.matcher = ClientMatcher(config)
        self.config = self.matcher.config

    def resolve_client(self, owner_id: str, client_name: str) -> Resolution[Client]:
        """
        Direct lookup by case-insensitive name containment.

        A single hit resolves. With several hits, an exact (case-insensitive)
        name wins; otherwise the hits are returned as ranked candidates.
        """
        hits = self.clients.find_clients_by_name(owner_id, client_name)
        if not hits:
            return NotFound(reason=f'No client named "{client_name}"')
        if len(hits) == 1:
            return Resolved(hits[0])

        wanted = client_name.strip().casefold()
        exact = [c for c in hits if c.name.strip().casefold() == wanted]
        if len(exact) == 1:
            return Resolved(exact[0])

        candidates = self.matcher.find_similar_clients(
            client_name, exact or hits, min_similarity=0.0, limit=len(hits)
        )
        return Ambiguous(
            candidates=candidates,
            reason=f'{len(hits)} clients match "{client_name}"',
        )

    def suggest_alternatives(
        self, owner_id: str, client_name: str, exclude_client_id: Optional[str] = None
    ) -> list[ClientSuggestion]:
        """Fuzzy suggestions among clients that own at least one invoice or estimate."""
        counts = self.documents_by_client(owner_id)
        directory = [
            c
            for c in self.clients.list_clients(owner_id)
            if c.id != exclude_client_id and c.id in counts
        ]
        ranked = self.matcher.find_similar_clients(client_name, directory)
        return [
            ClientSuggestion(
                id=s.id,
                name=s.name,
                similarity=s.similarity,
                invoice_count=counts[s.id].get(DocumentType.INVOICE.value, 0),
                estimate_count=counts[s.id].get(DocumentType.ESTIMATE.value, 0),
            )
            for s in ranked
        ]

    def documents_by_client(self, owner_id: str) -> dict[str, dict[str, int]]:
        """Invoice/estimate counts for every client that has any."""
        numbered = {t.value for t in NUMBERED_TYPES}
        result = {}
        for client_id, per_type in self.clients.document_counts(owner_id).items():
            kept = {t: n for t, n in per_type.items() if t in numbered and n > 0}
            if kept:
                result[client_id] = kept
        return result

    def search(
        self,
        owner_id: str,
        client_name: str,
        document_type: Optional[DocumentType] = None,
        selector: Optional[DocumentSelector] = None,
    ) -> Resolution[ClientDocuments]:
        """
        Resolve a client name to that client's documents.

        Args:
            owner_id: Tenant boundary for every read
            client_name: Spoken or typed client name
            document_type: Optional type filter
            selector: last/latest/recent (synonyms: most recent by creation time)

        Returns:
            Resolved(ClientDocuments) when a client with matching documents is
            found, Ambiguous when several clients match the name directly, and
            NotFound with ranked suggestions otherwise.

        Raises:
            NotAuthenticatedError: owner_id is missing
        """
        owner_id = require_owner(owner_id)
        if document_type is not None:
            document_type = DocumentType(document_type)
        if selector is not None:
            selector = DocumentSelector(selector)

        resolution = self.resolve_client(owner_id, client_name)
        if isinstance(resolution, Ambiguous):
            logger.info("Ambiguous client %r: %d candidates", client_name, len(resolution.candidates))
            return resolution

        if isinstance(resolution, Resolved):
            client = resolution.value
            docs = self.documents.list_client_documents(
                owner_id, client.id, document_type, limit=self.config.document_search_limit
            )
            if docs:
                selected = docs[0] if selector is not None or len(docs) == 1 else None
                return Resolved(ClientDocuments(client=client, documents=docs, selected=selected))

            kind = f"{document_type.value}s" if document_type else "documents"
            logger.warning("Client %r has no %s, suggesting alternatives", client.name, kind)
            return NotFound(
                suggestions=self.suggest_alternatives(owner_id, client_name, client.id),
                reason=f"{client.name} has no {kind}",
            )

        logger.warning("No client matching %r, suggesting alternatives", client_name)
        return NotFound(
            suggestions=self.suggest_alternatives(owner_id, client_name),
            reason=resolution.reason,
        )
