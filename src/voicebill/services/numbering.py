"""Sequential document number allocation.

Numbers look like ``INV-2024-0007``: a per-type prefix, the year and a
zero-padded sequence. The next sequence is derived from the most recent
numbers the owner already has for that prefix and year.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from voicebill.schemas.documents import DocumentType

if TYPE_CHECKING:
    from voicebill.config import NumberingConfig
    from voicebill.services.accessors import DocumentAccessor

logger = logging.getLogger(__name__)


class DocumentNumberAllocator:
    """Allocates "{PREFIX}-{year}-{seq:04d}" numbers per owner, type and year.

    Known limitation: there is no locking. Two concurrent allocations for
    the same owner, type and year can return the same number. Callers that
    need strict uniqueness must add a storage-level unique constraint and
    retry on conflict.
    """

    def __init__(self, documents: DocumentAccessor, config: NumberingConfig | None = None) -> None:
        if config is None:
            from voicebill.config import NumberingConfig

            config = NumberingConfig()
        self.documents = documents
        self.config = config

    def prefix_for(self, document_type: DocumentType) -> str:
        """Number prefix for a document type.

        Raises:
            ValueError: Contracts are not numbered by this allocator.
        """
        document_type = DocumentType(document_type)
        if document_type is DocumentType.INVOICE:
            return self.config.invoice_prefix
        if document_type is DocumentType.ESTIMATE:
            return self.config.estimate_prefix
        raise ValueError(f"No number prefix for {document_type.value} documents")

    def next_sequence(self, owner_id: str, document_type: DocumentType, year: int) -> int:
        """Highest sequence among the recent numbers plus one (1 if none)."""
        prefix = self.prefix_for(document_type)
        base = f"{prefix}-{year}-"
        pattern = re.compile(rf"^{re.escape(base)}(\d+)$")

        recent = self.documents.recent_document_numbers(owner_id, base, self.config.inspect_limit)
        sequences = [int(m.group(1)) for m in (pattern.match(n) for n in recent) if m]
        return max(sequences, default=0) + 1

    def generate(
        self, owner_id: str, document_type: DocumentType, year: Optional[int] = None
    ) -> str:
        """
        Allocate the next document number.

        Args:
            owner_id: Owner whose numbers are inspected
            document_type: Invoice or estimate
            year: Defaults to the current UTC year

        Returns:
            Number such as "EST-2024-0003"
        """
        if year is None:
            year = datetime.now(timezone.utc).year
        sequence = self.next_sequence(owner_id, document_type, year)
        number = f"{self.prefix_for(document_type)}-{year}-{sequence:04d}"
        logger.info("Allocated document number %s", number)
        return number
