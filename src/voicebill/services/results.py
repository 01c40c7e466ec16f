"""Typed outcomes returned by the public service methods.

Services never let a storage or auth exception escape; they return an
OperationResult instead, so a caller can render partial outcomes such as
"client found, zero documents" or "pick one of these clients".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from voicebill.errors import ErrorKind

if TYPE_CHECKING:
    from voicebill.matching.clients import ClientSuggestion
    from voicebill.schemas.documents import Client, Document, TransformJob


@dataclass
class OperationResult:
    """Outcome of a transform, clone, merge, lookup or client update."""

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    client: Optional[Client] = None
    document: Optional[Document] = None
    documents: list[Document] = field(default_factory=list)
    job: Optional[TransformJob] = None
    # Ranked alternatives for NotFound
    suggestions: list[ClientSuggestion] = field(default_factory=list)
    # Equally plausible picks for an ambiguous match
    candidates: list[ClientSuggestion] = field(default_factory=list)
    message: Optional[str] = None

    @classmethod
    def ok(cls, **kwargs: Any) -> OperationResult:
        """Successful result."""
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str, **kwargs: Any) -> OperationResult:
        """Failed result with a user-facing message."""
        return cls(success=False, error=error, error_kind=kind, **kwargs)

    @property
    def needs_disambiguation(self) -> bool:
        """True when the caller should show candidates or suggestions."""
        return not self.success and bool(self.candidates or self.suggestions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "client": self.client.to_dict() if self.client else None,
            "document": self.document.to_dict() if self.document else None,
            "documents": [d.to_dict() for d in self.documents],
            "job": self.job.to_dict() if self.job else None,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "candidates": [c.to_dict() for c in self.candidates],
        }
