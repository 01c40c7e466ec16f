"""
Canonical billing records (SSOT).

Clients, documents, line items and transform jobs. Every module maps
into/out of these dataclasses; storage rows and upstream payloads are
converted at the edges.

Amounts are Decimal throughout and serialized as strings.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

ZERO = Decimal("0")


def utc_now_iso() -> str:
    """Current UTC time as an ISO timestamp with a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_id() -> str:
    """Random identifier for new records."""
    return str(uuid.uuid4())


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a numeric value, returning None for missing or non-numeric input.

    Booleans, NaN and infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, str):
            cleaned = value.replace("$", "").replace("€", "").replace(",", "").strip()
            if not cleaned:
                return None
            result = Decimal(cleaned)
        else:
            result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


class DocumentType(str, Enum):
    """Kind of billing document."""

    INVOICE = "invoice"
    ESTIMATE = "estimate"
    CONTRACT = "contract"

    @property
    def label(self) -> str:
        """Human-readable name, e.g. "Invoice"."""
        return self.value.capitalize()


# Types that carry line items and numbers
NUMBERED_TYPES = (DocumentType.INVOICE, DocumentType.ESTIMATE)


class DocumentSelector(str, Enum):
    """Which document of a client to pick.

    LAST, LATEST and RECENT are synonyms: the most recent by creation time.
    """

    LAST = "last"
    LATEST = "latest"
    RECENT = "recent"


DRAFT_STATUS = "draft"


class TransformJobStatus(str, Enum):
    """Lifecycle of a transform job. Transitions only move forward."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True once the job can no longer change."""
        return self in TERMINAL_JOB_STATUSES

    def can_transition_to(self, target: TransformJobStatus) -> bool:
        """Check whether moving to target keeps the lifecycle monotonic."""
        return target in JOB_TRANSITIONS[self]


TERMINAL_JOB_STATUSES = frozenset(
    {TransformJobStatus.COMPLETED, TransformJobStatus.CANCELLED, TransformJobStatus.FAILED}
)

JOB_TRANSITIONS: dict[TransformJobStatus, frozenset[TransformJobStatus]] = {
    TransformJobStatus.PENDING: frozenset(
        {
            TransformJobStatus.PROCESSING,
            TransformJobStatus.CANCELLED,
            TransformJobStatus.FAILED,
        }
    ),
    TransformJobStatus.PROCESSING: frozenset(
        {
            TransformJobStatus.COMPLETED,
            TransformJobStatus.CANCELLED,
            TransformJobStatus.FAILED,
        }
    ),
    TransformJobStatus.COMPLETED: frozenset(),
    TransformJobStatus.CANCELLED: frozenset(),
    TransformJobStatus.FAILED: frozenset(),
}


@dataclass
class Client:
    """A customer in an owner's client directory."""

    id: str
    owner_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "created_at": self.created_at,
        }


@dataclass
class LineItem:
    """One billable line on a document."""

    description: str
    quantity: Decimal = Decimal("1")
    rate: Decimal = ZERO
    total: Decimal = ZERO
    unit: str = "unit"
    id: str = field(default_factory=lambda: f"item-{uuid.uuid4().hex[:12]}")
    material: Optional[str] = None
    measurement: Optional[str] = None

    @property
    def computed_total(self) -> Decimal:
        """quantity × rate."""
        return self.quantity * self.rate

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit": self.unit,
            "rate": str(self.rate),
            "total": str(self.total),
        }
        if self.material is not None:
            data["material"] = self.material
        if self.measurement is not None:
            data["measurement"] = self.measurement
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> LineItem:
        """Build a line item from a loosely-typed dict.

        Missing quantity becomes 1, missing total 0, and a missing rate is
        derived from total / quantity.
        """
        quantity = to_decimal(data.get("quantity"))
        if quantity is None:
            quantity = Decimal("1")
        total = to_decimal(data.get("total"))
        if total is None:
            total = ZERO
        rate = to_decimal(data.get("rate"))
        if rate is None:
            rate = total / quantity if quantity else ZERO

        return cls(
            id=data.get("id") or f"item-{index}",
            description=data.get("description") or "",
            quantity=quantity,
            rate=rate,
            total=total,
            unit=data.get("unit") or "unit",
            material=data.get("material"),
            measurement=data.get("measurement"),
        )


@dataclass
class Document:
    """An invoice, estimate or contract owned by one tenant."""

    id: str
    owner_id: str
    type: DocumentType
    number: str
    client_id: Optional[str]
    items: list[LineItem] = field(default_factory=list)
    subtotal: Decimal = ZERO
    tax_rate: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO
    status: str = DRAFT_STATUS
    title: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[str] = None
    transform_job_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "type": self.type.value,
            "number": self.number,
            "client_id": self.client_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": str(self.subtotal),
            "tax_rate": str(self.tax_rate),
            "tax_amount": str(self.tax_amount),
            "total": str(self.total),
            "status": self.status,
            "title": self.title,
            "notes": self.notes,
            "due_date": self.due_date,
            "transform_job_id": self.transform_job_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], owner_id: Optional[str] = None) -> Document:
        """Build a document from an import payload or serialized dict."""
        items = [LineItem.from_dict(item, index) for index, item in enumerate(data.get("items") or [])]
        subtotal = to_decimal(data.get("subtotal"))
        if subtotal is None:
            subtotal = sum((item.total for item in items), ZERO)
        tax_amount = to_decimal(data.get("tax_amount")) or ZERO
        total = to_decimal(data.get("total"))
        if total is None:
            total = subtotal + tax_amount
        now = utc_now_iso()
        return cls(
            id=data.get("id") or new_id(),
            owner_id=owner_id or data["owner_id"],
            type=DocumentType(data.get("type", DocumentType.INVOICE.value)),
            number=data.get("number") or "",
            client_id=data.get("client_id"),
            items=items,
            subtotal=subtotal,
            tax_rate=to_decimal(data.get("tax_rate")) or ZERO,
            tax_amount=tax_amount,
            total=total,
            status=data.get("status") or DRAFT_STATUS,
            title=data.get("title"),
            notes=data.get("notes"),
            due_date=data.get("due_date"),
            transform_job_id=data.get("transform_job_id"),
            created_at=data.get("created_at") or now,
            updated_at=data.get("updated_at") or now,
        )


@dataclass
class TransformJobConfig:
    """Parameters a transform job was started with."""

    target_type: DocumentType
    conversion_enabled: bool = True
    split: Optional[dict[str, Any]] = None
    schedule: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "conversion": {
                "enabled": self.conversion_enabled,
                "target_type": self.target_type.value,
            }
        }
        if self.split is not None:
            data["split"] = self.split
        if self.schedule is not None:
            data["schedule"] = self.schedule
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransformJobConfig:
        """Create from a serialized dictionary."""
        conversion = data.get("conversion", {})
        return cls(
            target_type=DocumentType(conversion["target_type"]),
            conversion_enabled=conversion.get("enabled", True),
            split=data.get("split"),
            schedule=data.get("schedule"),
        )


@dataclass(frozen=True)
class SourceSnapshot:
    """Source document facts frozen when a job is created."""

    document_id: str
    document_type: DocumentType
    total: Decimal
    client_id: Optional[str]


@dataclass
class TransformJob:
    """Audit record of one document derivation. Never deleted."""

    id: str
    owner_id: str
    source: SourceSnapshot
    config: TransformJobConfig
    status: TransformJobStatus = TransformJobStatus.PENDING
    generated_document_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "source_document_id": self.source.document_id,
            "source_document_type": self.source.document_type.value,
            "source_total": str(self.source.total),
            "source_client_id": self.source.client_id,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "generated_document_id": self.generated_document_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }
