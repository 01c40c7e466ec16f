"""
Tagged intent variants.

The upstream extraction layer hands over an intent tag plus a weakly-typed
payload. parse_intent() maps that pair onto exactly one of the dataclasses
below at the boundary, so nothing past this module handles raw dicts.

Both the upstream camelCase keys and snake_case keys are accepted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from ..errors import IntentParseError
from .documents import DocumentSelector, DocumentType
from .modifications import ItemModifications


class IntentType(str, Enum):
    """Closed set of intents produced upstream."""

    DOCUMENT_ACTION = "document_action"
    INFORMATION_QUERY = "information_query"
    DOCUMENT_CLONE = "document_clone"
    DOCUMENT_MERGE = "document_merge"
    DOCUMENT_SEND = "document_send"
    DOCUMENT_TRANSFORM = "document_transform"


class DeliveryMethod(str, Enum):
    """How a document would be delivered (delivery itself is external)."""

    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


@dataclass
class TargetClient:
    """Client name and contact fields as dictated."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass
class DocumentActionIntent:
    """Create a new document for a client (creation itself is external)."""

    client: TargetClient
    document_type: Optional[DocumentType] = None
    items: list[dict[str, Any]] = field(default_factory=list)
    intent_type: IntentType = IntentType.DOCUMENT_ACTION


@dataclass
class InformationQueryIntent:
    """Ask about a client's documents."""

    client_name: str
    document_type: Optional[DocumentType] = None
    selector: Optional[DocumentSelector] = None
    question: str = ""
    intent_type: IntentType = IntentType.INFORMATION_QUERY


@dataclass
class CloneIntent:
    """Copy a client's document for another (or the same) client."""

    source_client: str
    target_client: Optional[TargetClient] = None
    document_type: Optional[DocumentType] = None
    selector: Optional[DocumentSelector] = None
    modifications: ItemModifications = field(default_factory=ItemModifications)
    intent_type: IntentType = IntentType.DOCUMENT_CLONE


@dataclass
class MergeIntent:
    """Combine several clients' documents into one."""

    source_clients: list[str]
    target_client: Optional[TargetClient] = None
    document_type: Optional[DocumentType] = None
    intent_type: IntentType = IntentType.DOCUMENT_MERGE


@dataclass
class SendIntent:
    """Send an existing document."""

    client_name: str
    document_type: Optional[DocumentType] = None
    selector: Optional[DocumentSelector] = None
    delivery_method: DeliveryMethod = DeliveryMethod.EMAIL
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    intent_type: IntentType = IntentType.DOCUMENT_SEND


@dataclass
class TransformIntent:
    """Convert a document between invoice and estimate."""

    client_name: Optional[str]
    target_type: DocumentType
    document_type: Optional[DocumentType] = None
    selector: Optional[DocumentSelector] = None
    document_number: Optional[str] = None
    source_document_id: Optional[str] = None
    intent_type: IntentType = IntentType.DOCUMENT_TRANSFORM


Intent = Union[
    DocumentActionIntent,
    InformationQueryIntent,
    CloneIntent,
    MergeIntent,
    SendIntent,
    TransformIntent,
]


def _get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key among snake_case/camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise IntentParseError(f"{name} is required")
    return value.strip()


def _optional_enum(enum_cls, value: Any, name: str):
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise IntentParseError(f"Invalid {name}: {value!r}") from None


def _target_client(value: Any) -> Optional[TargetClient]:
    if value is None:
        return None
    if isinstance(value, str):
        return TargetClient(name=_require_str(value, "target client name"))
    if not isinstance(value, dict):
        raise IntentParseError("target client must be an object or a name")
    name = value.get("name")
    if not name:
        return None
    return TargetClient(
        name=_require_str(name, "target client name"),
        email=value.get("email") or None,
        phone=value.get("phone") or None,
        address=value.get("address") or None,
    )


def parse_intent(intent_type: str, payload: dict[str, Any]) -> Intent:
    """
    Map an upstream intent tag and payload onto a typed variant.

    Args:
        intent_type: One of the IntentType values
        payload: Extracted fields for that intent

    Returns:
        The matching intent dataclass

    Raises:
        IntentParseError: Unknown tag or missing/invalid required fields
    """
    try:
        tag = IntentType(intent_type)
    except ValueError:
        raise IntentParseError(f"Unknown intent type: {intent_type!r}") from None

    if not isinstance(payload, dict):
        raise IntentParseError("payload must be an object")

    doc_type = _optional_enum(
        DocumentType, _get(payload, "document_type", "documentType"), "document type"
    )

    if tag is IntentType.DOCUMENT_TRANSFORM:
        source = _get(payload, "source", default={}) or {}
        conversion = _get(payload, "conversion", default={}) or {}
        target = _optional_enum(
            DocumentType,
            _get(conversion, "target_type", "targetType")
            or _get(payload, "target_type", "targetType"),
            "target type",
        )
        if target is None:
            raise IntentParseError("target type is required")
        source_id = _get(source, "document_id", "documentId") or _get(
            payload, "source_document_id", "sourceDocumentId"
        )
        client_name = _get(source, "client_name", "clientName") or _get(
            payload, "client_name", "clientName"
        )
        if not source_id:
            client_name = _require_str(client_name, "source client name")
        return TransformIntent(
            client_name=client_name,
            target_type=target,
            document_type=_optional_enum(
                DocumentType,
                _get(source, "document_type", "documentType") or doc_type,
                "document type",
            ),
            selector=_optional_enum(
                DocumentSelector, _get(source, "selector") or _get(payload, "selector"), "selector"
            ),
            document_number=_get(source, "document_number", "documentNumber"),
            source_document_id=source_id,
        )

    if tag is IntentType.DOCUMENT_CLONE:
        return CloneIntent(
            source_client=_require_str(
                _get(payload, "source_client", "sourceClient"), "source client name"
            ),
            target_client=_target_client(_get(payload, "target_client", "targetClient")),
            document_type=doc_type,
            selector=_optional_enum(DocumentSelector, _get(payload, "selector"), "selector"),
            modifications=ItemModifications.from_dict(_get(payload, "modifications")),
        )

    if tag is IntentType.DOCUMENT_MERGE:
        names = _get(payload, "source_clients", "sourceClients", default=[])
        if not isinstance(names, list):
            raise IntentParseError("source clients must be a list")
        cleaned = [n.strip() for n in names if isinstance(n, str) and n.strip()]
        if not cleaned:
            raise IntentParseError("at least one source client is required")
        return MergeIntent(
            source_clients=cleaned,
            target_client=_target_client(_get(payload, "target_client", "targetClient")),
            document_type=doc_type,
        )

    if tag is IntentType.DOCUMENT_SEND:
        recipient = _get(payload, "recipient", default={}) or {}
        return SendIntent(
            client_name=_require_str(
                _get(payload, "client_name", "clientName")
                or _get(recipient, "client_name", "clientName"),
                "client name",
            ),
            document_type=doc_type,
            selector=_optional_enum(DocumentSelector, _get(payload, "selector"), "selector"),
            delivery_method=_optional_enum(
                DeliveryMethod, _get(payload, "delivery_method", "deliveryMethod"), "delivery method"
            )
            or DeliveryMethod.EMAIL,
            recipient_email=_get(recipient, "email"),
            recipient_phone=_get(recipient, "phone"),
        )

    if tag is IntentType.INFORMATION_QUERY:
        return InformationQueryIntent(
            client_name=_require_str(_get(payload, "client_name", "clientName"), "client name"),
            document_type=doc_type,
            selector=_optional_enum(DocumentSelector, _get(payload, "selector"), "selector"),
            question=_get(payload, "question", "query", default=""),
        )

    if tag is IntentType.DOCUMENT_ACTION:
        client = _target_client(_get(payload, "client")) or _target_client(
            _get(payload, "client_name", "clientName")
        )
        if client is None:
            raise IntentParseError("client name is required")
        items = _get(payload, "items", "line_items", "lineItems", default=[])
        return DocumentActionIntent(
            client=client,
            document_type=doc_type,
            items=[i for i in items if isinstance(i, dict)] if isinstance(items, list) else [],
        )

    raise IntentParseError(f"Unhandled intent type: {tag.value}")
