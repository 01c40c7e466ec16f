"""
Builders for test records.

Provides clients and documents with readable, deterministic ids so tests
can assert on them directly.
"""

from decimal import Decimal

from voicebill.schemas.documents import Client, Document, DocumentType, LineItem

OWNER = "owner-1"
OTHER_OWNER = "owner-2"


def make_client(name: str, owner_id: str = OWNER, **kwargs) -> Client:
    """Client with an id derived from its name."""
    client_id = kwargs.pop("id", "client-" + name.lower().replace(" ", "-"))
    return Client(id=client_id, owner_id=owner_id, name=name, **kwargs)


def make_document(
    client: Client,
    number: str,
    document_type: DocumentType = DocumentType.INVOICE,
    items: list[tuple[str, str, str]] | None = None,
    created_at: str = "2024-03-01T10:00:00.000000Z",
    **kwargs,
) -> Document:
    """Document whose items are (description, quantity, rate) triples."""
    line_items = [
        LineItem(
            description=description,
            quantity=Decimal(quantity),
            rate=Decimal(rate),
            total=Decimal(quantity) * Decimal(rate),
        )
        for description, quantity, rate in (items or [("Labor", "1", "100")])
    ]
    subtotal = sum((item.total for item in line_items), Decimal("0"))
    return Document(
        id=kwargs.pop("id", f"doc-{client.owner_id}-{number.lower()}"),
        owner_id=client.owner_id,
        type=document_type,
        number=number,
        client_id=client.id,
        items=line_items,
        subtotal=kwargs.pop("subtotal", subtotal),
        total=kwargs.pop("total", subtotal),
        created_at=created_at,
        updated_at=created_at,
        **kwargs,
    )
