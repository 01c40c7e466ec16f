"""Test fixtures and utilities."""

from pathlib import Path

import pytest
from fixtures import OTHER_OWNER, make_client, make_document

from voicebill.config import Config
from voicebill.schemas.documents import DocumentType
from voicebill.state_store import StateStore


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store with migrations applied."""
    return StateStore(temp_db)


@pytest.fixture
def config(temp_db) -> Config:
    """Default configuration pointing at the temporary database."""
    return Config(state_db_path=temp_db)


@pytest.fixture
def seeded_store(store) -> StateStore:
    """
    Store with a small directory for OWNER:

    - John Smith: invoice INV-2024-0001 (1100.00, two items)
    - Jane Doe: estimate EST-2024-0001 (Feb) and invoice INV-2024-0002 (Apr)
    - Bob Builder: no documents
    - Jon Smithers: owned by OTHER_OWNER, one invoice
    """
    john = store.create_client(make_client("John Smith", email="john@example.com"))
    jane = store.create_client(make_client("Jane Doe"))
    store.create_client(make_client("Bob Builder"))
    other = store.create_client(make_client("Jon Smithers", owner_id=OTHER_OWNER))

    store.create_document(
        make_document(
            john,
            "INV-2024-0001",
            items=[("Kitchen installation labor", "10", "100"), ("Delivery fee", "1", "100")],
        )
    )
    store.create_document(
        make_document(
            jane,
            "EST-2024-0001",
            DocumentType.ESTIMATE,
            items=[("Roof repair", "1", "500")],
            created_at="2024-02-01T10:00:00.000000Z",
        )
    )
    store.create_document(
        make_document(
            jane,
            "INV-2024-0002",
            items=[("Roof repair", "1", "450"), ("Materials", "3", "20")],
            created_at="2024-04-01T10:00:00.000000Z",
        )
    )
    store.create_document(make_document(other, "INV-2024-0001"))
    return store
