"""Tests for merging several clients' documents."""

from decimal import Decimal

import pytest
from fixtures import OWNER

from voicebill.errors import ErrorKind
from voicebill.schemas.documents import DocumentType
from voicebill.schemas.intents import TargetClient
from voicebill.services.transform import MergeSlotState, TransformService


@pytest.fixture
def service(seeded_store, config):
    return TransformService(seeded_store, seeded_store, seeded_store, config)


class TestPrepareMerge:
    """Tests for concurrent slot resolution."""

    def test_single_documents_are_selected(self, service):
        """A client with one document is picked automatically."""
        preview = service.prepare_merge(OWNER, ["John Smith", "Jane Doe"])

        john, jane = preview.slots
        assert john.state is MergeSlotState.SELECTED
        assert john.selected.number == "INV-2024-0001"
        assert jane.state is MergeSlotState.MANUAL_SELECTION
        assert len(jane.documents) == 2
        assert jane.reason == "Jane Doe has 2 documents"
        assert not preview.ready

    def test_slot_order_matches_input(self, service):
        """Slots come back in the order the names were given."""
        names = ["Jane Doe", "Bob Builder", "John Smith"]
        preview = service.prepare_merge(OWNER, names)
        assert [s.client_name for s in preview.slots] == names
        assert [s.index for s in preview.slots] == [0, 1, 2]

    def test_type_filter(self, service):
        """Filtering by type can make a slot unambiguous."""
        preview = service.prepare_merge(
            OWNER, ["John Smith", "Jane Doe"], document_type=DocumentType.INVOICE
        )
        assert preview.ready
        assert preview.slots[1].selected.number == "INV-2024-0002"

    def test_unknown_name_goes_to_manual_selection(self, service):
        """A misheard name keeps its suggestions for the user."""
        preview = service.prepare_merge(OWNER, ["Jhon Smyth", "John Smith"])

        slot = preview.slots[0]
        assert slot.state is MergeSlotState.MANUAL_SELECTION
        assert slot.suggestions[0].name == "John Smith"
        assert preview.slots[1].state is MergeSlotState.SELECTED

    def test_search_failure_affects_only_its_slot(self, service, monkeypatch):
        """One failing search does not fail the whole merge."""
        real_search = service.search.search

        def search(owner_id, name, *args, **kwargs):
            if name == "Jane Doe":
                raise RuntimeError("boom")
            return real_search(owner_id, name, *args, **kwargs)

        monkeypatch.setattr(service.search, "search", search)

        preview = service.prepare_merge(OWNER, ["John Smith", "Jane Doe"])

        assert preview.slots[0].state is MergeSlotState.SELECTED
        assert preview.slots[1].state is MergeSlotState.MANUAL_SELECTION
        assert preview.slots[1].reason == "Search failed, pick manually"

    def test_missing_owner(self, service):
        """No owner, no search."""
        preview = service.prepare_merge("", ["John Smith"])

        assert preview.error_kind is ErrorKind.NOT_AUTHENTICATED
        assert preview.slots == []
        assert service.execute_merge(preview).error_kind is ErrorKind.NOT_AUTHENTICATED


class TestExecuteMerge:
    """Tests for persisting the merged document."""

    def test_refuses_until_every_slot_is_selected(self, service):
        """Pending slots are named in the error."""
        preview = service.prepare_merge(OWNER, ["John Smith", "Jane Doe"])

        result = service.execute_merge(preview)

        assert result.error_kind is ErrorKind.AMBIGUOUS_MATCH
        assert result.error == "Choose a document for: Jane Doe"

    def test_manual_pick_then_merge(self, service, seeded_store):
        """After a manual pick the combined draft is written."""
        preview = service.prepare_merge(OWNER, ["John Smith", "Jane Doe"])
        picked = service.select_merge_document(preview, 1, "doc-owner-1-inv-2024-0002")
        assert picked.success
        assert preview.ready

        result = service.execute_merge(preview)

        assert result.success
        doc = result.document
        assert len(doc.items) == 4
        assert doc.subtotal == Decimal("1610")
        assert doc.total == Decimal("1610")
        assert doc.type is DocumentType.INVOICE
        assert doc.client_id == "client-john-smith"
        assert doc.title == "Invoice - Merged from INV-2024-0001, INV-2024-0002"
        assert seeded_store.get_document(OWNER, doc.id) is not None

    def test_merge_for_target_client(self, service):
        """A named target client receives the merged document."""
        preview = service.prepare_merge(
            OWNER,
            ["John Smith", "Jane Doe"],
            document_type=DocumentType.INVOICE,
            target_client=TargetClient(name="Acme Holdings"),
        )

        result = service.execute_merge(preview)

        assert result.success
        assert result.client.name == "Acme Holdings"
        assert result.document.client_id == result.client.id

    def test_pick_rejects_unknown_document(self, service):
        """Only the owner's documents can fill a slot."""
        preview = service.prepare_merge(OWNER, ["Jane Doe"])

        foreign = service.select_merge_document(preview, 0, "doc-owner-2-inv-2024-0001")
        assert foreign.error_kind is ErrorKind.NOT_FOUND
        assert service.select_merge_document(preview, 5, "x").error_kind is ErrorKind.NOT_FOUND
        assert not preview.ready
