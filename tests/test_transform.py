"""Tests for document conversion and cloning."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fixtures import OTHER_OWNER, OWNER

from voicebill.errors import ErrorKind, PersistenceError
from voicebill.schemas.documents import (
    DocumentSelector,
    DocumentType,
    SourceSnapshot,
    TransformJob,
    TransformJobConfig,
    TransformJobStatus,
)
from voicebill.schemas.intents import TargetClient
from voicebill.schemas.modifications import ItemModifications, ItemUpdate, NewItem
from voicebill.services.transform import (
    ALREADY_TARGET_TYPE,
    GENERIC_FAILURE,
    TransformService,
    format_transform_summary,
)


@pytest.fixture
def service(seeded_store, config):
    return TransformService(seeded_store, seeded_store, seeded_store, config)


def _pending_job(store, job_id="job-pending"):
    job = TransformJob(
        id=job_id,
        owner_id=OWNER,
        source=SourceSnapshot(
            document_id="doc-owner-1-inv-2024-0001",
            document_type=DocumentType.INVOICE,
            total=Decimal("1100"),
            client_id="client-john-smith",
        ),
        config=TransformJobConfig(target_type=DocumentType.ESTIMATE),
    )
    return store.create_job(job)


class TestFormatTransformSummary:
    """Tests for the confirmation summary line."""

    def test_conversion(self):
        """Different types describe the conversion."""
        assert (
            format_transform_summary(DocumentType.INVOICE, DocumentType.ESTIMATE)
            == "Convert invoice to estimate"
        )

    def test_same_type(self):
        """Same type says nothing needs to change."""
        summary = format_transform_summary("estimate", "estimate")
        assert summary == "No conversion needed - already the target type"


class TestExecuteTransform:
    """Tests for invoice <-> estimate conversion."""

    def test_invoice_to_estimate(self, service, seeded_store):
        """A single invoice becomes an estimate draft with the same items."""
        result = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        assert result.success
        doc = result.document
        assert doc.type is DocumentType.ESTIMATE
        assert doc.status == "draft"
        assert doc.number.startswith("EST-")
        assert doc.client_id == "client-john-smith"
        assert doc.subtotal == Decimal("1100")
        assert doc.total == Decimal("1100")
        assert doc.tax_amount == Decimal("0")
        assert doc.title == "Estimate - Converted from invoice"
        assert [(i.description, i.quantity, i.rate, i.total) for i in doc.items] == [
            ("Kitchen installation labor", Decimal("10"), Decimal("100"), Decimal("1000")),
            ("Delivery fee", Decimal("1"), Decimal("100"), Decimal("100")),
        ]
        assert result.message == "Convert invoice to estimate"

        job = seeded_store.get_job(OWNER, result.job.id)
        assert job.status is TransformJobStatus.COMPLETED
        assert job.completed_at is not None
        assert job.generated_document_id == doc.id
        assert job.source.document_id == "doc-owner-1-inv-2024-0001"
        assert job.source.total == Decimal("1100")
        assert seeded_store.get_document(OWNER, doc.id).transform_job_id == job.id

    def test_source_is_not_modified(self, service, seeded_store):
        """The source document is left as it was."""
        service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        source = seeded_store.get_document(OWNER, "doc-owner-1-inv-2024-0001")
        assert source.type is DocumentType.INVOICE
        assert source.total == Decimal("1100")

    def test_already_target_type_creates_no_job(self, service, seeded_store):
        """Converting to the type it already has is rejected before any write."""
        result = service.execute_transform(
            OWNER, DocumentType.INVOICE, client_name="John Smith"
        )

        assert not result.success
        assert result.error_kind is ErrorKind.INVALID_CONVERSION
        assert result.error == ALREADY_TARGET_TYPE
        assert seeded_store.list_jobs(OWNER) == []

    def test_several_documents_need_a_choice(self, service, seeded_store):
        """A client with several documents and no selector is ambiguous."""
        result = service.execute_transform(OWNER, DocumentType.INVOICE, client_name="Jane Doe")

        assert not result.success
        assert result.error_kind is ErrorKind.AMBIGUOUS_MATCH
        assert [d.number for d in result.documents] == ["INV-2024-0002", "EST-2024-0001"]
        assert seeded_store.list_jobs(OWNER) == []

    def test_selector_picks_most_recent(self, service):
        """With a selector the newest document is converted."""
        result = service.execute_transform(
            OWNER,
            DocumentType.ESTIMATE,
            client_name="Jane Doe",
            selector=DocumentSelector.LATEST,
        )

        assert result.success
        assert result.job.source.document_id == "doc-owner-1-inv-2024-0002"

    def test_type_filter_narrows_to_one(self, service):
        """Asking for Jane's estimate needs no selector."""
        result = service.execute_transform(
            OWNER,
            DocumentType.INVOICE,
            client_name="Jane Doe",
            document_type=DocumentType.ESTIMATE,
        )

        assert result.success
        assert result.document.type is DocumentType.INVOICE
        assert result.document.total == Decimal("500")

    def test_by_document_number(self, service):
        """A spoken number finds the source directly, any case."""
        result = service.execute_transform(
            OWNER, DocumentType.ESTIMATE, document_number="inv-2024-0002"
        )

        assert result.success
        assert result.job.source.document_id == "doc-owner-1-inv-2024-0002"

    def test_unknown_number(self, service):
        """An unknown number without a client name is not found."""
        result = service.execute_transform(
            OWNER, DocumentType.ESTIMATE, document_number="INV-1999-0001"
        )
        assert result.error_kind is ErrorKind.NOT_FOUND

    def test_other_owners_document_is_invisible(self, service, seeded_store):
        """Another tenant's document id is treated as missing."""
        result = service.execute_transform(
            OTHER_OWNER, DocumentType.ESTIMATE, source_document_id="doc-owner-1-inv-2024-0001"
        )

        assert result.error_kind is ErrorKind.NOT_FOUND
        assert seeded_store.list_jobs(OTHER_OWNER) == []

    def test_unknown_client_returns_suggestions(self, service):
        """A misheard name fails with ranked suggestions."""
        result = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="Jhon Smyth")

        assert result.error_kind is ErrorKind.NOT_FOUND
        assert result.needs_disambiguation
        assert result.suggestions[0].name == "John Smith"

    def test_missing_owner(self, service, seeded_store):
        """No owner, no lookup."""
        result = service.execute_transform("", DocumentType.ESTIMATE, client_name="John Smith")

        assert result.error_kind is ErrorKind.NOT_AUTHENTICATED
        assert seeded_store.list_jobs(OWNER) == []

    def test_contract_target_is_rejected(self, service):
        """Only invoices and estimates can be produced."""
        result = service.execute_transform(OWNER, DocumentType.CONTRACT, client_name="John Smith")
        assert result.error_kind is ErrorKind.INVALID_CONVERSION

    def test_failed_document_write_cancels_job(self, seeded_store, config):
        """A failure before the document exists leaves the job cancelled."""
        store = MagicMock(wraps=seeded_store)
        store.create_document.side_effect = PersistenceError("disk full")
        service = TransformService(store, store, store, config)

        result = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        assert not result.success
        assert result.error_kind is ErrorKind.PERSISTENCE_FAILURE
        assert result.error == GENERIC_FAILURE
        (job,) = seeded_store.list_jobs(OWNER)
        assert job.status is TransformJobStatus.CANCELLED
        assert job.generated_document_id is None

    def test_failed_finalize_marks_job_failed(self, seeded_store, config, monkeypatch):
        """A failure after the document exists leaves the job failed."""
        real_update = seeded_store.update_job_status

        def flaky_update(owner_id, job_id, status, generated_document_id=None):
            if status is TransformJobStatus.COMPLETED:
                raise PersistenceError("connection lost")
            return real_update(owner_id, job_id, status, generated_document_id)

        monkeypatch.setattr(seeded_store, "update_job_status", flaky_update)
        service = TransformService(seeded_store, seeded_store, seeded_store, config)

        result = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        assert not result.success
        assert result.document is not None
        (job,) = seeded_store.list_jobs(OWNER)
        assert job.status is TransformJobStatus.FAILED
        # The written document is kept
        assert seeded_store.get_document(OWNER, result.document.id) is not None

    def test_reload_failure_after_completion_still_succeeds(
        self, seeded_store, config, monkeypatch
    ):
        """Once the completed status is written, a failed read-back is not an error."""
        real_get_job = seeded_store.get_job

        def failing_get_job(owner_id, job_id):
            raise PersistenceError("connection lost")

        monkeypatch.setattr(seeded_store, "get_job", failing_get_job)
        service = TransformService(seeded_store, seeded_store, seeded_store, config)

        result = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        assert result.success
        assert result.job.status is TransformJobStatus.COMPLETED
        assert result.job.generated_document_id == result.document.id
        stored = real_get_job(OWNER, result.job.id)
        assert stored.status is TransformJobStatus.COMPLETED


class TestJobs:
    """Tests for job lookup and cancellation."""

    def test_get_job(self, service):
        """Jobs are readable by their owner only."""
        done = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        assert service.get_job(OWNER, done.job.id).job.status is TransformJobStatus.COMPLETED
        assert service.get_job(OTHER_OWNER, done.job.id).error_kind is ErrorKind.NOT_FOUND

    def test_cancel_pending_job(self, service, seeded_store):
        """A pending job can be cancelled."""
        _pending_job(seeded_store)

        result = service.cancel_job(OWNER, "job-pending")

        assert result.success
        assert seeded_store.get_job(OWNER, "job-pending").status is TransformJobStatus.CANCELLED

    def test_cancel_completed_job_is_refused(self, service, seeded_store):
        """Terminal jobs never change."""
        done = service.execute_transform(OWNER, DocumentType.ESTIMATE, client_name="John Smith")

        result = service.cancel_job(OWNER, done.job.id)

        assert result.error_kind is ErrorKind.UNSUPPORTED
        assert result.error == "Job is already completed"
        assert seeded_store.get_job(OWNER, done.job.id).status is TransformJobStatus.COMPLETED

    def test_cancel_unknown_job(self, service):
        """Missing jobs are reported as not found."""
        assert service.cancel_job(OWNER, "nope").error_kind is ErrorKind.NOT_FOUND


class TestCloneDocument:
    """Tests for copying a document with item changes."""

    def test_clone_for_new_client_with_changes(self, service, seeded_store):
        """The copy goes to a newly created client with the labor rate raised."""
        mods = ItemModifications(update_items=[ItemUpdate(match="labor", new_rate="115")])

        result = service.clone_document(
            OWNER,
            "John Smith",
            target_client=TargetClient(name="Alice Cooper", email="alice@example.com"),
            modifications=mods,
        )

        assert result.success
        doc = result.document
        assert doc.type is DocumentType.INVOICE
        assert doc.total == Decimal("1250")
        assert result.client.name == "Alice Cooper"
        assert doc.client_id == result.client.id
        assert seeded_store.get_client(OWNER, result.client.id).email == "alice@example.com"
        assert seeded_store.list_jobs(OWNER) == []

    def test_clone_for_existing_client_reuses_it(self, service, seeded_store):
        """A confidently matched target client is not duplicated."""
        before = len(seeded_store.list_clients(OWNER))

        result = service.clone_document(
            OWNER, "John Smith", target_client=TargetClient(name="bob builder")
        )

        assert result.client.id == "client-bob-builder"
        assert len(seeded_store.list_clients(OWNER)) == before

    def test_clone_to_same_client(self, service):
        """Without a target the copy stays with the source client."""
        mods = ItemModifications(
            remove_items=["delivery"], add_items=[NewItem(description="Cleanup", rate="40")]
        )
        result = service.clone_document(
            OWNER, "Jane Doe", document_type=DocumentType.ESTIMATE, modifications=mods
        )

        assert result.success
        assert result.document.type is DocumentType.ESTIMATE
        assert result.document.client_id == "client-jane-doe"
        assert result.document.total == Decimal("540")

    def test_clone_needs_a_single_source(self, service):
        """Several documents without a selector are ambiguous."""
        result = service.clone_document(OWNER, "Jane Doe")
        assert result.error_kind is ErrorKind.AMBIGUOUS_MATCH
