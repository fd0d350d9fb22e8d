"""
Unit tests for the in-memory stores.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from finsuggest.core.errors import DownloadError
from finsuggest.core.models import (
    AttachmentJob,
    Currency,
    DetectionMethod,
    JobStatus,
    Suggestion,
    SuggestionStatus,
    TransactionType,
)
from finsuggest.stores.memory import (
    AttachmentSource,
    BlobStore,
    JobStore,
    ManualReviewSink,
    SuggestionStore,
)


def _suggestion(amount="100.00", operation_id="op-1", **kwargs):
    return Suggestion(
        type=TransactionType.PAYMENT,
        amount=Decimal(amount),
        currency=Currency.MXN,
        date=date(2026, 3, 10),
        description="Pago",
        confidence=80,
        detection_method=DetectionMethod.AI,
        operation_id=operation_id,
        **kwargs,
    )


class TestSuggestionStore:
    def setup_method(self):
        self.store = SuggestionStore()

    def test_insert_and_get(self):
        s = self.store.insert_suggestion(_suggestion())

        assert self.store.get(s.id) is s
        assert len(self.store) == 1

    def test_insert_same_id_twice(self):
        s = self.store.insert_suggestion(_suggestion())

        with pytest.raises(ValueError):
            self.store.insert_suggestion(s)

    def test_approve(self):
        s = self.store.insert_suggestion(_suggestion())

        approved = self.store.approve(s.id)

        assert approved.status is SuggestionStatus.APPROVED
        assert self.store.get(s.id).status is SuggestionStatus.APPROVED

    def test_reject_keeps_suggestion(self):
        s = self.store.insert_suggestion(_suggestion())

        self.store.reject(s.id, "not ours")

        kept = self.store.get(s.id)
        assert kept.status is SuggestionStatus.REJECTED
        assert kept.rejection_reason == "not ours"

    def test_status_changes_only_once(self):
        s = self.store.insert_suggestion(_suggestion())
        self.store.approve(s.id)

        with pytest.raises(ValueError):
            self.store.reject(s.id)

    def test_unknown_id(self):
        with pytest.raises(KeyError):
            self.store.approve("missing")

    def test_find_similar_inclusive_ranges(self):
        inside = self.store.insert_suggestion(_suggestion("102.00"))
        self.store.insert_suggestion(_suggestion("103.00"))
        self.store.insert_suggestion(_suggestion("100.00", operation_id="op-2"))

        found = self.store.find_similar(
            "op-1",
            TransactionType.PAYMENT,
            Currency.MXN,
            (Decimal("98.00"), Decimal("102.00")),
            (date(2026, 3, 10), date(2026, 3, 10)),
        )

        assert [s.id for s in found] == [inside.id]

    def test_find_by_attachment_hash(self):
        first = self.store.insert_suggestion(_suggestion(attachment_hash="h1"))
        self.store.insert_suggestion(_suggestion("200.00", attachment_hash="h1"))

        assert self.store.find_by_attachment_hash("h1").id == first.id
        assert self.store.find_by_attachment_hash("h2") is None

    def test_list_suggestions_filters(self):
        self.store.insert_suggestion(_suggestion())
        dup = self.store.insert_suggestion(_suggestion(is_duplicate=True))
        self.store.insert_suggestion(_suggestion(operation_id="op-2"))

        assert len(self.store.list_suggestions("op-1")) == 2
        assert dup not in self.store.list_suggestions("op-1", include_duplicates=False)
        assert len(self.store.list_suggestions(status=SuggestionStatus.PENDING)) == 3


class TestJobStore:
    def test_returns_copies(self):
        store = JobStore()
        job = AttachmentJob("a1", message_id="m1")
        store.update_job_status(job)

        job.status = JobStatus.READY
        stored = store.get_job("a1")

        assert stored.status is JobStatus.PENDING
        stored.status = JobStatus.FAILED
        assert store.get_job("a1").status is JobStatus.PENDING

    def test_jobs_for_message(self):
        store = JobStore()
        store.update_job_status(AttachmentJob("a1", message_id="m1"))
        store.update_job_status(AttachmentJob("a2", message_id="m1"))
        store.update_job_status(AttachmentJob("b1", message_id="m2"))

        assert {j.attachment_ref for j in store.get_jobs_for_message("m1")} == {"a1", "a2"}
        assert store.get_job("zzz") is None


class TestBlobStore:
    def test_upload_download(self):
        store = BlobStore()

        key = store.upload("k", b"data")

        assert key == "k"
        assert store.exists("k")
        assert store.download("k") == b"data"

    def test_missing_key(self):
        with pytest.raises(KeyError):
            BlobStore().download("nope")


class TestManualReviewSink:
    def test_idempotent_on_hash(self):
        sink = ManualReviewSink()

        assert sink.enqueue_for_review("ref", "scan.pdf", "h1", reason="insufficient text") is True
        assert sink.enqueue_for_review("ref2", "scan-copy.pdf", "h1") is False

        [item] = sink.list_items()
        assert item.file_name == "scan.pdf"
        assert item.reason == "insufficient text"


class TestAttachmentSource:
    def test_fetch_and_list(self):
        source = AttachmentSource()
        source.add("m1", "a1", b"one")
        source.add("m1", "a2", b"two")
        source.add("m1", "a1", b"one")

        assert source.list_attachments("m1") == ["a1", "a2"]
        assert source.list_attachments("m2") == []
        assert asyncio.run(source.fetch("a2")) == b"two"

    def test_unknown_ref(self):
        with pytest.raises(DownloadError):
            asyncio.run(AttachmentSource().fetch("missing"))
