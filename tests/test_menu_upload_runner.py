"""
Tests for the batch runner: upload selection, summaries and token totals.
"""
from unittest.mock import MagicMock

import pytest

from menu_ingest.core.exceptions import MenuUploadNotFoundError
from menu_ingest.schemas.menu_upload import MenuUploadItemStatus, MenuUploadStatus
from menu_ingest.services.menu_upload_runner import MenuUploadRunner, RunSummary, usage_value
from menu_ingest.services.menu_upload_worker import MenuUploadWorker
from mocks import make_parse_result


def build_runner(store, extractor, parser):
    worker = MenuUploadWorker(extractor, parser, store)
    return MenuUploadRunner(worker, store)


class TestRunSummary:
    """Test summary serialization and usage parsing."""

    def test_to_dict_is_camel_case(self):
        """Should expose the camelCase summary shape."""
        summary = RunSummary(upload_count=2, processed_count=3, total_tokens=10, failed_count=1)
        assert summary.to_dict() == {
            "uploadCount": 2,
            "processedCount": 3,
            "totalInputTokens": 0,
            "totalOutputTokens": 0,
            "totalTokens": 10,
            "durationMs": 0,
            "failedCount": 1,
        }

    def test_usage_value(self):
        """Should read either naming convention and default to 0."""
        assert usage_value({"inputTokens": 5}, "inputTokens", "input_tokens") == 5
        assert usage_value({"input_tokens": 7}, "inputTokens", "input_tokens") == 7
        assert usage_value({}, "inputTokens", "input_tokens") == 0
        assert usage_value({"inputTokens": "many"}, "inputTokens", "input_tokens") == 0


class TestRun:
    """Test MenuUploadRunner.run."""

    def test_no_pending_uploads(self, store, extractor, parser):
        """Should return a zero summary without raising."""
        summary = build_runner(store, extractor, parser).run()

        assert summary == RunSummary()
        assert summary.upload_count == 0
        assert summary.processed_count == 0
        assert summary.failed_count == 0
        extractor.extract_upload_text.assert_not_called()

    def test_only_pending_uploads_are_picked(self, store, extractor, parser):
        """Should skip uploads that are not pending."""
        pending = store.create_menu_upload(restaurant_id=44, file_url="https://x/menu.pdf")
        store.create_menu_upload(
            restaurant_id=44, file_url="https://x/old.pdf", status=MenuUploadStatus.NEEDS_REVIEW
        )

        summary = build_runner(store, extractor, parser).run()

        assert summary.upload_count == 1
        assert extractor.extract_upload_text.call_args.args[0].id == pending.id

    def test_truffle_fries_run(self, store, extractor, parser):
        """Should create one item and finish in needs_review."""
        upload = store.create_menu_upload(restaurant_id=44, menu_id=55, file_url="https://x/menu.pdf")

        summary = build_runner(store, extractor, parser).run()

        assert summary.upload_count == 1
        assert summary.processed_count == 1
        assert summary.total_input_tokens == 500
        assert summary.total_output_tokens == 120
        assert summary.total_tokens == 620
        assert summary.failed_count == 0

        items = store.get_menu_upload_items(upload.id)
        assert len(items) == 1
        assert [t.model_dump() for t in items[0].suggested_allergens] == [
            {"code": "dairy", "label": "dairy", "confidence": 0.9, "source": "ai"}
        ]
        updated = store.get_menu_upload_by_id(upload.id)
        assert updated.status == MenuUploadStatus.NEEDS_REVIEW
        assert updated.metadata["aiMetrics"]["lastItemsProcessed"] == 1

    def test_targeted_upload_any_status(self, store, extractor, parser):
        """Should reprocess a targeted upload regardless of status."""
        upload = store.create_menu_upload(
            restaurant_id=44, file_url="https://x/menu.pdf", status=MenuUploadStatus.FAILED
        )

        summary = build_runner(store, extractor, parser).run(upload_id=upload.id)

        assert summary.upload_count == 1
        assert store.get_menu_upload_by_id(upload.id).status == MenuUploadStatus.NEEDS_REVIEW

    def test_targeted_upload_missing(self, store, extractor, parser):
        """Should raise when the targeted upload does not exist."""
        with pytest.raises(MenuUploadNotFoundError):
            build_runner(store, extractor, parser).run(upload_id=999)

    def test_sums_camel_and_snake_case_usage(self, store, extractor):
        """Should total tokens across both usage naming conventions."""
        store.create_menu_upload(restaurant_id=44, file_url="https://x/a.pdf")
        store.create_menu_upload(restaurant_id=44, file_url="https://x/b.pdf")
        parser = MagicMock()
        parser.parse_menu_text.side_effect = [
            make_parse_result(usage={"inputTokens": 100, "outputTokens": 20, "totalTokens": 120}),
            make_parse_result(usage={"input_tokens": 50, "output_tokens": 5, "total_tokens": 55}),
        ]

        summary = build_runner(store, extractor, parser).run()

        assert summary.total_input_tokens == 150
        assert summary.total_output_tokens == 25
        assert summary.total_tokens == 175
        assert summary.processed_count == 2

    def test_failures_are_counted(self, store, extractor, parser):
        """Should count failed uploads and keep processing the rest."""
        store.create_menu_upload(restaurant_id=None, file_url="https://x/a.pdf")
        good = store.create_menu_upload(restaurant_id=44, file_url="https://x/b.pdf")

        summary = build_runner(store, extractor, parser).run()

        assert summary.upload_count == 2
        assert summary.failed_count == 1
        assert summary.processed_count == 1
        assert store.get_menu_upload_by_id(good.id).status == MenuUploadStatus.NEEDS_REVIEW

    def test_dry_run_reports_without_writing(self, store, extractor, parser):
        """Should report counts and tokens while writing nothing."""
        upload = store.create_menu_upload(restaurant_id=44, file_url="https://x/menu.pdf")
        wrapped = MagicMock(wraps=store)

        summary = build_runner(wrapped, extractor, parser).run(dry_run=True)

        assert summary.processed_count == 1
        assert summary.total_tokens == 620
        wrapped.create_menu_upload_item.assert_not_called()
        wrapped.update_menu_upload.assert_not_called()
        wrapped.update_menu_upload_item.assert_not_called()
        assert store.get_menu_upload_by_id(upload.id).status == MenuUploadStatus.PENDING
        assert store.get_menu_upload_items(upload.id, status=MenuUploadItemStatus.PENDING) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
