"""
Batch runner for menu upload processing.
"""
import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional

from menu_ingest.core.exceptions import MenuUploadNotFoundError
from menu_ingest.schemas.menu_upload import MenuUploadRecord, MenuUploadStatus
from menu_ingest.services.interfaces import MenuUploadRepository
from menu_ingest.services.menu_upload_worker import MenuUploadWorker


@dataclass
class RunSummary:
    """Totals for one run across all processed uploads."""
    upload_count: int = 0
    processed_count: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    duration_ms: int = 0
    failed_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        """camelCase form, as printed by the CLI."""
        data = asdict(self)
        return {
            "uploadCount": data["upload_count"],
            "processedCount": data["processed_count"],
            "totalInputTokens": data["total_input_tokens"],
            "totalOutputTokens": data["total_output_tokens"],
            "totalTokens": data["total_tokens"],
            "durationMs": data["duration_ms"],
            "failedCount": data["failed_count"],
        }


def usage_value(usage: Mapping[str, Any], camel_key: str, snake_key: str) -> int:
    """Token count under either naming convention, 0 when absent."""
    value = usage.get(camel_key)
    if value is None:
        value = usage.get(snake_key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


class MenuUploadRunner:
    """Picks uploads to process and feeds them to the worker sequentially."""

    def __init__(
        self,
        worker: MenuUploadWorker,
        store: MenuUploadRepository,
        logger: Optional[logging.Logger] = None,
    ):
        self.worker = worker
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    def _select_uploads(self, upload_id: Optional[int]) -> List[MenuUploadRecord]:
        if upload_id is not None:
            upload = self.store.get_menu_upload_by_id(upload_id)
            if upload is None:
                self.logger.error(f"[menu-worker] No menu upload found with id {upload_id}")
                raise MenuUploadNotFoundError(upload_id)
            return [upload]
        return self.store.get_menu_uploads(status=MenuUploadStatus.PENDING)

    def run(self, upload_id: Optional[int] = None, dry_run: bool = False) -> RunSummary:
        """
        Process one upload (any status) or every pending upload.

        Args:
            upload_id: Process only this upload
            dry_run: Run extraction and parsing without writing anything

        Returns:
            RunSummary with counts and token totals

        Raises:
            MenuUploadNotFoundError: upload_id given but no such upload
        """
        uploads = self._select_uploads(upload_id)

        if not uploads:
            self.logger.info("[menu-worker] No pending menu uploads to process")
            return RunSummary()

        started = time.monotonic()
        summary = RunSummary(upload_count=len(uploads))

        for upload in uploads:
            result = self.worker.process_upload(upload, dry_run=dry_run)
            summary.processed_count += result.processed_count
            if result.token_usage:
                usage = result.token_usage
                summary.total_input_tokens += usage_value(usage, "inputTokens", "input_tokens")
                summary.total_output_tokens += usage_value(usage, "outputTokens", "output_tokens")
                summary.total_tokens += usage_value(usage, "totalTokens", "total_tokens")
            if result.failed:
                summary.failed_count += 1

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        self.logger.info(f"[menu-worker] Processing complete {summary.to_dict()}")
        return summary
