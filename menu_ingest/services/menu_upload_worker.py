"""
Menu upload processing worker.

Moves one upload through pending -> processing -> needs_review | failed:
extracts its text, asks the AI parser for dishes, retires earlier unreviewed
candidates and stores the new batch for human review.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from menu_ingest.core.timeutil import now_ms
from menu_ingest.schemas.menu_upload import (
    ActivityEvent,
    ActivityEventType,
    CreateMenuUploadItemInput,
    MenuUploadItemRecord,
    MenuUploadItemStatus,
    MenuUploadRecord,
    MenuUploadStatus,
    ParsedMenuItem,
)
from menu_ingest.services.activity_log import append_activity_event
from menu_ingest.services.interfaces import MenuTextParser, MenuUploadRepository, TextExtractor
from menu_ingest.services.tag_mapping import clamp_confidence, map_tag_to_identified_tag

MISSING_RESTAURANT_REASON = "Menu upload missing restaurant context"
NO_ITEMS_WARNING = "AI did not identify any menu items"
UNKNOWN_ERROR_REASON = "Unknown AI processing error"
MAX_FAILURE_REASON_LENGTH = 500


@dataclass
class ProcessResult:
    """Outcome of processing a single upload."""
    processed_count: int
    token_usage: Optional[Dict[str, Any]]
    duration_ms: int
    failed: bool


def as_number(value: Any) -> Optional[int]:
    """Int from an integral int/float/numeric string, otherwise None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def _resolve_id(column_value: Any, metadata: Mapping[str, Any], camel_key: str, snake_key: str) -> Optional[int]:
    # 0 counts as missing, like an unset column
    resolved = as_number(column_value)
    if resolved:
        return resolved
    hint = metadata.get(camel_key)
    if hint is None:
        hint = metadata.get(snake_key)
    return as_number(hint) or None


def resolve_restaurant_id(upload: MenuUploadRecord) -> Optional[int]:
    return _resolve_id(upload.restaurant_id, upload.metadata, "restaurantId", "restaurant_id")


def resolve_menu_id(upload: MenuUploadRecord) -> Optional[int]:
    return _resolve_id(upload.menu_id, upload.metadata, "menuId", "menu_id")


def get_metadata_string(metadata: Mapping[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def build_create_payload(
    upload: MenuUploadRecord,
    restaurant_id: int,
    menu_id: Optional[int],
    ai_item: ParsedMenuItem,
) -> CreateMenuUploadItemInput:
    """Map one AI item onto a pending upload item."""
    return CreateMenuUploadItemInput(
        upload_id=upload.id,
        restaurant_id=restaurant_id,
        menu_id=menu_id,
        name=ai_item.name,
        description=ai_item.description,
        price=ai_item.price.amount if ai_item.price else None,
        raw_text=ai_item.raw_text or ai_item.description or ai_item.name,
        suggested_category=ai_item.category or ai_item.section,
        ai_payload=ai_item.ai_payload,
        suggested_allergens=[map_tag_to_identified_tag(t) for t in ai_item.allergens],
        suggested_dietary=[map_tag_to_identified_tag(t) for t in ai_item.dietary_tags],
        confidence=clamp_confidence(ai_item.confidence),
        status=MenuUploadItemStatus.PENDING,
    )


class MenuUploadWorker:
    """
    Processes menu uploads one at a time.

    Collaborators are injected; the worker holds no other state. With
    dry_run=True the extractor and parser still run but nothing is written.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        parser: MenuTextParser,
        store: MenuUploadRepository,
        logger: Optional[logging.Logger] = None,
        parser_version: Optional[str] = None,
        max_items: int = 150,
        default_locale: str = "en-GB",
    ):
        """
        Initialize menu upload worker.

        Args:
            extractor: Reads text out of the uploaded file
            parser: AI parser producing dish candidates
            store: Record store for uploads and items
            logger: Logger (defaults to this module's logger)
            parser_version: Recorded on the upload when set
            max_items: Maximum candidates stored per upload
            default_locale: Locale hint when metadata has none
        """
        self.extractor = extractor
        self.parser = parser
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.parser_version = parser_version
        self.max_items = max_items
        self.default_locale = default_locale

    def _discard_existing_items(
        self, upload_id: int, items: List[MenuUploadItemRecord], dry_run: bool
    ) -> None:
        targets = [item for item in items if item.is_reviewable]
        if not targets:
            return

        self.logger.info(
            f"[menu-worker] Upload {upload_id} has {len(targets)} existing AI items. "
            f"Marking as discarded before reprocessing."
        )

        if dry_run:
            for item in targets:
                self.logger.info(f"[menu-worker] DRY RUN: would discard menu_upload_item {item.id}")
            return

        for item in targets:
            try:
                self.store.update_menu_upload_item(item.id, status=MenuUploadItemStatus.DISCARDED)
            except Exception:
                self.logger.error(
                    f"[menu-worker] Failed to discard previous item {item.id}", exc_info=True
                )

    def _persist_ai_items(
        self,
        upload: MenuUploadRecord,
        restaurant_id: int,
        menu_id: Optional[int],
        ai_items: List[ParsedMenuItem],
        dry_run: bool,
    ) -> None:
        for ai_item in ai_items:
            try:
                payload = build_create_payload(upload, restaurant_id, menu_id, ai_item)
            except ValueError:
                self.logger.error(
                    f"[menu-worker] Invalid menu_upload_item for \"{ai_item.name}\"", exc_info=True
                )
                continue

            if dry_run:
                self.logger.info(
                    f"[menu-worker] DRY RUN: would create menu_upload_item for \"{payload.name}\""
                )
                continue

            try:
                self.store.create_menu_upload_item(payload)
            except Exception:
                self.logger.error(
                    f"[menu-worker] Failed to create menu_upload_item for \"{payload.name}\"",
                    exc_info=True,
                )

    def _mark_upload_status(
        self,
        upload: MenuUploadRecord,
        status: MenuUploadStatus,
        base_metadata: Dict[str, Any],
        dry_run: bool,
        failure_reason: Optional[str] = None,
        summary: Optional[str] = None,
        warnings: Optional[List[str]] = None,
        model: Optional[str] = None,
        token_usage: Optional[Dict[str, Any]] = None,
        extraction_source: Optional[str] = None,
        item_count: Optional[int] = None,
        activity_event: Optional[ActivityEvent] = None,
        metrics: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Merge AI results into the upload metadata and persist the new status.

        Each ai* key keeps its previous value when no new value is given.

        Returns:
            The merged metadata (also in dry-run, where nothing is written)
        """
        now = now_ms()
        merged = dict(base_metadata)

        updates = {
            "aiSummary": summary,
            "aiWarnings": warnings,
            "aiModel": model,
            "aiTokenUsage": token_usage,
            "aiExtractionSource": extraction_source,
            "aiItemCount": item_count,
        }
        for key, value in updates.items():
            if value is not None:
                merged[key] = value
        merged["lastProcessedAt"] = now

        if metrics is not None:
            existing_metrics = base_metadata.get("aiMetrics")
            ai_metrics = dict(existing_metrics) if isinstance(existing_metrics, dict) else {}
            ai_metrics["lastRunAt"] = now
            for key, metric in (
                ("lastDurationMs", "duration_ms"),
                ("lastItemsProcessed", "items_processed"),
                ("lastTokenUsage", "token_usage"),
            ):
                if metrics.get(metric) is not None:
                    ai_metrics[key] = metrics[metric]
            merged["aiMetrics"] = ai_metrics

        if activity_event is not None:
            merged = append_activity_event(merged, activity_event)

        if dry_run:
            self.logger.info(
                f"[menu-worker] DRY RUN: would update menu_upload {upload.id} -> status={status.value}, "
                f"items={item_count if item_count is not None else 'n/a'}"
            )
            return merged

        changes: Dict[str, Any] = {
            "status": status,
            "processed_at": now,
            "failure_reason": failure_reason,
            "metadata": merged,
        }
        if self.parser_version:
            changes["parser_version"] = self.parser_version
        if model:
            changes["ai_model"] = model

        self.store.update_menu_upload(upload.id, **changes)
        return merged

    def process_upload(self, upload: MenuUploadRecord, dry_run: bool = False) -> ProcessResult:
        """
        Process one upload end to end.

        Never raises for per-upload problems; failures are recorded on the
        upload (status=failed, failure_reason) and reported via the result.

        Args:
            upload: Upload to process (any status)
            dry_run: Call extractor and parser but write nothing

        Returns:
            ProcessResult with item count, token usage and duration
        """
        upload_id = upload.id
        working_metadata: Dict[str, Any] = dict(upload.metadata or {})
        restaurant_id = resolve_restaurant_id(upload)
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        if not restaurant_id:
            self.logger.error(f"[menu-worker] Upload {upload_id} failed: {MISSING_RESTAURANT_REASON}")
            try:
                self._mark_upload_status(
                    upload,
                    MenuUploadStatus.FAILED,
                    working_metadata,
                    dry_run,
                    failure_reason=MISSING_RESTAURANT_REASON,
                )
            except Exception:
                self.logger.error(
                    f"[menu-worker] Failed to mark upload {upload_id} as failed", exc_info=True
                )
            return ProcessResult(processed_count=0, token_usage=None, duration_ms=elapsed_ms(), failed=True)

        working_metadata["processingStartedAt"] = now_ms()

        if dry_run:
            self.logger.info(f"[menu-worker] DRY RUN: would set upload {upload_id} status to processing")
        else:
            try:
                self.store.update_menu_upload(
                    upload_id,
                    status=MenuUploadStatus.PROCESSING,
                    failure_reason=None,
                    metadata=working_metadata,
                )
            except Exception:
                self.logger.error(
                    f"[menu-worker] Failed to mark upload {upload_id} as processing", exc_info=True
                )

        try:
            extraction = self.extractor.extract_upload_text(upload)
            self.logger.info(
                f"[menu-worker] Upload {upload_id} extracted {len(extraction.text)} characters "
                f"from {extraction.source.upper()}"
            )

            ai_result = self.parser.parse_menu_text(
                extraction.text,
                restaurant_name=get_metadata_string(working_metadata, "restaurantName"),
                menu_name=get_metadata_string(working_metadata, "menuName"),
                upload_file_name=upload.file_name,
                locale=get_metadata_string(working_metadata, "locale") or self.default_locale,
            )
            self.logger.info(
                f"[menu-worker] Upload {upload_id} AI inference produced {len(ai_result.items)} items "
                f"(model: {ai_result.model})"
            )

            existing_items = self.store.get_menu_upload_items(upload_id)
            self._discard_existing_items(upload_id, existing_items, dry_run)

            ai_items = ai_result.items[:self.max_items]
            if len(ai_result.items) > len(ai_items):
                self.logger.warning(
                    f"[menu-worker] Upload {upload_id} returned {len(ai_result.items)} items. "
                    f"Only the first {len(ai_items)} will be stored."
                )

            menu_id = resolve_menu_id(upload)
            self._persist_ai_items(upload, restaurant_id, menu_id, ai_items, dry_run)

            warnings = list(ai_result.warnings)
            if not ai_items:
                warnings.append(NO_ITEMS_WARNING)

            activity_event = ActivityEvent(
                type=ActivityEventType.UPLOAD_READY,
                timestamp=now_ms(),
                upload_id=upload_id,
                restaurant_id=restaurant_id,
                menu_id=menu_id,
                item_count=len(ai_items),
                payload={"model": ai_result.model},
            )

            duration_ms = elapsed_ms()
            working_metadata = self._mark_upload_status(
                upload,
                MenuUploadStatus.NEEDS_REVIEW,
                working_metadata,
                dry_run,
                summary=ai_result.summary,
                warnings=warnings,
                model=ai_result.model,
                token_usage=ai_result.usage,
                extraction_source=extraction.source,
                item_count=len(ai_items),
                activity_event=activity_event,
                metrics={
                    "duration_ms": duration_ms,
                    "token_usage": ai_result.usage,
                    "items_processed": len(ai_items),
                },
            )

            return ProcessResult(
                processed_count=len(ai_items),
                token_usage=ai_result.usage,
                duration_ms=duration_ms,
                failed=False,
            )
        except Exception as e:
            duration_ms = elapsed_ms()
            message = str(e) or UNKNOWN_ERROR_REASON
            self.logger.error(f"[menu-worker] Upload {upload_id} encountered an error: {message}", exc_info=True)

            try:
                self._mark_upload_status(
                    upload,
                    MenuUploadStatus.FAILED,
                    working_metadata,
                    dry_run,
                    failure_reason=message[:MAX_FAILURE_REASON_LENGTH],
                    extraction_source="error",
                    metrics={"duration_ms": duration_ms, "items_processed": 0},
                )
            except Exception:
                self.logger.error(
                    f"[menu-worker] Failed to mark upload {upload_id} as failed", exc_info=True
                )

            return ProcessResult(processed_count=0, token_usage=None, duration_ms=duration_ms, failed=True)
