"""
Review actions on AI-suggested upload items: promote to a live menu, or discard.

Both actions keep an audit trail in the item's metadata and append an event
to the upload's activity log. Who may perform them is decided by the caller.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from menu_ingest.core.exceptions import (
    MenuNotFoundError,
    MenuUploadItemConflictError,
    MenuUploadItemNotFoundError,
    MenuUploadNotFoundError,
    MissingRestaurantContextError,
    MissingTargetMenuError,
)
from menu_ingest.core.timeutil import now_ms
from menu_ingest.models.menu import MenuItem
from menu_ingest.schemas.menu_upload import (
    ActivityEvent,
    ActivityEventType,
    IdentifiedTag,
    MenuUploadItemRecord,
    MenuUploadItemStatus,
    MenuUploadRecord,
)
from menu_ingest.services.activity_log import append_activity_event
from menu_ingest.services.menu_upload_store import MenuUploadStore
from menu_ingest.services.menu_upload_worker import resolve_restaurant_id

logger = logging.getLogger(__name__)

UNTITLED_DISH = "Untitled Dish"
MAX_FALLBACK_NAME_LENGTH = 120
DISCARD_TARGET_STATUSES = {MenuUploadItemStatus.DISCARDED, MenuUploadItemStatus.NEEDS_REVIEW}


@dataclass
class ReviewActor:
    """Person performing a review action."""
    email: str
    id: Optional[Union[int, str]] = None


@dataclass
class PromotionResult:
    menu_item_id: int
    upload_item: MenuUploadItemRecord
    overrides: Dict[str, Any]


def fallback_name(name: Optional[str], raw_text: Optional[str]) -> str:
    """Name, else first line of the raw text (120 chars max), else 'Untitled Dish'."""
    if name and name.strip():
        return name.strip()
    if raw_text and raw_text.strip():
        first_line = raw_text.strip().splitlines()[0].strip()
        if first_line:
            return first_line[:MAX_FALLBACK_NAME_LENGTH]
    return UNTITLED_DISH


def to_comma_separated(tags: List[IdentifiedTag]) -> str:
    labels = [tag.label.strip() for tag in tags if tag.label and tag.label.strip()]
    return ", ".join(labels)


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else None


class MenuUploadReviewService:
    """Promotes or discards candidate items of a menu upload."""

    def __init__(self, store: MenuUploadStore):
        self.store = store

    def _load(self, upload_id: int, item_id: int) -> tuple[MenuUploadRecord, MenuUploadItemRecord]:
        upload = self.store.get_menu_upload_by_id(upload_id)
        if upload is None:
            raise MenuUploadNotFoundError(upload_id)

        item = next(
            (entry for entry in self.store.get_menu_upload_items(upload_id) if entry.id == item_id),
            None,
        )
        if item is None:
            raise MenuUploadItemNotFoundError("Menu upload item not found")
        return upload, item

    def _append_upload_activity(self, upload: MenuUploadRecord, event: ActivityEvent) -> None:
        metadata = append_activity_event(upload.metadata, event)
        try:
            self.store.update_menu_upload(upload.id, metadata=metadata)
        except Exception:
            logger.warning(
                f"[menu-review] Failed to append {event.type.value} activity to upload {upload.id}",
                exc_info=True,
            )

    def promote_item(
        self,
        upload_id: int,
        item_id: int,
        actor: ReviewActor,
        menu_id: Optional[int] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        price: Optional[float] = None,
        category: Optional[str] = None,
    ) -> PromotionResult:
        """
        Create a live menu item from an upload item and mark it completed.

        Args:
            upload_id: Upload the item belongs to
            item_id: Upload item to promote
            actor: Reviewer
            menu_id: Target menu (defaults to the upload's menu)
            name, description, price, category: Reviewer edits over the AI suggestion

        Returns:
            PromotionResult with the new menu item id and the overrides applied

        Raises:
            MenuUploadNotFoundError, MenuUploadItemNotFoundError, MenuNotFoundError
            MissingRestaurantContextError: Upload has no restaurant id
            MenuUploadItemConflictError: Item already completed, or menu of another restaurant
            MissingTargetMenuError: No menu given and the upload has none
            ValueError: Negative price
        """
        upload, item = self._load(upload_id, item_id)

        restaurant_id = resolve_restaurant_id(upload)
        if not restaurant_id:
            raise MissingRestaurantContextError("Menu upload is missing restaurant context")

        if item.status == MenuUploadItemStatus.COMPLETED:
            raise MenuUploadItemConflictError("Menu upload item is already marked as completed")

        target_menu_id = menu_id or upload.menu_id
        if not target_menu_id:
            raise MissingTargetMenuError("Target menu id is required to promote upload items")

        menu = self.store.get_menu_by_id(target_menu_id)
        if menu is None:
            raise MenuNotFoundError("Menu not found")
        if int(menu.restaurant_id) != int(restaurant_id):
            raise MenuUploadItemConflictError("Menu does not belong to the upload restaurant")

        final_price = price if price is not None else item.price
        if final_price is not None and final_price < 0:
            raise ValueError("Price must be a non-negative number")

        input_name = _strip(name)
        input_description = _strip(description)
        input_category = _strip(category)

        overrides: Dict[str, Any] = {}
        if input_name and input_name != (_strip(item.name) or ""):
            overrides["name"] = input_name
        if input_description and input_description != (_strip(item.description) or ""):
            overrides["description"] = input_description
        if price is not None and price != item.price:
            overrides["price"] = price
        if input_category and input_category != (_strip(item.suggested_category) or ""):
            overrides["category"] = input_category

        final_name = fallback_name(name if name is not None else item.name, item.raw_text)
        timestamp = now_ms()

        menu_item: MenuItem = self.store.create_menu_item(
            menu_id=target_menu_id,
            restaurant_id=restaurant_id,
            name=final_name,
            description=input_description if description is not None else _strip(item.description),
            price=final_price,
            category=input_category if category is not None else _strip(item.suggested_category),
            allergens=to_comma_separated(item.suggested_allergens),
            dietary=to_comma_separated(item.suggested_dietary),
        )

        audit_entry = {
            "action": "promote",
            "actorEmail": actor.email,
            "actorId": actor.id,
            "uploadId": upload_id,
            "uploadItemId": item_id,
            "menuId": target_menu_id,
            "timestamp": timestamp,
            "aiPayload": item.ai_payload,
            "overrides": overrides,
        }
        previous_audit = item.metadata.get("auditTrail")
        metadata = {
            **item.metadata,
            "lastActionAt": timestamp,
            "lastAction": "promote",
            "overrides": overrides,
            "aiPayload": item.ai_payload,
            "auditTrail": [*(previous_audit if isinstance(previous_audit, list) else []), audit_entry],
        }

        updated_item = self.store.update_menu_upload_item(
            item_id,
            status=MenuUploadItemStatus.COMPLETED,
            menu_id=target_menu_id,
            restaurant_id=restaurant_id,
            metadata=metadata,
        )

        self._append_upload_activity(
            upload,
            ActivityEvent(
                type=ActivityEventType.ITEM_PROMOTED,
                timestamp=timestamp,
                upload_id=upload_id,
                restaurant_id=restaurant_id,
                menu_id=target_menu_id,
                item_id=item_id,
                item_name=final_name,
                actor_email=actor.email,
                actor_id=actor.id,
                payload={
                    "overrides": overrides,
                    "aiPayload": item.ai_payload,
                    "menuItemId": menu_item.id,
                },
            ),
        )

        logger.info(
            f"[menu-review] {actor.email} promoted upload item {item_id} of upload {upload_id} "
            f"to menu {target_menu_id} as menu item {menu_item.id}"
        )
        return PromotionResult(menu_item_id=menu_item.id, upload_item=updated_item, overrides=overrides)

    def discard_item(
        self,
        upload_id: int,
        item_id: int,
        actor: ReviewActor,
        status: Union[MenuUploadItemStatus, str] = MenuUploadItemStatus.DISCARDED,
    ) -> MenuUploadItemRecord:
        """
        Discard an upload item (or send it back to needs_review).

        Raises:
            ValueError: status other than discarded/needs_review
            MenuUploadNotFoundError, MenuUploadItemNotFoundError
            MissingRestaurantContextError: Upload has no restaurant id
            MenuUploadItemConflictError: Item already promoted to a menu
        """
        if isinstance(status, MenuUploadItemStatus):
            target_status = status
        else:
            try:
                target_status = MenuUploadItemStatus(str(status).strip().lower())
            except ValueError:
                target_status = None
        if target_status not in DISCARD_TARGET_STATUSES:
            raise ValueError("Only discarded or needs_review status updates are supported.")

        upload, item = self._load(upload_id, item_id)

        restaurant_id = resolve_restaurant_id(upload)
        if not restaurant_id:
            raise MissingRestaurantContextError("Menu upload is missing restaurant context")

        if item.status == MenuUploadItemStatus.COMPLETED:
            raise MenuUploadItemConflictError("Menu upload item is already marked as completed")

        timestamp = now_ms()
        audit_entry = {
            "action": "discard",
            "actorEmail": actor.email,
            "actorId": actor.id,
            "uploadId": upload_id,
            "uploadItemId": item_id,
            "reason": "user_discard",
            "timestamp": timestamp,
            "aiPayload": item.ai_payload,
        }
        previous_audit = item.metadata.get("auditTrail")
        metadata = {
            **item.metadata,
            "lastAction": "discard",
            "lastActionAt": timestamp,
            "lastDiscardActor": actor.email,
            "aiPayload": item.ai_payload,
            "auditTrail": [*(previous_audit if isinstance(previous_audit, list) else []), audit_entry],
        }

        updated = self.store.update_menu_upload_item(item_id, status=target_status, metadata=metadata)

        self._append_upload_activity(
            upload,
            ActivityEvent(
                type=ActivityEventType.ITEM_DISCARDED,
                timestamp=timestamp,
                upload_id=upload_id,
                restaurant_id=restaurant_id,
                menu_id=item.menu_id,
                item_id=item_id,
                item_name=item.name or UNTITLED_DISH,
                actor_email=actor.email,
                actor_id=actor.id,
                payload={"aiPayload": item.ai_payload},
            ),
        )

        logger.info(
            f"[menu-review] {actor.email} set upload item {item_id} of upload {upload_id} "
            f"to {target_status.value}"
        )
        return updated
