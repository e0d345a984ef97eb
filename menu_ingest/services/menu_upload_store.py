"""
SQLAlchemy-backed record store for menu uploads, upload items and live menus.

Every write commits on its own; no transaction spans a whole upload run.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from menu_ingest.core.exceptions import MenuUploadItemNotFoundError, MenuUploadNotFoundError
from menu_ingest.models.menu import Menu, MenuItem
from menu_ingest.models.menu_upload import MenuUpload, MenuUploadItem
from menu_ingest.schemas.menu_upload import (
    CreateMenuUploadItemInput,
    MenuUploadItemRecord,
    MenuUploadItemStatus,
    MenuUploadRecord,
    MenuUploadStatus,
)

logger = logging.getLogger(__name__)

UPLOAD_COLUMNS = {
    "restaurant_id", "menu_id", "file_url", "file_name", "file_size", "resource_type",
    "status", "parser_version", "ai_model", "processed_at", "failure_reason", "metadata",
}

ITEM_COLUMNS = {
    "restaurant_id", "menu_id", "name", "description", "price", "raw_text",
    "suggested_category", "suggested_allergens", "suggested_dietary", "confidence",
    "ai_payload", "status", "metadata",
}


def _to_column_value(value: Any) -> Any:
    """Convert enums and pydantic models into plain JSON-able values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, (list, tuple)):
        return [_to_column_value(v) for v in value]
    return value


def _apply_changes(row: Any, changes: Dict[str, Any], allowed: set, label: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown {label} fields: {', '.join(sorted(unknown))}")

    for key, value in changes.items():
        # Column named "metadata" is mapped to the metadata_ attribute
        attr = "metadata_" if key == "metadata" else key
        # Non-nullable JSON columns clear to their empty value
        if value is None and key == "metadata":
            value = {}
        elif value is None and key in ("suggested_allergens", "suggested_dietary"):
            value = []
        setattr(row, attr, _to_column_value(value))


class MenuUploadStore:
    """
    Record store used by the worker, runner and review service.

    Returns pydantic records rather than ORM rows so callers never hold
    session-bound objects.
    """

    def __init__(self, db: Session):
        """
        Initialize the store.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def _commit(self, row: Any) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("[menu-store] Commit failed", exc_info=True)
            raise
        self.db.refresh(row)

    # Uploads

    def create_menu_upload(
        self,
        restaurant_id: Optional[int] = None,
        menu_id: Optional[int] = None,
        file_url: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        resource_type: str = "raw",
        status: MenuUploadStatus = MenuUploadStatus.PENDING,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MenuUploadRecord:
        upload = MenuUpload(
            restaurant_id=restaurant_id,
            menu_id=menu_id,
            file_url=file_url,
            file_name=file_name,
            file_size=file_size,
            resource_type=resource_type or "raw",
            status=_to_column_value(status),
            metadata_=dict(metadata or {}),
        )
        self.db.add(upload)
        self._commit(upload)
        return MenuUploadRecord.model_validate(upload)

    def get_menu_upload_by_id(self, upload_id: int) -> Optional[MenuUploadRecord]:
        upload = self.db.get(MenuUpload, upload_id)
        if upload is None:
            return None
        return MenuUploadRecord.model_validate(upload)

    def get_menu_uploads(self, status: Optional[MenuUploadStatus] = None) -> List[MenuUploadRecord]:
        """List uploads oldest first, optionally filtered by status."""
        stmt = select(MenuUpload).order_by(MenuUpload.created_at, MenuUpload.id)
        if status is not None:
            stmt = stmt.where(MenuUpload.status == _to_column_value(status))
        uploads = self.db.execute(stmt).scalars().all()
        return [MenuUploadRecord.model_validate(u) for u in uploads]

    def update_menu_upload(self, upload_id: int, **changes: Any) -> MenuUploadRecord:
        """
        Update the given upload columns.

        Args:
            upload_id: Upload to change
            **changes: Column values; None clears the column

        Returns:
            Updated record

        Raises:
            MenuUploadNotFoundError: No upload with that id
            ValueError: Unknown column name
        """
        upload = self.db.get(MenuUpload, upload_id)
        if upload is None:
            raise MenuUploadNotFoundError(upload_id)

        _apply_changes(upload, changes, UPLOAD_COLUMNS, "menu upload")
        self._commit(upload)
        return MenuUploadRecord.model_validate(upload)

    # Upload items

    def create_menu_upload_item(self, payload: CreateMenuUploadItemInput) -> MenuUploadItemRecord:
        item = MenuUploadItem(
            upload_id=payload.upload_id,
            restaurant_id=payload.restaurant_id,
            menu_id=payload.menu_id,
            name=payload.name,
            description=payload.description,
            price=payload.price,
            raw_text=payload.raw_text,
            suggested_category=payload.suggested_category,
            suggested_allergens=_to_column_value(payload.suggested_allergens),
            suggested_dietary=_to_column_value(payload.suggested_dietary),
            confidence=payload.confidence,
            ai_payload=payload.ai_payload,
            status=_to_column_value(payload.status),
            metadata_=dict(payload.metadata or {}),
        )
        self.db.add(item)
        self._commit(item)
        return MenuUploadItemRecord.model_validate(item)

    def get_menu_upload_item_by_id(self, item_id: int) -> Optional[MenuUploadItemRecord]:
        item = self.db.get(MenuUploadItem, item_id)
        if item is None:
            return None
        return MenuUploadItemRecord.model_validate(item)

    def get_menu_upload_items(
        self, upload_id: int, status: Optional[MenuUploadItemStatus] = None
    ) -> List[MenuUploadItemRecord]:
        stmt = (
            select(MenuUploadItem)
            .where(MenuUploadItem.upload_id == upload_id)
            .order_by(MenuUploadItem.id)
        )
        if status is not None:
            stmt = stmt.where(MenuUploadItem.status == _to_column_value(status))
        items = self.db.execute(stmt).scalars().all()
        return [MenuUploadItemRecord.model_validate(i) for i in items]

    def update_menu_upload_item(self, item_id: int, **changes: Any) -> MenuUploadItemRecord:
        """Same contract as update_menu_upload, for items."""
        item = self.db.get(MenuUploadItem, item_id)
        if item is None:
            raise MenuUploadItemNotFoundError(f"Menu upload item {item_id} not found")

        _apply_changes(item, changes, ITEM_COLUMNS, "menu upload item")
        self._commit(item)
        return MenuUploadItemRecord.model_validate(item)

    # Live menus

    def get_menu_by_id(self, menu_id: int) -> Optional[Menu]:
        return self.db.get(Menu, menu_id)

    def create_menu_item(
        self,
        menu_id: int,
        restaurant_id: int,
        name: str,
        description: Optional[str] = None,
        price: Optional[float] = None,
        category: Optional[str] = None,
        allergens: Optional[str] = None,
        dietary: Optional[str] = None,
    ) -> MenuItem:
        menu_item = MenuItem(
            menu_id=menu_id,
            restaurant_id=restaurant_id,
            name=name,
            description=description,
            price=price,
            category=category,
            allergens=allergens,
            dietary=dietary,
        )
        self.db.add(menu_item)
        self._commit(menu_item)
        logger.info(f"[menu-store] Created menu item {menu_item.id} in menu {menu_id}")
        return menu_item
