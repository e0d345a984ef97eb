"""Protocols for the collaborators the menu upload worker depends on."""

from typing import Any, List, Optional, Protocol, runtime_checkable

from menu_ingest.schemas.menu_upload import (
    CreateMenuUploadItemInput,
    MenuParseResult,
    MenuUploadItemRecord,
    MenuUploadItemStatus,
    MenuUploadRecord,
    MenuUploadStatus,
    UploadTextExtraction,
)


@runtime_checkable
class TextExtractor(Protocol):
    """Turns an uploaded file into plain text."""

    def extract_upload_text(self, upload: MenuUploadRecord) -> UploadTextExtraction:
        """
        Download and read the upload's file.

        Raises:
            UnsupportedMenuUploadError: Missing URL, empty body, unreadable or unknown type
        """
        ...


@runtime_checkable
class MenuTextParser(Protocol):
    """Turns menu text into structured dish candidates."""

    def parse_menu_text(
        self,
        text: str,
        restaurant_name: Optional[str] = None,
        menu_name: Optional[str] = None,
        upload_file_name: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> MenuParseResult:
        """
        Ask the model for dishes found in `text`.

        Confidence values the model gets wrong are normalized, never rejected.
        """
        ...


@runtime_checkable
class MenuUploadRepository(Protocol):
    """
    Record store for uploads and their items.

    Update methods change only the keys passed; passing None clears a column.
    """

    def create_menu_upload_item(self, payload: CreateMenuUploadItemInput) -> MenuUploadItemRecord:
        ...

    def get_menu_upload_by_id(self, upload_id: int) -> Optional[MenuUploadRecord]:
        ...

    def get_menu_upload_items(
        self, upload_id: int, status: Optional[MenuUploadItemStatus] = None
    ) -> List[MenuUploadItemRecord]:
        ...

    def get_menu_uploads(self, status: Optional[MenuUploadStatus] = None) -> List[MenuUploadRecord]:
        ...

    def update_menu_upload(self, upload_id: int, **changes: Any) -> MenuUploadRecord:
        ...

    def update_menu_upload_item(self, item_id: int, **changes: Any) -> MenuUploadItemRecord:
        ...
