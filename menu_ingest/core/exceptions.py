"""
Exception types raised by menu upload ingestion.
"""


class MenuIngestError(Exception):
    """Base class for ingestion errors."""


class UnsupportedMenuUploadError(MenuIngestError):
    """Uploaded file is missing, empty, unreadable or of an unknown type."""


class MenuUploadNotFoundError(MenuIngestError):
    """Requested menu upload does not exist."""

    def __init__(self, upload_id: int | None = None, message: str = "Menu upload not found"):
        super().__init__(message)
        self.upload_id = upload_id


class MenuParserConfigurationError(MenuIngestError):
    """AI parser cannot run (no API key)."""


class MenuParserResponseError(MenuIngestError):
    """AI model returned no usable JSON."""


# Review errors

class MenuUploadItemNotFoundError(MenuIngestError):
    """Upload item does not exist or belongs to another upload."""


class MenuUploadItemConflictError(MenuIngestError):
    """Item state or target menu conflicts with the requested review action."""


class MissingRestaurantContextError(MenuIngestError):
    """Upload has no resolvable restaurant id."""


class MissingTargetMenuError(MenuIngestError):
    """Promotion has no menu to land in."""


class MenuNotFoundError(MenuIngestError):
    """Target menu does not exist."""
