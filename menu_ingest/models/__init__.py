"""
SQLAlchemy models for menu ingestion.
"""
# Uploads
from menu_ingest.models.menu_upload import MenuUpload, MenuUploadItem

# Live menus
from menu_ingest.models.menu import Menu, MenuItem


__all__ = [
    "MenuUpload",
    "MenuUploadItem",
    "Menu",
    "MenuItem",
]
