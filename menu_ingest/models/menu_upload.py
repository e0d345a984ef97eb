from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float, Numeric, ForeignKey, JSON, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from menu_ingest.core.timeutil import now_ms
from menu_ingest.db.base import Base

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class MenuUpload(Base):
    """Uploaded menu file and its AI processing state."""
    __tablename__ = "menu_uploads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, nullable=True, index=True)
    menu_id = Column(Integer, nullable=True)

    file_url = Column(Text, nullable=True)
    file_name = Column(String(512), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    resource_type = Column(String(32), nullable=False, default="raw")

    status = Column(String(32), nullable=False, default="pending", index=True)
    parser_version = Column(String(64), nullable=True)
    ai_model = Column(String(128), nullable=True)
    processed_at = Column(BigInteger, nullable=True)  # epoch ms
    failure_reason = Column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms, onupdate=now_ms)

    items = relationship("MenuUploadItem", back_populates="upload", passive_deletes=True)


class MenuUploadItem(Base):
    """Candidate dish suggested by the AI parser, awaiting review."""
    __tablename__ = "menu_upload_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    upload_id = Column(Integer, ForeignKey("menu_uploads.id", ondelete="CASCADE"), nullable=False)
    restaurant_id = Column(Integer, nullable=True)
    menu_id = Column(Integer, nullable=True)

    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    raw_text = Column(Text, nullable=True)
    suggested_category = Column(String(255), nullable=True)
    suggested_allergens = Column(JSONType, nullable=False, default=list)
    suggested_dietary = Column(JSONType, nullable=False, default=list)
    confidence = Column(Float, nullable=True)  # 0-1
    ai_payload = Column(JSONType, nullable=True)

    status = Column(String(32), nullable=False, default="pending")
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms, onupdate=now_ms)

    upload = relationship("MenuUpload", back_populates="items")

    __table_args__ = (
        Index("idx_menu_upload_items_upload_status", "upload_id", "status"),
    )
