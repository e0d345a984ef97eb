"""
Pydantic schemas for menu uploads, AI parse results and activity events.

Stored JSON keys stay in the shapes existing records use: snake_case columns,
camelCase metadata keys, epoch-millisecond timestamps.
"""
import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class MenuUploadStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    NEEDS_REVIEW = "needs_review"
    FAILED = "failed"
    COMPLETED = "completed"


class MenuUploadItemStatus(str, Enum):
    PENDING = "pending"
    NEEDS_REVIEW = "needs_review"
    COMPLETED = "completed"
    DISCARDED = "discarded"


REVIEWABLE_ITEM_STATUSES = frozenset({MenuUploadItemStatus.PENDING, MenuUploadItemStatus.NEEDS_REVIEW})


class ActivityEventType(str, Enum):
    UPLOAD_READY = "upload_ready"
    ITEM_PROMOTED = "item_promoted"
    ITEM_DISCARDED = "item_discarded"


def _load_json(value: Any) -> Any:
    """JSON columns sometimes come back as serialized strings."""
    if isinstance(value, (str, bytes)):
        if not value.strip():
            return None
        return json.loads(value)
    return value


class IdentifiedTag(BaseModel):
    """Allergen or dietary tag attached to an upload item."""
    code: str
    label: str
    confidence: Optional[float] = None
    source: Literal["ai", "manual", "regulatory"] = "ai"


class MenuUploadRecord(BaseModel):
    """Menu upload as read from the record store."""
    id: int
    restaurant_id: Optional[int] = None
    menu_id: Optional[int] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    resource_type: str = "raw"
    status: MenuUploadStatus = MenuUploadStatus.PENDING
    parser_version: Optional[str] = None
    ai_model: Optional[str] = None
    processed_at: Optional[int] = None  # epoch ms
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    @field_validator("metadata", mode="before")
    @classmethod
    def parse_metadata(cls, v):
        v = _load_json(v)
        return v if isinstance(v, dict) else {}

    @field_validator("resource_type", mode="before")
    @classmethod
    def default_resource_type(cls, v):
        return v or "raw"


class MenuUploadItemRecord(BaseModel):
    """Candidate item as read from the record store."""
    id: int
    upload_id: int
    restaurant_id: Optional[int] = None
    menu_id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    raw_text: Optional[str] = None
    suggested_category: Optional[str] = None
    suggested_allergens: List[IdentifiedTag] = Field(default_factory=list)
    suggested_dietary: List[IdentifiedTag] = Field(default_factory=list)
    confidence: Optional[float] = None
    ai_payload: Optional[Any] = None
    # Records without a status are treated as pending
    status: MenuUploadItemStatus = MenuUploadItemStatus.PENDING
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    @field_validator("suggested_allergens", "suggested_dietary", mode="before")
    @classmethod
    def parse_tags(cls, v):
        v = _load_json(v)
        return v if isinstance(v, list) else []

    @field_validator("ai_payload", mode="before")
    @classmethod
    def parse_payload(cls, v):
        return _load_json(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def parse_metadata(cls, v):
        v = _load_json(v)
        return v if isinstance(v, dict) else {}

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v):
        return v or MenuUploadItemStatus.PENDING

    @property
    def is_reviewable(self) -> bool:
        return self.status in REVIEWABLE_ITEM_STATUSES


class CreateMenuUploadItemInput(BaseModel):
    """Payload for creating a candidate item."""
    upload_id: int
    restaurant_id: Optional[int] = None
    menu_id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    raw_text: Optional[str] = None
    suggested_category: Optional[str] = None
    suggested_allergens: List[IdentifiedTag] = Field(default_factory=list)
    suggested_dietary: List[IdentifiedTag] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    ai_payload: Optional[Any] = None
    status: MenuUploadItemStatus = MenuUploadItemStatus.PENDING
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("name", "description", "raw_text", "suggested_category", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def require_content(self):
        if not (self.name or self.description or self.raw_text):
            raise ValueError("Menu upload item requires a name, description, or raw_text")
        return self


# AI parser output

class ParsedMenuTag(BaseModel):
    code: str
    label: str
    confidence: Optional[float] = None


class ParsedMenuPrice(BaseModel):
    amount: float
    currency: Optional[str] = None
    textual: Optional[str] = None


class ParsedMenuItem(BaseModel):
    """One dish as returned by the AI parser."""
    name: str
    description: Optional[str] = None
    section: Optional[str] = None
    category: Optional[str] = None
    price: Optional[ParsedMenuPrice] = None
    confidence: Optional[float] = None  # 0-1, absent when the model gave nothing usable
    raw_text: Optional[str] = None
    notes: Optional[str] = None
    allergens: List[ParsedMenuTag] = Field(default_factory=list)
    dietary_tags: List[ParsedMenuTag] = Field(default_factory=list)
    ai_payload: Optional[Any] = None  # the model's item, untouched


class MenuParseResult(BaseModel):
    model: str
    items: List[ParsedMenuItem] = Field(default_factory=list)
    summary: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    # Opaque; counted as inputTokens/input_tokens etc. by the run summary
    usage: Optional[Dict[str, Any]] = None


class UploadTextExtraction(BaseModel):
    text: str
    source: Literal["pdf", "docx", "plain"]
    content_type: Optional[str] = None
    page_count: Optional[int] = None


class ActivityEvent(BaseModel):
    """
    Entry in an upload's activity log.

    Serialized with camelCase keys (uploadId, itemCount, ...) to match the
    stored metadata shape.
    """
    id: Optional[str] = None
    type: ActivityEventType
    timestamp: int  # epoch ms
    upload_id: int
    restaurant_id: Optional[int] = None
    menu_id: Optional[int] = None
    item_id: Optional[int] = None
    item_name: Optional[str] = None
    actor_email: Optional[str] = None
    actor_id: Optional[Union[int, str]] = None
    item_count: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_metadata(self) -> Dict[str, Any]:
        """Dict form stored inside upload metadata."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
