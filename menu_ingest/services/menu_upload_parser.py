"""
Menu text parsing using OpenAI LLM.

Sends extracted menu text to a chat model and turns its JSON answer into
ParsedMenuItem records with allergen and dietary tags.
"""
import json
import logging
import math
from typing import Any, Dict, List, Optional

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from menu_ingest.core.config import get_settings
from menu_ingest.core.exceptions import MenuParserConfigurationError, MenuParserResponseError
from menu_ingest.schemas.menu_upload import (
    MenuParseResult,
    ParsedMenuItem,
    ParsedMenuPrice,
    ParsedMenuTag,
)
from menu_ingest.services.tag_mapping import slugify

logger = logging.getLogger(__name__)

MAX_TAGS_PER_ITEM = 20

RESPONSE_FORMAT_HINT = {
    "summary": "string",
    "warnings": ["string"],
    "sections": [{"name": "string", "description": "string"}],
    "items": [
        {
            "name": "string (required)",
            "description": "string",
            "section": "string",
            "category": "string",
            "notes": "string",
            "raw_text": "string",
            "confidence": "number 0-1",
            "price": {"amount": "number", "currency": "string", "textual": "string"},
            "allergens": [{"code": "string", "label": "string (required)", "confidence": "number 0-1"}],
            "dietary_tags": [{"code": "string", "label": "string (required)", "confidence": "number 0-1"}],
        }
    ],
}


def normalize_confidence(value: Any) -> Optional[float]:
    """Numeric value in [0, 1], otherwise None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0 or number > 1:
        return None
    return number


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# Raw model output. Lenient on purpose: bad confidences and prices become None.

class _AiTag(BaseModel):
    code: Optional[str] = None
    label: str
    confidence: Optional[float] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v):
        return normalize_confidence(v)

    @field_validator("code", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return v if isinstance(v, str) else None


class _AiPrice(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    textual: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        if v is None or v == "" or isinstance(v, bool):
            return None
        try:
            number = float(v)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None

    @field_validator("currency", "textual", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _text_or_none(v)


class _AiItem(BaseModel):
    name: str
    description: Optional[str] = None
    section: Optional[str] = None
    category: Optional[str] = None
    price: Optional[_AiPrice] = None
    confidence: Optional[float] = None
    raw_text: Optional[str] = None
    notes: Optional[str] = None
    allergens: List[_AiTag] = Field(default_factory=list)
    dietary_tags: List[_AiTag] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("description", "section", "category", "raw_text", "notes", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _text_or_none(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v):
        return normalize_confidence(v)

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator("allergens", "dietary_tags", mode="before")
    @classmethod
    def coerce_tags(cls, v):
        if not isinstance(v, list):
            return []
        tags = [t for t in v if isinstance(t, dict) and isinstance(t.get("label"), str) and t["label"].strip()]
        return tags[:MAX_TAGS_PER_ITEM]


class MenuUploadParser:
    """
    Parses menu text into dish candidates with an OpenAI chat model.

    Returns at most `max_items` items; the worker enforces the same cap.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[Any] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        max_text_length: Optional[int] = None,
        max_items: Optional[int] = None,
    ):
        """
        Initialize menu parser.

        Args:
            api_key: OpenAI API key (defaults to settings.OPENAI_API_KEY)
            model: Chat model name (defaults to settings.OPENAI_MODEL)
            client: Pre-built OpenAI client (tests pass a mock)
            temperature: Sampling temperature
            max_output_tokens: Completion token limit
            max_text_length: Characters of menu text sent before truncating
            max_items: Maximum items returned
        """
        settings = get_settings()
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = (model or settings.OPENAI_MODEL).strip()
        self.temperature = settings.MENU_PARSER_TEMPERATURE if temperature is None else temperature
        self.max_output_tokens = max_output_tokens or settings.MENU_PARSER_MAX_OUTPUT_TOKENS
        self.max_text_length = max_text_length or settings.MENU_PARSER_MAX_TEXT_LENGTH
        self.max_items = max_items or settings.MENU_UPLOAD_MAX_ITEMS

        if client is not None:
            self.client = client
        else:
            self.client = OpenAI(api_key=self.api_key) if self.api_key else None

    def _normalize_text(self, text: str) -> str:
        if len(text) <= self.max_text_length:
            return text
        return f"{text[:self.max_text_length]}\n\n[TRUNCATED AFTER {self.max_text_length} CHARACTERS]"

    def _build_system_prompt(self) -> str:
        return " ".join([
            "You are an assistant that extracts structured menu data for restaurants.",
            "Parse dishes, descriptions, prices, and allergen cues from raw menu text.",
            "Where allergens or dietary labels are identified, include them with confidence scores between 0 and 1.",
            "Prices must be numeric (no currency symbols).",
            "Generate concise section/category names when implicit.",
            f"Return at most {self.max_items} items.",
            "Return ONLY a JSON object with this shape:",
            json.dumps(RESPONSE_FORMAT_HINT),
        ])

    def _build_user_prompt(
        self,
        text: str,
        restaurant_name: Optional[str],
        menu_name: Optional[str],
        upload_file_name: Optional[str],
        locale: Optional[str],
    ) -> str:
        """
        Build the user message: context lines, extraction instructions, menu text.

        Returns:
            Formatted prompt string
        """
        context = [
            f"Restaurant: {restaurant_name}" if restaurant_name else None,
            f"Menu: {menu_name}" if menu_name else None,
            f"Source file: {upload_file_name}" if upload_file_name else None,
            f"Locale: {locale}" if locale else None,
        ]
        lines = [
            "\n".join(line for line in context if line),
            "Extract a flat list of menu items. Include:",
            "- `section` when the dish belongs to a named section or course.",
            "- `category` if you can infer a standard category (e.g. starters, mains, drinks).",
            "- `price.amount` as numeric value (no currency symbol).",
            "- `allergens` and `dietary_tags` arrays with canonical labels (e.g. gluten, dairy-free).",
            "- `confidence` expressing how certain you are (0 to 1).",
            "- `raw_text` capturing the original excerpt for audit.",
            "Focus on dishes suitable for diners (ignore opening hours, marketing copy, legal disclaimers).",
            "",
            "Menu text:",
            self._normalize_text(text),
        ]
        # Drop the context block when empty, keep the deliberate blank line
        if not lines[0]:
            lines = lines[1:]
        return "\n".join(lines)

    def _to_tag(self, tag: _AiTag) -> ParsedMenuTag:
        label = tag.label.strip()
        code = (tag.code or "").strip() or slugify(label)
        return ParsedMenuTag(code=code, label=label, confidence=tag.confidence)

    def _to_item(self, raw: Dict[str, Any], item: _AiItem) -> ParsedMenuItem:
        price = None
        if item.price is not None and item.price.amount:
            price = ParsedMenuPrice(
                amount=item.price.amount,
                currency=_clean(item.price.currency),
                textual=_clean(item.price.textual),
            )

        section = _clean(item.section)
        notes = _clean(item.notes)
        return ParsedMenuItem(
            name=item.name.strip(),
            description=_clean(item.description),
            section=section,
            category=_clean(item.category) or section,
            price=price,
            confidence=item.confidence,
            raw_text=_clean(item.raw_text) or notes,
            notes=notes,
            allergens=[self._to_tag(t) for t in item.allergens],
            dietary_tags=[self._to_tag(t) for t in item.dietary_tags],
            ai_payload=raw,
        )

    def parse_menu_text(
        self,
        text: str,
        restaurant_name: Optional[str] = None,
        menu_name: Optional[str] = None,
        upload_file_name: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> MenuParseResult:
        """
        Parse menu text into dish candidates.

        Args:
            text: Extracted menu text
            restaurant_name: Optional restaurant name hint
            menu_name: Optional menu name hint
            upload_file_name: Optional source file name hint
            locale: Optional locale hint (e.g. en-GB)

        Returns:
            MenuParseResult with items, summary, warnings and token usage

        Raises:
            ValueError: Empty text
            MenuParserConfigurationError: No OpenAI API key configured
            MenuParserResponseError: Model returned no usable JSON
        """
        if not text or not text.strip():
            raise ValueError("Menu text is required for parsing")
        if self.client is None:
            raise MenuParserConfigurationError("OPENAI_API_KEY is required to parse menu uploads")

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self._build_system_prompt()},
                {
                    "role": "user",
                    "content": self._build_user_prompt(
                        text, restaurant_name, menu_name, upload_file_name, locale
                    ),
                },
            ],
            temperature=self.temperature,
            max_tokens=self.max_output_tokens,
            response_format={"type": "json_object"},
        )

        output_text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not output_text:
            raise MenuParserResponseError("OpenAI response did not include JSON output")

        try:
            payload = json.loads(output_text)
        except json.JSONDecodeError as e:
            raise MenuParserResponseError(f"Unable to parse OpenAI response JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MenuParserResponseError("OpenAI response JSON was not an object")

        warnings = [w for w in (payload.get("warnings") or []) if isinstance(w, str)]

        items: List[ParsedMenuItem] = []
        raw_items = payload.get("items") or []
        if not isinstance(raw_items, list):
            raw_items = []
        skipped = 0
        skipped_invalid = 0
        for raw in raw_items:
            if not (isinstance(raw, dict) and isinstance(raw.get("name"), str) and raw["name"].strip()):
                skipped += 1
                continue
            try:
                parsed = _AiItem.model_validate(raw)
            except ValidationError as exc:
                skipped_invalid += 1
                logger.warning(
                    f"[menu-parser] Skipping malformed item {raw['name']!r}: {exc.error_count()} errors"
                )
                continue
            items.append(self._to_item(raw, parsed))

        if skipped:
            logger.warning(f"[menu-parser] Skipped {skipped} items without a name")
        if skipped_invalid:
            warnings.append(f"Skipped {skipped_invalid} malformed items")
        if len(items) > self.max_items:
            logger.warning(f"[menu-parser] Model returned {len(items)} items, keeping {self.max_items}")
            items = items[:self.max_items]

        summary = payload.get("summary")
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "inputTokens": response.usage.prompt_tokens,
                "outputTokens": response.usage.completion_tokens,
                "totalTokens": response.usage.total_tokens,
            }

        logger.info(f"[menu-parser] Parsed {len(items)} items with {self.model}")
        return MenuParseResult(
            model=self.model,
            items=items,
            summary=_clean(summary) if isinstance(summary, str) else None,
            warnings=warnings,
            usage=usage,
        )
