"""
Mock builders for the AI parser, text extractor and OpenAI client.
"""
import json
from typing import List, Optional
from unittest.mock import MagicMock, Mock

from menu_ingest.schemas.menu_upload import (
    MenuParseResult,
    ParsedMenuItem,
    ParsedMenuPrice,
    ParsedMenuTag,
    UploadTextExtraction,
)


def truffle_fries_item() -> ParsedMenuItem:
    return ParsedMenuItem(
        name="Truffle Fries",
        description="Shoestring fries, truffle oil, parmesan.",
        section="Sides",
        category="sides",
        price=ParsedMenuPrice(amount=6.5),
        confidence=0.92,
        raw_text="Truffle Fries £6.50",
        allergens=[ParsedMenuTag(code="dairy", label="dairy", confidence=0.9)],
        dietary_tags=[ParsedMenuTag(code="vegetarian", label="vegetarian", confidence=0.8)],
        ai_payload={"tokens": 123},
    )


def make_parse_result(
    items: Optional[List[ParsedMenuItem]] = None,
    usage: Optional[dict] = None,
    warnings: Optional[List[str]] = None,
) -> MenuParseResult:
    return MenuParseResult(
        model="gpt-test",
        items=[truffle_fries_item()] if items is None else items,
        summary="Sample summary",
        warnings=warnings or [],
        usage={"inputTokens": 500, "outputTokens": 120, "totalTokens": 620} if usage is None else usage,
    )


def make_extractor(text: str = "menu text", source: str = "pdf") -> MagicMock:
    mock = MagicMock()
    mock.extract_upload_text.return_value = UploadTextExtraction(text=text, source=source)
    return mock


def make_parser(result: Optional[MenuParseResult] = None) -> MagicMock:
    mock = MagicMock()
    mock.parse_menu_text.return_value = result or make_parse_result()
    return mock


def make_openai_client(content: Optional[str], usage: Optional[tuple] = (500, 120, 620)) -> Mock:
    """OpenAI client whose chat completion returns `content`."""
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    if usage is None:
        response.usage = None
    else:
        response.usage = MagicMock(prompt_tokens=usage[0], completion_tokens=usage[1], total_tokens=usage[2])

    client = Mock()
    client.chat = Mock()
    client.chat.completions = Mock()
    client.chat.completions.create = Mock(return_value=response)
    return client


def openai_json(payload: dict) -> str:
    return json.dumps(payload)
