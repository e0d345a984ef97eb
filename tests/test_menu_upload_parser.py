"""
Tests for the OpenAI-backed menu parser, using a mocked client.
"""
import pytest

from menu_ingest.core.exceptions import MenuParserConfigurationError, MenuParserResponseError
from menu_ingest.services.menu_upload_parser import MenuUploadParser, normalize_confidence
from mocks import make_openai_client, openai_json


def parser_for(payload, **kwargs):
    content = payload if isinstance(payload, str) or payload is None else openai_json(payload)
    client = make_openai_client(content)
    return MenuUploadParser(client=client, model="gpt-test", **kwargs), client


class TestNormalizeConfidence:
    """Test model confidence normalization."""

    @pytest.mark.parametrize("value,expected", [
        (0.4, 0.4),
        ("0.75", 0.75),
        (0, 0.0),
        (1, 1.0),
    ])
    def test_valid(self, value, expected):
        """Should keep values within [0, 1]."""
        assert normalize_confidence(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [1.5, -0.1, "", "sure", None, True, float("inf")])
    def test_invalid_becomes_absent(self, value):
        """Should turn out-of-range and non-numeric values into None."""
        assert normalize_confidence(value) is None


class TestParseMenuText:
    """Test parse_menu_text."""

    def test_parses_items(self):
        """Should map model JSON onto parsed items."""
        parser, _ = parser_for({
            "summary": "  One side dish ",
            "warnings": ["Prices unclear"],
            "items": [{
                "name": " Truffle Fries ",
                "description": "Shoestring fries",
                "section": "Sides",
                "price": {"amount": 6.5, "currency": "GBP", "textual": "£6.50"},
                "confidence": 0.92,
                "notes": "house favourite",
                "allergens": [{"code": "dairy", "label": "Dairy", "confidence": 0.9}],
                "dietary_tags": [{"label": "Vegetarian Friendly"}],
            }],
        })

        result = parser.parse_menu_text("Truffle Fries 6.50")

        assert result.model == "gpt-test"
        assert result.summary == "One side dish"
        assert result.warnings == ["Prices unclear"]
        assert result.usage == {"inputTokens": 500, "outputTokens": 120, "totalTokens": 620}

        item = result.items[0]
        assert item.name == "Truffle Fries"
        assert item.category == "Sides"
        assert item.price.amount == 6.5
        assert item.price.currency == "GBP"
        assert item.raw_text == "house favourite"
        assert item.allergens[0].code == "dairy"
        assert item.dietary_tags[0].code == "vegetarian-friendly"
        assert item.dietary_tags[0].confidence is None
        assert item.ai_payload["name"] == " Truffle Fries "

    def test_bad_confidence_is_normalized_not_rejected(self):
        """Should keep items whose confidences are out of range or junk."""
        parser, _ = parser_for({"items": [
            {"name": "A", "confidence": 7, "allergens": [{"label": "Nuts", "confidence": "very"}]},
            {"name": "B", "confidence": "0.3"},
        ]})

        items = parser.parse_menu_text("menu").items

        assert [i.name for i in items] == ["A", "B"]
        assert items[0].confidence is None
        assert items[0].allergens[0].confidence is None
        assert items[1].confidence == pytest.approx(0.3)

    def test_zero_or_missing_price_dropped(self):
        """Should drop prices without a usable amount."""
        parser, _ = parser_for({"items": [
            {"name": "Water", "price": {"amount": 0}},
            {"name": "Bread", "price": {"textual": "market price"}},
            {"name": "Soup", "price": {"amount": "4.50"}},
        ]})

        items = parser.parse_menu_text("menu").items

        assert items[0].price is None
        assert items[1].price is None
        assert items[2].price.amount == pytest.approx(4.5)

    def test_skips_items_without_name(self):
        """Should skip nameless items instead of failing."""
        parser, _ = parser_for({"items": [{"description": "mystery"}, {"name": "  "}, {"name": "Tea"}]})

        assert [i.name for i in parser.parse_menu_text("menu").items] == ["Tea"]

    def test_mistyped_fields_become_absent(self):
        """Should drop wrongly typed text fields and keep the rest of the batch."""
        parser, _ = parser_for({"items": [
            {"name": "Soup", "category": ["mains"], "notes": 5, "price": {"amount": 5, "currency": 1}},
            {"name": "Bread"},
        ]})

        result = parser.parse_menu_text("menu")

        assert [i.name for i in result.items] == ["Soup", "Bread"]
        soup = result.items[0]
        assert soup.category is None
        assert soup.notes is None
        assert soup.price.amount == pytest.approx(5.0)
        assert soup.price.currency is None
        assert result.warnings == []

    def test_caps_items(self):
        """Should keep at most max_items items."""
        parser, _ = parser_for({"items": [{"name": f"Dish {i}"} for i in range(5)]}, max_items=3)

        assert len(parser.parse_menu_text("menu").items) == 3

    def test_prompt_contents(self):
        """Should send context hints and truncate long text."""
        parser, client = parser_for({"items": []}, max_text_length=10)

        parser.parse_menu_text(
            "A" * 25, restaurant_name="Bistro", menu_name="Dinner", upload_file_name="menu.pdf", locale="en-GB"
        )

        kwargs = client.chat.completions.create.call_args.kwargs
        user_prompt = kwargs["messages"][1]["content"]
        assert kwargs["model"] == "gpt-test"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "Restaurant: Bistro" in user_prompt
        assert "Menu: Dinner" in user_prompt
        assert "Source file: menu.pdf" in user_prompt
        assert "Locale: en-GB" in user_prompt
        assert "A" * 10 + "\n\n[TRUNCATED AFTER 10 CHARACTERS]" in user_prompt
        assert "A" * 11 not in user_prompt

    def test_missing_usage(self):
        """Should leave usage absent when the response has none."""
        client = make_openai_client(openai_json({"items": []}), usage=None)
        result = MenuUploadParser(client=client, model="gpt-test").parse_menu_text("menu")
        assert result.usage is None
        assert result.items == []

    def test_empty_text(self):
        """Should reject empty text."""
        parser, client = parser_for({"items": []})
        with pytest.raises(ValueError):
            parser.parse_menu_text("   ")
        client.chat.completions.create.assert_not_called()

    def test_missing_api_key(self):
        """Should refuse to run without a client."""
        parser, _ = parser_for({"items": []})
        parser.client = None
        with pytest.raises(MenuParserConfigurationError):
            parser.parse_menu_text("menu")

    def test_empty_response(self):
        """Should raise when the model returns nothing."""
        parser, _ = parser_for(None)
        with pytest.raises(MenuParserResponseError, match="did not include JSON"):
            parser.parse_menu_text("menu")

    def test_malformed_response(self):
        """Should raise when the model returns invalid JSON."""
        parser, _ = parser_for("This is not valid JSON {")
        with pytest.raises(MenuParserResponseError, match="Unable to parse"):
            parser.parse_menu_text("menu")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
