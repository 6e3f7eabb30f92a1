"""
Tests for placeholder extraction and restoration.
"""

from canon.i18n.extractor import SENTINEL_PREFIX, extract, missing_tokens, restore


MDX = """import Card from '../components/Card.astro';
import { Chart } from "@/lib/chart";

# Getting started

Run `npm install` first, then read the [docs](https://example.com/docs "Docs").

<Card title="Hello" href="/start">
Some text inside the card.
</Card>

```js
const x = `template ${value}`;
console.log("[not](a-link)");
```

~~~
tilde fenced
~~~

Inline ``code with ` backtick`` and a self-closing <Divider /> element.
"""


class TestExtract:
    def test_round_trip(self):
        result = extract(MDX)
        assert restore(result.masked, result.placeholders) == MDX

    def test_masks_untranslatable_spans(self):
        masked = extract(MDX).masked

        assert "import Card" not in masked
        assert "@/lib/chart" not in masked
        assert "npm install" not in masked
        assert "https://example.com/docs" not in masked
        assert "<Card" not in masked
        assert "</Card>" not in masked
        assert "<Divider" not in masked
        assert "console.log" not in masked
        assert "tilde fenced" not in masked

        # Prose and link text stay translatable
        assert "# Getting started" in masked
        assert "[docs]" in masked
        assert "Some text inside the card." in masked

    def test_tokens_are_numbered_in_creation_order(self):
        result = extract("Use `a` and `b`.")
        assert result.masked == "Use __PRESERVED_0__ and __PRESERVED_1__."
        assert result.placeholders == {"__PRESERVED_0__": "`a`", "__PRESERVED_1__": "`b`"}
        assert result.tokens == ["__PRESERVED_0__", "__PRESERVED_1__"]

    def test_plain_text_is_untouched(self):
        result = extract("Nothing to protect here.\n")
        assert result.masked == "Nothing to protect here.\n"
        assert result.placeholders == {}

    def test_prefix_is_extended_when_source_uses_it(self):
        text = f"Literal {SENTINEL_PREFIX}_0__ and `code`."

        result = extract(text)

        assert result.tokens == ["__PRESERVEDX_0__"]
        assert f"{SENTINEL_PREFIX}_0__" in result.masked
        assert restore(result.masked, result.placeholders) == text

    def test_prose_touching_a_token_cannot_form_another_token(self):
        text = "Run `a`PRESERVED_1__ then `b` done."

        result = extract(text)

        assert result.tokens == ["__PRESERVEDX_0__", "__PRESERVEDX_1__"]
        assert result.masked == "Run __PRESERVEDX_0__PRESERVED_1__ then __PRESERVEDX_1__ done."
        assert restore(result.masked, result.placeholders) == text

    def test_restore_replaces_every_occurrence(self):
        result = extract("Call `f()`.")
        duplicated = result.masked + " " + result.masked
        assert restore(duplicated, result.placeholders) == "Call `f()`. Call `f()`."


class TestNestedTokens:
    def test_component_inside_inline_code(self):
        text = "Write `<Divider />` to draw a line."

        result = extract(text)

        assert result.masked == "Write __PRESERVED_1__ to draw a line."
        assert result.placeholders["__PRESERVED_1__"] == "`__PRESERVED_0__`"
        assert restore(result.masked, result.placeholders) == text

    def test_nested_tokens_are_not_reported_missing(self):
        result = extract("Write `<Divider />` to draw a line.")
        assert missing_tokens(result.masked, result.placeholders) == []


class TestMissingTokens:
    def test_dropped_token(self):
        result = extract("Use `a` and `b`.")
        assert missing_tokens("Nutze __PRESERVED_0__.", result.placeholders) == ["__PRESERVED_1__"]

    def test_all_present(self):
        result = extract(MDX)
        assert missing_tokens(result.masked, result.placeholders) == []
