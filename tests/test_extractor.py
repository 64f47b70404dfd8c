"""
Tests for the extractor

Covers JSON payloads, mislabelled fences, truncated documents, bare
fragments and the empty-result contract.
"""
import json

from siteforge.core.extractor import extract, extract_markup, safe_parse_json, strip_code_fences
from siteforge.core.gap_repairer import repair
from siteforge.core.markup_utils import find_unclosed_tags
from siteforge.core.structural_validator import validate


class TestExtract:
    """Markup/style/script extraction from raw model output"""

    def test_json_payload(self):
        raw = json.dumps({
            "html": "<!DOCTYPE html><html><head></head><body><p>Hi</p></body></html>",
            "css": "body { color: red; }",
            "js": "console.log('ok');",
        })
        result = extract(raw)
        assert result.markup.startswith("<!DOCTYPE html>")
        assert result.style == "body { color: red; }"
        assert result.script == "console.log('ok');"

    def test_file_keyed_json_payload(self):
        raw = json.dumps({"index.html": "<html><head></head><body>x</body></html>", "style.css": "h1{}"})
        result = extract(raw)
        assert "<body>x</body>" in result.markup
        assert result.style == "h1{}"

    def test_fence_with_wrong_language_tag(self):
        raw = "Here you go:\n```css\n<!DOCTYPE html>\n<html><head></head><body><h1>Menu</h1></body></html>\n```\nEnjoy!"
        result = extract(raw)
        assert result.markup.startswith("<!DOCTYPE html>")
        assert "Enjoy" not in result.markup
        assert result.style == ""

    def test_separate_fences(self):
        raw = (
            "```html\n<html><head></head><body><p>Page</p></body></html>\n```\n"
            "```css\n.hero { padding: 2rem; }\n```\n"
            "```javascript\nconsole.log(1);\n```"
        )
        result = extract(raw)
        assert "<p>Page</p>" in result.markup
        assert result.style == ".hero { padding: 2rem; }"
        assert result.script == "console.log(1);"

    def test_prose_only_is_empty(self):
        result = extract("Sorry, I cannot help with that request.")
        assert result.is_empty

    def test_blank_input_is_empty(self):
        assert extract("").is_empty
        assert extract("   \n ").is_empty

    def test_inline_blocks_become_style_and_script(self):
        raw = (
            "<!DOCTYPE html><html><head><style>h1 { color: blue; }</style></head>"
            "<body><h1>Hi</h1><script src=\"script.js\"></script><script>init();</script></body></html>"
        )
        result = extract(raw)
        assert result.style == "h1 { color: blue; }"
        assert result.script == "init();"

    def test_truncated_document_is_closed_by_repair_pass(self):
        raw = "<!DOCTYPE html><html><head><title>T</title></head><body><main><h1>Hello</h1><p>Some text<di"
        result = extract(raw, repair=True)
        assert result.markup.lower().startswith("<!doctype html>")
        assert "<di" not in result.markup.replace("<div", "")
        assert find_unclosed_tags(result.markup) == []

    def test_truncated_document_kept_without_repair(self):
        raw = "<!DOCTYPE html><html><head></head><body><p>Cut off"
        result = extract(raw)
        assert result.markup == raw
        assert "p" in find_unclosed_tags(result.markup)


class TestBodyFragment:
    """Fragments get a document shell; the repairer completes the rest"""

    def test_body_span_wrapped(self):
        markup = extract_markup("Sure!\n<body><h1>Welcome</h1></body>\nThanks")
        assert markup.startswith("<!DOCTYPE html>")
        assert "<body><h1>Welcome</h1></body>" in markup

    def test_tag_soup_wrapped(self):
        markup = extract_markup("<h1>Welcome</h1><p>Fresh bread daily</p>")
        assert "<body>" in markup
        assert "<h1>Welcome</h1>" in markup

    def test_fragment_becomes_valid_document_through_repairer(self):
        repaired = repair("<h1>Welcome</h1><p>Fresh bread daily</p>")
        report = validate(repaired)
        assert report.passed
        assert repaired.startswith("<!DOCTYPE html>")
        assert "<title>Welcome</title>" in repaired


class TestHelpers:

    def test_strip_code_fences(self):
        assert strip_code_fences("```html\n<p>x</p>\n```") == "<p>x</p>"

    def test_safe_parse_json_repairs_trailing_comma_and_truncation(self):
        assert safe_parse_json('```json\n{"a": 1, "b": [1, 2,],}\n```') == {"a": 1, "b": [1, 2]}
        assert safe_parse_json('{"footer_html": "<footer>", "nav_html": "<nav>') == {
            "footer_html": "<footer>",
            "nav_html": "<nav>",
        }

    def test_safe_parse_json_failure_returns_empty(self):
        assert safe_parse_json("no json here") == {}
        assert safe_parse_json("[1, 2, 3]") == {}
