"""
Extractor - pulls markup, style and script text out of raw model output

Handles, in order of preference:
  ✓ JSON-wrapped payloads ({"html": ..., "css": ..., "js": ...} and file-keyed shapes)
  ✓ Fenced code blocks with any (or a wrong) language tag
  ✓ Complete <!DOCTYPE ...></html> or <html>...</html> spans
  ✓ Truncated documents (start found, end missing)
  ✓ Bare <body> spans and tag soup, wrapped in a minimal document shell

Never raises. An all-empty result means nothing usable was found and the
caller must treat it as an extraction failure.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from bs4 import BeautifulSoup
import json
import logging
import re

from siteforge.core.markup_utils import SCRIPT_BLOCK_RE, STYLE_BLOCK_RE, find_unclosed_tags

logger = logging.getLogger(__name__)

FENCE_BLOCK_RE = re.compile(r'```[ \t]*([A-Za-z0-9_+.-]*)[^\n]*\n(.*?)(?:```|$)', re.DOTALL)
FENCE_DELIMITER_RE = re.compile(r'```[ \t]*[A-Za-z0-9_+.-]*[ \t]*\n?')
DOCTYPE_SPAN_RE = re.compile(r'<!DOCTYPE\s+html[^>]*>.*</html\s*>', re.IGNORECASE | re.DOTALL)
HTML_SPAN_RE = re.compile(r'<html\b.*</html\s*>', re.IGNORECASE | re.DOTALL)
DOCUMENT_START_RE = re.compile(r'<!DOCTYPE\s+html|<html\b', re.IGNORECASE)
BODY_SPAN_RE = re.compile(r'<body\b[^>]*>.*</body\s*>', re.IGNORECASE | re.DOTALL)
TRAILING_PARTIAL_TAG_RE = re.compile(r'<[^<>]*$')

MARKUP_KEYS = ("html", "markup", "index.html")
STYLE_KEYS = ("css", "style", "style.css")
SCRIPT_KEYS = ("js", "javascript", "script", "script.js")

CSS_LANGS = {"css", "scss"}
JS_LANGS = {"js", "javascript", "mjs"}

DOCUMENT_SHELL = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta name="description" content="Generated web page">
  <title>{title}</title>
</head>
{body}
</html>"""


@dataclass(frozen=True)
class ExtractedCode:
    markup: str = ""
    style: str = ""
    script: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.markup.strip() or self.style.strip() or self.script.strip())


def strip_code_fences(text: str) -> str:
    """Remove every ``` delimiter, whatever language tag it declares."""
    return FENCE_DELIMITER_RE.sub('', text).strip()


def _fenced_blocks(text: str) -> List[Tuple[str, str]]:
    return [(m.group(1).lower(), m.group(2)) for m in FENCE_BLOCK_RE.finditer(text)]


def wrap_in_document(body: str, title: str = "My App") -> str:
    """Wrap a <body> span (or bare content) in a minimal standards-mode shell."""
    if not re.match(r'\s*<body\b', body, re.IGNORECASE):
        body = f"<body>\n{body}\n</body>"
    return DOCUMENT_SHELL.format(title=title, body=body)


# Picks the best markup candidate out of fence-free text.
# Complete document span > truncated document > body span > tag soup.
def extract_markup(text: str) -> str:
    """
    Extract a renderable document from raw text.

    Args:
        text: Raw model output (fences may still be present)

    Returns:
        Document markup, or "" when the text holds no markup at all
    """
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        return ""

    match = DOCTYPE_SPAN_RE.search(cleaned) or HTML_SPAN_RE.search(cleaned)
    if match:
        return match.group(0)

    start = DOCUMENT_START_RE.search(cleaned)
    if start:
        # Truncated mid-document; keep the start and let the repairer close it
        partial = TRAILING_PARTIAL_TAG_RE.sub('', cleaned[start.start():])
        return partial.rstrip()

    body = BODY_SPAN_RE.search(cleaned)
    if body:
        return wrap_in_document(body.group(0))

    if not re.search(r'<[a-zA-Z][^>]*>', cleaned):
        return ""
    return wrap_in_document(TRAILING_PARTIAL_TAG_RE.sub('', cleaned).strip())


def _repair_json(candidate: str) -> str:
    """Drop trailing commas and close unbalanced strings/brackets."""
    repaired = re.sub(r',\s*([}\]])', r'\1', candidate)
    stack = []
    in_string = False
    escaped = False
    for ch in repaired:
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in '{[':
            stack.append('}' if ch == '{' else ']')
        elif ch in '}]' and stack:
            stack.pop()
    if in_string:
        repaired += '"'
    return repaired + ''.join(reversed(stack))


def safe_parse_json(text: str) -> Dict[str, Any]:
    """
    Parse the first {...} span of a model response as a JSON object.

    Returns {} when nothing parses, even after light repair.
    """
    if not text:
        return {}
    cleaned = re.sub(r'```(?:json)?', '', text, flags=re.IGNORECASE)
    start = cleaned.find('{')
    if start == -1:
        return {}
    end = cleaned.rfind('}')
    candidate = cleaned[start:end + 1] if end > start else cleaned[start:]

    for attempt in (candidate, _repair_json(candidate)):
        try:
            parsed = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        return parsed if isinstance(parsed, dict) else {}
    logger.debug(f"[Extractor] JSON payload unparseable | preview: {candidate[:120]}")
    return {}


def _first_string(payload: Dict[str, Any], keys: Tuple[str, ...]) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _json_payload(text: str) -> Optional[Dict[str, Any]]:
    """Returns the payload only when it carries at least one known code key."""
    stripped = text.strip()
    looks_like_json = stripped.startswith('{') or re.match(r'```\s*json', stripped, re.IGNORECASE)
    if not looks_like_json:
        return None
    payload = safe_parse_json(stripped)
    if any(_first_string(payload, keys) for keys in (MARKUP_KEYS, STYLE_KEYS, SCRIPT_KEYS)):
        return payload
    return None


def _inline_blocks(markup: str, pattern: re.Pattern, tag: str) -> str:
    blocks = []
    for match in pattern.finditer(markup):
        open_tag = match.group(0)[:match.group(0).find('>') + 1]
        if tag == 'script' and re.search(r'\ssrc\s*=', open_tag, re.IGNORECASE):
            continue
        inner = re.sub(rf'^<{tag}\b[^>]*>|</{tag}\s*>$', '', match.group(0), flags=re.IGNORECASE)
        if inner.strip():
            blocks.append(inner.strip())
    return "\n\n".join(blocks)


def normalize_markup(markup: str) -> str:
    """
    Optional repair pass: re-serialize through an HTML-aware parser so dangling
    tags get closed. Only runs when tags are unbalanced; any parser failure
    falls back to the input.
    """
    if not markup or not find_unclosed_tags(markup):
        return markup
    try:
        repaired = str(BeautifulSoup(markup, "html.parser"))
    except Exception as e:
        logger.warning(f"[Extractor] ⚠ Repair pass failed, keeping raw markup | error: {e}")
        return markup
    if not repaired.strip():
        return markup
    logger.debug(f"[Extractor] Repair pass closed dangling tags | before: {len(markup)} | after: {len(repaired)}")
    return repaired


def extract(raw: str, repair: bool = False) -> ExtractedCode:
    """
    Extract markup/style/script from raw model output.

    Args:
        raw: Raw text as streamed from the generation service
        repair: Run the HTML-aware repair pass over the extracted markup

    Returns:
        ExtractedCode; all fields empty when nothing usable was found
    """
    if not raw or not raw.strip():
        return ExtractedCode()

    payload = _json_payload(raw)
    if payload is not None:
        markup_source = _first_string(payload, MARKUP_KEYS)
        style = _first_string(payload, STYLE_KEYS)
        script = _first_string(payload, SCRIPT_KEYS)
    else:
        markup_source = raw
        # Fences labelled css/js that actually hold a document count as markup
        blocks = [
            ("html" if DOCUMENT_START_RE.search(body) or BODY_SPAN_RE.search(body) else lang, body)
            for lang, body in _fenced_blocks(raw)
        ]
        style = "\n\n".join(body.strip() for lang, body in blocks if lang in CSS_LANGS and body.strip())
        script = "\n\n".join(body.strip() for lang, body in blocks if lang in JS_LANGS and body.strip())
        non_code = [body for lang, body in blocks if lang not in CSS_LANGS | JS_LANGS]
        if blocks and non_code:
            # Prefer fenced markup over surrounding prose
            markup_source = "\n".join(non_code)

    markup = extract_markup(markup_source) if markup_source else ""
    if repair:
        markup = normalize_markup(markup)

    if markup and not style:
        style = _inline_blocks(markup, STYLE_BLOCK_RE, 'style')
    if markup and not script:
        script = _inline_blocks(markup, SCRIPT_BLOCK_RE, 'script')

    result = ExtractedCode(markup=markup, style=style, script=script)
    if result.is_empty:
        logger.warning(f"[Extractor] ✗ Nothing usable in model output | raw_length: {len(raw)}")
    return result
