"""
Pattern-based markup helpers shared by the extractor, validator, repairer
and injector. No parse tree is built; every helper works on raw strings.
"""
from typing import Dict, List
import re


VOID_ELEMENTS = frozenset({
    'area', 'base', 'br', 'col', 'embed', 'hr', 'img', 'input',
    'link', 'meta', 'param', 'source', 'track', 'wbr',
})

SCRIPT_BLOCK_RE = re.compile(r'<script\b[^>]*>.*?</script\s*>', re.IGNORECASE | re.DOTALL)
STYLE_BLOCK_RE = re.compile(r'<style\b[^>]*>.*?</style\s*>', re.IGNORECASE | re.DOTALL)
HEAD_BLOCK_RE = re.compile(r'<head\b[^>]*>.*?</head\s*>', re.IGNORECASE | re.DOTALL)
COMMENT_RE = re.compile(r'<!--.*?-->', re.DOTALL)

# Opening tag, quote-aware so attribute values containing ">" don't end the tag
OPEN_TAG_RE = re.compile(r'<([a-zA-Z][a-zA-Z0-9-]*)((?:"[^"]*"|\'[^\']*\'|[^\'">])*)>')
CLOSE_TAG_RE = re.compile(r'</([a-zA-Z][a-zA-Z0-9-]*)\s*>')
ANY_TAG_RE = re.compile(r'<[^>]+>')


def strip_non_markup(html: str) -> str:
    """Drop script/style bodies and comments so their text isn't read as tags."""
    text = COMMENT_RE.sub('', html)
    text = SCRIPT_BLOCK_RE.sub('<script></script>', text)
    text = STYLE_BLOCK_RE.sub('<style></style>', text)
    return text


def tag_balance(html: str) -> Dict[str, int]:
    """
    Net open-minus-close count per tag name, excluding void elements and
    self-closed tags.
    """
    counts: Dict[str, int] = {}
    text = strip_non_markup(html)
    for match in OPEN_TAG_RE.finditer(text):
        name = match.group(1).lower()
        if name in VOID_ELEMENTS or match.group(0).endswith('/>'):
            continue
        counts[name] = counts.get(name, 0) + 1
    for match in CLOSE_TAG_RE.finditer(text):
        name = match.group(1).lower()
        if name in VOID_ELEMENTS:
            continue
        counts[name] = counts.get(name, 0) - 1
    return counts


def find_unclosed_tags(html: str) -> List[str]:
    """Tag names with more openings than closings, in first-seen order."""
    return [name for name, count in tag_balance(html).items() if count > 0]


def strip_tags(fragment: str) -> str:
    """Tag-free text with the common entities decoded."""
    text = ANY_TAG_RE.sub('', fragment)
    text = (text.replace('&nbsp;', ' ').replace('&amp;', '&')
            .replace('&lt;', '<').replace('&gt;', '>').replace('&quot;', '"'))
    return re.sub(r'\s+', ' ', text).strip()


def visible_text(html: str) -> str:
    """Text a visitor would see: script, style and head blocks and all tags removed, whitespace collapsed."""
    text = SCRIPT_BLOCK_RE.sub(' ', html)
    text = STYLE_BLOCK_RE.sub(' ', text)
    text = HEAD_BLOCK_RE.sub(' ', text)
    text = COMMENT_RE.sub(' ', text)
    text = ANY_TAG_RE.sub(' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def insert_before_body_end(html: str, snippet: str) -> str:
    """Insert before the last </body>, else before </html>, else append."""
    for closing in ('</body>', '</html>'):
        idx = html.lower().rfind(closing)
        if idx != -1:
            return html[:idx] + snippet + '\n' + html[idx:]
    return html + snippet


def insert_after_head_open(html: str, snippet: str) -> str:
    """Insert on its own line right after the opening <head> tag; unchanged when there is none."""
    match = re.search(r'<head\b[^>]*>', html, re.IGNORECASE)
    if not match:
        return html
    rest = html[match.end():]
    tail = '' if rest.startswith(('\n', '\r')) else '\n'
    return html[:match.end()] + '\n' + snippet + tail + rest


def insert_before_head_end(html: str, snippet: str) -> str:
    """Insert right before </head>; unchanged when there is none."""
    return re.sub(r'</head\s*>', lambda m: snippet + '\n' + m.group(0), html, count=1, flags=re.IGNORECASE)


def escape_attr(value: str) -> str:
    return value.replace('&', '&amp;').replace('"', '&quot;').replace('<', '&lt;').replace('>', '&gt;')


CODE_BLOCK_SPLIT_RE = re.compile(
    f'({COMMENT_RE.pattern}|{SCRIPT_BLOCK_RE.pattern}|{STYLE_BLOCK_RE.pattern})', re.IGNORECASE | re.DOTALL
)


def sub_outside_code(pattern: re.Pattern, repl, html: str) -> str:
    """Apply a substitution to markup only, leaving script/style blocks and comments untouched."""
    parts = CODE_BLOCK_SPLIT_RE.split(html)
    # One capturing group: text, code, text, code, ...
    return ''.join(part if i % 2 else pattern.sub(repl, part) for i, part in enumerate(parts))


def mask_code(html: str) -> str:
    """
    Blank out script/style blocks and comments with spaces.

    Offsets are preserved, so a match found in the masked text can be spliced
    into the original markup.
    """
    return CODE_BLOCK_SPLIT_RE.sub(lambda m: ' ' * len(m.group(0)), html)
