"""
Gap Repairer - deterministically patches the defects the structural validator reports

Every fix re-checks its own precondition against the current markup, so the
repairer is convergent: feeding its output back in (with fresh or stale
issues) changes nothing. Bridging headings carry a data-sf-bridge marker.
"""
from typing import Any, Callable, Dict, List, Optional
import logging
import re

from siteforge.core import structural_validator as sv
from siteforge.core.markup_utils import (
    OPEN_TAG_RE,
    escape_attr,
    find_unclosed_tags,
    insert_after_head_open,
    insert_before_body_end,
    insert_before_head_end,
    mask_code,
    strip_non_markup,
    strip_tags,
    sub_outside_code,
    tag_balance,
)
from siteforge.models.schemas import ValidationIssue

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE_URL = "https://picsum.photos/seed/{seed}/800/600"
BRIDGE_MARKER = 'data-sf-bridge="1"'
DEFAULT_TITLE = "App"
DESCRIPTION_LIMIT = 160
TITLE_LIMIT = 60
STRUCTURAL_BODY_TAGS_RE = re.compile(r'<(header|footer|section|article|aside|main)\b', re.IGNORECASE)
FULL_DOCUMENT_RE = re.compile(r'<!DOCTYPE|<html\b', re.IGNORECASE)

# Extra quote inside the attribute: src=""https://..." or src="'https://...'"
DOUBLE_QUOTED_SRC_RE = re.compile(r'\bsrc\s*=\s*(["\'])["\'](https?://[^"\'\s>]+)["\']?\1?', re.IGNORECASE)
# Unresolved template tokens: {item.image}, ${item.image}, {{ item.image }}
TEMPLATE_SRC_RE = re.compile(r'\bsrc\s*=\s*(["\'])\s*(?:\$\{|\{\{?)\s*([^}"\']+?)\s*\}?\}\s*\1', re.IGNORECASE)
EMPTY_IMG_SRC_RE = re.compile(r'(<img\b[^>]*?)\bsrc\s*=\s*(["\'])(?:|#|placeholder)\2', re.IGNORECASE)
HEADING_OPEN_RE = re.compile(r'<h([1-6])\b[^>]*>', re.IGNORECASE)
H1_TAG_RE = re.compile(r'<(/?)h1\b', re.IGNORECASE)


def placeholder_image_url(variable: str) -> str:
    """Stable placeholder URL seeded from a template variable name."""
    seed = re.sub(r'[^a-z0-9]', '', variable.lower()) or 'img'
    return PLACEHOLDER_IMAGE_URL.format(seed=seed)


class GapRepairer:
    """Patches structural, accessibility and SEO gaps in generated documents"""

    def __init__(self, html: str):
        self.html = html or ""
        self.fixes_applied: List[str] = []
        self.remaining_issues: List[ValidationIssue] = []

    def repair(self, issues: List[ValidationIssue]) -> Dict[str, Any]:
        """
        Apply issue-driven fixes, then the always-on micro-repairs.

        Args:
            issues: Issues reported by the structural validator

        Returns:
            Dict with fixed_html, fixes_applied, and remaining_issues
        """
        handlers: Dict[str, Callable[[], None]] = {
            sv.INVALID_ORDER: self._fix_structure,
            sv.MISSING_HTML: self._fix_missing_html,
            sv.MISSING_HEAD: self._fix_missing_head,
            sv.MISSING_BODY: self._fix_missing_body,
            sv.MISSING_DOCTYPE: self._fix_doctype,
            sv.UNCLOSED_TAG: self._fix_unclosed_tags,
            sv.JSX_IN_HTML: self._fix_jsx_components,
            sv.MODULE_STATEMENT: self._fix_module_statements,
            sv.TEMPLATE_ARTIFACT: self._fix_template_artifacts,
            sv.BROKEN_IMAGES: self._fix_image_sources,
            sv.MISSING_CHARSET: self._fix_meta_tags,
            sv.MISSING_VIEWPORT: self._fix_meta_tags,
        }
        # Restructure first, wrappers before doctype, unclosed tags once wrappers exist
        order = list(handlers)
        present = {issue.code for issue in issues}
        for code in order:
            if code in present:
                handlers[code]()

        for issue in issues:
            if issue.code not in handlers:
                self.remaining_issues.append(issue)

        if FULL_DOCUMENT_RE.search(self.html):
            self._apply_micro_repairs()

        return {
            'fixed_html': self.html,
            'fixes_applied': self.fixes_applied,
            'remaining_issues': self.remaining_issues
        }

    # ------------------------------------------------------------------
    # Issue-driven fixes
    # ------------------------------------------------------------------

    def _fix_doctype(self):
        if not re.match(r'\s*<!DOCTYPE\s+html', self.html, re.IGNORECASE):
            self.html = '<!DOCTYPE html>\n' + self.html.lstrip()
            self.fixes_applied.append('Added <!DOCTYPE html>')

    def _fix_missing_html(self):
        if re.search(r'<html\b', self.html, re.IGNORECASE):
            return
        doctype = re.match(r'\s*<!DOCTYPE[^>]*>\s*', self.html, re.IGNORECASE)
        prefix = doctype.group(0).strip() + '\n' if doctype else ''
        content = self.html[doctype.end():] if doctype else self.html
        self.html = f'{prefix}<html lang="en">\n{content.strip()}\n</html>'
        self.fixes_applied.append('Wrapped document in <html>')

    def _fix_missing_head(self):
        if re.search(r'<head\b', self.html, re.IGNORECASE):
            return
        html_open = re.search(r'<html\b[^>]*>', self.html, re.IGNORECASE)
        if not html_open:
            return
        insert_at = html_open.end()
        body_open = re.search(r'<body\b', self.html[insert_at:], re.IGNORECASE)
        # Anything sitting between <html> and <body> belongs in the head
        head_inner = self.html[insert_at:insert_at + body_open.start()].strip() if body_open else ''
        rest = self.html[insert_at + body_open.start():] if body_open else self.html[insert_at:]
        head = f'\n<head>\n{head_inner}\n</head>\n' if head_inner else '\n<head>\n</head>\n'
        self.html = self.html[:insert_at] + head + rest.lstrip('\n')
        self.fixes_applied.append('Added <head>')

    def _fix_missing_body(self):
        if re.search(r'<body\b', self.html, re.IGNORECASE):
            return
        head_end = re.search(r'</head\s*>', self.html, re.IGNORECASE)
        html_open = re.search(r'<html\b[^>]*>', self.html, re.IGNORECASE)
        anchor = head_end or html_open
        start = anchor.end() if anchor else 0
        html_close = self.html.lower().rfind('</html>')
        end = html_close if html_close >= start else len(self.html)
        content = self.html[start:end].strip()
        self.html = f'{self.html[:start]}\n<body>\n{content}\n</body>\n{self.html[end:]}'
        self.fixes_applied.append('Added <body>')

    def _fix_unclosed_tags(self):
        counts = tag_balance(self.html)
        unclosed = find_unclosed_tags(self.html)
        if not unclosed:
            return
        # Innermost first: the most recently opened unclosed tag closes first
        text = strip_non_markup(self.html)
        last_open = {m.group(1).lower(): m.start() for m in OPEN_TAG_RE.finditer(text)}
        inner = sorted(
            (t for t in unclosed if t not in ('html', 'head', 'body')),
            key=lambda t: last_open.get(t, 0),
            reverse=True,
        )
        closing = ''.join(f'</{tag}>' * counts[tag] for tag in inner)
        if closing:
            self.html = insert_before_body_end(self.html, closing)
        if 'head' in unclosed:
            self.html = re.sub(r'(<body\b)', r'</head>\n\1', self.html, count=1, flags=re.IGNORECASE)
        if 'body' in unclosed:
            idx = self.html.lower().rfind('</html>')
            self.html = self.html[:idx] + '</body>\n' + self.html[idx:] if idx != -1 else self.html + '\n</body>'
        if 'html' in unclosed:
            self.html = self.html.rstrip() + '\n</html>'
        self.fixes_applied.append(f"Closed unclosed tags: {', '.join(unclosed)}")

    def _fix_structure(self):
        """Rebuild the document in canonical order from its title/head/body fragments"""
        html_pos = re.search(r'<html\b', self.html, re.IGNORECASE)
        head_pos = re.search(r'<head\b', self.html, re.IGNORECASE)
        body_pos = re.search(r'<body\b', self.html, re.IGNORECASE)
        misordered = (
            (html_pos and head_pos and html_pos.start() > head_pos.start())
            or (head_pos and body_pos and head_pos.start() > body_pos.start())
        )
        if not misordered:
            return

        head_match = re.search(r'<head\b[^>]*>(.*?)</head\s*>', self.html, re.IGNORECASE | re.DOTALL)
        body_match = re.search(r'<body\b([^>]*)>(.*?)</body\s*>', self.html, re.IGNORECASE | re.DOTALL)
        head_inner = head_match.group(1).strip() if head_match else ''
        body_attrs = body_match.group(1) if body_match else ''
        if body_match:
            body_inner = body_match.group(2).strip()
        else:
            body_inner = self.html
            if head_match:
                body_inner = body_inner.replace(head_match.group(0), '')
            body_inner = re.sub(r'<!DOCTYPE[^>]*>|</?html\b[^>]*>|</?body\b[^>]*>', '', body_inner,
                                flags=re.IGNORECASE).strip()

        self.html = (
            '<!DOCTYPE html>\n'
            '<html lang="en">\n'
            f'<head>\n{head_inner}\n</head>\n'
            f'<body{body_attrs}>\n{body_inner}\n</body>\n'
            '</html>'
        )
        self.fixes_applied.append('Rebuilt document in canonical html/head/body order')

    def _fix_jsx_components(self):
        before = self.html
        names = sv.find_jsx_components(self.html)
        for name in names:
            paired = re.compile(rf'<{name}\b[^>]*>.*?</{name}\s*>', re.DOTALL)
            self.html = sub_outside_code(paired, f'<!-- {name} component not rendered -->', self.html)
            lone = re.compile(rf'<{name}\b[^>]*/?>|</{name}\s*>')
            self.html = sub_outside_code(lone, f'<!-- {name} component not rendered -->', self.html)
        if self.html != before:
            self.fixes_applied.append(f"Commented out component tags: {', '.join(names)}")

    def _fix_module_statements(self):
        before = self.html
        self.html = sub_outside_code(sv.MODULE_STATEMENT_RE, '', self.html)
        if self.html != before:
            self.fixes_applied.append('Removed module import/export statements')

    def _fix_template_artifacts(self):
        before = self.html
        self.html = sub_outside_code(sv.STRAY_GT_RE, '', self.html)
        if self.html != before:
            self.fixes_applied.append("Removed stray '>' lines")

    def _fix_image_sources(self):
        before = self.html
        self.html = sub_outside_code(DOUBLE_QUOTED_SRC_RE, lambda m: f'src="{m.group(2)}"', self.html)
        self.html = sub_outside_code(
            TEMPLATE_SRC_RE, lambda m: f'src="{placeholder_image_url(m.group(2))}"', self.html
        )
        self.html = sub_outside_code(
            EMPTY_IMG_SRC_RE,
            lambda m: f'{m.group(1)}src="{PLACEHOLDER_IMAGE_URL.format(seed="placeholder")}"',
            self.html,
        )
        if self.html != before:
            self.fixes_applied.append('Replaced malformed image sources with seeded placeholders')

    def _fix_meta_tags(self):
        if not re.search(r'<head\b[^>]*>', self.html, re.IGNORECASE):
            return
        missing = []
        if not re.search(r'<meta\b[^>]*\bcharset\s*=', self.html, re.IGNORECASE):
            missing.append('  <meta charset="UTF-8">')
        if not re.search(r'<meta\b[^>]*\bname\s*=\s*["\']?viewport', self.html, re.IGNORECASE):
            missing.append('  <meta name="viewport" content="width=device-width, initial-scale=1.0">')
        if missing:
            self.html = insert_after_head_open(self.html, '\n'.join(missing))
            self.fixes_applied.append('Added charset/viewport meta')

    # ------------------------------------------------------------------
    # Always-on micro-repairs (full documents only)
    # ------------------------------------------------------------------

    def _apply_micro_repairs(self):
        self._fix_image_sources()
        self._fix_lang()
        self._fix_meta_tags()
        self._fix_heading_hierarchy()
        self._fix_title()
        self._fix_description()
        self._fix_img_alt()
        self._fix_img_lazy()
        self._fix_external_rel()
        self._fix_header_wrapper()
        self._fix_main_wrapper()
        self._fix_open_graph()

    def _fix_lang(self):
        fixed = re.sub(r'<html\b(?![^>]*\blang\s*=)([^>]*)>', r'<html lang="en"\1>', self.html,
                       count=1, flags=re.IGNORECASE)
        if fixed != self.html:
            self.html = fixed
            self.fixes_applied.append('Added lang="en" to <html>')

    def _fix_title(self):
        masked = mask_code(self.html)
        if re.search(r'<title\b[^>]*>.*?</title\s*>', masked, re.IGNORECASE | re.DOTALL):
            return
        if not re.search(r'</head\s*>', masked, re.IGNORECASE):
            return
        h1 = re.search(r'<h1\b[^>]*>(.*?)</h1\s*>', masked, re.IGNORECASE | re.DOTALL)
        title = strip_tags(h1.group(1))[:TITLE_LIMIT] if h1 else ''
        self.html = insert_before_head_end(self.html, f'  <title>{escape_attr(title or DEFAULT_TITLE)}</title>')
        self.fixes_applied.append('Added <title>')

    def _fix_description(self):
        masked = mask_code(self.html)
        if re.search(r'<meta\b[^>]*\bname\s*=\s*["\']description["\']', masked, re.IGNORECASE):
            return
        if not re.search(r'</head\s*>', masked, re.IGNORECASE):
            return
        paragraph = re.search(r'<p\b[^>]*>(.*?)</p\s*>', masked, re.IGNORECASE | re.DOTALL)
        description = strip_tags(paragraph.group(1))[:DESCRIPTION_LIMIT].strip() if paragraph else ''
        if not description:
            return
        self.html = insert_before_head_end(
            self.html, f'  <meta name="description" content="{escape_attr(description)}">'
        )
        self.fixes_applied.append('Added meta description')

    def _rewrite_open_tags(self, tag: str, rewrite: Callable[[str], Optional[str]]) -> int:
        """Rewrite the attribute text of every <tag ...> outside code blocks; returns how many changed."""
        changed = 0

        def _sub(match: re.Match) -> str:
            nonlocal changed
            if match.group(1).lower() != tag:
                return match.group(0)
            attrs = match.group(2)
            new_attrs = rewrite(attrs)
            if new_attrs is None or new_attrs == attrs:
                return match.group(0)
            changed += 1
            return f'<{match.group(1)}{new_attrs}>'

        self.html = sub_outside_code(OPEN_TAG_RE, _sub, self.html)
        return changed

    def _fix_img_alt(self):
        def _add_alt(attrs: str) -> Optional[str]:
            if re.search(r'\balt\s*=', attrs, re.IGNORECASE):
                return None
            if attrs.rstrip().endswith('/'):
                return attrs.rstrip()[:-1].rstrip() + ' alt="" /'
            return attrs + ' alt=""'

        count = self._rewrite_open_tags('img', _add_alt)
        if count:
            self.fixes_applied.append(f'Added alt="" to {count} image(s)')

    def _fix_img_lazy(self):
        def _add_lazy(attrs: str) -> Optional[str]:
            if re.search(r'\bloading\s*=', attrs, re.IGNORECASE):
                return None
            return ' loading="lazy"' + attrs

        count = self._rewrite_open_tags('img', _add_lazy)
        if count:
            self.fixes_applied.append(f'Added loading="lazy" to {count} image(s)')

    def _fix_external_rel(self):
        def _add_rel(attrs: str) -> Optional[str]:
            if not re.search(r'\bhref\s*=\s*["\']?https?://', attrs, re.IGNORECASE):
                return None
            if re.search(r'\brel\s*=', attrs, re.IGNORECASE):
                return None
            return attrs + ' rel="noopener noreferrer"'

        count = self._rewrite_open_tags('a', _add_rel)
        if count:
            self.fixes_applied.append(f'Added rel="noopener noreferrer" to {count} external link(s)')

    def _fix_heading_hierarchy(self):
        # Headings inside scripts, styles and comments are never counted or rewritten
        masked = mask_code(self.html)

        # No <h1>: promote the first <h2> (and its closing tag)
        if not re.search(r'<h1\b', masked, re.IGNORECASE):
            first_h2 = re.search(r'<h2\b', masked, re.IGNORECASE)
            if first_h2:
                start = first_h2.start()
                close = re.search(r'</h2\s*>', masked[start:], re.IGNORECASE)
                head = self.html[:start] + '<h1' + self.html[start + 3:]
                if close:
                    cstart = start + close.start()
                    head = head[:cstart] + '</h1>' + head[start + close.end():]
                self.html = head
                self.fixes_applied.append('Promoted first <h2> to <h1>')

        # More than one <h1>: keep the first pair, demote the rest
        if len(re.findall(r'<h1\b', mask_code(self.html), re.IGNORECASE)) > 1:
            state = {'opened': False, 'closed': False}

            def _demote(match: re.Match) -> str:
                closing = match.group(1) == '/'
                if not state['opened'] and not closing:
                    state['opened'] = True
                    return match.group(0)
                if state['opened'] and not state['closed'] and closing:
                    state['closed'] = True
                    return match.group(0)
                return f"<{match.group(1)}h2"

            self.html = sub_outside_code(H1_TAG_RE, _demote, self.html)
            self.fixes_applied.append('Demoted extra <h1> elements to <h2>')

        # Level jumps: insert hidden bridging headings for every skipped level
        inserts = []
        last_level = 0
        for match in HEADING_OPEN_RE.finditer(mask_code(self.html)):
            level = int(match.group(1))
            if last_level and level - last_level > 1:
                bridge = ''.join(
                    f'<h{n} style="display:none" aria-hidden="true" {BRIDGE_MARKER}></h{n}>'
                    for n in range(last_level + 1, level)
                )
                inserts.append((match.start(), bridge))
            last_level = level
        for index, bridge in reversed(inserts):
            self.html = self.html[:index] + bridge + self.html[index:]
        if inserts:
            self.fixes_applied.append(f'Inserted {len(inserts)} bridging heading group(s)')

    def _fix_header_wrapper(self):
        masked = mask_code(self.html)
        if re.search(r'<header\b', masked, re.IGNORECASE):
            return
        nav = re.search(r'<nav\b.*?</nav\s*>', masked, re.IGNORECASE | re.DOTALL)
        if not nav:
            return
        self.html = (
            self.html[:nav.start()] + '<header>\n' + self.html[nav.start():nav.end()] + '\n</header>'
            + self.html[nav.end():]
        )
        self.fixes_applied.append('Wrapped <nav> in <header>')

    def _fix_main_wrapper(self):
        masked = mask_code(self.html)
        if re.search(r'<main\b', masked, re.IGNORECASE):
            return
        match = re.search(r'(<body\b[^>]*>)(.*?)(</body\s*>)', masked, re.IGNORECASE | re.DOTALL)
        if not match:
            return
        if STRUCTURAL_BODY_TAGS_RE.search(match.group(2)) or len(match.group(2).strip()) < 20:
            return
        content = self.html[match.start(2):match.end(2)]
        wrapped = f'{match.group(1)}\n<main>\n{content.strip()}\n</main>\n{match.group(3)}'
        self.html = self.html[:match.start()] + wrapped + self.html[match.end():]
        self.fixes_applied.append('Wrapped body content in <main>')

    def _fix_open_graph(self):
        masked = mask_code(self.html)
        if re.search(r'property\s*=\s*["\']og:', masked, re.IGNORECASE):
            return
        if not re.search(r'</head\s*>', masked, re.IGNORECASE):
            return
        title = re.search(r'<title\b[^>]*>(.*?)</title\s*>', masked, re.IGNORECASE | re.DOTALL)
        description = re.search(
            r'<meta\b[^>]*\bname\s*=\s*["\']description["\'][^>]*\bcontent\s*=\s*"([^"]*)"', masked, re.IGNORECASE
        )
        og_title = strip_tags(title.group(1)) if title else ''
        tags = []
        if og_title:
            tags.append(f'  <meta property="og:title" content="{escape_attr(og_title)}">')
        if description and description.group(1):
            tags.append(f'  <meta property="og:description" content="{description.group(1)}">')
        tags.append('  <meta property="og:type" content="website">')
        self.html = insert_before_head_end(self.html, '\n'.join(tags))
        self.fixes_applied.append('Added Open Graph meta tags')


# Main entry point: validates when no issues are supplied, then repairs.
# Returns the full fix report (fixed_html, fixes_applied, remaining_issues).
def repair_document(content: str, issues: Optional[List[ValidationIssue]] = None) -> Dict[str, Any]:
    """
    Repair a document.

    Args:
        content: Document markup
        issues: Validator issues; computed from the content when omitted

    Returns:
        Dict with 'fixed_html', 'fixes_applied' and 'remaining_issues' keys
    """
    if issues is None:
        issues = sv.validate(content).issues
    repairer = GapRepairer(content)
    result = repairer.repair(issues)
    if result['fixes_applied']:
        logger.debug(f"[Repairer] Applied {len(result['fixes_applied'])} fix(es): {result['fixes_applied']}")
    return result


def repair(content: str, issues: Optional[List[ValidationIssue]] = None) -> str:
    """(content, issues) -> repaired content"""
    return repair_document(content, issues)['fixed_html']
