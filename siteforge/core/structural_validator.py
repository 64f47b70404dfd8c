"""
Structural Validator - STRUCTURE, POLICY & COMPLETENESS checks

RESPONSIBILITY: Pure, deterministic validation of one document (or a whole
file map) before it is accepted into the pipeline result.

CHECKS:
  ✓ DOCTYPE present (warning)
  ✓ <html>, <head>, <body> present (critical, independently)
  ✓ Tag balance, void elements excluded (critical per unclosed tag)
  ✓ <html> before <head> before <body> (critical)
  ✓ charset / viewport meta (warning)
  ✓ Forbidden constructs: JSX component tags, module import/export, stray ">" (critical)
  ✓ Unresolved / empty image sources (warning, placeholder penalty)

COMPLETENESS MODE (multi-page acceptance only):
  ✓ Visible text below the acceptance floor (critical) or the rich floor (warning)
  ✓ Lorem ipsum (warning, placeholder penalty)
  ✓ Links to .tsx/.jsx files or "/" (warning)

ARCHITECTURE:
  - No network, no mutation, no LLM calls
  - Same input always yields the same report
"""
from typing import Dict, List, Optional
import re

from siteforge.config.generator_config import (
    ContentThresholds,
    ScoringWeights,
    DEFAULT_THRESHOLDS,
    DEFAULT_WEIGHTS,
)
from siteforge.core.markup_utils import VOID_ELEMENTS, strip_non_markup, find_unclosed_tags, visible_text
from siteforge.models.schemas import (
    IssueKind,
    Severity,
    SiteReport,
    ValidationIssue,
    ValidationReport,
)


# Stable issue codes
MISSING_DOCTYPE = "MISSING_DOCTYPE"
MISSING_HTML = "MISSING_HTML"
MISSING_HEAD = "MISSING_HEAD"
MISSING_BODY = "MISSING_BODY"
MISSING_CHARSET = "MISSING_CHARSET"
MISSING_VIEWPORT = "MISSING_VIEWPORT"
UNCLOSED_TAG = "UNCLOSED_TAG"
INVALID_ORDER = "INVALID_ORDER"
JSX_IN_HTML = "JSX_IN_HTML"
MODULE_STATEMENT = "MODULE_STATEMENT"
TEMPLATE_ARTIFACT = "TEMPLATE_ARTIFACT"
BROKEN_IMAGES = "BROKEN_IMAGES"
EMPTY_PAGE = "EMPTY_PAGE"
THIN_CONTENT = "THIN_CONTENT"
LOREM_IPSUM = "LOREM_IPSUM"
WRONG_LINKS = "WRONG_LINKS"

PLACEHOLDER_CODES = frozenset({BROKEN_IMAGES, LOREM_IPSUM})
REGENERATION_KINDS = frozenset({IssueKind.LOW_CONTENT, IssueKind.FORBIDDEN_CONSTRUCT})

DOCTYPE_RE = re.compile(r'^\s*<!DOCTYPE\s+html', re.IGNORECASE)
JSX_SELF_CLOSING_RE = re.compile(r'<([A-Z][A-Za-z0-9]+)\s*/>')
JSX_OPENING_RE = re.compile(r'<([A-Z][A-Za-z0-9]*[a-z][A-Za-z0-9]*)[\s>/]')
MODULE_STATEMENT_RE = re.compile(
    r'^\s*(?:import\s+(?:[\w*{][^;\n]*?\s+from\s+)?[\'"][^\'"\n]+[\'"]|export\s+(?:default|const|function|class|let|var)\b)',
    re.MULTILINE,
)
STRAY_GT_RE = re.compile(r'^>\s*$', re.MULTILINE)
IMG_SRC_RE = re.compile(r'<img\b[^>]*?\bsrc\s*=\s*(["\'])(.*?)\1', re.IGNORECASE | re.DOTALL)
HREF_RE = re.compile(r'\bhref\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)


def _issue(kind: IssueKind, severity: Severity, code: str, message: str) -> ValidationIssue:
    return ValidationIssue(kind=kind, severity=severity, code=code, message=message)


# Returns the distinct JSX-style component names found outside script/style blocks.
# PascalCase tags and capitalized self-closing tags; all-caps HTML like <DIV> is not flagged.
def find_jsx_components(content: str) -> List[str]:
    """JSX component tag names in first-seen order."""
    text = strip_non_markup(content)
    names: List[str] = []
    for match in JSX_SELF_CLOSING_RE.finditer(text):
        name = match.group(1)
        if name.lower() not in VOID_ELEMENTS and name not in names:
            names.append(name)
    for match in JSX_OPENING_RE.finditer(text):
        name = match.group(1)
        if name not in names:
            names.append(name)
    return names


def _structure_issues(content: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    text = strip_non_markup(content)

    if not DOCTYPE_RE.match(content):
        issues.append(_issue(IssueKind.MISSING_TAG, Severity.WARNING, MISSING_DOCTYPE,
                             "Missing <!DOCTYPE html> declaration"))

    positions = {}
    for tag, code in (("html", MISSING_HTML), ("head", MISSING_HEAD), ("body", MISSING_BODY)):
        match = re.search(rf'<{tag}\b', text, re.IGNORECASE)
        positions[tag] = match.start() if match else -1
        if not match:
            issues.append(_issue(IssueKind.MISSING_TAG, Severity.CRITICAL, code, f"Missing <{tag}> tag"))

    for tag in find_unclosed_tags(content):
        issues.append(_issue(IssueKind.UNCLOSED_TAG, Severity.CRITICAL, UNCLOSED_TAG, f"Unclosed <{tag}> tag"))

    if positions["html"] != -1 and positions["head"] != -1 and positions["html"] > positions["head"]:
        issues.append(_issue(IssueKind.INVALID_STRUCTURE, Severity.CRITICAL, INVALID_ORDER,
                             "<html> tag must come before <head>"))
    if positions["head"] != -1 and positions["body"] != -1 and positions["head"] > positions["body"]:
        issues.append(_issue(IssueKind.INVALID_STRUCTURE, Severity.CRITICAL, INVALID_ORDER,
                             "<head> tag must come before <body>"))

    if not re.search(r'<meta\b[^>]*\bcharset\s*=', text, re.IGNORECASE):
        issues.append(_issue(IssueKind.MISSING_TAG, Severity.WARNING, MISSING_CHARSET,
                             "Missing charset declaration in <head>"))
    if not re.search(r'<meta\b[^>]*\bname\s*=\s*["\']?viewport', text, re.IGNORECASE):
        issues.append(_issue(IssueKind.MISSING_TAG, Severity.WARNING, MISSING_VIEWPORT,
                             "Missing viewport meta tag for responsive design"))
    return issues


def _forbidden_construct_issues(content: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    components = find_jsx_components(content)
    if components:
        issues.append(_issue(IssueKind.FORBIDDEN_CONSTRUCT, Severity.CRITICAL, JSX_IN_HTML,
                             f"Found component tags: {', '.join(components[:5])} -- these render as blank in browsers"))

    text = strip_non_markup(content)
    if MODULE_STATEMENT_RE.search(text):
        issues.append(_issue(IssueKind.FORBIDDEN_CONSTRUCT, Severity.CRITICAL, MODULE_STATEMENT,
                             "Module import/export statement outside a script block"))
    if STRAY_GT_RE.search(text):
        issues.append(_issue(IssueKind.FORBIDDEN_CONSTRUCT, Severity.CRITICAL, TEMPLATE_ARTIFACT,
                             "Stray '>' line -- template fragment leaked into markup"))
    return issues


def _is_broken_src(src: str) -> bool:
    src = src.strip()
    return src in ("", "#", "placeholder") or src.startswith(('"', "'")) or bool(re.search(r'\{[^}]*\}', src))


def _placeholder_issues(content: str) -> List[ValidationIssue]:
    broken = [m.group(2) for m in IMG_SRC_RE.finditer(strip_non_markup(content)) if _is_broken_src(m.group(2))]
    if not broken:
        return []
    return [_issue(IssueKind.INVALID_STRUCTURE, Severity.WARNING, BROKEN_IMAGES,
                   f"{len(broken)} image(s) with empty, placeholder or unresolved src")]


def _completeness_issues(content: str, thresholds: ContentThresholds) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    text_length = len(visible_text(content))
    if text_length < thresholds.acceptable:
        issues.append(_issue(IssueKind.LOW_CONTENT, Severity.CRITICAL, EMPTY_PAGE,
                             f"Page has insufficient content ({text_length} chars of visible text, minimum {thresholds.acceptable})"))
    elif text_length < thresholds.rich:
        issues.append(_issue(IssueKind.LOW_CONTENT, Severity.WARNING, THIN_CONTENT,
                             f"Page content is thin ({text_length} chars of visible text, {thresholds.rich} expected)"))

    if re.search(r'lorem ipsum', content, re.IGNORECASE):
        issues.append(_issue(IssueKind.LOW_CONTENT, Severity.WARNING, LOREM_IPSUM,
                             "Placeholder lorem ipsum text found -- replace with real content"))

    wrong_links = [h for h in HREF_RE.findall(strip_non_markup(content)) if h.endswith(('.tsx', '.jsx')) or h == "/"]
    if wrong_links:
        issues.append(_issue(IssueKind.INVALID_STRUCTURE, Severity.WARNING, WRONG_LINKS,
                             f"Navigation links use wrong format for a static site: {', '.join(wrong_links[:3])}"))
    return issues


def score_issues(issues: List[ValidationIssue], weights: ScoringWeights = DEFAULT_WEIGHTS) -> int:
    """100 minus critical and placeholder penalties, clamped to [0, 100]."""
    criticals = sum(1 for i in issues if i.is_critical)
    placeholders = sum(1 for i in issues if i.code in PLACEHOLDER_CODES)
    score = 100 - weights.critical * criticals - weights.placeholder * placeholders
    return max(0, min(100, score))


# Pure document validation: content in, report out.
# check_completeness adds the low-content and placeholder-text checks used for multi-page acceptance.
def validate(
    content: str,
    check_completeness: bool = False,
    thresholds: ContentThresholds = DEFAULT_THRESHOLDS,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ValidationReport:
    """
    Validate one document.

    Args:
        content: Full document markup
        check_completeness: Also run visible-text and placeholder-content checks
        thresholds: Visible-text floors for completeness mode
        weights: Score penalties

    Returns:
        ValidationReport; passed is True iff there are no critical issues
    """
    content = content or ""
    issues = _structure_issues(content)
    issues.extend(_forbidden_construct_issues(content))
    issues.extend(_placeholder_issues(content))
    if check_completeness:
        issues.extend(_completeness_issues(content, thresholds))

    return ValidationReport(
        issues=issues,
        score=score_issues(issues, weights),
        passed=not any(i.is_critical for i in issues),
    )


def needs_regeneration(report: ValidationReport) -> bool:
    """Critical low-content or forbidden-construct issues can't be repaired, only regenerated."""
    return any(i.is_critical and i.kind in REGENERATION_KINDS for i in report.issues)


def validate_site(
    files: Dict[str, str],
    expected_pages: List[str],
    thresholds: ContentThresholds = DEFAULT_THRESHOLDS,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    exempt: Optional[List[str]] = None,
) -> SiteReport:
    """
    Completeness pass across a whole file map.

    Args:
        files: filename -> content
        expected_pages: Page filenames that must exist (e.g. ["index.html", "about.html"])
        exempt: Page filenames whose criticals are reported per page but don't fail the site

    Returns:
        SiteReport with per-page reports, missing pages and critical error lines
    """
    exempt = set(exempt or [])
    missing = [name for name in expected_pages if not (files.get(name) or "").strip()]
    critical_errors: List[str] = []
    pages: Dict[str, ValidationReport] = {}

    for filename, content in files.items():
        if not filename.endswith(".html"):
            continue
        report = validate(content, check_completeness=True, thresholds=thresholds, weights=weights)
        pages[filename] = report
        if filename in exempt:
            continue
        for issue in report.critical_issues:
            critical_errors.append(f"{filename}: {issue.message}")

    return SiteReport(
        pages=pages,
        missing_pages=missing,
        critical_errors=critical_errors,
        passed=not critical_errors and not missing,
    )


def compute_quality_score(site: SiteReport, weights: ScoringWeights = DEFAULT_WEIGHTS) -> int:
    """Aggregate quality from critical errors, missing, empty and JSX pages."""
    empty_pages = sum(1 for r in site.pages.values() if r.has_code(EMPTY_PAGE))
    jsx_pages = sum(1 for r in site.pages.values() if r.has_code(JSX_IN_HTML))
    score = 100
    score -= weights.critical * len(site.critical_errors)
    score -= weights.missing_page * len(site.missing_pages)
    score -= weights.empty_page * empty_pages
    score -= weights.jsx_page * jsx_pages
    return max(0, min(100, score))
