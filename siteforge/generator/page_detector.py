"""
Page detection - reads the free-form prompt before generation and decides
what kind of site it asks for and which pages it needs.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import logging
import re

from siteforge.models.schemas import OutputMode, PageSpec

logger = logging.getLogger(__name__)

# Keywords that signal each mode
MARKUP_SIGNALS = [
    "html", "vanilla js", "vanilla javascript", "plain html", "static",
    "separate html pages", "shared css", "no framework", "pure html",
    "html file", "html pages", "cdn", "just html", "simple html",
    "html/css/js", "html, css", "html css js",
]

FRAMEWORK_SIGNALS = [
    "next.js", "nextjs", "next js", "app router", "server component",
    "server action", "prisma", "supabase", "full-stack", "fullstack",
    "full stack", "api route", "database", "auth", "authentication",
    "login", "signup", "dashboard", "saas",
]

SPA_SIGNALS = [
    "react", "vite", "create react app", "single page", "spa",
    "react router", "react app",
]

# Keyword table for prompts that mention pages without listing them
COMMON_PAGES: List[Tuple[Tuple[str, ...], str, str]] = [
    (("home", "landing", "hero", "index"), "Home", "index"),
    (("about", "story", "our story", "bio", "team"), "About", "about"),
    (("contact", "booking form", "book", "reach us"), "Contact", "contact"),
    (("services", "service", "menu", "pricing"), "Services", "services"),
    (("portfolio", "projects", "work", "gallery"), "Projects", "projects"),
    (("products", "shop", "store", "catalogue"), "Products", "products"),
    (("blog", "articles", "posts"), "Blog", "blog"),
    (("dashboard", "admin"), "Dashboard", "dashboard"),
    (("login", "sign in", "signin"), "Login", "login"),
    (("signup", "sign up", "register"), "Signup", "signup"),
    (("onboarding", "wizard", "setup"), "Onboarding", "onboarding"),
    (("cart", "basket"), "Cart", "cart"),
    (("checkout",), "Checkout", "checkout"),
    (("profile", "account", "settings"), "Profile", "profile"),
]

HOME_ALIASES = {"home", "landing", "main", "index"}

NUMBERED_PAGE_RE = re.compile(r'\d+\.\s+([\w\s]+?)(?:\s*[-–—]\s*(.*?))?(?=\n|\d+\.|$)')
PAGES_LIST_RE = re.compile(r'pages?\s*[:–—]\s*([^\n.]+)', re.IGNORECASE)
PAGE_WORD_RE = re.compile(r'\s*page\s*', re.IGNORECASE)


@dataclass
class ModeDetection:
    """What the prompt asks for"""
    mode: OutputMode
    confidence: str  # "high" | "medium" | "low"
    reason: str
    pages: List[PageSpec] = field(default_factory=list)
    tech_stack: List[str] = field(default_factory=list)


def to_slug(name: str) -> str:
    """Lowercase words joined by hyphens; home-ish names map to 'index'. Empty when nothing usable is left."""
    words = re.sub(r'[-_]+', ' ', name.lower())
    slug = re.sub(r'[^a-z0-9\s]', '', words).strip()
    slug = re.sub(r'\s+', '-', slug)
    return "index" if slug in HOME_ALIASES else slug


def title_case(text: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split(" "))


def dedup_pages(pages: List[PageSpec]) -> List[PageSpec]:
    """Keep the first page per slug, preserving order."""
    seen = set()
    unique = []
    for page in pages:
        if page.slug in seen:
            continue
        seen.add(page.slug)
        unique.append(page)
    return unique


def _matching(signals: List[str], lower: str) -> List[str]:
    return [s for s in signals if s in lower]


# Scores the prompt against each signal list.
# Two or more framework signals win; markup wins only when nothing else matched.
def detect_output_mode(prompt: str) -> ModeDetection:
    """
    Classify a prompt and extract its page list.

    Args:
        prompt: Free-form site description

    Returns:
        ModeDetection with mode, confidence, reason, pages and tech stack
    """
    lower = prompt.lower()
    markup_hits = _matching(MARKUP_SIGNALS, lower)
    framework_hits = _matching(FRAMEWORK_SIGNALS, lower)
    spa_hits = _matching(SPA_SIGNALS, lower)

    if len(framework_hits) >= 2:
        mode = OutputMode.FRAMEWORK
        confidence = "high" if len(framework_hits) >= 4 else "medium"
        reason = f"Full-stack signals detected: {', '.join(framework_hits)}"
    elif markup_hits and not framework_hits and not spa_hits:
        mode = OutputMode.MARKUP
        confidence = "high" if len(markup_hits) >= 2 else "medium"
        reason = f"Plain HTML signals: {', '.join(markup_hits)}"
    elif spa_hits:
        mode = OutputMode.SPA
        confidence = "high" if len(spa_hits) >= 2 else "medium"
        reason = f"Single-page app signals: {', '.join(spa_hits)}"
    else:
        has_complexity = "page" in lower and any(word in lower for word in ("form", "filter", "search"))
        mode = OutputMode.FRAMEWORK if has_complexity else OutputMode.MARKUP
        confidence = "low"
        reason = "No clear framework signal, inferred from complexity"

    detection = ModeDetection(
        mode=mode,
        confidence=confidence,
        reason=reason,
        pages=extract_pages(prompt),
        tech_stack=extract_tech_stack(prompt, mode),
    )
    logger.info(
        f"[Detector] ✓ Mode detected | mode: {mode.value} | confidence: {confidence} | "
        f"pages: {[p.slug for p in detection.pages]}"
    )
    return detection


def extract_pages(prompt: str) -> List[PageSpec]:
    """
    Extract page names from the prompt, home first.

    Tries, in order: a numbered list ("1. Home page - hero and CTA"), a
    "Pages: Home, About, Contact" list, then common page keywords anywhere.
    """
    pages: List[PageSpec] = []

    for match in NUMBERED_PAGE_RE.finditer(prompt):
        name = PAGE_WORD_RE.sub(' ', match.group(1).strip(), count=1).strip()
        description = (match.group(2) or "").strip()
        slug = to_slug(name)
        if slug and len(name) < 30:
            pages.append(PageSpec(slug=slug, display_name=title_case(name), description=description))
    if pages:
        return dedup_pages(pages)

    listed = PAGES_LIST_RE.search(prompt)
    if listed:
        for item in re.split(r'[,;]', listed.group(1)):
            name = re.sub(r'\(.*?\)', '', item.strip())
            name = PAGE_WORD_RE.sub(' ', name, count=1).strip()
            slug = to_slug(name)
            if slug and 1 < len(name) < 40:
                pages.append(PageSpec(slug=slug, display_name=title_case(name), description=item.strip()))
    if pages:
        return dedup_pages(pages)

    lower = prompt.lower()
    for keywords, name, slug in COMMON_PAGES:
        if any(k in lower for k in keywords):
            pages.append(PageSpec(slug=slug, display_name=name))

    home_index = next((i for i, p in enumerate(pages) if p.slug == "index"), -1)
    if home_index > 0:
        pages.insert(0, pages.pop(home_index))
    elif home_index == -1 and pages:
        pages.insert(0, PageSpec(slug="index", display_name="Home", description="Landing page"))
    return dedup_pages(pages)


def extract_tech_stack(prompt: str, mode: OutputMode) -> List[str]:
    lower = prompt.lower()
    stack: List[str] = []
    if mode == OutputMode.MARKUP:
        stack += ["HTML5", "CSS3", "Vanilla JS"]
    elif mode == OutputMode.FRAMEWORK:
        stack += ["Next.js", "TypeScript", "Tailwind CSS"]
    elif mode == OutputMode.SPA:
        stack += ["React", "Vite", "TypeScript"]

    extras = [
        (("tailwind",), "Tailwind CSS"),
        (("animation", "gsap"), "CSS Animations"),
        (("glassmorphism",), "Glassmorphism CSS"),
        (("prisma",), "Prisma"),
        (("supabase",), "Supabase"),
        (("stripe",), "Stripe"),
        (("clerk",), "Clerk Auth"),
    ]
    for keywords, label in extras:
        if any(k in lower for k in keywords):
            stack.append(label)
    return list(dict.fromkeys(stack))


def resolve_pages(pages: List[PageSpec], max_pages: int) -> Tuple[List[PageSpec], Optional[str]]:
    """
    Apply the page cap and the single-home-page default.

    Returns:
        (pages to generate, warning or None)
    """
    if not pages:
        return [PageSpec(slug="index", display_name="Home", description="Landing page")], None
    if len(pages) <= max_pages:
        return list(pages), None
    kept = list(pages[:max_pages])
    warning = (
        f"Prompt requested {len(pages)} pages; generating the first {max_pages} "
        f"({', '.join(p.display_name for p in kept)}). Ask for the remaining pages in a follow-up."
    )
    logger.warning(f"[Detector] ⚠ {warning}")
    return kept, warning
