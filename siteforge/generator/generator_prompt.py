"""Generator prompts, built-in default assets and the fallback page for multi-page static sites"""
from html import escape
from typing import Dict, List
import re

from siteforge.models.schemas import SCRIPT_FILENAME, STYLESHEET_FILENAME, PageSpec, page_filename

GENERATOR_SYSTEM_PROMPT = """
You are an expert front-end developer generating production-ready multi-page websites
using HTML, Tailwind CSS (CDN) and vanilla JavaScript.

## ABSOLUTE RULES (violations produce blank previews)

### Never use component frameworks
- NEVER write component tags like <Hero />, <NavBar />, <Footer />, <ServicesPreview />
- NEVER write JSX expressions like {items.map(...)} or {condition && <div>}
- NEVER write import/export statements or "use client"
- NEVER write TypeScript, only plain JavaScript

### HTML output
- Every HTML file is a complete standalone document: <!DOCTYPE html> -> <html lang="en"> -> <head> -> <body>
- Include the Tailwind CDN in EVERY page <head>: <script src="https://cdn.tailwindcss.com"></script>
- Navigation between pages uses plain <a href="about.html"> links (no router)
- Do not use inline on* event attributes; wire behaviour from script.js with addEventListener

### Styling
- Use Tailwind utility classes for all layout and styling
- Keep style.css for CSS custom properties and animations Tailwind can't express
- Prefer responsive prefixes (sm:, md:, lg:) over custom media queries

### Visual quality
- Hero sections: full-width gradient or image background, bold headline, sub-copy, 1-2 CTA buttons
- Cards: rounded-2xl, drop shadow, hover:shadow-xl hover:-translate-y-1 transition
- Images: <img src="https://picsum.photos/seed/{UNIQUE_SEED}/{W}/{H}" alt="..."> with a unique seed per image
- Never leave an image src empty, "#" or as an unresolved {variable}

### Content
- Every section has real text, never an empty <section> or <div>
- No lorem ipsum, no "placeholder", no "coming soon"
- Card grids carry 3-6 cards with real titles, descriptions and details
- Footers carry real links, copyright and social icons
"""

# Slugs whose prompt carries the contact form block
CONTACT_SLUGS = {"contact"}

CONTACT_FORM_BLOCK = """
CONTACT FORM REQUIREMENTS (submissions are captured by the hosting backend):
- Use this form tag: <form id="contact-form" action="/api/forms/submit" data-form-type="contact" class="space-y-6 max-w-lg mx-auto">
- Fields: Full Name (name, required), Email (email, required), Subject (select: General Enquiry,
  Support, Partnership, Other), Message (textarea, required), and a submit button
- Inside the form, after the button, add the hidden success state:
  <div data-success style="display:none" class="text-center py-8">
    <h3 class="text-2xl font-bold text-green-600 mb-2">Message Sent!</h3>
    <p class="text-gray-500">We'll get back to you within 24 hours.</p>
  </div>
"""


def _nav_links(pages: List[PageSpec]) -> str:
    return "".join(
        f'<a href="{page_filename(p.slug)}" class="text-gray-600 hover:text-indigo-600">{escape(p.display_name)}</a>'
        for p in pages
    )


def default_nav(site_name: str, pages: List[PageSpec]) -> str:
    """Plain nav used when the shared-asset call gives none back."""
    return (
        '<nav class="bg-white shadow-sm sticky top-0 z-50 px-6 py-4 flex justify-between items-center">'
        f'<span class="font-bold text-xl">{escape(site_name)}</span>'
        f'<div class="flex gap-6">{_nav_links(pages)}</div>'
        '</nav>'
    )


def default_footer(site_name: str) -> str:
    return (
        '<footer class="bg-gray-900 text-gray-300 py-10 text-center">'
        f'<p>&copy; {escape(site_name)}</p>'
        '</footer>'
    )


def default_stylesheet() -> str:
    return """/* Shared stylesheet: Tailwind CDN handles layout; this adds brand tokens and scroll reveal */
:root {
  --brand: #6366f1;
  --brand-dark: #4f46e5;
}

/* Scroll reveal, toggled by script.js */
.reveal {
  opacity: 0;
  transform: translateY(24px);
  transition: opacity 0.55s ease, transform 0.55s ease;
}
.reveal.visible {
  opacity: 1;
  transform: translateY(0);
}

nav a.active {
  color: var(--brand);
  font-weight: 700;
}
"""


def default_script() -> str:
    return """document.addEventListener('DOMContentLoaded', function () {
  // Scroll reveal
  var observer = new IntersectionObserver(function (entries) {
    entries.forEach(function (e) { if (e.isIntersecting) e.target.classList.add('visible'); });
  }, { threshold: 0.1 });
  document.querySelectorAll('.reveal').forEach(function (el) { observer.observe(el); });

  // Mobile nav toggle
  var toggle = document.getElementById('nav-toggle');
  var mobileMenu = document.getElementById('mobile-menu');
  if (toggle && mobileMenu) {
    toggle.addEventListener('click', function () { mobileMenu.classList.toggle('hidden'); });
  }

  // Smooth scroll for in-page anchors
  document.querySelectorAll('a[href^="#"]').forEach(function (a) {
    a.addEventListener('click', function (e) {
      var target = document.querySelector(a.getAttribute('href'));
      if (target) { e.preventDefault(); target.scrollIntoView({ behavior: 'smooth' }); }
    });
  });
});
"""


# Shared-asset prompt: one call returns the design system plus nav/footer as JSON.
# Keys must match SharedAssetsPayload aliases.
def build_shared_assets_prompt(site_name: str, root_prompt: str, pages: List[PageSpec]) -> str:
    nav_links = "\n          ".join(
        f'<li><a href="{page_filename(p.slug)}">{p.display_name}</a></li>' for p in pages
    )
    return f"""Generate the shared design system and navigation for a website called "{site_name}".

User's design requirements:
{root_prompt}

Pages: {", ".join(p.display_name for p in pages)}

IMPORTANT: All pages include the Tailwind CDN. Use Tailwind classes for layout and styling.
Keep {STYLESHEET_FILENAME} minimal: CSS custom properties, scroll-reveal animations, and anything Tailwind can't do.

Generate FOUR items:

1. {STYLESHEET_FILENAME}:
   - :root custom properties for brand colors derived from the request
   - .reveal {{ opacity:0; transform:translateY(20px); transition:all 0.5s ease }}
   - .reveal.visible {{ opacity:1; transform:translateY(0) }}
   - NO layout classes

2. {SCRIPT_FILENAME}: complete vanilla JavaScript with a DOMContentLoaded init covering
   - mobile hamburger toggle (toggles 'hidden' on the mobile menu)
   - scroll reveal via IntersectionObserver adding 'visible' to .reveal elements
   - smooth scroll for in-page anchor links

3. nav_html: a responsive Tailwind nav
   - site name on the left (font-bold text-xl)
   - desktop links: hidden sm:flex gap-8 items-center
   - mobile hamburger button (sm:hidden, id="nav-toggle") toggling id="mobile-menu"
   - ALL of these page links: {nav_links}
   - style: bg-white shadow-sm sticky top-0 z-50

4. footer_html: a Tailwind footer
   - 3-column grid: brand blurb | quick links | contact info
   - social icon links (inline SVG)
   - copyright line
   - style: bg-gray-900 text-gray-300 py-12

Return JSON exactly:
{{
  "{STYLESHEET_FILENAME}": "/* minimal CSS */",
  "{SCRIPT_FILENAME}": "// full JS",
  "nav_html": "<nav class=\\"...\\">...</nav>",
  "footer_html": "<footer class=\\"...\\">...</footer>"
}}"""


def build_page_prompt(
    page: PageSpec,
    site_name: str,
    root_prompt: str,
    pages: List[PageSpec],
    nav_fragment: str,
    footer_fragment: str,
) -> str:
    """
    Build the per-page request.

    Args:
        page: Page to generate
        site_name: Site display name
        root_prompt: The user's original request
        pages: Every page of the site (for cross links)
        nav_fragment: Shared nav, pasted verbatim into the page
        footer_fragment: Shared footer, pasted verbatim into the page
    """
    filename = page_filename(page.slug)
    other_links = ", ".join(
        f"{page_filename(p.slug)} ({p.display_name})" for p in pages if p.slug != page.slug
    ) or "none"
    focus = page.description or f"Create the full {page.display_name} page with rich, professional content"
    contact_block = CONTACT_FORM_BLOCK if page.slug in CONTACT_SLUGS else ""

    return f"""Generate the complete "{page.display_name}" page ({filename}) for "{site_name}".

USER'S ORIGINAL REQUEST:
{root_prompt}

PAGE FOCUS:
{focus}

=== TECHNICAL REQUIREMENTS ===
1. Output ONLY a complete <!DOCTYPE html> document, nothing else
2. Include in <head>:
   <script src="https://cdn.tailwindcss.com"></script>
   <link rel="stylesheet" href="{STYLESHEET_FILENAME}">
3. Link before </body>: <script src="{SCRIPT_FILENAME}"></script>
4. NO JSX, NO component tags like <ComponentName />, NO import/export: plain HTML only
5. Other pages: {other_links}

=== NAVIGATION (paste verbatim) ===
{nav_fragment}

=== FOOTER (paste verbatim) ===
{footer_fragment}

=== CONTENT REQUIREMENTS ===
1. HERO SECTION, full width:
   - Large <h1> (text-4xl md:text-6xl font-extrabold) and a compelling subheading
   - 1-2 CTA buttons
   - Hero image: <img src="https://picsum.photos/seed/{page.slug}-hero/1200/500" alt="..." class="w-full h-64 object-cover rounded-2xl mt-8">

2. MAIN CONTENT SECTIONS (at least 3 distinct sections):
   - Each with a heading, body text and a visual element
   - Section images: <img src="https://picsum.photos/seed/{page.slug}-s{{N}}/800/400" alt="..." class="rounded-xl shadow-lg">
   - Tailwind grid/flex layouts (grid grid-cols-1 md:grid-cols-3 gap-8)

3. Add class="reveal" to every major section

4. REAL CONTENT ONLY: specific, believable content for {site_name}; no lorem ipsum, no placeholders

5. MINIMUM CONTENT: 600+ words of visible body text (excluding nav and footer)
{contact_block}
Output ONLY the HTML file starting with <!DOCTYPE html>:"""


def page_name_from_filename(filename: str) -> str:
    """about.html -> about; index.html -> Home"""
    name = re.sub(r'\.html$', '', filename)
    return "Home" if name == "index" else name


def build_regeneration_prompt(
    filename: str,
    site_name: str,
    root_prompt: str,
    files: Dict[str, str],
) -> str:
    """
    Build the regeneration request for a page that failed validation.

    Reuses nav/footer from the accepted index.html and the head of the shared
    stylesheet so the replacement matches the rest of the site.
    """
    stylesheet = files.get(STYLESHEET_FILENAME, "")
    index_html = files.get("index.html", "")
    nav_match = re.search(r'<nav\b[^>]*>.*?</nav\s*>', index_html, re.IGNORECASE | re.DOTALL)
    footer_match = re.search(r'<footer\b[^>]*>.*?</footer\s*>', index_html, re.IGNORECASE | re.DOTALL)
    nav_html = nav_match.group(0) if nav_match else f'<nav><a href="index.html">{escape(site_name)}</a></nav>'
    footer_html = footer_match.group(0) if footer_match else default_footer(site_name)
    page_name = page_name_from_filename(filename)

    return f"""Regenerate the "{page_name}" page ({filename}) for a website called "{site_name}".

ORIGINAL USER REQUEST:
{root_prompt}

CRITICAL RULES:
- Output ONLY a complete <!DOCTYPE html> HTML file
- DO NOT use JSX, component tags like <ComponentName />, or import/export statements
- Every section must have REAL text content, not empty divs
- Use the SAME design and colors as the shared CSS below
- Include the same navigation and footer as shown below

REUSE THIS NAVIGATION (copy exactly):
{nav_html}

REUSE THIS FOOTER (copy exactly):
{footer_html}

SHARED CSS (link to it: <link rel="stylesheet" href="{STYLESHEET_FILENAME}">):
{stylesheet[:2000]}...

This page MUST contain at minimum:
- A hero/header section for the {page_name} page with a real headline
- At least 3 main content sections with real text, cards or lists
- The same navigation and footer as all other pages
- All interactive elements (forms, filters, etc.) requested in the original prompt

Output ONLY the complete HTML file. Nothing else."""


def build_fallback_page(page: PageSpec, site_name: str, nav_fragment: str, footer_fragment: str) -> str:
    """Deterministic stand-in for a page whose regeneration budget ran out."""
    name = escape(page.display_name)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{name} - {escape(site_name)}</title>
  <script src="https://cdn.tailwindcss.com"></script>
  <link rel="stylesheet" href="{STYLESHEET_FILENAME}">
</head>
<body class="bg-gray-50">
  {nav_fragment}
  <main>
    <section class="flex flex-col items-center justify-center min-h-[60vh] text-center px-6">
      <h1 class="text-4xl font-extrabold text-gray-900 mb-4">{name}</h1>
      <p class="text-gray-500 text-lg">This page could not be generated. Please click Regenerate.</p>
    </section>
  </main>
  {footer_fragment}
  <script src="{SCRIPT_FILENAME}"></script>
</body>
</html>"""
