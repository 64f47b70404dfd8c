"""Shared page fixtures"""
import pytest

NAV = '<nav><a href="index.html">Home</a><a href="about.html">About</a><a href="contact.html">Contact</a></nav>'
FOOTER = '<footer><p>Acme Bakery</p></footer>'

PARAGRAPH = (
    "Our bakery opens before sunrise so the ovens are hot when the first customers arrive. "
    "Every loaf is shaped by hand from flour milled twenty miles away, and every pastry is "
    "laminated with cultured butter over two slow days. "
)


def document(body: str, title: str = "Acme Bakery") -> str:
    """Well-formed document shell around a body fragment."""
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <link rel="stylesheet" href="style.css">
</head>
<body>
{body}
<script src="script.js"></script>
</body>
</html>"""


def text_page(chars: int) -> str:
    """Document whose visible text is exactly `chars` characters."""
    return document(f"<main><p>{'x' * chars}</p></main>")


def rich_page(name: str = "Home") -> str:
    """Full, content-rich page (well above the rich-content floor)."""
    sections = "\n".join(
        f'<section><h2>{name} section {n}</h2><p>{PARAGRAPH}</p></section>' for n in range(1, 4)
    )
    return document(f"{NAV}\n<main>\n<h1>{name}</h1>\n{sections}\n</main>\n{FOOTER}", title=f"{name} - Acme Bakery")


@pytest.fixture
def make_rich_page():
    return rich_page


@pytest.fixture
def make_text_page():
    return text_page


@pytest.fixture
def make_document():
    return document
