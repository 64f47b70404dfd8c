"""
Tests for the gap repairer

Each test feeds a document with a known defect and checks the fix, the
fixes_applied log, and that a second pass changes nothing.
"""
import re

import pytest

from siteforge.core import structural_validator as sv
from siteforge.core.gap_repairer import (
    BRIDGE_MARKER,
    GapRepairer,
    placeholder_image_url,
    repair,
    repair_document,
)


MESSY_PAGE = """<html>
<head><title>Shop</title></head>
<body>
<nav><a href="index.html">Home</a><a href="https://instagram.com/acme">Instagram</a></nav>
<h1>Our Shop</h1>
<h3>Featured</h3>
<p>Handmade ceramics from our studio.</p>
<img src="{item.image}">
<img src="">
<div class="grid"><p>Unclosed grid
</body>
</html>"""


class TestPlaceholderImages:

    @pytest.mark.parametrize("variable,seed", [
        ("item.image", "itemimage"),
        ("product.photoUrl", "productphotourl"),
        ("...", "img"),
    ])
    def test_seed_from_variable_name(self, variable, seed):
        assert placeholder_image_url(variable) == f"https://picsum.photos/seed/{seed}/800/600"

    def test_template_sources_replaced(self, make_document):
        page = make_document('<img src="{item.image}" alt="a"><img src="${hero}" alt="b"><img src="{{ cover }}" alt="c">')
        fixed = repair(page)
        assert 'src="https://picsum.photos/seed/itemimage/800/600"' in fixed
        assert 'src="https://picsum.photos/seed/hero/800/600"' in fixed
        assert 'src="https://picsum.photos/seed/cover/800/600"' in fixed
        assert "{" not in re.sub(r"<script.*?</script>", "", fixed, flags=re.DOTALL)

    def test_double_quoted_src(self, make_document):
        fixed = repair(make_document('<img src=""https://example.com/a.jpg" alt="">'))
        assert 'src="https://example.com/a.jpg"' in fixed

    def test_empty_src(self, make_document):
        fixed = repair(make_document('<img src="" alt="x">'))
        assert 'src="https://picsum.photos/seed/placeholder/800/600"' in fixed


class TestStructuralFixes:

    def test_fragment_becomes_full_document(self):
        fixed = repair("<h1>Welcome</h1><p>Fresh bread every morning.</p>")
        assert fixed.startswith("<!DOCTYPE html>")
        for tag in ("<html", "<head>", "<body>", '<meta charset="UTF-8">', 'name="viewport"', "<main>"):
            assert tag in fixed
        assert sv.validate(fixed).passed

    def test_unclosed_tags_closed_before_body_end(self):
        result = repair_document(MESSY_PAGE)
        report = sv.validate(result["fixed_html"])
        assert not report.has_code(sv.UNCLOSED_TAG)
        assert any(f.startswith("Closed unclosed tags") for f in result["fixes_applied"])

    def test_misordered_document_rebuilt(self):
        page = '<html><body><p>Body text</p></body><head><meta charset="UTF-8"></head></html>'
        fixed = repair(page)
        assert fixed.index("<head>") < fixed.index("<body")
        assert not sv.validate(fixed).has_code(sv.INVALID_ORDER)

    def test_components_commented_out(self, make_document):
        fixed = repair(make_document("<Header /><main><p>Real text</p><Footer></Footer></main>"))
        assert "<!-- Header component not rendered -->" in fixed
        assert "<!-- Footer component not rendered -->" in fixed
        assert sv.find_jsx_components(fixed) == []

    def test_module_statements_removed_outside_scripts(self, make_document):
        page = make_document("import Hero from './Hero'\n<p>x</p><script>\nimport('./lazy.js');\n</script>")
        fixed = repair(page)
        assert "import Hero" not in fixed
        assert "import('./lazy.js')" in fixed

    def test_unhandled_issue_left_for_caller(self, make_text_page):
        page = make_text_page(20)
        result = repair_document(page, sv.validate(page, check_completeness=True).issues)
        assert [i.code for i in result["remaining_issues"]] == [sv.EMPTY_PAGE]


class TestMicroRepairs:

    def test_accessibility_and_seo(self):
        fixed = repair(MESSY_PAGE)
        assert '<html lang="en">' in fixed
        assert '<meta name="description" content="Handmade ceramics from our studio.">' in fixed
        assert 'rel="noopener noreferrer"' in fixed
        assert '<meta property="og:title" content="Shop">' in fixed
        assert '<header>' in fixed
        for img in re.findall(r"<img\b[^>]*>", fixed):
            assert 'alt=""' in img
            assert 'loading="lazy"' in img

    def test_heading_gap_bridged(self):
        fixed = repair(MESSY_PAGE)
        bridge = fixed.index(BRIDGE_MARKER)
        assert fixed.index("<h1>") < bridge < fixed.index("<h3>")
        assert '<h2 style="display:none" aria-hidden="true"' in fixed

    def test_extra_h1_demoted_and_h2_promoted(self, make_document):
        fixed = repair(make_document("<h1>One</h1><h1>Two</h1>"))
        assert fixed.count("<h1") == 1
        assert "<h2>Two</h2>" in fixed

        promoted = repair(make_document("<h2>Only</h2><p>text</p>"))
        assert "<h1>Only</h1>" in promoted

    def test_existing_title_kept(self, make_rich_page):
        fixed = repair(make_rich_page("About"))
        assert fixed.count("<title>") == 1
        assert "<title>About - Acme Bakery</title>" in fixed

    def test_head_meta_on_its_own_lines(self):
        fixed = repair("<!DOCTYPE html><html><head><title>A</title></head><body><h1>A</h1><p>t</p></body></html>")
        assert '<head>\n  <meta charset="UTF-8">\n' in fixed
        assert '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n<title>A</title>' in fixed


class TestScriptBodies:

    def test_headings_in_script_strings_untouched(self):
        page = (
            "<!DOCTYPE html><html><head></head><body><h1>A</h1>"
            "<script>var s='<h1>x</h1>'; var t='<h4>y</h4>';</script><p>pp</p></body></html>"
        )
        fixed = repair(page)
        assert "var s='<h1>x</h1>'; var t='<h4>y</h4>';" in fixed
        assert BRIDGE_MARKER not in fixed
        assert "Demoted extra <h1> elements to <h2>" not in repair_document(page)["fixes_applied"]

    def test_title_and_description_ignore_script_text(self):
        page = (
            "<!DOCTYPE html><html><head></head><body>"
            "<script>var s='<h1>x</h1>'; var p='<p>from script</p>';</script>"
            "<h2>Only</h2><p>Real text</p></body></html>"
        )
        fixed = repair(page)
        assert "<h1>Only</h1>" in fixed
        assert "<title>Only</title>" in fixed
        assert '<meta name="description" content="Real text">' in fixed
        assert "var s='<h1>x</h1>'; var p='<p>from script</p>';" in fixed

    def test_commented_headings_not_counted(self, make_document):
        fixed = repair(make_document("<!-- <h1>Draft</h1> --><h1>Live</h1><h2>Next</h2><p>text</p>"))
        assert "<!-- <h1>Draft</h1> -->" in fixed
        assert "<h1>Live</h1>" in fixed

    def test_script_built_images_untouched(self, make_document):
        script = 'el.innerHTML = `<img src="${url}">`;'
        fixed = repair(make_document(f"<h1>Gallery</h1><p>Photos</p><script>{script}</script>"))
        assert script in fixed
        assert sv.BROKEN_IMAGES not in [issue.code for issue in sv.validate(fixed).issues]


class TestConvergence:

    @pytest.mark.parametrize("page", [
        MESSY_PAGE,
        "<h1>Welcome</h1><p>Fresh bread every morning.</p>",
        '<html><body><p>Body text</p></body><head></head></html>',
        "<Header /><section><h1>Title</h1><h4>Deep</h4><p>Text",
    ])
    def test_second_pass_is_a_no_op(self, page):
        once = repair(page)
        twice = repair_document(once)
        assert twice["fixed_html"] == once
        assert twice["fixes_applied"] == []

    def test_stale_issues_do_not_reapply(self):
        issues = sv.validate(MESSY_PAGE).issues
        once = repair(MESSY_PAGE, issues)
        assert repair(once, issues) == once

    def test_class_reports_fixes(self):
        repairer = GapRepairer("<p>x</p>")
        result = repairer.repair(sv.validate("<p>x</p>").issues)
        assert result["fixed_html"] == repairer.html
        assert "Added <!DOCTYPE html>" in result["fixes_applied"]
