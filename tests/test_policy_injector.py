"""
Tests for the policy injector

Inline handler rewiring, backend hooks, CSP meta and idempotence.
"""
import re

import pytest

from siteforge.core.markup_utils import OPEN_TAG_RE, strip_non_markup
from siteforge.core.policy_injector import (
    ANALYTICS_ENDPOINT,
    CSP_POLICY_VERSION,
    FORMS_ENDPOINT,
    HANDLERS_MARKER,
    PolicyInjector,
    apply_policies,
    inject,
)


def inline_handler_attrs(html):
    """on* attributes left on any tag outside script/style blocks"""
    found = []
    for match in OPEN_TAG_RE.finditer(strip_non_markup(html)):
        found += re.findall(r'\s(on[a-z]+)\s*=', match.group(2), re.IGNORECASE)
    return found


class TestInlineHandlers:

    def test_onclick_becomes_one_companion_script(self, make_document):
        page = make_document('<button onclick="toggleMenu()">Menu</button><a href="#" onClick=\'go(1)\'>Go</a>')
        html = inject(page, "site-1")
        assert inline_handler_attrs(html) == []
        assert html.count(HANDLERS_MARKER) == 1
        assert 'data-sf-h1="1"' in html and 'data-sf-h2="1"' in html
        assert "el.addEventListener('click', function (event) { toggleMenu() });" in html
        assert "el.addEventListener('click', function (event) { go(1) });" in html

    def test_event_name_taken_from_attribute(self, make_document):
        html = inject(make_document('<input name="q" onInput="filter(this.value)">'), "s")
        assert "addEventListener('input'" in html

    def test_entities_decoded_and_script_close_escaped(self, make_document):
        html = inject(make_document('<button onclick="say(&quot;</b>&quot;)">Hi</button>'), "s")
        assert 'function (event) { say("<\\/b>") }' in html

    def test_handler_text_inside_attribute_values_untouched(self, make_document):
        page = make_document('<p title="set onclick=x here">Text</p>')
        assert inject(page, "s").count('title="set onclick=x here"') == 1

    def test_handlers_in_scripts_untouched(self, make_document):
        page = make_document("<script>el.innerHTML = '<b onclick=\"x()\">';</script><p>Text</p>")
        html = inject(page, "s")
        assert HANDLERS_MARKER not in html
        assert '<b onclick="x()">' in html

    def test_second_pass_appends_to_existing_script(self, make_document):
        first = inject(make_document('<button onclick="a()">A</button>'), "s")
        # Hand edit adds another inline handler after injection
        edited = first.replace("</button>", '</button><button onclick="b()">B</button>', 1)
        second = inject(edited, "s")
        assert second.count(HANDLERS_MARKER) == 1
        assert 'data-sf-h2="1"' in second
        assert "function (event) { b() }" in second
        assert inline_handler_attrs(second) == []


class TestBackendHooks:

    def test_form_without_action_gets_handler(self, make_document):
        html = inject(make_document('<form data-form-type="contact"><input name="email"></form>'), "bakery-42")
        assert 'data-sf-forms="1"' in html
        assert FORMS_ENDPOINT in html
        assert 'var SCOPE_ID = "bakery-42";' in html

    @pytest.mark.parametrize("action,expected", [
        ("#", True),
        ("/api/forms/submit", True),
        ("https://formspree.io/f/abc", False),
    ])
    def test_form_handler_depends_on_action(self, make_document, action, expected):
        html = inject(make_document(f'<form action="{action}"><input name="email"></form>'), "s")
        assert ('data-sf-forms="1"' in html) is expected

    def test_no_form_no_form_handler(self, make_document):
        assert 'data-sf-forms' not in inject(make_document("<p>Text</p>"), "s")

    def test_analytics_always_injected(self, make_document):
        html = inject(make_document("<p>Text</p>"), "s")
        assert ANALYTICS_ENDPOINT in html
        assert "track('page_view'" in html

    def test_active_nav_only_with_nav_links(self, make_document, make_rich_page):
        assert 'data-sf-activenav' not in inject(make_document("<p>Text</p>"), "s")
        assert 'data-sf-activenav="1"' in inject(make_rich_page(), "s")

    def test_scope_id_is_js_escaped(self, make_document):
        html = inject(make_document("<p>Text</p>"), 'x"</script>')
        assert 'var SCOPE_ID = "x\\"<\\/script>";' in html


class TestCsp:

    def test_csp_meta_added_once(self, make_document):
        html = inject(make_document("<p>Text</p>"), "s")
        assert html.count('http-equiv="Content-Security-Policy"') == 1
        assert f'data-sf-csp="{CSP_POLICY_VERSION}"' in html
        assert html.index("Content-Security-Policy") < html.index("<title>")

    def test_existing_csp_left_alone(self, make_document):
        page = make_document("<p>Text</p>").replace(
            "<head>", "<head>\n<meta http-equiv=\"Content-Security-Policy\" content=\"default-src 'self'\">"
        )
        html = inject(page, "s")
        assert html.count("Content-Security-Policy") == 1
        assert "data-sf-csp" not in html

    def test_csp_meta_on_its_own_line(self):
        html = inject("<html><head><title>T</title></head><body><p>Text</p></body></html>", "s")
        assert f'data-sf-csp="{CSP_POLICY_VERSION}">\n<title>T</title>' in html

    def test_no_head_no_csp(self):
        assert "Content-Security-Policy" not in inject("<body><p>Text</p></body>", "s")


class TestIdempotence:

    def test_second_pass_is_a_no_op(self, make_rich_page):
        page = make_rich_page("Contact").replace(
            "<main>", '<main><form><input name="email"><button onclick="send()">Send</button></form>'
        )
        once = inject(page, "scope-1")
        result = apply_policies(once, "scope-1")
        assert result["html"] == once
        assert result["changes"] == []

    def test_changes_reported(self, make_document):
        injector = PolicyInjector(make_document('<button onclick="a()">A</button>'), "s")
        changes = injector.inject()["changes"]
        assert changes[0] == "Rewired 1 inline handler(s) as event listeners"
        assert changes[-1] == f"Added CSP meta tag ({CSP_POLICY_VERSION})"

    def test_empty_input_unchanged(self):
        assert apply_policies("", "s") == {"html": "", "changes": []}
