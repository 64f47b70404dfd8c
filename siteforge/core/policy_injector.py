"""
Policy Injector - deterministic rewriting so generated pages run under a fixed CSP
and report to the hosting backend

Applies, in order (each only when relevant):
  1. Inline on* handlers -> data-sf-h{N} markers + one companion listener script
  2. Form submit interceptor -> /api/forms/submit
  3. Page-view and click tracking -> /api/analytics/track
  4. Active navigation highlighter
  5. CSP <meta>, last, once every script is known

Every injected block carries a marker attribute, so running the injector on
its own output with the same scope id returns the input unchanged.
"""
from typing import Any, Dict, List, Tuple
import html as html_lib
import json
import logging
import re

from siteforge.core.markup_utils import OPEN_TAG_RE, insert_after_head_open, insert_before_body_end, sub_outside_code

logger = logging.getLogger(__name__)

FORMS_ENDPOINT = "/api/forms/submit"
ANALYTICS_ENDPOINT = "/api/analytics/track"

# Fixed allow-list; bump the version when the policy changes. Documents that
# already carry any CSP declaration are never rewritten.
CSP_POLICY_VERSION = "v1"
CSP_POLICY = "; ".join([
    "default-src 'self' data:",
    "script-src 'self' 'unsafe-inline' cdn.tailwindcss.com unpkg.com cdn.jsdelivr.net cdnjs.cloudflare.com",
    "style-src 'self' 'unsafe-inline' fonts.googleapis.com cdn.tailwindcss.com",
    "font-src 'self' fonts.gstatic.com data:",
    "img-src 'self' data: https:",
    "connect-src 'self' https:",
])

HANDLERS_MARKER = 'data-sf-handlers="1"'
FORMS_MARKER = 'data-sf-forms'
ANALYTICS_MARKER = 'data-sf-analytics'
ACTIVE_NAV_MARKER = 'data-sf-activenav'

ATTR_TOKEN_RE = re.compile(r'(\s+)([^\s"\'>/=]+)(?:(\s*=\s*)("[^"]*"|\'[^\']*\'|[^\s"\'>]+))?')
INLINE_HANDLER_NAME_RE = re.compile(r'^on[a-z]+$', re.IGNORECASE)
HANDLER_ID_RE = re.compile(r'\bdata-sf-h(\d+)\b')
HANDLERS_SCRIPT_END_RE = re.compile(
    r'(<script data-sf-handlers="1">.*?)(\n\}\);\n</script>)', re.DOTALL
)
FORM_OPEN_RE = re.compile(r'<form\b([^>]*)>', re.IGNORECASE)
FORM_ACTION_RE = re.compile(r'\baction\s*=\s*(?:"([^"]*)"|\'([^\']*)\'|([^\s>]+))', re.IGNORECASE)
CSP_PRESENT_RE = re.compile(r'content-security-policy', re.IGNORECASE)


def _js_string(value: str) -> str:
    """JSON-encode a value for embedding inside an inline <script>."""
    return json.dumps(value).replace('</', '<\\/')


def _attr_value(raw: str) -> str:
    if raw[:1] in ('"', "'") and raw[-1:] == raw[:1]:
        raw = raw[1:-1]
    return html_lib.unescape(raw).strip()


class PolicyInjector:
    """Apply CSP-compliance rewrites and backend hooks to one document"""

    def __init__(self, html: str, scope_id: str):
        self.html = html or ""
        self.scope_id = scope_id
        self.changes: List[str] = []

    def inject(self) -> Dict[str, Any]:
        """
        Apply every policy step.
        Returns rewritten HTML and list of changes made.
        """
        if not self.html.strip():
            return {'html': self.html, 'changes': self.changes}

        self._rewrite_inline_handlers()
        self._inject_form_handler()
        self._inject_analytics()
        self._inject_active_navigation()
        # CSP last so it reflects the final set of scripts
        self._add_csp_meta()

        return {
            'html': self.html,
            'changes': self.changes
        }

    def _rewrite_inline_handlers(self):
        """Move on* attributes into one addEventListener script"""
        existing = [int(n) for n in HANDLER_ID_RE.findall(self.html)]
        counter = max(existing) if existing else 0
        collected: List[Tuple[int, str, str]] = []

        def _rewrite_attrs(attrs: str) -> str:
            nonlocal counter

            def _token(match: re.Match) -> str:
                nonlocal counter
                name = match.group(2)
                if not INLINE_HANDLER_NAME_RE.match(name):
                    return match.group(0)
                code = _attr_value(match.group(4) or '')
                if not code:
                    return ''
                counter += 1
                collected.append((counter, name[2:].lower(), code.replace("</", "<\\/")))
                return f'{match.group(1)}data-sf-h{counter}="1"'

            return ATTR_TOKEN_RE.sub(_token, attrs)

        def _tag(match: re.Match) -> str:
            attrs = match.group(2)
            if not re.search(r'\son[a-z]+', attrs, re.IGNORECASE):
                return match.group(0)
            return f'<{match.group(1)}{_rewrite_attrs(attrs)}>'

        rewritten = sub_outside_code(OPEN_TAG_RE, _tag, self.html)
        if rewritten == self.html:
            return
        self.html = rewritten
        if not collected:
            self.changes.append('Removed empty inline handlers')
            return

        wireups = '\n'.join(
            f"  document.querySelectorAll('[data-sf-h{n}]').forEach(function (el) "
            f"{{ el.addEventListener('{event}', function (event) {{ {code} }}); }});"
            for n, event, code in collected
        )
        existing_script = HANDLERS_SCRIPT_END_RE.search(self.html)
        if existing_script:
            # Keep exactly one companion script: append to it
            self.html = (
                self.html[:existing_script.end(1)] + '\n' + wireups + self.html[existing_script.start(2):]
            )
        else:
            script = (
                f'<script {HANDLERS_MARKER}>\n'
                "document.addEventListener('DOMContentLoaded', function () {\n"
                f'{wireups}\n'
                '});\n'
                '</script>'
            )
            self.html = insert_before_body_end(self.html, script)
        self.changes.append(f'Rewired {len(collected)} inline handler(s) as event listeners')

    def _needs_form_handler(self) -> bool:
        for match in FORM_OPEN_RE.finditer(self.html):
            action = FORM_ACTION_RE.search(match.group(1))
            value = next((g for g in action.groups() if g is not None), '').strip() if action else ''
            if not value or value == '#' or value.startswith('/api/forms'):
                return True
        return False

    def _inject_form_handler(self):
        if FORMS_MARKER in self.html or not self._needs_form_handler():
            return
        script = f"""<script {FORMS_MARKER}="1">
(function () {{
  var SCOPE_ID = {_js_string(self.scope_id)};
  var ENDPOINT = '{FORMS_ENDPOINT}';
  function handleSubmit(e) {{
    var form = e.target;
    if (form.__sfHandled) return;
    var action = (form.getAttribute('action') || '').trim();
    if (action && action !== '#' && action.indexOf('/api/forms') !== 0) return;
    e.preventDefault();
    form.__sfHandled = true;
    var data = {{}};
    new FormData(form).forEach(function (v, k) {{ data[k] = v; }});
    var formType = form.getAttribute('data-form-type') || form.id || 'contact';
    fetch(ENDPOINT, {{
      method: 'POST',
      headers: {{ 'Content-Type': 'application/json' }},
      body: JSON.stringify({{ scopeId: SCOPE_ID, formType: formType, formData: data }})
    }})
      .then(function (r) {{ return r.json(); }})
      .then(function () {{
        var successEl = form.querySelector('[data-success]') || form.querySelector('.success-message');
        if (successEl) {{ successEl.style.display = 'block'; }}
        form.reset();
      }})
      .catch(function (err) {{ console.error('Form submit failed:', err); }})
      .then(function () {{ form.__sfHandled = false; }});
  }}
  document.addEventListener('submit', function (e) {{
    if (e.target && e.target.tagName === 'FORM') handleSubmit(e);
  }});
}})();
</script>"""
        self.html = insert_before_body_end(self.html, script)
        self.changes.append(f'Injected form submit handler -> {FORMS_ENDPOINT}')

    def _inject_analytics(self):
        if ANALYTICS_MARKER in self.html:
            return
        script = f"""<script {ANALYTICS_MARKER}="1">
(function () {{
  var SCOPE_ID = {_js_string(self.scope_id)};
  var ENDPOINT = '{ANALYTICS_ENDPOINT}';
  function track(event, props) {{
    fetch(ENDPOINT, {{
      method: 'POST',
      headers: {{ 'Content-Type': 'application/json' }},
      body: JSON.stringify({{ scopeId: SCOPE_ID, event: event, properties: props || {{}} }})
    }}).catch(function () {{}});
  }}
  document.addEventListener('DOMContentLoaded', function () {{
    track('page_view', {{ path: window.location.pathname, title: document.title }});
  }});
  document.addEventListener('click', function (e) {{
    var el = e.target;
    var target = el && el.closest ? (el.closest('button') || el.closest('a')) : null;
    if (target) {{
      track('click', {{
        text: (target.innerText || '').trim().slice(0, 80),
        href: target.href || null,
        id: target.id || null
      }});
    }}
  }}, true);
}})();
</script>"""
        self.html = insert_before_body_end(self.html, script)
        self.changes.append(f'Injected analytics -> {ANALYTICS_ENDPOINT}')

    def _inject_active_navigation(self):
        if ACTIVE_NAV_MARKER in self.html:
            return
        if not re.search(r'<nav\b', self.html, re.IGNORECASE) or not re.search(r'<a\b[^>]*\bhref\s*=', self.html, re.IGNORECASE):
            return
        script = f"""<script {ACTIVE_NAV_MARKER}="1">
(function () {{
  function basename(path) {{
    var base = (path || '').toLowerCase().split('?')[0].split('#')[0].split('/').pop();
    return (!base || base === '.') ? 'index.html' : base;
  }}
  function setActiveNav() {{
    var page = basename(window.location.pathname);
    var links = document.querySelectorAll('nav a, header a, .nav-links a, .navbar a, .navigation a');
    links.forEach(function (link) {{
      if (basename(link.getAttribute('href')) === page) {{
        link.classList.add('active');
        link.setAttribute('aria-current', 'page');
        if (!link.style.color) {{
          link.style.color = 'var(--primary, var(--color-primary, #6366f1))';
          link.style.fontWeight = 'bold';
        }}
      }} else {{
        link.classList.remove('active');
        link.removeAttribute('aria-current');
      }}
    }});
  }}
  if (document.readyState === 'loading') {{
    document.addEventListener('DOMContentLoaded', setActiveNav);
  }} else {{
    setActiveNav();
  }}
  window.addEventListener('hashchange', setActiveNav);
  window.addEventListener('popstate', setActiveNav);
}})();
</script>"""
        self.html = insert_before_body_end(self.html, script)
        self.changes.append('Injected active navigation highlighter')

    def _add_csp_meta(self):
        if CSP_PRESENT_RE.search(self.html):
            return
        if not re.search(r'<head\b[^>]*>', self.html, re.IGNORECASE):
            return
        meta = (
            f'  <meta http-equiv="Content-Security-Policy" content="{CSP_POLICY}" '
            f'data-sf-csp="{CSP_POLICY_VERSION}">'
        )
        self.html = insert_after_head_open(self.html, meta)
        self.changes.append(f'Added CSP meta tag ({CSP_POLICY_VERSION})')


def apply_policies(html: str, scope_id: str) -> Dict[str, Any]:
    """
    Main entry point for the policy injector.

    Args:
        html: Repaired document markup
        scope_id: Site/project identifier embedded in backend hooks

    Returns:
        Dict with 'html' and 'changes' keys
    """
    injector = PolicyInjector(html, scope_id)
    result = injector.inject()
    if result['changes']:
        logger.debug(f"[Injector] {len(result['changes'])} change(s) | scope: {scope_id} | {result['changes']}")
    return result


def inject(content: str, scope_id: str) -> str:
    """(content, scope_id) -> content'"""
    return apply_policies(content, scope_id)['html']
