"""
Page-side JavaScript expression builders.

Every builder embeds its inputs with ``json.dumps`` so arbitrary strings
(CSS, HTML, selectors) cannot break out of the generated expression.
"""

from __future__ import annotations

import json
from typing import Any

from .config import DEFAULT_STYLE_ID

TEXT_SELECTORS = "p,span,a,button,label,li,td,th,h1,h2,h3,h4,h5,h6,input,textarea"
INTERACTIVE_SELECTORS = 'a,button,input,select,textarea,[role="button"],[role="link"],[tabindex]'

READY_STATE_EXPRESSION = "document.readyState"

PAGE_INFO_EXPRESSION = (
    "(() => ({ url: String(location.href), title: String(document.title || ''),"
    " readyState: String(document.readyState || '') }))()"
)

FONTS_READY_EXPRESSION = (
    "(async () => { try { if (document.fonts && document.fonts.ready) { await document.fonts.ready; } }"
    " catch (e) {} return true; })()"
)


def _style_id(style_id: str | None) -> str:
    return (style_id or "").strip() or DEFAULT_STYLE_ID


def set_css_expression(style_id: str | None, css: str, mode: str = "replace") -> str:
    """Create or update ``<style id=...>`` and set (or append to) its text."""
    action = "append" if mode == "append" else "replace"
    return f"""(() => {{
    const id = {json.dumps(_style_id(style_id))};
    const css = {json.dumps(css or '')};
    const mode = {json.dumps(action)};
    let el = document.getElementById(id);
    if (!el) {{
      el = document.createElement('style');
      el.id = id;
      (document.head || document.documentElement).appendChild(el);
    }}
    if (mode === 'append') {{
      el.textContent = (el.textContent || '') + '\\n' + css;
    }} else {{
      el.textContent = css;
    }}
    return {{ styleId: id, length: (el.textContent || '').length }};
  }})()"""


def remove_style_expression(style_id: str | None) -> str:
    return f"""(() => {{
    const id = {json.dumps(_style_id(style_id))};
    const el = document.getElementById(id);
    if (el && el.parentNode) {{
      el.parentNode.removeChild(el);
      return {{ removed: true, styleId: id }};
    }}
    return {{ removed: false, styleId: id }};
  }})()"""


def set_html_expression(html: str) -> str:
    return f"""(() => {{
    document.open();
    document.write({json.dumps(html or '')});
    document.close();
    return true;
  }})()"""


def text_contains_expression(needle: str) -> str:
    return f"""(() => {{
    const needle = {json.dumps(needle)};
    const body = document.body;
    const hay = body && typeof body.innerText === 'string' ? body.innerText : '';
    return hay.includes(needle);
  }})()"""


def outer_html_expression(selector: str | None) -> str:
    if selector:
        return (
            f"(() => {{ const el = document.querySelector({json.dumps(selector)});"
            " return el ? el.outerHTML : null; })()"
        )
    return "(() => document.documentElement ? document.documentElement.outerHTML : null)()"


def element_rect_expression(selector: str, index: int = 0, scroll_into_view: bool = True) -> str:
    return f"""(() => {{
    const sel = {json.dumps(selector)};
    const idx = {int(index)};
    const els = document.querySelectorAll(sel);
    const el = els && els.length > idx ? els[idx] : null;
    if (!el) return {{ found: false, count: els ? els.length : 0 }};
    try {{
      if ({'true' if scroll_into_view else 'false'}) {{
        el.scrollIntoView({{ block: 'center', inline: 'center', behavior: 'instant' }});
      }}
    }} catch (e) {{}}
    const r = el.getBoundingClientRect();
    const de = document.documentElement;
    return {{
      found: true,
      count: els.length,
      rect: {{ x: r.left, y: r.top, width: r.width, height: r.height }},
      viewport: {{ width: de ? de.clientWidth : window.innerWidth, height: de ? de.clientHeight : window.innerHeight }},
    }};
  }})()"""


def layout_metrics_expression(
    *,
    overlap_selector: str = "body *",
    overlap_candidate_limit: int = 120,
    include_overlaps: bool = True,
) -> str:
    """Collect raw layout facts; all thresholds are applied in Python (see ``qa.layout``).

    Every matching node is scanned. Only elements that leave the viewport horizontally
    and text whose scroll box exceeds its client box are reported, so the payload
    stays proportional to the number of possible offenders.
    """
    opts: dict[str, Any] = {
        "overlapSelector": overlap_selector or "body *",
        "overlapCandidateLimit": int(overlap_candidate_limit),
        "includeOverlaps": bool(include_overlaps),
        "textSelectors": TEXT_SELECTORS,
        "interactiveSelectors": INTERACTIVE_SELECTORS,
    }
    return f"""(() => {{
    const opts = {json.dumps(opts)};
    const de = document.documentElement;
    const vw = de ? de.clientWidth : window.innerWidth;
    const vh = de ? de.clientHeight : window.innerHeight;
    const pickSelector = (el) => {{
      const tag = el && el.tagName ? String(el.tagName).toLowerCase() : 'node';
      if (el && el.id) return '#' + String(el.id);
      const cls = el && typeof el.className === 'string' ? el.className.split(/\\s+/).filter(Boolean)[0] : '';
      return cls ? (tag + '.' + cls) : tag;
    }};
    const toRect = (r) => ({{ left: r.left, top: r.top, right: r.right, bottom: r.bottom, width: r.width, height: r.height }});
    const visibleRect = (el) => {{
      if (!el || !el.getBoundingClientRect) return null;
      const r = el.getBoundingClientRect();
      return r && r.width > 0 && r.height > 0 ? r : null;
    }};
    const domPath = (el) => {{
      const path = [];
      let node = el;
      while (node && node.parentElement) {{
        path.unshift(Array.prototype.indexOf.call(node.parentElement.children, node));
        node = node.parentElement;
      }}
      return path;
    }};
    const collect = (selector, build) => {{
      const out = [];
      const nodes = document.querySelectorAll(selector);
      for (let i = 0; i < nodes.length; i++) {{
        const r = visibleRect(nodes[i]);
        if (!r) continue;
        const item = build(nodes[i], r);
        if (item) out.push(item);
      }}
      return out;
    }};
    const elements = collect('body *', (el, r) => (r.right > vw || r.left < 0 ? {{ selector: pickSelector(el), rect: toRect(r) }} : null));
    const textElements = collect(opts.textSelectors, (el) => {{
      const raw = typeof el.value === 'string' ? el.value : (typeof el.innerText === 'string' ? el.innerText : '');
      const text = raw.trim();
      if (!text) return null;
      if (el.scrollWidth <= el.clientWidth && el.scrollHeight <= el.clientHeight) return null;
      const cs = window.getComputedStyle(el);
      return {{
        selector: pickSelector(el),
        textSample: text.slice(0, 120),
        clientWidth: el.clientWidth,
        scrollWidth: el.scrollWidth,
        clientHeight: el.clientHeight,
        scrollHeight: el.scrollHeight,
        overflowX: String(cs.overflowX || '').toLowerCase(),
        overflowY: String(cs.overflowY || '').toLowerCase(),
      }};
    }});
    const interactive = collect(opts.interactiveSelectors, (el, r) => ({{ selector: pickSelector(el), width: r.width, height: r.height }}));
    const overlapCandidates = [];
    if (opts.includeOverlaps) {{
      const nodes = document.querySelectorAll(opts.overlapSelector || 'body *');
      for (let i = 0; i < nodes.length && overlapCandidates.length < opts.overlapCandidateLimit; i++) {{
        const r = visibleRect(nodes[i]);
        if (!r) continue;
        overlapCandidates.push({{ selector: pickSelector(nodes[i]), path: domPath(nodes[i]), rect: toRect(r) }});
      }}
    }}
    return {{
      viewport: {{ width: vw, height: vh }},
      document: {{ scrollWidth: de ? de.scrollWidth : vw, scrollHeight: de ? de.scrollHeight : vh }},
      elements,
      textElements,
      interactive,
      overlapCandidates,
    }};
  }})()"""
