"""File naming helpers and the static HTML gallery written next to rendered mockups."""

from __future__ import annotations

import html
import re
import urllib.parse
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import DEFAULT_STYLE_ID

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")
_DASH_RUN = re.compile(r"-+")
_HEAD_CLOSE = re.compile(r"</head>", re.IGNORECASE)
_HEAD_OPEN = re.compile(r"<head[^>]*>", re.IGNORECASE)

MAX_FILE_BASE = 80

GALLERY_CSS = """
      :root { color-scheme: light dark; }
      html, body { margin: 0; padding: 0; font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; }
      body { background: #0b0d12; color: #eaf0ff; }
      a { color: inherit; }
      .wrap { max-width: 1200px; margin: 0 auto; padding: 24px; }
      .top { display: flex; flex-wrap: wrap; gap: 16px; align-items: baseline; justify-content: space-between; }
      .top h1 { margin: 0; font-size: 18px; }
      .sub, .meta { font-size: 12px; opacity: .75; }
      .grid { display: grid; gap: 16px; margin-top: 18px; grid-template-columns: repeat(auto-fit, minmax(280px, 1fr)); }
      .card { overflow: hidden; border-radius: 14px; border: 1px solid rgba(255,255,255,.09); background: rgba(255,255,255,.06); }
      .card-h { padding: 12px; border-bottom: 1px solid rgba(255,255,255,.08); }
      .name { font-size: 14px; font-weight: 650; }
      .links { display: flex; gap: 10px; margin-top: 6px; font-size: 12px; }
      .shot { padding: 10px; }
      img { display: block; width: 100%; height: auto; border-radius: 10px; }
      .missing { padding: 28px 10px; text-align: center; opacity: .6; }
      .failures { margin-top: 14px; padding: 10px 12px; border-radius: 12px; background: rgba(255,70,70,.08); }
      code { font-family: ui-monospace, Menlo, Consolas, monospace; font-size: 12px; }
"""


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_file_safe() -> str:
    """UTC timestamp usable as a file/directory name component."""
    return now_iso().replace(":", "-").replace(".", "-")


def sanitize_file_base(name: Any, default: str = "variant") -> str:
    text = str(name or "").strip() or default
    cleaned = _DASH_RUN.sub("-", _UNSAFE_CHARS.sub("-", text))
    cleaned = cleaned.lstrip(".-").rstrip(".-")
    return cleaned[:MAX_FILE_BASE] or default


def inject_style_into_html(doc: str, css: str, style_id: str | None = None) -> str:
    """Place a ``<style>`` tag before ``</head>``, after ``<head>``, or at the very top."""
    doc = doc or ""
    sid = (style_id or "").strip() or DEFAULT_STYLE_ID
    tag = f'<style id="{sid}">\n{css or ""}\n</style>\n'
    if _HEAD_CLOSE.search(doc):
        return _HEAD_CLOSE.sub(lambda m: tag + m.group(0), doc, count=1)
    if _HEAD_OPEN.search(doc):
        return _HEAD_OPEN.sub(lambda m: f"{m.group(0)}\n{tag}", doc, count=1)
    return tag + doc


def _esc(value: Any) -> str:
    return html.escape(str(value or ""), quote=True)


def _href(file_name: str) -> str:
    return "./" + urllib.parse.quote(file_name, safe="")


def _card(result: dict[str, Any]) -> str:
    name = _esc(result.get("name"))
    img_file = result.get("fileName") or (Path(result["filePath"]).name if result.get("filePath") else "")
    html_file = result.get("htmlFileName") or (Path(result["htmlPath"]).name if result.get("htmlPath") else "")

    meta_parts = []
    if isinstance(result.get("bytes"), int):
        meta_parts.append(f"{result['bytes']} bytes")
    summary = result.get("eventSummary")
    if isinstance(summary, dict):
        meta_parts.append(
            f"console {summary['console']['total']} (err {summary['console']['error']}),"
            f" exceptions {summary['exception']['total']}"
        )

    links = []
    if img_file:
        links.append(f'<a class="link" href="{_href(img_file)}">image</a>')
    if html_file:
        links.append(f'<a class="link" href="{_href(html_file)}">html</a>')

    if img_file:
        shot = f'<a href="{_href(img_file)}"><img loading="lazy" src="{_href(img_file)}" alt="{name} screenshot"></a>'
    else:
        shot = '<div class="missing">missing screenshot</div>'

    return (
        '<section class="card">\n'
        '  <header class="card-h">\n'
        f'    <div class="name">{name}</div>\n'
        f'    <div class="meta">{_esc(" · ".join(meta_parts))}</div>\n'
        f'    <div class="links">{" ".join(links)}</div>\n'
        "  </header>\n"
        f'  <div class="shot">{shot}</div>\n'
        "</section>"
    )


def build_mockups_index_html(
    *,
    results: list[dict[str, Any]],
    failures: list[dict[str, Any]],
    created_at: str | None = None,
    output_dir: str = "",
    title: str = "overty mockups",
) -> str:
    failures_block = ""
    if failures:
        items = "\n".join(
            f"<li><code>{_esc(f.get('name'))}</code>: {_esc(f.get('error'))}</li>" for f in failures
        )
        failures_block = (
            f'<details class="failures" open>\n<summary>Failures ({len(failures)})</summary>\n'
            f"<ul>\n{items}\n</ul>\n</details>"
        )
    sub = f"created {_esc(created_at or now_iso())}"
    if output_dir:
        sub += f" · {_esc(output_dir)}"
    cards = "\n".join(_card(r) for r in results)
    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{_esc(title)}</title>
    <style>{GALLERY_CSS}    </style>
  </head>
  <body>
    <div class="wrap">
      <div class="top">
        <h1>{_esc(title)}</h1>
        <div class="sub">{sub}</div>
      </div>
      {failures_block}
      <div class="grid">
{cards}
      </div>
    </div>
  </body>
</html>
"""
