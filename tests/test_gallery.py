from __future__ import annotations

import re

from mcp_servers.overty.gallery import (
    build_mockups_index_html,
    inject_style_into_html,
    now_file_safe,
    sanitize_file_base,
)
from mcp_servers.overty.js_helpers import set_css_expression, text_contains_expression


def test_sanitize_file_base() -> None:
    assert sanitize_file_base("Hero / dark mode!") == "Hero-dark-mode"
    assert sanitize_file_base("..hidden..") == "hidden"
    assert sanitize_file_base("   ") == "variant"
    assert sanitize_file_base("///", default="qa") == "qa"
    assert len(sanitize_file_base("x" * 200)) == 80


def test_file_safe_timestamp() -> None:
    stamp = now_file_safe()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z", stamp)


def test_inject_style_before_head_close() -> None:
    out = inject_style_into_html("<html><head><title>t</title></HEAD><body></body></html>", "a{}", "s1")
    assert '<style id="s1">\na{}\n</style>\n</HEAD>' in out


def test_inject_style_after_head_open() -> None:
    out = inject_style_into_html('<head lang="en"><body>x</body>', "b{}")
    assert out.startswith('<head lang="en">\n<style id="overty-style">')


def test_inject_style_without_head() -> None:
    assert inject_style_into_html("<div>x</div>", "c{}", "s").startswith('<style id="s">\nc{}\n</style>\n<div>')


def test_index_escapes_and_links() -> None:
    page = build_mockups_index_html(
        results=[
            {
                "name": "<b>bold</b>",
                "fileName": "01 hero.png",
                "htmlFileName": "01 hero.html",
                "bytes": 1234,
                "eventSummary": {"console": {"total": 2, "error": 1}, "exception": {"total": 0}},
            },
            {"name": "no-shot"},
        ],
        failures=[{"name": "broken", "error": "[OVERTY_JS_EXCEPTION] boom"}],
        created_at="2026-01-01T00:00:00.000Z",
        output_dir="output/overty/mockups/x",
        title="Hero variants",
    )

    assert "<title>Hero variants</title>" in page
    assert "&lt;b&gt;bold&lt;/b&gt;" in page
    assert 'href="./01%20hero.png"' in page
    assert 'href="./01%20hero.html"' in page
    assert "1234 bytes · console 2 (err 1), exceptions 0" in page
    assert "missing screenshot" in page
    assert "Failures (1)" in page
    assert "output/overty/mockups/x" in page


def test_expressions_embed_inputs_as_json() -> None:
    css = 'body::after { content: "</style>\\n`${x}`"; }'
    expr = set_css_expression("my-style", css, "append")
    assert '"my-style"' in expr
    assert 'const mode = "append";' in expr
    assert 'content: \\"</style>' in expr

    assert 'const needle = "it\'s \\"here\\"";' in text_contains_expression('it\'s "here"')
