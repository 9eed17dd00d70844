"""Markdown to HTML rendering for repository articles.

A line-oriented converter covering the markdown that article authors
actually write: headings, paragraphs, lists, fenced code, blockquotes,
horizontal rules and inline markup. It performs no network access and
escapes all author text.
"""

from __future__ import annotations

import html
import re

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
_UL_RE = re.compile(r"^[-*+]\s+(.+)$")
_OL_RE = re.compile(r"^\d+[.)]\s+(.+)$")
_HR_RE = re.compile(r"^([-*_])(\s*\1){2,}$")

_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_BOLD_RE = re.compile(r"(\*\*|__)(.+?)\1")
_ITALIC_RE = re.compile(r"(?<![\w*])[*_](?!\s)(.+?)(?<!\s)[*_](?![\w*])")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s\"]+)\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s\"]+)\)")

_CODE_PLACEHOLDER = "\x00{}\x00"
_PLACEHOLDER_RE = re.compile(r"\x00(\d+)\x00")


def _inline_markup(text: str) -> str:
    """Convert inline markdown markup to HTML."""
    text = html.escape(text, quote=False)

    # Code spans are opaque to the other inline rules
    spans: list[str] = []

    def _stash(match: re.Match[str]) -> str:
        spans.append(f"<code>{match.group(1)}</code>")
        return _CODE_PLACEHOLDER.format(len(spans) - 1)

    text = _INLINE_CODE_RE.sub(_stash, text)
    text = _IMAGE_RE.sub(r'<img src="\2" alt="\1"/>', text)
    text = _LINK_RE.sub(r'<a href="\2">\1</a>', text)
    # Bold before italic (both use asterisks)
    text = _BOLD_RE.sub(r"<strong>\2</strong>", text)
    text = _ITALIC_RE.sub(r"<em>\1</em>", text)
    return _PLACEHOLDER_RE.sub(lambda m: spans[int(m.group(1))], text)


def markdown_to_html(markdown: str) -> str:
    """Convert a markdown string to HTML.

    Args:
        markdown: The markdown source text.

    Returns:
        An HTML fragment (no ``<html>`` or ``<body>`` wrapper).
    """
    lines = markdown.replace("\r\n", "\n").split("\n")
    html_parts: list[str] = []
    in_code_block = False
    code_lang = ""
    code_lines: list[str] = []
    list_type = ""
    paragraph_lines: list[str] = []
    quote_lines: list[str] = []

    def _flush_paragraph() -> None:
        if paragraph_lines:
            text = " ".join(paragraph_lines)
            html_parts.append(f"<p>{_inline_markup(text)}</p>")
            paragraph_lines.clear()

    def _flush_list() -> None:
        nonlocal list_type
        if list_type:
            html_parts.append(f"</{list_type}>")
            list_type = ""

    def _flush_quote() -> None:
        if quote_lines:
            text = " ".join(quote_lines)
            html_parts.append(f"<blockquote><p>{_inline_markup(text)}</p></blockquote>")
            quote_lines.clear()

    def _flush_all() -> None:
        _flush_paragraph()
        _flush_list()
        _flush_quote()

    def _open_list(kind: str) -> None:
        nonlocal list_type
        if list_type != kind:
            _flush_list()
            html_parts.append(f"<{kind}>")
            list_type = kind

    for line in lines:
        stripped = line.strip()

        if stripped.startswith("```"):
            if in_code_block:
                escaped = html.escape("\n".join(code_lines))
                attr = f' class="language-{html.escape(code_lang)}"' if code_lang else ""
                html_parts.append(f"<pre><code{attr}>{escaped}</code></pre>")
                code_lines.clear()
                in_code_block = False
            else:
                _flush_all()
                code_lang = stripped[3:].strip()
                in_code_block = True
            continue

        if in_code_block:
            code_lines.append(line)
            continue

        if not stripped:
            _flush_all()
            continue

        if _HR_RE.match(stripped):
            _flush_all()
            html_parts.append("<hr/>")
            continue

        heading_match = _HEADING_RE.match(stripped)
        if heading_match:
            _flush_all()
            level = len(heading_match.group(1))
            text = heading_match.group(2)
            html_parts.append(f"<h{level}>{_inline_markup(text)}</h{level}>")
            continue

        if stripped.startswith(">"):
            _flush_paragraph()
            _flush_list()
            quote_lines.append(stripped[1:].strip())
            continue

        ul_match = _UL_RE.match(stripped)
        if ul_match:
            _flush_paragraph()
            _flush_quote()
            _open_list("ul")
            html_parts.append(f"<li>{_inline_markup(ul_match.group(1))}</li>")
            continue

        ol_match = _OL_RE.match(stripped)
        if ol_match:
            _flush_paragraph()
            _flush_quote()
            _open_list("ol")
            html_parts.append(f"<li>{_inline_markup(ol_match.group(1))}</li>")
            continue

        _flush_list()
        _flush_quote()
        paragraph_lines.append(stripped)

    _flush_all()
    if in_code_block:
        escaped = html.escape("\n".join(code_lines))
        html_parts.append(f"<pre><code>{escaped}</code></pre>")

    return "\n".join(html_parts)
