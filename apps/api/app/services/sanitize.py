from __future__ import annotations

import html as html_lib

import bleach

_EMAIL_TAGS = [
    "a",
    "p",
    "br",
    "div",
    "span",
    "strong",
    "em",
    "b",
    "i",
    "u",
    "ul",
    "ol",
    "li",
    "blockquote",
    "pre",
    "h1",
    "h2",
    "h3",
    "h4",
    "table",
    "thead",
    "tbody",
    "tr",
    "td",
    "th",
    "hr",
]
_NOTE_TAGS = ["a", "br"]


def _attr_filter(tag: str, name: str, value: str) -> bool:
    if tag == "a" and name == "href":
        v = (value or "").strip()
        return v.startswith(("http://", "https://", "mailto:"))
    if tag == "a" and name in {"rel", "title"}:
        return True
    return False


def sanitize_email_html(raw: str | None) -> str:
    if not raw:
        return ""
    cleaned = bleach.clean(raw, tags=_EMAIL_TAGS, attributes=_attr_filter, strip=True)
    return bleach.linkify(cleaned)


def html_to_text(raw: str | None, *, limit: int = 500) -> str:
    if not raw:
        return ""
    text = bleach.clean(raw, tags=[], attributes={}, strip=True)
    text = " ".join(html_lib.unescape(text).split())
    return text[:limit]


def render_note_html(body: str) -> str:
    """Plain-text note to safe HTML: escaped, links made clickable, newlines kept."""
    escaped = bleach.clean(body, tags=[], attributes={}, strip=False)
    linked = bleach.linkify(escaped)
    html = linked.replace("\r\n", "\n").replace("\n", "<br>")
    return bleach.clean(html, tags=_NOTE_TAGS, attributes=_attr_filter, strip=True)
