from __future__ import annotations

import re
from html import escape
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from .config import DIGEST_INTRO, DIGEST_SUBJECT
from .models import DigestBlock, LinkSpan, SourceLink, SourcesSection, Span, TextSpan

SOURCES_MARKER = "\n\n##"

_INLINE_LINK_RE = re.compile(r"\[(?P<text>[^\[\]\n]+)\]\((?P<url>[^()\s]+)\)")
_SAFE_SCHEMES = {"http", "https", "mailto"}

_LINK_STYLE = "color: #0366d6; text-decoration: none;"
_CARD_STYLE = (
    "background-color: white; border: 1px solid #e9ecef; border-radius: 8px; padding: 20px; "
    "margin-bottom: 20px; box-shadow: 0 2px 4px rgba(0,0,0,0.05);"
)
_HEADING_STYLE = (
    "color: #0366d6; text-decoration: none; font-weight: 500; display: block; "
    "margin-bottom: 10px; word-break: break-all;"
)
_SUMMARY_STYLE = "color: #24292e; margin: 15px 0; font-size: 16px;"
_SOURCES_STYLE = "background-color: #f8f9fa; padding: 15px; border-radius: 6px; margin-top: 15px;"


def build_email_subject() -> str:
    return DIGEST_SUBJECT


def parse_summary_entry(entry: str) -> Optional[DigestBlock]:
    """Parse one `"<url>\\n<summary>"` outcome string; None when there is no newline."""
    if "\n" not in entry:
        return None
    url, content = entry.split("\n", 1)

    marker = content.find(SOURCES_MARKER)
    if marker == -1:
        main_text, sources_text = content, None
    else:
        main_text, sources_text = content[:marker], content[marker + 2 :]

    return DigestBlock(
        url=url.strip(),
        summary=parse_inline(main_text.strip()),
        sources=parse_sources(sources_text) if sources_text else None,
    )


def parse_inline(text: str) -> List[Span]:
    """Split text into plain spans and `[text](url)` link spans.

    Brackets and parentheses that are not part of a well-formed link stay as text.
    """
    spans: List[Span] = []
    pos = 0
    for match in _INLINE_LINK_RE.finditer(text):
        if not _is_safe_url(match.group("url")):
            continue
        if match.start() > pos:
            spans.append(TextSpan(text[pos : match.start()]))
        spans.append(LinkSpan(text=match.group("text"), url=match.group("url")))
        pos = match.end()
    if pos < len(text):
        spans.append(TextSpan(text[pos:]))
    return _merge_text(spans)


def parse_sources(section: str) -> Optional[SourcesSection]:
    """Parse a `## Title:\\n- [text](url)` block; None when it has no title line."""
    body = section.lstrip("#").lstrip(" ")
    if ":\n" not in body:
        return None
    title, raw_links = body.split(":\n", 1)

    links: List[SourceLink] = []
    for line in raw_links.splitlines():
        item = line.strip()
        if item.startswith("-"):
            item = item[1:].strip()
        if not item:
            continue
        source = _parse_source_item(item)
        if source is not None:
            links.append(source)
    return SourcesSection(title=title.strip(), links=links)


def _parse_source_item(item: str) -> Optional[SourceLink]:
    if "]" not in item:
        return None
    text, rest = item.split("]", 1)
    text = text.strip()
    if text.startswith("["):
        text = text[1:]
    url = rest.strip()
    if url.startswith("("):
        url = url[1:]
    if url.endswith(")"):
        url = url[:-1]
    url = url.strip()
    if not url or not _is_safe_url(url):
        return None
    return SourceLink(text=text.strip() or url, url=url)


def _is_safe_url(url: str) -> bool:
    return urlsplit(url).scheme.lower() in _SAFE_SCHEMES


def _merge_text(spans: List[Span]) -> List[Span]:
    merged: List[Span] = []
    for span in spans:
        if isinstance(span, TextSpan) and merged and isinstance(merged[-1], TextSpan):
            merged[-1] = TextSpan(merged[-1].text + span.text)
        else:
            merged.append(span)
    return merged


def render_spans_html(spans: Iterable[Span]) -> str:
    parts = []
    for span in spans:
        if isinstance(span, LinkSpan):
            parts.append(f'<a style="{_LINK_STYLE}" href="{escape(span.url)}">{escape(span.text)}</a>')
        else:
            parts.append(escape(span.text).replace("\n", "<br>"))
    return "".join(parts)


def render_spans_text(spans: Iterable[Span]) -> str:
    parts = []
    for span in spans:
        if isinstance(span, LinkSpan):
            parts.append(f"{span.text} ({span.url})")
        else:
            parts.append(span.text)
    return "".join(parts)


def render_block_html(block: DigestBlock) -> str:
    url = escape(block.url)
    parts = [
        f'<div style="{_CARD_STYLE}">',
        f'<a href="{url}" style="{_HEADING_STYLE}">{url}</a>',
        f'<div style="{_SUMMARY_STYLE}">{render_spans_html(block.summary)}</div>',
    ]
    if block.sources is not None:
        parts.append(f'<div style="{_SOURCES_STYLE}">')
        parts.append(
            f'<h3 style="margin-top: 0; color: #24292e; font-size: 1.1em;">{escape(block.sources.title)}</h3>'
        )
        parts.append('<ul style="margin: 0; padding-left: 20px;">')
        for source in block.sources.links:
            parts.append(
                f'<li style="margin: 5px 0;"><a style="{_LINK_STYLE}" href="{escape(source.url)}">'
                f"{escape(source.text)}</a></li>"
            )
        parts.append("</ul>")
        parts.append("</div>")
    parts.append("</div>")
    return "\n".join(parts)


def render_block_text(block: DigestBlock) -> str:
    lines = [block.url, render_spans_text(block.summary)]
    if block.sources is not None and block.sources.links:
        lines.append(f"{block.sources.title}:")
        for source in block.sources.links:
            lines.append(f"- {source.text}: {source.url}")
    return "\n".join(lines)


def parse_entries(entries: Iterable[str]) -> List[DigestBlock]:
    blocks = []
    for entry in entries:
        block = parse_summary_entry(entry)
        if block is not None:
            blocks.append(block)
    return blocks


def build_digest_html(entries: Iterable[str]) -> str:
    """HTML fragment with one card per well-formed entry, in input order."""
    return "\n".join(render_block_html(block) for block in parse_entries(entries))


def wrap_in_email_shell(*, title: str, intro: str, body_html: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        '<head><meta charset="UTF-8" /></head>\n'
        "<body style=\"font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, "
        'Arial, sans-serif; line-height: 1.6; color: #333; max-width: 800px; margin: 0 auto; padding: 20px;">\n'
        '<div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin-bottom: 30px; '
        'text-align: center;">\n'
        f'<h1 style="margin: 0; color: #333;">{escape(title)}</h1>\n'
        f'<p style="margin: 10px 0 0; color: #666;">{escape(intro)}</p>\n'
        "</div>\n"
        f"{body_html}\n"
        "</body>\n"
        "</html>"
    )


def build_email_body(entries: Iterable[str]) -> Tuple[str, str]:
    blocks = parse_entries(entries)
    if not blocks:
        text_body = f"{DIGEST_SUBJECT}\n\nNo summaries were produced for this batch."
        body_html = f'<div style="{_CARD_STYLE}">No summaries were produced for this batch.</div>'
        return text_body, wrap_in_email_shell(title=DIGEST_SUBJECT, intro=DIGEST_INTRO, body_html=body_html)

    text_parts = [DIGEST_SUBJECT, DIGEST_INTRO, ""]
    text_parts.extend(render_block_text(block) + "\n" for block in blocks)
    body_html = "\n".join(render_block_html(block) for block in blocks)
    return "\n".join(text_parts), wrap_in_email_shell(title=DIGEST_SUBJECT, intro=DIGEST_INTRO, body_html=body_html)
