"""
Post-processing for the selected provider output.

Normalises spacing, guarantees a top-level heading and guarantees the backlink,
keeping the output in whichever format (Markdown or HTML) the input used.
"""

import html
import logging
import re
from typing import List

from models import ContentRequest
from word_count_utils import contains_url

logger = logging.getLogger(__name__)

_EXCESS_BLANK_LINES_RE = re.compile(r"(?:[ \t]*\n){3,}")
_HTML_BLOCK_RE = re.compile(r"<(?:p|h[1-6]|div|ul|ol|article|section)[\s>]", re.IGNORECASE)
_HTML_PARAGRAPH_END_RE = re.compile(r"</(?:p|ul|ol|blockquote)>", re.IGNORECASE)
_MD_TOP_HEADING_RE = re.compile(r"^\s{0,3}#\s+\S", re.MULTILINE)
_HTML_TOP_HEADING_RE = re.compile(r"<h1[\s>]", re.IGNORECASE)


def is_html(text: str) -> bool:
    return bool(_HTML_BLOCK_RE.search(text or ""))


def heading_title(keyword: str) -> str:
    return f"{keyword[:1].upper()}{keyword[1:]}: Complete Guide"


def link_sentence(request: ContentRequest, as_html: bool) -> str:
    if as_html:
        href = request.target_url.replace('"', "%22")
        anchor = (
            f'<a href="{href}" target="_blank" '
            f'rel="noopener noreferrer">{html.escape(request.anchor)}</a>'
        )
        return f"<p>For comprehensive {html.escape(request.keyword)} solutions, {anchor} provides expert tools and guidance.</p>"
    return (
        f"For comprehensive {request.keyword} solutions, [{request.anchor}]({request.target_url}) "
        "provides expert tools and guidance."
    )


class ContentEnhancer:
    """Pure text transform applied to the winning outcome."""

    def enhance(self, text: str, request: ContentRequest) -> str:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        as_html = is_html(text)
        enhanced = self.collapse_blank_lines(text).strip()
        enhanced = self.ensure_heading(enhanced, request, as_html)
        enhanced = self.ensure_link(enhanced, request, as_html)
        return enhanced

    @staticmethod
    def collapse_blank_lines(text: str) -> str:
        return _EXCESS_BLANK_LINES_RE.sub("\n\n", text)

    @staticmethod
    def ensure_heading(text: str, request: ContentRequest, as_html: bool) -> str:
        if as_html:
            if _HTML_TOP_HEADING_RE.search(text):
                return text
            return f"<h1>{html.escape(heading_title(request.keyword))}</h1>\n{text}"
        if _MD_TOP_HEADING_RE.search(text):
            return text
        return f"# {heading_title(request.keyword)}\n\n{text}"

    @staticmethod
    def ensure_link(text: str, request: ContentRequest, as_html: bool) -> str:
        """Insert one link paragraph at the middle paragraph boundary when the link is missing."""
        if contains_url(text, request.target_url) and request.anchor.lower() in text.lower():
            return text

        logger.info("Backlink to %s missing from output, inserting it", request.target_url)
        sentence = link_sentence(request, as_html)

        if as_html:
            boundaries = [match.end() for match in _HTML_PARAGRAPH_END_RE.finditer(text)]
            if not boundaries:
                return f"{text}\n{sentence}"
            position = boundaries[max(0, len(boundaries) // 2 - 1)]
            return f"{text[:position]}\n{sentence}{text[position:]}"

        blocks: List[str] = text.split("\n\n")
        index = max(1, len(blocks) // 2)
        blocks.insert(index, sentence)
        return "\n\n".join(blocks)
