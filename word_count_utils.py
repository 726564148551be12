"""
Text Metric Utilities
=====================

Word, sentence and keyword counting shared by the quality scorer, the
content enhancer and the SEO metadata builder. Works on Markdown or HTML.
"""

import html
import math
import re
from typing import List

WORDS_PER_MINUTE = 200

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_MD_LINK_RE = re.compile(r"\[([^\]]*)\]\(([^)]*)\)")
_MD_MARKERS_RE = re.compile(r"^\s{0,3}(?:#{1,6}\s+|[-*+]\s+|\d+[.)]\s+|>\s?)", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_|`)")
_WORD_RE = re.compile(r"\b\w+\b")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n{2,}")
# What may follow the last character of a whole URL
_URL_END = r"(?=$|[\s)\]\"'<>]|[.,;:!?](?:$|[\s)\]\"'<>]))"


def strip_markup(text: str) -> str:
    """
    Reduce Markdown or HTML to plain prose.

    Link targets are dropped but anchor text is kept, so URLs do not inflate
    word counts.
    """
    if not text:
        return ""

    plain = _HTML_TAG_RE.sub(" ", text)
    plain = html.unescape(plain)
    plain = _MD_LINK_RE.sub(r"\1", plain)
    plain = _MD_MARKERS_RE.sub("", plain)
    plain = _EMPHASIS_RE.sub("", plain)
    return plain


def count_words(text: str) -> int:
    """
    Count words in text, ignoring markup

    Args:
        text: Markdown, HTML or plain text

    Returns:
        Number of words
    """
    if not text or not text.strip():
        return 0
    return len(_WORD_RE.findall(strip_markup(text)))


def count_keyword_mentions(text: str, keyword: str) -> int:
    """Case-insensitive, non-overlapping occurrences of ``keyword`` in ``text``."""
    if not text or not keyword or not keyword.strip():
        return 0
    return text.lower().count(keyword.strip().lower())


def split_sentences(text: str) -> List[str]:
    """Split plain prose into non-empty sentences."""
    plain = strip_markup(text)
    sentences = [chunk.strip() for chunk in _SENTENCE_SPLIT_RE.split(plain)]
    return [sentence for sentence in sentences if _WORD_RE.search(sentence)]


def average_sentence_length(text: str) -> float:
    """Mean words per sentence; 0.0 for text without sentences."""
    sentences = split_sentences(text)
    if not sentences:
        return 0.0
    total_words = sum(len(_WORD_RE.findall(sentence)) for sentence in sentences)
    return total_words / len(sentences)


def estimate_reading_time(word_count: int) -> int:
    """Whole minutes at 200 words per minute, never less than one."""
    if word_count <= 0:
        return 1
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def contains_url(text: str, url: str) -> bool:
    """True when ``url`` occurs in ``text`` as a whole URL, not as the prefix of a longer one."""
    if not text or not url:
        return False
    return re.search(re.escape(url) + _URL_END, text) is not None
