"""
SEO metadata derived from final content: title, slug, meta description,
keyword list, word count, reading time and a heuristic SEO score.
"""

import html
import re
from typing import List

from models import ContentRequest, GenerationMetadata
from word_count_utils import contains_url, count_keyword_mentions, count_words, estimate_reading_time

META_DESCRIPTION_LIMIT = 160
SLUG_LIMIT = 60

_TITLE_RE = re.compile(r"<h1[^>]*>(.*?)</h1>|^[ \t]{0,3}#[ \t]+([^\n]+)", re.IGNORECASE | re.MULTILINE | re.DOTALL)
_SUBHEADING_RE = re.compile(r"<h[2-6][\s>]|^\s{0,3}#{2,6}\s+\S", re.IGNORECASE | re.MULTILINE)
_TAG_RE = re.compile(r"<[^>]+>")


def extract_title(content: str, keyword: str) -> str:
    match = _TITLE_RE.search(content or "")
    if match:
        raw = match.group(1) or match.group(2) or ""
        title = html.unescape(_TAG_RE.sub("", raw)).strip()
        if title:
            return title
    return f"{keyword}: Complete Guide"


def slugify(title: str) -> str:
    slug = title.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:SLUG_LIMIT].strip("-") or "article"


def meta_description(request: ContentRequest) -> str:
    text = (
        f"Comprehensive {request.keyword} guide with expert insights, practical tips, and proven strategies."
    )
    if request.user_location:
        text += f" Optimized for {request.user_location}."
    text += " Learn from industry experts."
    if len(text) <= META_DESCRIPTION_LIMIT:
        return text
    return text[: META_DESCRIPTION_LIMIT - 3].rstrip() + "..."


def keyword_list(keyword: str) -> List[str]:
    return [
        keyword,
        f"{keyword} guide",
        f"{keyword} tips",
        f"best {keyword}",
        f"{keyword} strategies",
    ]


def seo_score(content: str, request: ContentRequest, word_count: int) -> int:
    """Base 70 plus bonuses for length, link, headings and keyword use; capped at 100."""
    score = 70
    if word_count >= 800:
        score += 10
    if word_count >= 1500:
        score += 5
    if contains_url(content, request.target_url):
        score += 10
    if _TITLE_RE.search(content):
        score += 5
    if len(_SUBHEADING_RE.findall(content)) >= 3:
        score += 5
    if count_keyword_mentions(content, request.keyword) >= 3:
        score += 5
    return min(score, 100)


def build_metadata(content: str, request: ContentRequest) -> GenerationMetadata:
    word_count = count_words(content)
    title = extract_title(content, request.keyword)
    return GenerationMetadata(
        title=title,
        slug=slugify(title),
        meta_description=meta_description(request),
        keywords=keyword_list(request.keyword),
        word_count=word_count,
        reading_time=estimate_reading_time(word_count),
        seo_score=seo_score(content, request, word_count),
    )
