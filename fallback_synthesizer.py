"""
Offline template article used when no provider output is usable.

The synthesizer first builds a structured ``FallbackDocument`` (title, intro,
sections, one link paragraph, call to action) and then hands it to a renderer.
Everything is deterministic: the same request always yields the same text.
"""

import hashlib
import html
import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, Tuple

from models import ContentRequest, ContentType
from word_count_utils import count_words

logger = logging.getLogger(__name__)

MIN_FALLBACK_WORDS = 300
TARGET_COVERAGE = 0.95


@dataclass(frozen=True)
class LinkParagraph:
    lead: str
    anchor: str
    url: str
    tail: str

    def plain(self) -> str:
        return f"{self.lead}{self.anchor}{self.tail}"


@dataclass(frozen=True)
class FallbackSection:
    heading: str
    paragraphs: Tuple[str, ...] = ()
    list_heading: Optional[str] = None
    items: Tuple[str, ...] = ()
    ordered: bool = False
    link: Optional[LinkParagraph] = None

    def plain(self) -> str:
        parts = [self.heading, *self.paragraphs]
        if self.list_heading:
            parts.append(self.list_heading)
        parts.extend(self.items)
        if self.link:
            parts.append(self.link.plain())
        return "\n".join(parts)


@dataclass(frozen=True)
class FallbackDocument:
    title: str
    intro: Tuple[str, ...]
    sections: Tuple[FallbackSection, ...]
    call_to_action: str
    keyword: str = ""
    target_url: str = ""
    anchor_text: str = ""

    def plain(self) -> str:
        parts = [self.title, *self.intro, *(section.plain() for section in self.sections), self.call_to_action]
        return "\n".join(parts)

    def word_count(self) -> int:
        return count_words(self.plain())

    @property
    def link_section(self) -> Optional[FallbackSection]:
        for section in self.sections:
            if section.link is not None:
                return section
        return None


class FallbackRenderer(Protocol):
    def render(self, document: FallbackDocument) -> str:
        ...


class MarkdownRenderer:
    def render(self, document: FallbackDocument) -> str:
        blocks: List[str] = [f"# {document.title}", *document.intro]
        for section in document.sections:
            blocks.append(f"## {section.heading}")
            blocks.extend(section.paragraphs)
            if section.list_heading:
                blocks.append(f"### {section.list_heading}")
            if section.items:
                if section.ordered:
                    blocks.append("\n".join(f"{i}. {item}" for i, item in enumerate(section.items, start=1)))
                else:
                    blocks.append("\n".join(f"- {item}" for item in section.items))
            if section.link:
                link = section.link
                blocks.append(f"{link.lead}[{link.anchor}]({link.url}){link.tail}")
        blocks.append(document.call_to_action)
        return "\n\n".join(blocks)


class HtmlRenderer:
    def render(self, document: FallbackDocument) -> str:
        esc = html.escape
        lines: List[str] = [f"<h1>{esc(document.title)}</h1>"]
        lines.extend(f"<p>{esc(paragraph)}</p>" for paragraph in document.intro)
        for section in document.sections:
            lines.append(f"<h2>{esc(section.heading)}</h2>")
            lines.extend(f"<p>{esc(paragraph)}</p>" for paragraph in section.paragraphs)
            if section.list_heading:
                lines.append(f"<h3>{esc(section.list_heading)}</h3>")
            if section.items:
                tag = "ol" if section.ordered else "ul"
                lines.append(f"<{tag}>")
                lines.extend(f"<li>{esc(item)}</li>" for item in section.items)
                lines.append(f"</{tag}>")
            if section.link:
                link = section.link
                href = link.url.replace('"', "%22")
                lines.append(
                    f'<p>{esc(link.lead)}<a href="{href}" target="_blank" rel="noopener noreferrer">'
                    f"{esc(link.anchor)}</a>{esc(link.tail)}</p>"
                )
        lines.append(f"<p>{esc(document.call_to_action)}</p>")
        return "\n".join(lines)


TITLE_TEMPLATES = {
    ContentType.HOW_TO: (
        "How to Master {keyword}: Complete Guide",
        "{keyword}: Step-by-Step Tutorial for Beginners",
        "Ultimate Guide to {keyword}: Everything You Need to Know",
    ),
    ContentType.LISTICLE: (
        "Essential {keyword} Tips Every Expert Should Know",
        "Proven {keyword} Strategies for Success",
    ),
    ContentType.REVIEW: (
        "{keyword} Review: Comprehensive Analysis and Recommendations",
        "{keyword} Evaluated: Pros, Cons, and Final Verdict",
    ),
    ContentType.COMPARISON: (
        "{keyword} Comparison: Finding the Best Option",
        "Best {keyword} Options Compared",
    ),
    ContentType.NEWS: (
        "{keyword}: What You Need to Know Now",
    ),
    ContentType.OPINION: (
        "Why {keyword} Deserves a Closer Look",
    ),
}

EXPANSION_PARAGRAPHS = (
    "When it comes to {topic}, small and consistent improvements usually beat dramatic one-off changes. "
    "Pick one area of {keyword} to improve this week, measure the result, and keep what works before "
    "moving on to the next adjustment.",
    "Many people underestimate how much preparation matters for {topic}. Writing down your goals, your "
    "constraints and the resources you already have makes every later {keyword} decision faster and "
    "easier to explain to others.",
    "It also helps to look at {topic} from the perspective of the people you serve. Ask what they expect "
    "from {keyword}, where they get stuck, and which small details would make their experience noticeably "
    "better.",
    "Documentation is an underrated part of {topic}. A short checklist or a simple log of what you tried, "
    "what happened and what you learned turns scattered {keyword} experiments into knowledge you can reuse.",
    "Finally, revisit {topic} on a regular schedule. Conditions change, tools improve and your own skills "
    "grow, so a {keyword} approach that was right a year ago may need a fresh review today.",
    "Collaboration makes {topic} easier as well. Sharing your {keyword} questions with colleagues or a "
    "community often surfaces simple answers and saves hours of trial and error.",
)


def _title(request: ContentRequest) -> str:
    templates = TITLE_TEMPLATES.get(request.content_type, TITLE_TEMPLATES[ContentType.HOW_TO])
    digest = hashlib.sha256(request.keyword.lower().encode("utf-8")).hexdigest()
    return templates[int(digest, 16) % len(templates)].format(keyword=request.keyword)


def _intro(keyword: str) -> Tuple[str, ...]:
    return (
        f"Welcome to your comprehensive guide on {keyword}. Understanding {keyword} is an important step "
        "toward better results. Whether you are just starting out or refining an existing approach, this "
        "guide offers practical insights and actionable strategies.",
        f"Throughout this article we will explore the fundamentals of {keyword}, share proven techniques, "
        f"and offer tips you can apply right away. By the end you will have a clear picture of how to use "
        f"{keyword} effectively for your own needs.",
    )


def _fundamentals(keyword: str) -> FallbackSection:
    return FallbackSection(
        heading=f"Understanding {keyword}: The Fundamentals",
        paragraphs=(
            f"{keyword} rewards people who understand its core principles before they act. Knowing how "
            f"those principles apply to your own situation is the foundation of every good {keyword} decision.",
        ),
        list_heading=f"Key Principles of {keyword}",
        items=(
            f"Foundation building: establish a solid base for your {keyword} strategy",
            f"Strategic planning: develop a complete approach to {keyword}",
            f"Implementation: put your {keyword} plan into action step by step",
            f"Optimization: keep improving your {keyword} results over time",
        ),
    )


def _best_practices(keyword: str) -> FallbackSection:
    return FallbackSection(
        heading=f"Best Practices for {keyword}",
        paragraphs=(
            f"Succeeding with {keyword} means following practices that have already proven themselves. "
            "These are the strategies that consistently deliver results.",
        ),
        list_heading=f"Essential {keyword} Strategies",
        items=(
            f"Research and planning: start by understanding your {keyword} requirements",
            f"Goal setting: define clear, measurable objectives for your {keyword} efforts",
            f"Resource allocation: make sure you have what {keyword} success requires",
            f"Monitoring and analysis: track {keyword} performance and adjust accordingly",
        ),
        ordered=True,
    )


def _common_mistakes(keyword: str) -> FallbackSection:
    return FallbackSection(
        heading=f"Common {keyword} Mistakes to Avoid",
        paragraphs=(
            f"Learning from common mistakes saves time and improves your {keyword} results. Watch out for "
            "these pitfalls.",
        ),
        items=(
            "Insufficient planning and preparation",
            "Ignoring data and feedback",
            "Inconsistent implementation",
            "Failing to adapt when conditions change",
        ),
    )


def _pro_tips(keyword: str) -> FallbackSection:
    return FallbackSection(
        heading=f"Pro Tips for {keyword} Success",
        paragraphs=(
            f"Experienced practitioners rely on a few advanced habits to get more out of {keyword}.",
        ),
        items=(
            f"Data-driven decisions: let measurements guide your {keyword} strategy",
            f"Continuous learning: keep up with new {keyword} techniques",
            f"Network building: trade {keyword} insights with peers",
            f"Experimentation: test new approaches to {keyword} on a small scale first",
        ),
    )


def _measuring_success(keyword: str) -> FallbackSection:
    return FallbackSection(
        heading=f"Measuring {keyword} Success",
        paragraphs=(
            f"You cannot improve what you do not measure. Track a few simple indicators to see whether your "
            f"{keyword} work is paying off.",
        ),
        items=(
            "Efficiency improvements",
            "Goal achievement rates",
            "Return on investment",
            "Satisfaction of the people you serve",
        ),
        ordered=True,
    )


def _resources(request: ContentRequest) -> FallbackSection:
    keyword = request.keyword
    return FallbackSection(
        heading=f"Advanced {keyword} Resources and Tools",
        paragraphs=(
            f"Taking your {keyword} strategy to the next level means using the right resources. Professional "
            "guidance and specialized tools can noticeably improve your results.",
        ),
        link=LinkParagraph(
            lead=f"For comprehensive {keyword} solutions and expert guidance, ",
            anchor=request.anchor,
            url=request.target_url,
            tail=f" offers proven methods that have helped many professionals reach their {keyword} goals.",
        ),
    )


def _section_count(word_count: int) -> int:
    if word_count < 600:
        return 4
    if word_count < 1200:
        return 5
    return 6


def _target_words(word_count: int) -> int:
    return max(MIN_FALLBACK_WORDS, math.ceil(word_count * TARGET_COVERAGE))


def synthesize_document(request: ContentRequest) -> FallbackDocument:
    """Build the structured fallback article, expanded to the requested length."""
    keyword = request.keyword
    body = [
        _fundamentals(keyword),
        _best_practices(keyword),
        _common_mistakes(keyword),
        _pro_tips(keyword),
        _measuring_success(keyword),
    ][: _section_count(request.word_count) - 1]

    # Link section sits in the middle of the body
    middle = max(1, len(body) // 2)
    sections: List[FallbackSection] = body[:middle] + [_resources(request)] + body[middle:]

    document = FallbackDocument(
        title=_title(request),
        intro=_intro(keyword),
        sections=tuple(sections),
        call_to_action=(
            f"Mastering {keyword} takes dedication and steady practice. Start applying these strategies today, "
            f"measure your progress, and keep refining your {keyword} approach as you learn what works best."
        ),
        keyword=keyword,
        target_url=request.target_url,
        anchor_text=request.anchor,
    )
    return _expand(document, _target_words(request.word_count))


def _expand(document: FallbackDocument, goal: int) -> FallbackDocument:
    """Append template paragraphs round-robin across sections until ``goal`` words are reached."""
    words = document.word_count()
    if words >= goal:
        return document

    sections = list(document.sections)
    step = 0
    while words < goal:
        index = step % len(sections)
        section = sections[index]
        template = EXPANSION_PARAGRAPHS[step % len(EXPANSION_PARAGRAPHS)]
        topic = section.heading.split(":")[0].lower()
        paragraph = template.format(keyword=document.keyword, topic=topic)
        sections[index] = replace(section, paragraphs=section.paragraphs + (paragraph,))
        words += count_words(paragraph)
        step += 1

    return replace(document, sections=tuple(sections))


def synthesize(request: ContentRequest, renderer: Optional[FallbackRenderer] = None) -> str:
    """Render the fallback article (Markdown unless another renderer is given)."""
    document = synthesize_document(request)
    text = (renderer or MarkdownRenderer()).render(document)
    logger.info("Synthesized fallback article for '%s' (%d words)", request.keyword, count_words(text))
    return text
