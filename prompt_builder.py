"""
Prompt construction for content generation.

Pure functions: the same request always yields the same prompts, system prompt
and generation options. Nothing time-dependent is embedded in prompt text.
"""

import hashlib
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from models import ContentRequest, ContentType, GenerationOptions, ProviderDescriptor, Tone

DEFAULT_TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 4000
TOKENS_PER_WORD = 2.5


@dataclass(frozen=True)
class PromptVariant:
    style: str
    text: str


def _context_lines(request: ContentRequest) -> str:
    """Optional audience/industry bullets, each on its own leading line."""
    lines = [""]
    if request.industry:
        lines.append(f"- Focus on the {request.industry} industry context")
    if request.target_audience:
        lines.append(f"- Target audience: {request.target_audience}")
    if request.user_location:
        lines.append(f"- Tailor examples to readers in {request.user_location}")
    return "\n".join(lines)


def _format_block(request: ContentRequest) -> str:
    return (
        "OUTPUT FORMAT:\n"
        f"Return Markdown. Start with a single '# ' title containing \"{request.keyword}\", use '## ' "
        "section headings, and include at least one bulleted or numbered list. Write the backlink as "
        f"[{request.anchor}]({request.target_url})."
    )


def _direct_prompt(request: ContentRequest) -> str:
    context = _context_lines(request)
    return f"""Write {request.word_count} words on "{request.keyword}" and hyperlink the anchor text "{request.anchor}" with the URL {request.target_url} in a search engine optimized manner.

REQUIREMENTS:
- Create original, high-quality content that demonstrates expertise
- Naturally integrate the backlink "{request.anchor}" pointing to {request.target_url}
- Follow SEO best practices with a clear heading structure
- Include the keyword and its semantic variations
- Give practical, actionable advice{context}

CONTENT STRUCTURE:
1. Introduction that hooks the reader
2. Main sections with clear subheadings
3. Practical tips and actionable advice
4. The backlink placed within relevant context
5. Conclusion with a call to action

SEO FOCUS: {request.seo_focus.value}

{_format_block(request)}"""


def _authority_prompt(request: ContentRequest) -> str:
    context = _context_lines(request)
    return f"""Create a {request.word_count} word original {request.content_type.value} article that matches the search intent behind "{request.keyword}" and hyperlink the anchor text "{request.anchor}" with the URL {request.target_url}. Use strict grammar and punctuation.

GOALS:
- Cover {request.keyword} comprehensively and answer the questions readers actually ask
- Establish topical authority through depth and accuracy
- Apply expertise, authoritativeness and trustworthiness principles
- Use related terms naturally and keep paragraphs short for mobile readers
- Place the backlink where it genuinely helps the reader{context}

{_format_block(request)}"""


def _creative_prompt(request: ContentRequest) -> str:
    context = _context_lines(request)
    return f"""Craft an engaging {request.word_count} word article exploring "{request.keyword}" that keeps readers interested while incorporating "{request.anchor}" linked to {request.target_url}.

APPROACH:
- Open with a short story or scenario the reader recognizes
- Present a fresh angle on {request.keyword}
- Use concrete examples and case studies
- Vary sentence length and keep the language vivid
- Build toward a clear call to action
- Make the link placement feel natural{context}

{_format_block(request)}"""


def _technical_prompt(request: ContentRequest) -> str:
    context = _context_lines(request)
    return f"""Write a {request.word_count} word technical SEO article about "{request.keyword}".

ON-PAGE CHECKLIST:
- One H1 title containing "{request.keyword}"
- Four to six H2 sections, with H3 subsections where useful
- Use "{request.keyword}" in the first paragraph and in at least one subheading
- At least one numbered list of steps and one bulleted list of tips
- Exactly one contextual link: anchor text "{request.anchor}" pointing to {request.target_url}
- Sentences under 20 words on average
- A closing summary with next steps{context}

SEO FOCUS: {request.seo_focus.value}

{_format_block(request)}"""


PROMPT_STYLES: Dict[str, Callable[[ContentRequest], str]] = {
    "direct": _direct_prompt,
    "authority": _authority_prompt,
    "creative": _creative_prompt,
    "technical": _technical_prompt,
}
STYLE_ORDER: List[str] = list(PROMPT_STYLES)


def rotation_start(keyword: str) -> int:
    """Stable starting style index derived from the lower-cased keyword."""
    digest = hashlib.sha256(keyword.strip().lower().encode("utf-8")).hexdigest()
    return int(digest, 16) % len(STYLE_ORDER)


def build_prompt_variants(request: ContentRequest, count: Optional[int] = None) -> List[PromptVariant]:
    """
    Return at least ``count`` prompt variants (defaults to one per style).

    Styles rotate from a keyword-seeded start and wrap around when ``count``
    exceeds the number of styles.
    """
    total = len(STYLE_ORDER) if count is None else max(1, count)
    start = rotation_start(request.keyword)
    variants = []
    for offset in range(total):
        style = STYLE_ORDER[(start + offset) % len(STYLE_ORDER)]
        variants.append(PromptVariant(style=style, text=PROMPT_STYLES[style](request)))
    return variants


def build_prompts(request: ContentRequest, count: int) -> List[str]:
    return [variant.text for variant in build_prompt_variants(request, count)]


CONTENT_TYPE_GUIDANCE = {
    ContentType.HOW_TO: "Focus on step-by-step instructions, practical tips, and actionable advice.",
    ContentType.LISTICLE: "Create numbered or bulleted lists with detailed explanations for each point.",
    ContentType.REVIEW: "Provide balanced analysis with pros, cons, and honest recommendations.",
    ContentType.COMPARISON: "Compare options objectively with clear criteria and recommendations.",
    ContentType.NEWS: "Present information clearly with context and analysis.",
    ContentType.OPINION: "Share insights and perspectives while backing up claims with evidence.",
}

TONE_GUIDANCE = {
    Tone.PROFESSIONAL: "Use formal, authoritative language suitable for business contexts.",
    Tone.CASUAL: "Write in a relaxed, conversational tone that feels approachable.",
    Tone.TECHNICAL: "Use precise terminology and detailed explanations for technical audiences.",
    Tone.FRIENDLY: "Stay warm and approachable while being informative.",
}


def build_system_prompt(request: ContentRequest) -> str:
    return (
        "You are an expert SEO content writer who creates original, engaging articles that rank well "
        f"in search engines. {CONTENT_TYPE_GUIDANCE[request.content_type]} {TONE_GUIDANCE[request.tone]} "
        "Always integrate the requested backlink naturally and in context."
    )


def build_generation_options(
    request: ContentRequest,
    descriptor: Optional[ProviderDescriptor] = None,
    temperature: float = DEFAULT_TEMPERATURE,
    max_output_tokens: int = MAX_OUTPUT_TOKENS,
) -> GenerationOptions:
    """Options for one provider call: token budget scales with requested length."""
    return GenerationOptions(
        model=descriptor.model if descriptor else None,
        max_tokens=min(max_output_tokens, int(request.word_count * TOKENS_PER_WORD)),
        temperature=temperature,
        system_prompt=build_system_prompt(request),
    )
