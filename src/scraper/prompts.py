"""Prompt templates for each AI augmentation capability."""

CLEAN_CONTENT_PROMPT = """\
You are a content extraction assistant. Given the following text extracted \
from a webpage, identify and return ONLY the meaningful human-readable content. \
Remove advertisements, navigation menus, footers, cookie notices, social media \
widgets, and other non-essential elements.

Return only the main content that a human would want to read. Do not add any \
commentary or explanations.

Text:
{text}

Extracted content:"""

FILTER_LINKS_PROMPT = """\
You are a link filtering assistant. Given a list of URLs extracted from a \
webpage, identify and return ONLY the links that point to substantive content \
(articles, blog posts, reports, etc.).

INCLUDE:
- Article links (news stories, blog posts, features)
- Opinion pieces and editorials
- Reports, guides, and documentation
- Individual story/content pages
- Links to specific multimedia content (videos, podcasts with their own pages)

EXCLUDE:
- Advertising/sponsored content links
- Site navigation (home, sections, categories, topics)
- Social media share/follow buttons
- Login/signup/account links
- Footer links (privacy, terms, about, contact, jobs, press)
- Newsletter/subscription prompts
- Cookie/consent notices
- Generic section/category/tag pages (unless they're the main content)
- Search functionality links
- Pagination controls (next, previous, page numbers)
- Internal site tools (print, save, bookmark)
- Related external sites/sister publications
- Comment section links

IMPORTANT: If this is a homepage or news aggregator page, it will contain MANY \
article links - these should ALL be included as they are the primary content. \
Only filter out the navigation chrome around them.

Page Title: {title}

Page Content: {content}

Links to filter:
{links}

Return ONLY a JSON array of the filtered URLs. Do not include any explanation \
or commentary.
Format: ["url1", "url2", "url3"]
"""

ANALYZE_IMAGE_PROMPT = """\
Analyze this image and provide:
1. A 4-5 sentence summary describing what you see
2. A list of 5-10 relevant tags for categorizing the image

Format your response as JSON with the following structure:
{{
  "summary": "Your 4-5 sentence description here",
  "tags": ["tag1", "tag2", "tag3"]
}}
{alt_section}"""

SCORE_CONTENT_PROMPT = """\
You are a content quality assessor deciding whether a webpage is worth \
ingesting into a knowledge base.

Score the page from 0.0 (worthless or harmful) to 1.0 (high-quality, \
substantive content). Penalise social media, gambling, adult content, drugs, \
marketplaces, forums, spam, clickbait and thin pages. Reward reference \
material, documentation, research and in-depth articles.

URL: {url}
Title: {title}

Content:
{content}

Respond with ONLY a JSON object with exactly these fields:
{{
  "score": 0.0,
  "reason": "one or two sentences explaining the score",
  "categories": ["category1", "category2"],
  "malicious_indicators": ["indicator1"]
}}
"""


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def format_clean_content_prompt(text: str, max_chars: int = 0) -> str:
    return CLEAN_CONTENT_PROMPT.format(text=_truncate(text, max_chars))


def format_filter_links_prompt(
    links_json: str, title: str, content: str, max_chars: int = 0
) -> str:
    return FILTER_LINKS_PROMPT.format(
        title=title,
        content=_truncate(content, max_chars),
        links=links_json,
    )


def format_analyze_image_prompt(alt_text: str = "") -> str:
    alt_section = ""
    if alt_text:
        alt_section = f"\nImage alt text (may provide context): {alt_text}\n"
    return ANALYZE_IMAGE_PROMPT.format(alt_section=alt_section)


def format_score_content_prompt(
    url: str, title: str, content: str, max_chars: int = 0
) -> str:
    return SCORE_CONTENT_PROMPT.format(
        url=url,
        title=title,
        content=_truncate(content, max_chars),
    )
