"""HTML field extraction — title, text, images, links and meta tags."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup, NavigableString, ParserRejectedMarkup, Tag

from src.api.schemas import ExtractedImage, PageMetadata
from src.scraper.errors import ParseError

logger = logging.getLogger(__name__)

_SKIP_TAGS = frozenset({"script", "style"})


@dataclass(frozen=True)
class MetaRule:
    """Maps ``<meta name=...>`` / ``<meta property=...>`` values onto a metadata field."""

    field: str
    names: tuple[str, ...] = ()
    properties: tuple[str, ...] = ()

    def matches(self, name: str, prop: str) -> bool:
        return name in self.names or prop in self.properties


# Order matters: a meta tag is claimed by the first rule it matches.
METADATA_RULES: tuple[MetaRule, ...] = (
    MetaRule("description", names=("description",), properties=("og:description",)),
    MetaRule("keywords", names=("keywords",)),
    MetaRule("author", names=("author",), properties=("article:author",)),
    MetaRule("published_date", properties=("article:published_time",)),
)


@dataclass
class ExtractedPage:
    """Everything the extractor pulls out of one document."""

    title: str
    text: str
    images: list[ExtractedImage] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    metadata: PageMetadata = field(default_factory=PageMetadata)


def parse_html(raw: bytes | str, url: str = "") -> BeautifulSoup:
    """Parse a response body. Broken-but-navigable markup is accepted."""
    try:
        return BeautifulSoup(raw, "html.parser")
    except (ParserRejectedMarkup, UnicodeDecodeError) as exc:
        raise ParseError(f"failed to parse HTML: {exc}", url=url) from exc


def resolve_url(base_url: str, href: str) -> str | None:
    """Resolve *href* against *base_url*; ``None`` if it cannot be resolved."""
    href = href.strip()
    if not href:
        return None
    try:
        return urljoin(base_url, href)
    except ValueError:
        logger.debug("unresolvable url", extra={"base_url": base_url, "href": href[:200]})
        return None


def extract_title(doc: BeautifulSoup, fallback: str = "") -> str:
    tag = doc.find("title")
    title = tag.get_text().strip() if tag is not None else ""
    return title or fallback


def extract_text(doc: BeautifulSoup) -> str:
    """Depth-first text of the document, skipping script/style subtrees."""
    parts: list[str] = []
    stack: list = list(reversed(list(doc.children)))
    while stack:
        node = stack.pop()
        if isinstance(node, Tag):
            if node.name in _SKIP_TAGS:
                continue
            stack.extend(reversed(list(node.children)))
        elif type(node) is NavigableString:
            text = " ".join(node.split())
            if text:
                parts.append(text)
    return " ".join(parts)


def extract_images(doc: BeautifulSoup, base_url: str) -> list[ExtractedImage]:
    images: list[ExtractedImage] = []
    for img in doc.find_all("img"):
        src = img.get("src")
        if not isinstance(src, str):
            continue
        resolved = resolve_url(base_url, src)
        if resolved is None:
            continue
        alt = img.get("alt")
        images.append(
            ExtractedImage(url=resolved, alt_text=alt if isinstance(alt, str) else "")
        )
    return images


def extract_links(doc: BeautifulSoup, base_url: str) -> list[str]:
    """Absolute ``<a href>`` targets, deduplicated in first-seen order."""
    seen: set[str] = set()
    links: list[str] = []
    for anchor in doc.find_all("a", href=True):
        href = anchor.get("href")
        if not isinstance(href, str):
            continue
        resolved = resolve_url(base_url, href)
        if resolved is None or resolved in seen:
            continue
        seen.add(resolved)
        links.append(resolved)
    return links


def extract_metadata(doc: BeautifulSoup) -> PageMetadata:
    values: dict[str, str | list[str]] = {}
    for meta in doc.find_all("meta"):
        content = meta.get("content")
        if not isinstance(content, str) or not content:
            continue
        name = str(meta.get("name") or "").lower()
        prop = str(meta.get("property") or "").lower()

        rule = next((r for r in METADATA_RULES if r.matches(name, prop)), None)
        if rule is None or values.get(rule.field):
            continue

        if rule.field == "keywords":
            values[rule.field] = [kw.strip() for kw in content.split(",") if kw.strip()]
        else:
            values[rule.field] = content
    return PageMetadata(**values)


def extract_page(doc: BeautifulSoup, base_url: str) -> ExtractedPage:
    """Run every field extractor over *doc*."""
    page = ExtractedPage(
        title=extract_title(doc, fallback=base_url),
        text=extract_text(doc),
        images=extract_images(doc, base_url),
        links=extract_links(doc, base_url),
        metadata=extract_metadata(doc),
    )
    logger.debug(
        "page extracted",
        extra={
            "url": base_url,
            "title": page.title[:80],
            "text_length": len(page.text),
            "images": len(page.images),
            "links": len(page.links),
        },
    )
    return page
