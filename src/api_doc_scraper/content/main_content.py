"""Locate the documentation body of an HTML page.

Reference pages usually wrap the useful part (endpoint signatures, code
samples, parameter tables) in one container surrounded by navigation
chrome. Containers matched by the configured selectors compete on how
much API material they hold; general-purpose extractors are only used
when no container is good enough.
"""

import logging
import re

import trafilatura
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel
from readability import Document  # type: ignore[import-untyped]

from api_doc_scraper.config import FetcherConfig

logger = logging.getLogger(__name__)

_SIGNATURE_RE = re.compile(r"\b(?:GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\s+/[\w{}:./-]*")

# Weights for scoring a candidate container.
_CODE_WEIGHT = 200
_TABLE_WEIGHT = 150
_SIGNATURE_WEIGHT = 100


class ExtractedContent(BaseModel):
    """The chosen documentation body of one page."""

    html: str
    title: str | None = None
    text: str | None = None
    extraction_method: str | None = None

    @property
    def text_length(self) -> int:
        return len(self.text or "")


def _plain_text(node: Tag) -> str:
    return node.get_text(separator=" ", strip=True)


def score_container(node: Tag) -> int:
    """Rank a container by text volume plus API reference markers."""
    text = _plain_text(node)
    code_blocks = len(node.find_all("pre"))
    tables = len(node.find_all("table"))
    signatures = len(_SIGNATURE_RE.findall(text))
    return (
        len(text)
        + code_blocks * _CODE_WEIGHT
        + tables * _TABLE_WEIGHT
        + signatures * _SIGNATURE_WEIGHT
    )


class ContentExtractor:
    """Pick the documentation body out of a page."""

    def __init__(self, config: FetcherConfig):
        self.config = config

    def extract(self, html: str, url: str) -> ExtractedContent | None:
        if not html or not html.strip():
            return None

        soup = self._strip_chrome(html)
        title = self.page_title(html)
        min_length = self.config.min_content_length

        best = self._best_container(soup)
        if best is not None and len(_plain_text(best)) >= min_length:
            return self._from_node(best, title, "css_selector")

        cleaned = str(soup)
        for method, attempt in (
            ("trafilatura", lambda: self._via_trafilatura(cleaned, url)),
            ("readability", lambda: self._via_readability(cleaned)),
        ):
            found = attempt()
            if found is not None and found.text_length >= min_length:
                found.title = found.title or title
                found.extraction_method = method
                return found
            logger.debug("%s produced too little content for %s", method, url)

        body = soup.body or soup
        return self._from_node(body, title, "beautifulsoup")

    def page_title(self, html: str) -> str | None:
        """Return the <title> or first <h1> text of a page."""
        soup = BeautifulSoup(html, "lxml")
        for name in ("title", "h1"):
            tag = soup.find(name)
            if tag is not None:
                text = tag.get_text(strip=True)
                if text:
                    return text
        return None

    def _strip_chrome(self, html: str) -> BeautifulSoup:
        soup = BeautifulSoup(html, "lxml")
        if self.config.remove_selectors:
            # nested matches are already gone once their ancestor is removed
            for node in soup.select(", ".join(self.config.remove_selectors)):
                if not node.decomposed:
                    node.decompose()
        return soup

    def _best_container(self, soup: BeautifulSoup) -> Tag | None:
        candidates: list[Tag] = []
        for selector in self.config.content_selectors:
            candidates.extend(n for n in soup.select(selector) if n not in candidates)
        if not candidates:
            return None
        return max(candidates, key=score_container)

    @staticmethod
    def _from_node(node: Tag, title: str | None, method: str) -> ExtractedContent:
        return ExtractedContent(
            html=str(node), title=title, text=_plain_text(node), extraction_method=method
        )

    @staticmethod
    def _via_trafilatura(html: str, url: str) -> ExtractedContent | None:
        try:
            body = trafilatura.extract(
                html,
                url=url,
                output_format="html",
                include_tables=True,
                include_links=True,
                include_comments=False,
            )
        except Exception:
            logger.debug("trafilatura failed on %s", url, exc_info=True)
            return None
        if not body:
            return None
        text = _plain_text(BeautifulSoup(body, "lxml"))
        return ExtractedContent(html=body, text=text)

    @staticmethod
    def _via_readability(html: str) -> ExtractedContent | None:
        try:
            doc = Document(html)
            body = doc.summary()
            title = doc.short_title() or None
        except Exception:
            logger.debug("readability failed", exc_info=True)
            return None
        if not body:
            return None
        return ExtractedContent(html=body, title=title, text=_plain_text(BeautifulSoup(body, "lxml")))
