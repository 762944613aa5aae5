"""Main-content extraction and Markdown conversion for fetched pages."""

from api_doc_scraper.content.main_content import ContentExtractor, ExtractedContent
from api_doc_scraper.content.markdown import html_to_markdown

__all__ = [
    "ContentExtractor",
    "ExtractedContent",
    "html_to_markdown",
]
