"""Small text helpers shared by the parsers and generators."""

import re


def slugify(text: str) -> str:
    """Lowercase, brace-free, hyphen-separated identifier."""
    slug = text.lower().replace("{", "").replace("}", "")
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")


def truncate(text: str, limit: int, marker: str = "\n\n[Content truncated...]") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker
