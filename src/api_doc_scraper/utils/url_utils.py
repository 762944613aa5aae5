"""URL manipulation utilities."""

import re
from urllib.parse import urljoin, urlparse, urlunparse

from api_doc_scraper.errors import ScrapeError, ScrapeErrorCode

_SKIP_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp",
    ".css", ".js", ".woff", ".woff2", ".ttf", ".eot",
    ".pdf", ".zip", ".tar", ".gz", ".mp4", ".mp3",
)

_SKIP_PATHS = (
    "/assets/", "/static/", "/images/", "/img/",
    "/css/", "/js/", "/fonts/",
    "/_next/", "/_nuxt/", "/.well-known/",
)


def normalize_url(url: str) -> str:
    """Reduce a URL to scheme, host and path for deduplication.

    Query strings and fragments are dropped, the host is lowercased, and
    a trailing slash is removed from every path except the root. Applying
    it twice gives the same result as applying it once.
    """
    parsed = urlparse(url.strip())
    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/") or "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", "", ""))


def validate_url(url: str) -> str:
    """Return the URL if it is absolute http(s), else raise INVALID_URL."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ScrapeError(
            url,
            ScrapeErrorCode.INVALID_URL,
            f"Invalid URL: {url}. Only absolute http(s) URLs are supported",
        )
    return url


def is_same_domain(url1: str, url2: str) -> bool:
    """Check if two URLs are on the same domain."""
    return get_hostname(url1) == get_hostname(url2)


def get_hostname(url: str) -> str:
    """Extract the hostname (without port) from a URL."""
    return (urlparse(url).hostname or "").lower()


def make_absolute(base_url: str, href: str) -> str:
    """Convert a potentially relative URL to absolute, dropping the fragment."""
    absolute = urljoin(base_url, href)
    return urlparse(absolute)._replace(fragment="").geturl()


def root_path_prefix(url: str) -> str:
    """Path of the root URL without trailing slash, '' for a site root."""
    return urlparse(url).path.rstrip("/")


def is_under_root(url: str, root_url: str) -> bool:
    """Check the URL is on the root's host and under its path prefix."""
    if not is_same_domain(url, root_url):
        return False
    prefix = root_path_prefix(root_url)
    if not prefix:
        return True
    path = urlparse(url).path.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def is_doc_url(url: str) -> bool:
    """Check if a URL looks like a documentation page (not an asset)."""
    path = urlparse(url).path.lower()
    if path.endswith(_SKIP_EXTENSIONS):
        return False
    return not any(skip in path for skip in _SKIP_PATHS)


def title_from_url(url: str) -> str:
    """Derive a readable title from the last path segment."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    if not segments:
        return "Overview"
    last = re.sub(r"\.(html?|md)$", "", segments[-1], flags=re.IGNORECASE)
    words = last.replace("-", " ").replace("_", " ").split()
    return " ".join(w.capitalize() for w in words) or "Overview"
