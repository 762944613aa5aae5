import pytest

from api_doc_scraper.errors import ScrapeError, ScrapeErrorCode
from api_doc_scraper.utils.text import slugify, truncate
from api_doc_scraper.utils.url_utils import (
    is_doc_url,
    is_under_root,
    make_absolute,
    normalize_url,
    title_from_url,
    validate_url,
)


class TestNormalizeUrl:
    def test_drops_query_fragment_and_trailing_slash(self):
        assert normalize_url("https://Docs.Example.com/api/?x=1#top") == "https://docs.example.com/api"

    def test_root_keeps_slash(self):
        assert normalize_url("https://docs.example.com") == "https://docs.example.com/"

    def test_idempotent(self):
        once = normalize_url("https://docs.example.com/a/b/")
        assert normalize_url(once) == once


class TestValidateUrl:
    def test_accepts_https(self):
        assert validate_url("https://docs.example.com") == "https://docs.example.com"

    @pytest.mark.parametrize("url", ["ftp://example.com/x", "/relative/path", "example.com"])
    def test_rejects_non_http(self, url):
        with pytest.raises(ScrapeError) as exc:
            validate_url(url)
        assert exc.value.code == ScrapeErrorCode.INVALID_URL


class TestUrlHelpers:
    def test_make_absolute_drops_fragment(self):
        assert make_absolute("https://d.test/docs/", "auth#bearer") == "https://d.test/docs/auth"

    def test_is_under_root(self):
        assert is_under_root("https://d.test/docs/users", "https://d.test/docs")
        assert not is_under_root("https://d.test/blog/post", "https://d.test/docs")
        assert not is_under_root("https://other.test/docs/users", "https://d.test/docs")

    def test_is_doc_url_skips_assets(self):
        assert is_doc_url("https://d.test/docs/users")
        assert not is_doc_url("https://d.test/static/app.js")
        assert not is_doc_url("https://d.test/logo.png")

    def test_title_from_url(self):
        assert title_from_url("https://d.test/docs/rate-limits.html") == "Rate Limits"
        assert title_from_url("https://d.test/") == "Overview"


class TestText:
    def test_slugify(self):
        assert slugify("Get /users/{id}") == "get-users-id"

    def test_truncate(self):
        assert truncate("abc", 10) == "abc"
        assert truncate("abcdef", 3, "...") == "abc..."
