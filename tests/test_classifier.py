import json

from api_doc_scraper.discovery.classifier import UrlCategory, apply_char_budget, classify, pre_filter


class TestClassify:
    def test_authentication_wins_over_endpoint_patterns(self):
        result = classify("https://d.test/reference/authentication")
        assert result.category == UrlCategory.AUTHENTICATION
        assert result.pattern_score == 95

    def test_endpoint_page(self):
        result = classify("https://d.test/api/v1/users")
        assert result.category == UrlCategory.API_ENDPOINT
        assert result.pattern_score == 90

    def test_reference_root(self):
        assert classify("https://d.test/api-reference").category == UrlCategory.API_REFERENCE

    def test_rate_limits(self):
        result = classify("https://d.test/docs/rate-limits")
        assert result.category == UrlCategory.RATE_LIMITS
        assert result.pattern_score == 80

    def test_getting_started(self):
        assert classify("https://d.test/docs/quickstart").category == UrlCategory.GETTING_STARTED

    def test_generic_docs_path(self):
        result = classify("https://d.test/docs/webhooks/setup-guide")
        assert result.pattern_score == 60

    def test_excluded(self):
        assert classify("https://d.test/blog/launch").exclude
        assert classify("https://d.test/pricing").exclude
        assert classify("https://d.test/docs/changelog").exclude

    def test_other(self):
        result = classify("https://d.test/company/team")
        assert result.category == UrlCategory.OTHER
        assert result.pattern_score == 20


class TestPreFilter:
    def test_keeps_same_host_under_root(self):
        result = pre_filter(
            [
                "https://d.test/docs/users/",
                "https://d.test/docs/users#list",
                "https://other.test/docs/users",
                "https://d.test/marketing",
                "https://d.test/docs/blog/post",
            ],
            "https://d.test/docs",
        )
        assert result.included == ["https://d.test/docs/users"]
        assert len(result.excluded) == 3

    def test_idempotent(self):
        urls = ["https://d.test/docs/a/", "https://d.test/docs/b?x=1", "https://d.test/docs/a"]
        first = pre_filter(urls, "https://d.test/docs")
        second = pre_filter(first.included, "https://d.test/docs")
        assert second.included == first.included


class TestCharBudget:
    def test_under_budget_keeps_everything(self):
        urls = ["https://d.test/a", "https://d.test/b"]
        assert apply_char_budget(urls, 10_000) == (urls, [])

    def test_over_budget_keeps_highest_scores(self):
        urls = [
            "https://d.test/company/team",
            "https://d.test/authentication",
            "https://d.test/api/v1/users",
        ]
        kept, skipped = apply_char_budget(urls, 70)
        assert "https://d.test/authentication" in kept
        assert "https://d.test/company/team" in skipped
        assert len(json.dumps(kept)) <= 70
