import asyncio
from unittest.mock import AsyncMock, MagicMock

from api_doc_scraper.config import TriageConfig
from api_doc_scraper.crawl.prioritizer import (
    AUTH_PRIORITY,
    WISHLIST_PRIORITY,
    PagePrioritizer,
    PrioritizedUrl,
    match_wishlist,
    select_urls_to_scrape,
)
from api_doc_scraper.discovery.classifier import UrlCategory
from api_doc_scraper.llm import LlmResponseError

ROOT = "https://d.test/docs"
USERS = "https://d.test/docs/users"
AUTH = "https://d.test/docs/auth"
INVOICES = "https://d.test/docs/invoices"
RATE_LIMITS = "https://d.test/docs/rate-limits"


def _llm(*responses):
    llm = MagicMock()
    llm.generate_json = AsyncMock(side_effect=list(responses))
    return llm


class TestPagePrioritizer:
    def test_llm_selection_is_checked_against_pool(self):
        llm = _llm({
            "selectedUrls": [USERS, INVOICES, "https://d.test/docs/made-up", AUTH],
            "authUrls": [AUTH],
        })
        prioritizer = PagePrioritizer(llm, TriageConfig())

        result = asyncio.run(prioritizer.prioritize([ROOT, USERS, AUTH, INVOICES, RATE_LIMITS], 10))

        urls = [p.url for p in result.prioritized]
        assert urls == [USERS, INVOICES, AUTH]
        assert result.prioritized[0].priority == 100
        assert result.prioritized[1].priority == 99
        assert result.prioritized[2].priority == AUTH_PRIORITY
        assert result.prioritized[2].category == UrlCategory.AUTHENTICATION
        assert "https://d.test/docs/made-up" not in result.skipped
        assert set(result.skipped) == {ROOT, RATE_LIMITS}
        assert result.used_fallback is False
        assert result.triage_attempts == 1

    def test_falls_back_to_patterns_after_retries(self):
        llm = _llm(LlmResponseError("bad"), LlmResponseError("bad"), LlmResponseError("bad"))
        prioritizer = PagePrioritizer(llm, TriageConfig())

        result = asyncio.run(prioritizer.prioritize([ROOT, USERS, AUTH, INVOICES, RATE_LIMITS], 3))

        assert result.used_fallback is True
        assert result.triage_attempts == 3
        assert llm.generate_json.await_count == 3
        assert len(result.prioritized) == 3
        assert result.prioritized[0].url == AUTH

    def test_temperatures_follow_schedule(self):
        llm = _llm(LlmResponseError("bad"), {"selectedUrls": [USERS, AUTH, INVOICES]})
        asyncio.run(PagePrioritizer(llm, TriageConfig(temperatures=[0.1, 0.0])).prioritize(
            [USERS, AUTH, INVOICES], 5
        ))
        temperatures = [c.kwargs["temperature"] for c in llm.generate_json.await_args_list]
        assert temperatures == [0.1, 0.0]

    def test_without_llm_uses_patterns(self):
        result = asyncio.run(PagePrioritizer(None).prioritize([ROOT, USERS, AUTH], 5))
        assert result.used_fallback is True
        assert result.triage_attempts == 0
        assert {p.url for p in result.prioritized} == {ROOT, USERS, AUTH}

    def test_auth_and_wishlist_pages_are_added(self):
        invoice_list = "https://d.test/docs/invoices/list"
        llm = _llm({"selectedUrls": [USERS], "authUrls": []})
        prioritizer = PagePrioritizer(llm, TriageConfig())

        result = asyncio.run(prioritizer.prioritize(
            [USERS, AUTH, invoice_list, ROOT], 5, wishlist=["list invoices"]
        ))

        by_url = {p.url: p for p in result.prioritized}
        assert by_url[AUTH].category == UrlCategory.AUTHENTICATION
        assert by_url[invoice_list].matches_wishlist
        assert by_url[invoice_list].priority == WISHLIST_PRIORITY
        assert by_url[invoice_list].matched_wishlist_items == ["list invoices"]

    def test_too_few_selections_are_topped_up(self):
        llm = _llm({"selectedUrls": [USERS]})
        pool = [ROOT, USERS, INVOICES, RATE_LIMITS, "https://d.test/docs/orders"]
        result = asyncio.run(PagePrioritizer(llm, TriageConfig(min_selected_pages=3)).prioritize(pool, 4))
        assert len(result.prioritized) == 4
        assert result.prioritized[0].url == USERS

    def test_never_exceeds_budget(self):
        pool = [f"https://d.test/docs/resource-{i}" for i in range(20)]
        llm = _llm({"selectedUrls": pool})
        result = asyncio.run(PagePrioritizer(llm).prioritize(pool, 5))
        assert len(result.prioritized) == 5
        assert len(result.skipped) == 15
        assert result.is_large_api is True


class TestMatchWishlist:
    def test_all_tokens(self):
        assert match_wishlist("https://d.test/methods/users.list", ["list users"]) == ["list users"]

    def test_hyphenated_form(self):
        assert match_wishlist("https://d.test/docs/create-invoice", ["create invoice"]) == ["create invoice"]

    def test_no_match(self):
        assert match_wishlist("https://d.test/docs/orders", ["list users"]) == []


class TestSelectUrlsToScrape:
    def test_balanced_mix(self):
        candidates = [
            PrioritizedUrl(url=AUTH, priority=95, category=UrlCategory.AUTHENTICATION),
            PrioritizedUrl(url="https://d.test/api/v1/users", priority=90, category=UrlCategory.API_ENDPOINT),
            PrioritizedUrl(url=RATE_LIMITS, priority=80, category=UrlCategory.RATE_LIMITS),
            PrioritizedUrl(url=ROOT, priority=20, category=UrlCategory.OTHER),
        ]
        selected = select_urls_to_scrape(candidates, max_pages=3)
        assert [c.url for c in selected] == [AUTH, "https://d.test/api/v1/users", RATE_LIMITS]

    def test_auth_cap(self):
        candidates = [
            PrioritizedUrl(url=f"https://d.test/auth/{i}", priority=95, category=UrlCategory.AUTHENTICATION)
            for i in range(5)
        ]
        selected = select_urls_to_scrape(candidates, max_pages=10, max_auth_pages=2)
        assert len(selected) == 5
        assert [c.url for c in selected[:2]] == ["https://d.test/auth/0", "https://d.test/auth/1"]
