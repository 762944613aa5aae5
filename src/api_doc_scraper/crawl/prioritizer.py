"""LLM-guided page triage.

Given a pre-filtered URL pool, pick the pages worth fetching. The model
proposes an ordered selection; everything it returns is checked against
the pool, and pattern scores from the classifier fill the gaps (or take
over entirely when the model cannot produce a usable answer).
"""

import logging
import re
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from api_doc_scraper.config import TriageConfig
from api_doc_scraper.discovery.classifier import UrlCategory, apply_char_budget, classify
from api_doc_scraper.llm import LlmClient, RetryExhaustedError, RetryPolicy
from api_doc_scraper.utils.url_utils import normalize_url

logger = logging.getLogger(__name__)

AUTH_PRIORITY = 95
WISHLIST_PRIORITY = 90

_AUTH_URL_RE = re.compile(r"auth|oauth|api-?key|token|security", re.IGNORECASE)

TRIAGE_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "selectedUrls": {
            "type": "array",
            "items": {"type": "string"},
            "description": "The selected URLs in priority order (most important first)",
        },
        "authUrls": {
            "type": "array",
            "items": {"type": "string"},
            "description": "URLs specifically about authentication",
        },
    },
    "required": ["selectedUrls"],
}

TRIAGE_SYSTEM_PROMPT = (
    "You triage API documentation sites. You only ever return URLs copied "
    "exactly from the list you are given, as a JSON object."
)


class PrioritizedUrl(BaseModel):
    """A candidate page scored for fetching."""

    url: str
    priority: int = Field(ge=0, le=100)
    category: UrlCategory = UrlCategory.OTHER
    reason: str = ""
    matches_wishlist: bool = False
    matched_wishlist_items: list[str] = Field(default_factory=list)


class TriageResult(BaseModel):
    prioritized: list[PrioritizedUrl] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    used_fallback: bool = False
    triage_attempts: int = 0
    is_large_api: bool = False


def wishlist_tokens(phrase: str) -> list[str]:
    """Significant tokens of a wishlist phrase ("list emoji" -> [list, emoji])."""
    return [t for t in re.split(r"[\s.]+", phrase.lower()) if len(t) > 2]


def match_wishlist(url: str, wishlist: list[str]) -> list[str]:
    """Wishlist phrases the URL matches.

    A phrase matches when every token appears in the URL, or when its
    hyphenated or concatenated form does ("list users" matches both
    /users.list and /list-users).
    """
    lower = url.lower()
    matched: list[str] = []
    for phrase in wishlist:
        tokens = wishlist_tokens(phrase)
        collapsed = re.sub(r"[_\s]+", "-", phrase.strip().lower())
        if tokens and all(t in lower for t in tokens):
            matched.append(phrase)
        elif collapsed and (collapsed in lower or collapsed.replace("-", "") in lower):
            matched.append(phrase)
    return matched


def build_triage_prompt(urls: list[str], max_to_select: int, wishlist: list[str] | None = None) -> str:
    wishlist_section = ""
    if wishlist:
        items = "\n".join(
            f'- "{w}" (URLs about {w} operations, methods or endpoints)' for w in wishlist
        )
        wishlist_section = (
            "\n## USER WISHLIST - include URLs related to these\n"
            f"{items}\n\n"
            "URLs related to wishlist items should be included even if they "
            "would not rank highly otherwise.\n"
        )
    url_list = "\n".join(urls)
    return f"""Select the {max_to_select} most important URLs for API documentation from this list.
{wishlist_section}
## URL List ({len(urls)} total)
{url_list}

## Selection criteria, most important first
1. Wishlist items listed above
2. Authentication and OAuth docs (always include these)
3. Individual API endpoint docs (e.g. /methods/chat.postMessage, /api/users/create)
4. API reference overview pages
5. Rate limiting docs
6. Getting started and quickstart guides

## Skip
- Blog posts, changelogs, release notes
- Community and forum pages
- Marketing and pricing pages
- SDK-only docs unless they document API behavior

## Output
Return a JSON object with:
- "selectedUrls": the top {max_to_select} URLs, most important first
- "authUrls": every authentication-related URL you found (subset of selectedUrls)

Return ONLY URL strings copied from the list above."""


def _is_usable_selection(data: object) -> bool:
    return isinstance(data, dict) and isinstance(data.get("selectedUrls"), list)


def select_urls_to_scrape(
    candidates: list[PrioritizedUrl],
    max_pages: int,
    max_auth_pages: int = 3,
) -> list[PrioritizedUrl]:
    """Fill the page budget with a balanced mix of page kinds.

    Phases: auth pages, wishlist matches (up to 60% of the budget),
    endpoint pages (up to 80%), reference and getting-started pages
    (at most 5), rate-limit pages (at most 2), then the rest in order.
    """
    selected: list[PrioritizedUrl] = []
    taken: set[str] = set()

    def add(candidate: PrioritizedUrl) -> None:
        if candidate.url not in taken:
            taken.add(candidate.url)
            selected.append(candidate)

    for c in [c for c in candidates if c.category == UrlCategory.AUTHENTICATION][:max_auth_pages]:
        add(c)
    for c in candidates:
        if len(selected) >= max_pages * 0.6:
            break
        if c.matches_wishlist and c.priority >= 50:
            add(c)
    for c in candidates:
        if len(selected) >= max_pages * 0.8:
            break
        if c.category == UrlCategory.API_ENDPOINT and c.priority >= 60:
            add(c)
    reference = [
        c for c in candidates
        if c.category in (UrlCategory.API_REFERENCE, UrlCategory.GETTING_STARTED) and c.priority >= 50
    ]
    for c in reference[:5]:
        add(c)
    for c in [c for c in candidates if c.category == UrlCategory.RATE_LIMITS][:2]:
        add(c)
    for c in candidates:
        if len(selected) >= max_pages:
            break
        add(c)
    return selected[:max_pages]


class PagePrioritizer:
    """Select a bounded, ordered set of URLs to fetch."""

    def __init__(self, llm: LlmClient | None = None, config: TriageConfig | None = None):
        self.llm = llm
        self.config = config or TriageConfig()

    async def prioritize(
        self,
        urls: list[str],
        max_pages: int,
        wishlist: list[str] | None = None,
    ) -> TriageResult:
        """Triage a pre-filtered pool of normalized URLs."""
        wishlist = wishlist or []
        pool, over_budget = apply_char_budget(urls, self.config.max_input_chars)
        if over_budget:
            logger.info("Triage input capped: %d URLs skipped", len(over_budget))
        order = {url: i for i, url in enumerate(pool)}

        result = TriageResult(is_large_api=len(pool) > self.config.large_api_threshold)
        selection: list[PrioritizedUrl] | None = None

        if self.llm is not None and pool:
            try:
                selection, result.triage_attempts = await self._triage_with_llm(
                    self.llm, pool, max_pages, wishlist
                )
            except RetryExhaustedError as e:
                result.triage_attempts = e.attempts
                logger.warning("LLM triage failed, falling back to URL patterns: %s", e)

        if selection is None:
            result.used_fallback = True
            selection = select_urls_to_scrape(
                self._pattern_candidates(pool, wishlist), max_pages, self.config.max_auth_pages
            )

        selection = self._retain_auth_pages(selection, pool, max_pages)
        selection = self._boost_wishlist(selection, pool, max_pages, wishlist)
        selection = self._fill_under_selection(selection, pool, max_pages, wishlist)

        selection.sort(key=lambda p: (-p.priority, order.get(p.url, len(order))))
        chosen = {p.url for p in selection}
        result.prioritized = selection
        result.skipped = over_budget + [u for u in pool if u not in chosen]
        return result

    async def _triage_with_llm(
        self, llm: LlmClient, pool: list[str], max_pages: int, wishlist: list[str]
    ) -> tuple[list[PrioritizedUrl], int]:
        known = set(pool)
        prompt = build_triage_prompt(pool, max_pages, wishlist)

        def has_known_url(data: object) -> bool:
            if not _is_usable_selection(data):
                return False
            return any(
                isinstance(u, str) and normalize_url(u) in known for u in data["selectedUrls"]
            )

        policy = RetryPolicy(
            max_attempts=self.config.max_attempts,
            temperatures=self.config.temperatures,
            validator=has_known_url,
        )
        async def attempt(temperature: float) -> object:
            return await llm.generate_json(
                TRIAGE_SYSTEM_PROMPT, prompt, temperature=temperature,
                response_schema=TRIAGE_RESPONSE_SCHEMA,
            )

        outcome = await policy.run(attempt)
        data = outcome.value
        auth_urls = {
            normalize_url(u) for u in data.get("authUrls") or [] if isinstance(u, str)
        }

        selection: list[PrioritizedUrl] = []
        taken: set[str] = set()
        dropped: list[str] = []
        for raw in data["selectedUrls"]:
            if not isinstance(raw, str):
                continue
            url = normalize_url(raw)
            if url not in known:
                dropped.append(raw)
                continue
            if url in taken:
                continue
            taken.add(url)
            if url in auth_urls:
                entry = PrioritizedUrl(
                    url=url, priority=AUTH_PRIORITY,
                    category=UrlCategory.AUTHENTICATION,
                    reason="Authentication documentation",
                )
            else:
                entry = PrioritizedUrl(
                    url=url, priority=max(50, 100 - len(selection)),
                    category=classify(url).category, reason="LLM selected",
                )
            selection.append(entry)
        if dropped:
            logger.warning("Dropped %d triage URLs not in the candidate list: %s", len(dropped), dropped)

        # Auth pages flagged only in authUrls still count
        auth_count = sum(1 for p in selection if p.category == UrlCategory.AUTHENTICATION)
        for url in sorted(auth_urls & known - taken, key=pool.index):
            if auth_count >= self.config.max_auth_pages:
                break
            selection.append(PrioritizedUrl(
                url=url, priority=AUTH_PRIORITY,
                category=UrlCategory.AUTHENTICATION,
                reason="Authentication documentation",
            ))
            auth_count += 1

        _mark_wishlist(selection, wishlist)
        return selection[:max_pages], outcome.attempts

    @staticmethod
    def _pattern_candidates(pool: list[str], wishlist: list[str]) -> list[PrioritizedUrl]:
        candidates = []
        for url in pool:
            classification = classify(url)
            candidates.append(PrioritizedUrl(
                url=url,
                priority=classification.pattern_score,
                category=classification.category,
                reason="Pattern-based fallback",
            ))
        _mark_wishlist(candidates, wishlist)
        candidates.sort(key=lambda p: p.priority, reverse=True)
        return candidates

    def _retain_auth_pages(
        self, selection: list[PrioritizedUrl], pool: list[str], max_pages: int
    ) -> list[PrioritizedUrl]:
        """Make sure auth pages from the pool are kept, up to the auth cap."""
        taken = {p.url for p in selection}
        auth_count = sum(1 for p in selection if p.category == UrlCategory.AUTHENTICATION)
        for url in pool:
            if auth_count >= self.config.max_auth_pages:
                break
            if url in taken:
                continue
            if not _looks_like_auth(url):
                continue
            entry = PrioritizedUrl(
                url=url, priority=AUTH_PRIORITY,
                category=UrlCategory.AUTHENTICATION,
                reason="Authentication documentation (pattern match)",
            )
            if not _make_room(selection, max_pages, keep=_is_protected):
                break
            selection.append(entry)
            taken.add(url)
            auth_count += 1
        return selection

    @staticmethod
    def _boost_wishlist(
        selection: list[PrioritizedUrl], pool: list[str], max_pages: int, wishlist: list[str]
    ) -> list[PrioritizedUrl]:
        """Add wishlist-matching URLs the selection missed."""
        if not wishlist:
            return selection
        taken = {p.url for p in selection}
        boosted = 0
        for url in pool:
            if url in taken:
                continue
            matched = match_wishlist(url, wishlist)
            if not matched:
                continue
            if not _make_room(selection, max_pages, keep=_is_protected):
                break
            selection.append(PrioritizedUrl(
                url=url,
                priority=WISHLIST_PRIORITY,
                category=classify(url).category,
                reason=f"Wishlist match: {', '.join(matched)}",
                matches_wishlist=True,
                matched_wishlist_items=matched,
            ))
            taken.add(url)
            boosted += 1
        if boosted:
            logger.info("Boosted %d URLs matching wishlist items", boosted)
        return selection

    def _fill_under_selection(
        self, selection: list[PrioritizedUrl], pool: list[str], max_pages: int, wishlist: list[str]
    ) -> list[PrioritizedUrl]:
        """Top up with pattern-scored URLs when too few pages were chosen."""
        threshold = min(self.config.min_selected_pages, len(pool))
        if len(selection) >= threshold:
            return selection
        logger.warning("Only %d pages selected, adding pattern-based pages", len(selection))
        taken = {p.url for p in selection}
        for candidate in self._pattern_candidates(pool, wishlist):
            if len(selection) >= max_pages:
                break
            if candidate.url not in taken:
                selection.append(candidate)
                taken.add(candidate.url)
        return selection


def _mark_wishlist(entries: list[PrioritizedUrl], wishlist: list[str]) -> None:
    if not wishlist:
        return
    for entry in entries:
        matched = match_wishlist(entry.url, wishlist)
        if matched:
            entry.matches_wishlist = True
            entry.matched_wishlist_items = matched


def _is_protected(entry: PrioritizedUrl) -> bool:
    return entry.matches_wishlist or entry.category == UrlCategory.AUTHENTICATION


def _make_room(selection: list[PrioritizedUrl], max_pages: int, keep) -> bool:
    """Drop the lowest-priority unprotected entry if the budget is full.

    Returns False when the budget is full and nothing can be dropped.
    """
    if len(selection) < max_pages:
        return True
    for i in sorted(range(len(selection)), key=lambda i: (selection[i].priority, -i)):
        if not keep(selection[i]):
            del selection[i]
            return True
    return False


def _looks_like_auth(url: str) -> bool:
    if classify(url).category == UrlCategory.AUTHENTICATION:
        return True
    return bool(_AUTH_URL_RE.search(urlparse(url).path))
