"""Best-effort corroboration of proper-noun readings against authoritative sites.

A lookup returns a hiragana reading or None. ``LookupChain`` asks each lookup
in order and returns the first reading found; lookup failures never escape.
"""
import re
import logging
from typing import List, Optional, Protocol

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

READING_SELECTORS = [
    ".furigana",
    ".shikona-kana",
    ".rikishi-kana",
    "ruby rt",
    '[class*="kana"]',
    '[class*="furigana"]',
]

_TITLE_READING = re.compile(r"（(.+?)）")


class ReadingLookup(Protocol):
    name: str

    async def lookup(self, term: str) -> Optional[str]:
        ...


def parse_reading(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    for selector in READING_SELECTORS:
        node = soup.select_one(selector)
        if node:
            reading = node.get_text().strip()
            if reading:
                return reading
    title = soup.title.get_text() if soup.title else ""
    m = _TITLE_READING.search(title)
    if m and m.group(1):
        return m.group(1)
    return None


class SumoAssociationLookup:
    """Searches the Japan Sumo Association rikishi database.

    The search endpoint's parameter name is not documented, so the known
    query shapes are tried one after another.
    """

    name = "sumo.or.jp"
    SEARCH_URL = "https://sumo.or.jp/ResultRikishiData/search"
    QUERY_PARAMS = ["shikona", "q", "name"]

    def __init__(self, client: httpx.AsyncClient = None, timeout: float = 10):
        self._client = client
        self._timeout = timeout

    async def _get(self, client: httpx.AsyncClient, param: str, term: str) -> Optional[str]:
        r = await client.get(self.SEARCH_URL, params={param: term}, headers=_HEADERS)
        r.raise_for_status()
        return parse_reading(r.text)

    async def lookup(self, term: str) -> Optional[str]:
        if self._client is not None:
            return await self._try_all(self._client, term)
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            return await self._try_all(client, term)

    async def _try_all(self, client: httpx.AsyncClient, term: str) -> Optional[str]:
        for param in self.QUERY_PARAMS:
            try:
                reading = await self._get(client, param, term)
            except httpx.HTTPError as e:
                logger.debug(f"{self.name} lookup ?{param}= failed for {term}: {e}")
                continue
            if reading:
                return reading
        return None


class LookupChain:
    def __init__(self, lookups: List[ReadingLookup]):
        self.lookups = list(lookups)

    async def resolve(self, term: str) -> Optional[str]:
        for lookup in self.lookups:
            try:
                reading = await lookup.lookup(term)
            except Exception as e:
                logger.warning(f"Reading lookup {lookup.name} failed for {term}: {e}")
                continue
            if reading:
                logger.info(f"Reading from {lookup.name}: {term} -> {reading}")
                return reading
        return None


def default_chain() -> LookupChain:
    return LookupChain([SumoAssociationLookup()])
