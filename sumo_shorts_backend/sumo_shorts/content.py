import re
import logging

import httpx
from bs4 import BeautifulSoup

from .errors import ContentFetchError
from .settings import CONTENT_MAX_CHARS

logger = logging.getLogger(__name__)

# Tried in order; the first one that yields text wins
CONTENT_SELECTORS = ["article", "main", ".post-body", ".article-content", "body"]

_FETCH_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def is_url(value: str) -> bool:
    return value.startswith("http")


def extract_text(html: str, max_chars: int = CONTENT_MAX_CHARS) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = ""
    for selector in CONTENT_SELECTORS:
        nodes = soup.select(selector)
        text = " ".join(n.get_text(" ") for n in nodes).strip()
        if text:
            break
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_chars]


async def fetch_content(value: str, client: httpx.AsyncClient = None) -> str:
    """Return prompt-ready text for free text or a URL.

    Non-URL input is returned unchanged. URLs are fetched and reduced to the
    text of the most specific content container found on the page.
    """
    if not is_url(value):
        return value
    logger.info(f"Fetching article content from {value}")
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=30, follow_redirects=True) as c:
                r = await c.get(value, headers=_FETCH_HEADERS)
        else:
            r = await client.get(value, headers=_FETCH_HEADERS)
        r.raise_for_status()
        text = extract_text(r.text)
    except Exception as e:
        logger.error(f"Failed to fetch content from {value}: {e}")
        raise ContentFetchError(f"Failed to fetch URL content: {value}") from e
    if not text:
        raise ContentFetchError(f"No readable text found at {value}")
    logger.info(f"Fetched {len(text)} characters of content")
    return text
