"""
Web tools — DuckDuckGo search and single-page text extraction.

Search goes through the ``ddgs`` client, whose API is blocking, so it runs in
a worker thread. Fetch uses ``httpx`` with a fixed wall-clock timeout and a
redirect cap, then strips page chrome with BeautifulSoup and keeps the main
readable text. Network faults come back as ``Error ...`` strings.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Optional

import httpx
import structlog
from bs4 import BeautifulSoup
from ddgs import DDGS

from nanox.tools.base import Tool, ToolFamily
from nanox.tools.schema import ToolParam

logger = structlog.get_logger(__name__)

SearchFn = Callable[[str, int], list[dict[str, Any]]]

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.google.com/",
}

NOISE_TAGS = ("script", "style", "nav", "footer", "iframe", "svg", "noscript", "header", "aside")

_WHITESPACE_RE = re.compile(r"\s+")


def ddgs_text_search(query: str, max_results: int) -> list[dict[str, Any]]:
    with DDGS() as ddgs:
        return list(ddgs.text(query, max_results=max_results) or [])


def format_search_results(hits: list[dict[str, Any]], limit: int = 5) -> str:
    if not hits:
        return "No results found on DuckDuckGo."
    blocks = []
    for i, hit in enumerate(hits[:limit], start=1):
        title = (hit.get("title") or "").strip()
        url = (hit.get("href") or hit.get("url") or "").strip()
        snippet = (hit.get("body") or hit.get("snippet") or "").strip() or "No description"
        blocks.append(f"[{i}] {title}\n    Link: {url}\n    Snippet: {snippet}")
    return "\n\n".join(blocks)


def extract_page_text(html: str) -> tuple[str, str]:
    """Return ``(title, text)`` for an HTML document, page chrome removed."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""

    for tag in soup.find_all(list(NOISE_TAGS)):
        tag.decompose()

    text = ""
    for selector in ("main", "article", "body"):
        node = soup.find(selector)
        if node is not None:
            text = node.get_text(" ")
            if text.strip():
                break
    if not text.strip():
        text = soup.get_text(" ")

    return title, _WHITESPACE_RE.sub(" ", text).strip()


class WebSearchTool(Tool):
    name = "web_search"
    description = (
        "Search the web using DuckDuckGo to find information, news, or technical documentation."
    )
    family = ToolFamily.WEB_SEARCH
    parameters = (ToolParam("query", "string", "The search query to execute on DuckDuckGo."),)

    def __init__(self, max_results: int = 5, search_fn: Optional[SearchFn] = None):
        self._max_results = max_results
        self._search_fn = search_fn or ddgs_text_search

    async def execute(self, args: dict[str, Any]) -> str:
        query = args["query"].strip()
        if not query:
            return "Error: Query cannot be empty."
        try:
            hits = await asyncio.to_thread(self._search_fn, query, self._max_results)
        except Exception as e:
            logger.warning("web_search.failed", query=query, error=str(e))
            return f"Error performing web search: {e}"
        logger.info("web_search.completed", query=query, hits=len(hits))
        return format_search_results(hits, self._max_results)


class WebFetchTool(Tool):
    name = "web_fetch"
    description = "Fetch and extract the main text content from a specific webpage URL."
    family = ToolFamily.WEB_FETCH
    parameters = (ToolParam("url", "string", "The URL of the webpage to fetch and read."),)

    def __init__(
        self,
        timeout: float = 15.0,
        max_chars: int = 5000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._max_chars = max_chars
        self._transport = transport

    async def execute(self, args: dict[str, Any]) -> str:
        url = args["url"].strip()
        if not url:
            return "Error: URL cannot be empty."

        try:
            async with httpx.AsyncClient(
                headers=BROWSER_HEADERS,
                timeout=self._timeout,
                follow_redirects=True,
                max_redirects=5,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("web_fetch.timeout", url=url, timeout=self._timeout)
            return f"Error fetching URL: timed out after {self._timeout:g}s"
        except httpx.HTTPError as e:
            logger.warning("web_fetch.failed", url=url, error=str(e))
            return f"Error fetching URL: {e}"

        title, text = extract_page_text(response.text)
        if len(text) > self._max_chars:
            text = text[: self._max_chars] + "... [Truncated]"
        return f"URL: {url}\nTitle: {title}\n\n{text}"
