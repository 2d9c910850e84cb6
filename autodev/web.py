"""
AutoDev Web Research

DuckDuckGo HTML search and plain-text page reads for the research
agents. Both calls return a WebResult instead of raising, so a dead
link or a blocked search simply becomes a tool error the model sees.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from urllib.parse import quote_plus

import requests
from bs4 import BeautifulSoup
from loguru import logger

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_2_1) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.4 Safari/605.1.15",
]

SEARCH_URL = "https://html.duckduckgo.com/html/?q={query}"
MAX_SEARCH_RESULTS = 8
MAX_PAGE_CHARS = 8000


@dataclass
class WebResult:
    success: bool
    content: str = ""
    error: str | None = None

    def as_tool_payload(self) -> dict:
        if self.success:
            return {"success": True, "result": self.content}
        return {"success": False, "error": self.error}


def _get(url: str, timeout: int) -> requests.Response:
    response = requests.get(url, headers={"User-Agent": random.choice(USER_AGENTS)}, timeout=timeout)
    response.raise_for_status()
    return response


def _page_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "svg", "nav", "footer", "header"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def web_search(query: str, timeout: int = 15) -> WebResult:
    if not query or not query.strip():
        return WebResult(success=False, error="Empty query")

    try:
        res = _get(SEARCH_URL.format(query=quote_plus(query)), timeout)
    except requests.RequestException as e:
        logger.debug(f"[WEB] search failed for {query!r}: {e}")
        return WebResult(success=False, error=f"Web search failed: {e}")

    soup = BeautifulSoup(res.text, "html.parser")
    blocks = []
    for result in soup.select(".result")[:MAX_SEARCH_RESULTS]:
        link = result.select_one(".result__a")
        snippet = result.select_one(".result__snippet")
        if not link:
            continue
        title = link.get_text(strip=True)
        href = link.get("href", "")
        text = snippet.get_text(strip=True) if snippet else ""
        blocks.append(f"- {title}\n  {href}\n  {text}")

    if not blocks:
        return WebResult(success=False, error="No results")
    logger.debug(f"[WEB] 🔍 {query!r}: {len(blocks)} results")
    return WebResult(success=True, content="\n".join(blocks))


def read_webpage(url: str, timeout: int = 20) -> WebResult:
    if not url.startswith(("http://", "https://")):
        return WebResult(success=False, error=f"Unsupported URL: {url}")

    try:
        res = _get(url, timeout)
    except requests.RequestException as e:
        logger.debug(f"[WEB] read failed for {url}: {e}")
        return WebResult(success=False, error=f"Read webpage failed: {e}")

    logger.debug(f"[WEB] 📖 {url}")
    return WebResult(success=True, content=_page_text(res.text)[:MAX_PAGE_CHARS])
