"""Web search integration — free SearXNG public instances.

Augments AI drafts with fresh results when the query needs realtime
information. Instances are tried in order; the first one that returns
results wins.

Gracefully degrades: returns None when every instance fails, and the
caller drafts without search context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from secretary.config import settings

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 10
_MAX_RESULTS = 5
_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "GroupSecretaryBot/1.0",
}


@dataclass
class SearchResults:
    """Top results formatted as numbered prompt context, plus their URLs."""

    content: str
    sources: list[str]


async def search_web(query: str, instances: list[str] | None = None) -> SearchResults | None:
    """Query SearXNG instances in order and return the first non-empty result set."""
    if not query:
        return None
    if instances is None:
        instances = settings.SEARXNG_INSTANCES

    params = {"q": query, "format": "json", "language": "ja-JP", "categories": "general"}
    async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS, headers=_HEADERS) as client:
        for instance in instances:
            try:
                resp = await client.get(f"{instance.rstrip('/')}/search", params=params)
                resp.raise_for_status()
                data = resp.json()
            except Exception as exc:
                logger.warning("Web search failed with %s: %s", instance, exc)
                continue

            results = (data.get("results") or [])[:_MAX_RESULTS]
            if not results:
                logger.info("No results from %s", instance)
                continue

            content = "\n\n".join(
                f"{i}. {r.get('title', '')}\n{r.get('content', '')}"
                for i, r in enumerate(results, start=1)
            )
            sources = [r["url"] for r in results if r.get("url")]
            logger.info("Web search via %s returned %d results", instance, len(results))
            return SearchResults(content=content, sources=sources)

    logger.warning("All web search instances failed for '%s'", query)
    return None
