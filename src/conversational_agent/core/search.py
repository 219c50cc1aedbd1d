from typing import Any

from conversational_agent.utils.http_client import get_json


class WebSearchClient:
    """Client for the web search backend."""

    def __init__(
        self, base_url: str, api_key: str | None = None, limit: int = 5
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.limit = limit

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Search the web and return clean result rows.

        Args:
            query: Free-text search query

        Returns:
            List of ``{"title", "url", "snippet"}`` dicts, empty on failure
        """
        data = await get_json(
            f"{self.base_url}/search",
            params={"q": query, "limit": self.limit},
            api_key=self.api_key,
        )
        if not data:
            return []

        results: list[dict[str, Any]] = []
        for row in data.get("results", [])[: self.limit]:
            if not isinstance(row, dict) or not row.get("url"):
                continue
            results.append(
                {
                    "title": row.get("title", ""),
                    "url": row["url"],
                    "snippet": row.get("snippet", ""),
                }
            )
        return results
