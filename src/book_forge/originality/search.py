"""Text search collaborators used by the external similarity phase."""

import logging
from typing import Protocol

import httpx
from pydantic import BaseModel

from ..config import settings

logger = logging.getLogger(__name__)

GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"


class SearchHit(BaseModel):
    title: str
    snippet: str = ""


class TextSearch(Protocol):
    async def search(self, phrase: str) -> list[SearchHit]:
        """Published works matching the phrase, best match first."""
        ...


class GoogleBooksSearch:
    """Exact-phrase volume search against the Google Books API.

    Without an API key every search returns no hits.
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_results: int = 5,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.google_books_api_key
        self.max_results = max_results
        self.timeout = timeout
        self.transport = transport

    async def search(self, phrase: str) -> list[SearchHit]:
        if not self.api_key:
            logger.warning("Google Books API key missing; external scan returns no matches")
            return []

        params = {
            "q": f'"{phrase}"',
            "key": self.api_key,
            "maxResults": self.max_results,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(GOOGLE_BOOKS_URL, params=params)
            response.raise_for_status()
            data = response.json()

        hits = []
        for item in data.get("items") or []:
            hits.append(SearchHit(
                title=(item.get("volumeInfo") or {}).get("title") or "Unknown Book",
                snippet=(item.get("searchInfo") or {}).get("textSnippet") or "",
            ))
        return hits
