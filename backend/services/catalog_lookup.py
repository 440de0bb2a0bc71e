"""
Catalog Lookup - TMDB integration
Read-only content search used by the sponsorship wizard.

Returns movies and series only (people are dropped). A movie with no known
runtime is treated as 90 minutes, which prices it on the short tier.
"""
import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from models import ContentDetails, ContentRef, EpisodeRef, MediaType, SeasonRef
from services.sponsor_pricing import DEFAULT_RUNTIME_MINUTES
from services.sponsorship_errors import CatalogLookupError

logger = logging.getLogger(__name__)

TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_LANGUAGE = os.getenv("TMDB_LANGUAGE", "pt-BR")
TMDB_TIMEOUT_SECONDS = float(os.getenv("TMDB_TIMEOUT_SECONDS", "10"))

# TMDB media_type -> our media type
_MEDIA_TYPES = {
    "movie": MediaType.MOVIE,
    "tv": MediaType.SERIES,
}


class CatalogLookup(ABC):
    """External content catalog (opaque query interface)."""

    @abstractmethod
    async def search(self, text: str) -> List[ContentRef]:
        ...

    @abstractmethod
    async def get_details(self, content_id: int, media_type: MediaType) -> ContentDetails:
        ...

    @abstractmethod
    async def get_season_episodes(self, content_id: int, season: int) -> List[EpisodeRef]:
        ...


class TmdbCatalogLookup(CatalogLookup):
    """TMDB v3 API client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        language: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else TMDB_API_KEY
        self.base_url = (base_url or TMDB_BASE_URL).rstrip("/")
        self.language = language or TMDB_LANGUAGE
        self._transport = transport

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query = {"api_key": self.api_key, "language": self.language}
        query.update(params or {})
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=TMDB_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self.base_url}{path}", params=query)
        except httpx.TimeoutException:
            logger.error(f"TMDB timeout: {path}")
            raise CatalogLookupError("timeout")
        except httpx.HTTPError as e:
            logger.error(f"TMDB request error on {path}: {e}")
            raise CatalogLookupError(str(e))

        if response.status_code != 200:
            logger.error(f"TMDB API error {response.status_code} on {path}")
            raise CatalogLookupError(f"status {response.status_code}")

        try:
            return response.json()
        except ValueError:
            logger.error(f"TMDB returned a non-JSON body on {path}")
            raise CatalogLookupError("invalid body")

    async def search(self, text: str) -> List[ContentRef]:
        if not text.strip():
            return []
        data = await self._get("/search/multi", {"query": text.strip(), "page": 1})

        results = []
        for item in data.get("results") or []:
            media_type = _MEDIA_TYPES.get(item.get("media_type"))
            if media_type is None or item.get("id") is None:
                continue
            results.append(ContentRef(
                content_id=item["id"],
                title=item.get("title") or item.get("name") or "",
                media_type=media_type,
                poster_path=item.get("poster_path"),
            ))
        return results

    async def get_details(self, content_id: int, media_type: MediaType) -> ContentDetails:
        if media_type == MediaType.MOVIE:
            data = await self._get(f"/movie/{content_id}")
            runtime = data.get("runtime") or DEFAULT_RUNTIME_MINUTES
            content = ContentRef(
                content_id=content_id,
                title=data.get("title") or data.get("original_title") or "",
                media_type=MediaType.MOVIE,
                poster_path=data.get("poster_path"),
                runtime_minutes=runtime,
            )
            return ContentDetails(content=content, runtime_minutes=runtime)

        data = await self._get(f"/tv/{content_id}")
        seasons = [
            SeasonRef(
                season_number=season["season_number"],
                name=season.get("name") or "",
                episode_count=season.get("episode_count") or 0,
            )
            for season in data.get("seasons") or []
            if season.get("season_number") is not None
        ]
        content = ContentRef(
            content_id=content_id,
            title=data.get("name") or data.get("original_name") or "",
            media_type=MediaType.SERIES,
            poster_path=data.get("poster_path"),
        )
        return ContentDetails(content=content, seasons=seasons)

    async def get_season_episodes(self, content_id: int, season: int) -> List[EpisodeRef]:
        data = await self._get(f"/tv/{content_id}/season/{season}")
        return [
            EpisodeRef(
                season=ep.get("season_number", season),
                episode=ep["episode_number"],
                name=ep.get("name") or "",
            )
            for ep in data.get("episodes") or []
            if ep.get("episode_number") is not None
        ]


def poster_url(path: Optional[str], size: str = "w500") -> Optional[str]:
    """Full image URL for a TMDB poster path."""
    if not path:
        return None
    return f"https://image.tmdb.org/t/p/{size}{path}"


# Singleton instance
catalog_lookup = TmdbCatalogLookup()
