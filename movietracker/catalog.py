# movietracker/catalog.py
import logging
from typing import Any, Dict, Optional

import requests

from movietracker.models import MEDIA_TYPES

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.themoviedb.org/3"
IMG_BASE = "https://image.tmdb.org/t/p"
TIME_WINDOWS = ("day", "week")

class CatalogError(Exception):
    """Media catalog request failed or is not configured."""
    pass

def image_url(path: Optional[str], size: str = "original") -> Optional[str]:
    if not path:
        return None
    return f"{IMG_BASE}/{size}{path}"

class CatalogClient:
    """Read-only client for the TMDB v3 REST API."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.api_key = (api_key or "").strip()
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _check_type(self, media_type: str) -> str:
        if media_type not in MEDIA_TYPES:
            raise CatalogError(f"unsupported media type: {media_type!r}")
        return media_type

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key:
            raise CatalogError("TMDB API key is missing")
        q = dict(params or {})
        q["api_key"] = self.api_key
        url = f"{self.base_url}{path}"
        try:
            r = self.http.get(url, params=q, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            logger.error("catalog request %s failed (status=%s): %s", path, status, e)
            raise CatalogError(f"catalog request failed: {path}") from e
        except ValueError as e:
            logger.error("catalog response for %s is not JSON", path)
            raise CatalogError(f"invalid catalog response: {path}") from e

    # ---- Titles ----
    def details(self, media_type: str, media_id: int) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/{media_id}")

    def credits(self, media_type: str, media_id: int) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/{media_id}/credits")

    def videos(self, media_type: str, media_id: int) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/{media_id}/videos")

    def similar(self, media_type: str, media_id: int) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/{media_id}/similar")

    def recommendations(self, media_type: str, media_id: int) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/{media_id}/recommendations")

    # ---- Discovery ----
    def trending(self, media_type: str, time_window: str = "week") -> Dict[str, Any]:
        if time_window not in TIME_WINDOWS:
            raise CatalogError(f"unsupported time window: {time_window!r}")
        mt = media_type if media_type == "all" else self._check_type(media_type)
        return self._get(f"/trending/{mt}/{time_window}")

    def popular(self, media_type: str, page: int = 1) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/popular", {"page": page})

    def top_rated(self, media_type: str, page: int = 1) -> Dict[str, Any]:
        return self._get(f"/{self._check_type(media_type)}/top_rated", {"page": page})

    # ---- Search ----
    def search(self, media_type: str, query: str, page: int = 1) -> Dict[str, Any]:
        return self._get(f"/search/{self._check_type(media_type)}", {"query": query, "page": page})

    def search_multi(self, query: str, page: int = 1) -> Dict[str, Any]:
        """Movies, TV and people in one result set; people are dropped."""
        data = self._get("/search/multi", {"query": query, "page": page})
        data["results"] = [r for r in data.get("results") or [] if r.get("media_type") in MEDIA_TYPES]
        return data

    image_url = staticmethod(image_url)

    def browse(self, category: str, media_type: str = "all", page: int = 1) -> Dict[str, Any]:
        """
        One page of a discovery listing ("trending", "popular", "top_rated").
        For media_type "all", popular and top rated fetch the movie and tv
        pages and merge them, ordered by popularity or vote average.
        Every result carries its media_type.
        """
        if category == "trending":
            data = self.trending(media_type)
        elif category in ("popular", "top_rated"):
            fetch = self.popular if category == "popular" else self.top_rated
            if media_type != "all":
                data = fetch(media_type, page)
            else:
                movies, tv = fetch("movie", page), fetch("tv", page)
                order = "popularity" if category == "popular" else "vote_average"
                merged = [dict(r, media_type="movie") for r in movies.get("results") or []]
                merged += [dict(r, media_type="tv") for r in tv.get("results") or []]
                merged.sort(key=lambda r: r.get(order) or 0, reverse=True)
                data = {
                    "page": page,
                    "results": merged,
                    "total_pages": max(movies.get("total_pages") or 0, tv.get("total_pages") or 0),
                }
        else:
            raise CatalogError(f"unknown category: {category!r}")
        if media_type != "all":
            data["results"] = [dict(r, media_type=r.get("media_type") or media_type)
                               for r in data.get("results") or []]
        return data
