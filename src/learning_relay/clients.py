"""HTTP clients for the catalog source and the learning-path generator."""

import logging
from typing import Any, Optional

import httpx

from learning_relay import config
from learning_relay.errors import UpstreamError
from learning_relay.models import CatalogEntry, LearningConcept

logger = logging.getLogger(__name__)


def _has_text(item: dict[str, Any], *keys: str) -> bool:
    return all(isinstance(item.get(k), str) and item[k].strip() for k in keys)


class _HttpClient:
    """Owns an httpx.AsyncClient unless one is injected."""

    def __init__(self, http: Optional[httpx.AsyncClient] = None):
        self._http = http
        self._owns_http = http is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)
        return self._http

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body, mapping failures to UpstreamError."""
        try:
            resp = await self.http.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{method} {url} returned {e.response.status_code}")
            raise UpstreamError(
                f"Upstream returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise UpstreamError(f"Upstream request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("Upstream returned invalid JSON") from e


class CatalogClient(_HttpClient):
    """Fetches the full content catalog behind a token exchange."""

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        auth_url: str = config.CATALOG_AUTH_URL,
        catalog_url: str = config.CATALOG_URL,
        access_key: str = config.CATALOG_ACCESS_KEY,
        secret_key: str = config.CATALOG_SECRET_KEY,
        page_size: int = config.CATALOG_PAGE_SIZE,
    ):
        super().__init__(http)
        self.auth_url = auth_url
        self.catalog_url = catalog_url
        self.access_key = access_key
        self.secret_key = secret_key
        self.page_size = page_size

    async def authenticate(self) -> str:
        """Exchange the access/secret key pair for a bearer token."""
        data = await self._request(
            "POST",
            self.auth_url,
            data={"access_key": self.access_key, "secret_key": self.secret_key},
            headers={"accept": "application/json"},
        )
        token = data.get("auth_token") if isinstance(data, dict) else None
        if not token:
            raise UpstreamError("Catalog authentication returned no token")
        return token

    async def fetch_catalog(self) -> tuple[CatalogEntry, ...]:
        """Fetch the catalog snapshot, preserving source order."""
        token = await self.authenticate()
        items = await self._request(
            "GET",
            self.catalog_url,
            params={"per_page": self.page_size},
            headers={
                "accept": "application/json",
                "Authorization": f"Bearer {token}",
            },
        )
        if not isinstance(items, list):
            raise UpstreamError("Catalog response is not a list")

        # Items without a title or link cannot be searched or launched
        entries = tuple(
            CatalogEntry.from_source(item)
            for item in items
            if isinstance(item, dict) and _has_text(item, "title", "content_catalog_url")
        )
        skipped = len(items) - len(entries)
        if skipped:
            logger.warning(f"Skipped {skipped} catalog items without a title or URL")
        logger.info(f"Fetched catalog: {len(entries)} entries")
        return entries


class LearningPathClient(_HttpClient):
    """Generates a learning path for a specific goal."""

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        url: str = config.LEARNING_PATH_URL,
        topic: str = config.LEARNING_PATH_TOPIC,
        level: str = config.LEARNING_PATH_LEVEL,
    ):
        super().__init__(http)
        self.url = url
        self.topic = topic
        self.level = level

    async def generate(self, goal: str) -> list[LearningConcept]:
        """Return the high-leverage concepts of the generated path."""
        body = {
            "data": {"topic": self.topic, "level": self.level, "specificGoal": goal}
        }
        data = await self._request("POST", self.url, json=body)

        try:
            concepts = data["data"]["learningPath"]["highLeverageConcepts"]
            return [LearningConcept.model_validate(c) for c in concepts]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError("Learning path response is malformed") from e
