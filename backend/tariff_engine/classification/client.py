"""HTTP client for the remote classification (trade tariff) service."""

import logging

import httpx
from pydantic import ValidationError

from tariff_engine.classification.documents import JsonApiDocument
from tariff_engine.config import Settings
from tariff_engine.exceptions import ClassificationNotFoundError, ClassificationServiceError

logger = logging.getLogger("tariff.classification")


class ClassificationClient:
    """Fetches chapter, heading and commodity documents.

    A 404 raises ClassificationNotFoundError so callers can fall back to
    shorter codes; every other failure raises ClassificationServiceError.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.origin_param = settings.classification_origin_param
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.classification_api_url,
            timeout=settings.classification_timeout_seconds,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_chapter(self, code: str) -> JsonApiDocument:
        return await self._get(f"/chapters/{code[:2]}", code)

    async def get_heading(self, code: str) -> JsonApiDocument:
        return await self._get(f"/headings/{code[:4]}", code)

    async def get_commodity(self, code: str, origin: str | None = None) -> JsonApiDocument:
        params = {self.origin_param: origin} if origin else None
        return await self._get(f"/commodities/{code}", code, params)

    async def _get(self, path: str, code: str, params: dict | None = None) -> JsonApiDocument:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ClassificationServiceError(path, detail=str(e)) from e

        if response.status_code == 404:
            logger.debug("Classification service 404 for %s", path)
            raise ClassificationNotFoundError(code, [code])
        if response.status_code >= 400:
            raise ClassificationServiceError(path, response.status_code, response.text[:200])

        try:
            return JsonApiDocument.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ClassificationServiceError(path, response.status_code, f"malformed document: {e}") from e
