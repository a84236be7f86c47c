from typing import Any, Optional

import aiohttp
from loguru import logger

from bulk_export_client.models import ApiResponse, ConnectionConfig


def create_bulk_path(*parts: str, prefix: str = "bulk/v1") -> str:
    """Joins resource segments under the bulk API prefix"""
    segments = [prefix.strip("/")] + [str(part).strip("/") for part in parts]
    return "/" + "/".join(segment for segment in segments if segment)


class Connection:
    def __init__(self, config: ConnectionConfig):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self.config.access_token:
                headers["Authorization"] = f"Bearer {self.config.access_token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def bulk_path(self, *parts: str) -> str:
        return create_bulk_path(*parts, prefix=self.config.api_prefix)

    async def get(
        self, path: str, params: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        data = await self._request("GET", path, params=params)
        return ApiResponse.model_validate(data)

    async def post(
        self, path: str, body: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        data = await self._request("POST", path, json=body)
        return ApiResponse.model_validate(data)

    async def get_text(
        self, path: str, params: Optional[dict[str, Any]] = None
    ) -> str:
        return await self._request("GET", path, params=params, as_text=True)

    async def _request(
        self, method: str, path: str, as_text: bool = False, **kwargs: Any
    ) -> Any:
        url = f"{self.base_url}{path}"
        session = self._get_session()

        try:
            async with session.request(method, url, **kwargs) as response:
                response.raise_for_status()
                if as_text:
                    return await response.text()
                return await response.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            self.logger.error(f"HTTP error {e.status} at {url}: {e.message}")
            raise
        except aiohttp.ClientError as e:
            self.logger.error(f"Request to {url} failed: {e}")
            raise
