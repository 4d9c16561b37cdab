import asyncio
import os
from typing import Any, Dict, Optional

import requests

from asset_importer.config import settings
from asset_importer.providers.base import AssetProvider, AssetProviderError
from asset_importer.schemas import AssetHandle, AssetStatus, MediaDescriptor
from asset_importer.utils.logging import get_logger


logger = get_logger(__name__)


class LivepeerAssetProvider(AssetProvider):
    """Livepeer Studio asset API.

    ``requests`` is blocking, so each call runs in a worker thread and the
    event loop keeps polling the rest of the batch meanwhile.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        api_key = api_key or settings.livepeer_api_key or os.getenv("LIVEPEER_API_KEY")
        if not api_key:
            raise RuntimeError("LIVEPEER_API_KEY is required for Livepeer provider")
        self.api_key = api_key
        self.api_url = (api_url or settings.livepeer_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_sec

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "accept": "application/json",
            "Content-Type": "application/json",
        }

    def _check(self, resp: requests.Response, action: str) -> Dict[str, Any]:
        if resp.status_code >= 400:
            raise AssetProviderError(
                f"{action} failed: HTTP {resp.status_code} {resp.text[:500]}",
                status_code=resp.status_code,
            )
        return resp.json()

    def _create(self, descriptor: MediaDescriptor) -> AssetHandle:
        url = f"{self.api_url}/asset/upload/url"
        payload = {"name": descriptor.url, "url": descriptor.url}
        resp = requests.post(url, headers=self._headers(), json=payload, timeout=self.timeout)
        data = self._check(resp, "createAsset")
        asset = data.get("asset") or {}
        if not asset.get("id"):
            raise AssetProviderError(f"createAsset returned no asset id for {descriptor.url}")
        logger.debug("created asset %s for %s", asset["id"], descriptor.url)
        return AssetHandle(id=asset["id"])

    def _get(self, asset_id: str) -> AssetStatus:
        url = f"{self.api_url}/asset/{asset_id}"
        resp = requests.get(url, headers=self._headers(), timeout=self.timeout)
        data = self._check(resp, "getAsset")
        status = data.get("status") or {}
        return AssetStatus(
            id=data.get("id", asset_id),
            phase=status.get("phase"),
            errorMessage=status.get("errorMessage"),
        )

    async def create_asset(self, descriptor: MediaDescriptor) -> AssetHandle:
        return await asyncio.to_thread(self._create, descriptor)

    async def get_asset(self, asset_id: str) -> AssetStatus:
        return await asyncio.to_thread(self._get, asset_id)
