import uuid
from typing import Dict, Optional

from asset_importer.config import settings
from asset_importer.providers.base import AssetProvider, AssetProviderError
from asset_importer.schemas import PHASE_READY, AssetHandle, AssetStatus, MediaDescriptor


class SimulatedAssetProvider(AssetProvider):
    # Dry-run provider: no network, every asset turns ready after a few polls.
    def __init__(self, polls_until_ready: Optional[int] = None) -> None:
        if polls_until_ready is None:
            polls_until_ready = settings.simulated_polls_until_ready
        self.polls_until_ready = max(1, polls_until_ready)
        self._polls: Dict[str, int] = {}

    async def create_asset(self, descriptor: MediaDescriptor) -> AssetHandle:
        asset_id = uuid.uuid4().hex
        self._polls[asset_id] = 0
        return AssetHandle(id=asset_id)

    async def get_asset(self, asset_id: str) -> AssetStatus:
        if asset_id not in self._polls:
            raise AssetProviderError(f"unknown asset {asset_id}", status_code=404)
        self._polls[asset_id] += 1
        if self._polls[asset_id] >= self.polls_until_ready:
            return AssetStatus(id=asset_id, phase=PHASE_READY)
        return AssetStatus(id=asset_id, phase="processing")
