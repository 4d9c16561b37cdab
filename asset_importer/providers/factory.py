from typing import Optional

from asset_importer.config import settings
from asset_importer.providers.base import AssetProvider
from asset_importer.providers.livepeer_provider import LivepeerAssetProvider
from asset_importer.providers.simulated_provider import SimulatedAssetProvider


def get_asset_provider(name: Optional[str] = None) -> AssetProvider:
    name = (name or settings.asset_provider or "livepeer").lower()
    if name == "livepeer":
        return LivepeerAssetProvider()
    if name == "simulated":
        return SimulatedAssetProvider()
    raise ValueError(f"unknown asset provider: {name}")
