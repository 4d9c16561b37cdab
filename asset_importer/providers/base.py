from abc import ABC, abstractmethod
from typing import Optional

from asset_importer.schemas import AssetHandle, AssetStatus, MediaDescriptor


class AssetProviderError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AssetProvider(ABC):
    @abstractmethod
    async def create_asset(self, descriptor: MediaDescriptor) -> AssetHandle:
        ...

    @abstractmethod
    async def get_asset(self, asset_id: str) -> AssetStatus:
        ...
