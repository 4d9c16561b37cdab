import asyncio
import os
import tempfile
from typing import Dict, List, Optional

import pytest

# Settings are read at import time; keep the API's data dir out of /app.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="asset-importer-"))

from asset_importer.providers.base import AssetProvider, AssetProviderError  # noqa: E402
from asset_importer.schemas import AssetHandle, AssetStatus, MediaDescriptor  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class ScriptedAssetProvider(AssetProvider):
    """Replays per-url phase sequences; the last phase repeats once the script runs out."""

    def __init__(
        self,
        phases: Optional[Dict[str, List[Optional[str]]]] = None,
        errors: Optional[Dict[str, str]] = None,
        ids: Optional[Dict[str, str]] = None,
        fail_create: Optional[set] = None,
        fail_get: Optional[set] = None,
        default_phases: Optional[List[Optional[str]]] = None,
    ) -> None:
        self.phases = phases or {}
        self.errors = errors or {}
        self.ids = ids or {}
        self.fail_create = fail_create or set()
        self.fail_get = fail_get or set()
        self.default_phases = default_phases or ["processing", "ready"]
        self.created: List[str] = []
        self.get_calls: Dict[str, int] = {}
        self._url_by_id: Dict[str, str] = {}
        self._open: set = set()
        self._creating = 0
        self.max_creating = 0
        self.max_open = 0

    async def create_asset(self, descriptor: MediaDescriptor) -> AssetHandle:
        self._creating += 1
        self.max_creating = max(self.max_creating, self._creating)
        try:
            await asyncio.sleep(0)
            if descriptor.url in self.fail_create:
                raise AssetProviderError(f"cannot import {descriptor.url}", status_code=422)
            asset_id = self.ids.get(descriptor.url, f"id-{descriptor.url}-{len(self.created)}")
            self.created.append(descriptor.url)
            self._url_by_id[asset_id] = descriptor.url
            self._open.add(asset_id)
            self.max_open = max(self.max_open, len(self._open))
            return AssetHandle(id=asset_id)
        finally:
            self._creating -= 1

    async def get_asset(self, asset_id: str) -> AssetStatus:
        await asyncio.sleep(0)
        url = self._url_by_id[asset_id]
        if url in self.fail_get:
            raise AssetProviderError(f"status lookup failed for {asset_id}", status_code=500)
        script = self.phases.get(url, self.default_phases)
        call = self.get_calls.get(asset_id, 0)
        self.get_calls[asset_id] = call + 1
        phase = script[min(call, len(script) - 1)]
        if phase in ("ready", "failed"):
            self._open.discard(asset_id)
        error = self.errors.get(url) if phase in ("ready", "failed") else None
        return AssetStatus(id=asset_id, phase=phase, errorMessage=error)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_factory():
    return ScriptedAssetProvider


def make_descriptors(count: int, prefix: str = "https://cdn.example.com/v") -> List[MediaDescriptor]:
    return [MediaDescriptor(url=f"{prefix}{i}.mp4", title=f"video {i}") for i in range(count)]


@pytest.fixture
def descriptors_factory():
    return make_descriptors
