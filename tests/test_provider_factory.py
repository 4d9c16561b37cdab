import pytest

from asset_importer.providers import factory
from asset_importer.providers.factory import get_asset_provider


def test_simulated_provider_by_name():
    provider = get_asset_provider("simulated")
    assert provider.__class__.__name__ == "SimulatedAssetProvider"


def test_livepeer_requires_api_key(monkeypatch):
    monkeypatch.setattr(factory.settings, "livepeer_api_key", None)
    monkeypatch.delenv("LIVEPEER_API_KEY", raising=False)
    with pytest.raises(RuntimeError, match="LIVEPEER_API_KEY"):
        get_asset_provider("livepeer")


def test_livepeer_from_settings(monkeypatch):
    monkeypatch.setattr(factory.settings, "asset_provider", "livepeer")
    monkeypatch.setattr(factory.settings, "livepeer_api_key", "secret")
    provider = get_asset_provider()
    assert provider.__class__.__name__ == "LivepeerAssetProvider"
    assert provider.api_key == "secret"


def test_unknown_provider():
    with pytest.raises(ValueError):
        get_asset_provider("youtube")
