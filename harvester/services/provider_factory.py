from typing import Optional

import httpx

from harvester.config import Settings, settings
from harvester.providers.base import PriceHistoryProvider
from harvester.providers.mock_provider import MockPriceHistoryProvider
from harvester.providers.steam_provider import SteamPriceHistoryProvider


def build_provider(client: httpx.AsyncClient, config: Optional[Settings] = None) -> PriceHistoryProvider:
    config = config or settings
    if config.provider_name == "mock":
        return MockPriceHistoryProvider()
    if config.provider_name == "steam":
        return SteamPriceHistoryProvider(client, config)
    raise ValueError(f"unknown provider {config.provider_name!r}")
