from datetime import datetime, timedelta, timezone
import hashlib
import random

from harvester.providers.base import FetchResult, PriceHistoryProvider, PriceSample

MOCK_CATALOG = [
    "Arcana of the Demon Witch",
    "Bladeform Legacy",
    "Exalted Manifold Paradox",
    "Fiery Soul of the Slayer",
    "Genuine Mantle of the Cinder Baron",
    "Inscribed Dragonclaw Hook",
    "Swine of the Sunken Galley",
    "Unusual Golden Baby Roshan",
]


class MockPriceHistoryProvider(PriceHistoryProvider):
    def __init__(self, days: int = 120) -> None:
        self.days = days

    async def fetch_catalog(self) -> list[str]:
        return list(MOCK_CATALOG)

    async def fetch_history(self, name: str) -> FetchResult:
        seed = int(hashlib.sha256(name.encode("utf-8")).hexdigest(), 16) % (10**8)
        rng = random.Random(seed)
        today = datetime.now(timezone.utc).replace(hour=1, minute=0, second=0, microsecond=0)

        base_price = 0.5 + (seed % 4000) / 100
        series: list[PriceSample] = []
        for offset in range(self.days, 0, -1):
            noise = rng.uniform(-0.08, 0.08)
            series.append(
                PriceSample(
                    time=today - timedelta(days=offset),
                    value=round(max(0.03, base_price * (1 + noise)), 3),
                    volume=int(max(0, rng.gauss(35, 20))),
                )
            )
        return FetchResult.from_series(series)
