from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class FetchError(Exception):
    """A single item could not be fetched or parsed; the crawl skips it."""


@dataclass(frozen=True)
class PriceSample:
    time: datetime
    value: float
    volume: int

    def to_record(self) -> dict:
        return {
            "time": int(self.time.timestamp() * 1000),
            "value": self.value,
            "volume": self.volume,
        }


@dataclass
class FetchResult:
    series: list[PriceSample] = field(default_factory=list)
    last_ever: Optional[float] = None
    throttled: bool = False

    @classmethod
    def from_series(cls, series: list[PriceSample]) -> "FetchResult":
        return cls(series=series, last_ever=series[-1].value if series else None)


class PriceHistoryProvider:
    async def fetch_catalog(self) -> list[str]:
        raise NotImplementedError

    async def fetch_history(self, name: str) -> FetchResult:
        raise NotImplementedError
