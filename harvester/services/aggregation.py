from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from harvester.providers.base import PriceSample
from harvester.schemas import Summary

WINDOW_DAYS = {
    "last_24h": 1,
    "last_7d": 7,
    "last_30d": 30,
    "last_90d": 90,
}


def _weighted_average(series: Iterable[PriceSample], limit: datetime) -> Optional[float]:
    total_volume = 0
    total_price_volume = 0.0
    for sample in series:
        if sample.time >= limit:
            total_price_volume += sample.value * sample.volume
            total_volume += sample.volume
    return total_price_volume / total_volume if total_volume > 0 else None


def weighted_average_summary(
    series: list[PriceSample],
    last_ever: Optional[float],
    now: Optional[datetime] = None,
) -> Summary:
    """Volume-weighted average price over each trailing window.

    Samples need not be sorted. A window with no traded volume is ``None``.
    ``last_ever`` is carried through as given.
    """
    now = now or datetime.now(timezone.utc)
    windows = {
        key: _weighted_average(series, now - timedelta(days=days))
        for key, days in WINDOW_DAYS.items()
    }
    return Summary(**windows, last_ever=last_ever)
