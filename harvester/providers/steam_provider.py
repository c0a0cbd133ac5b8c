from datetime import datetime, timedelta, timezone
import logging
import urllib.parse
from typing import Any, Optional

import httpx

from harvester.config import Settings, settings
from harvester.providers.base import FetchError, FetchResult, PriceHistoryProvider, PriceSample
from harvester.providers.catalog import fetch_item_names

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429


class SteamPriceHistoryProvider(PriceHistoryProvider):
    def __init__(self, client: httpx.AsyncClient, config: Optional[Settings] = None) -> None:
        self.client = client
        self.config = config or settings
        self.history_url = f"{self.config.market_base_url.rstrip('/')}/pricehistory/"

    @staticmethod
    def _parse_history_time(raw_time: str) -> datetime:
        # Steam time example: "Jul 02 2014 01: +0"
        parts = raw_time.split()
        if len(parts) == 5 and parts[3].endswith(":"):
            month, day, year, hour, offset = parts
            moment = datetime.strptime(f"{month} {day} {year} {hour[:-1]}", "%b %d %Y %H")
            return moment.replace(tzinfo=timezone(timedelta(hours=int(offset))))

        moment = datetime.fromisoformat(raw_time)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    @classmethod
    def parse_prices(cls, payload: Any) -> list[PriceSample]:
        if not isinstance(payload, dict):
            raise FetchError(f"unexpected price history payload of type {type(payload).__name__}")

        prices = payload.get("prices") or []
        if not isinstance(prices, list):
            raise FetchError(f"unexpected prices member of type {type(prices).__name__}")

        series: list[PriceSample] = []
        for point in prices:
            try:
                raw_time, raw_value, raw_volume = point
                series.append(
                    PriceSample(
                        time=cls._parse_history_time(str(raw_time)),
                        value=float(raw_value),
                        volume=int(raw_volume),
                    )
                )
            except (ValueError, TypeError, OverflowError) as exc:
                raise FetchError(f"malformed price point {point!r}: {exc}") from exc
        return series

    def build_history_url(self, name: str) -> str:
        encoded_name = urllib.parse.quote(name, safe="")
        return f"{self.history_url}?appid={self.config.steam_app_id}&market_hash_name={encoded_name}"

    async def fetch_catalog(self) -> list[str]:
        return await fetch_item_names(self.client, self.config.catalog_url)

    async def fetch_history(self, name: str) -> FetchResult:
        logger.info("fetching %s", name)
        url = self.build_history_url(name)
        try:
            resp = await self.client.get(url)
        except httpx.HTTPError as exc:
            raise FetchError(f"request for {name} failed: {exc}") from exc

        if resp.status_code == TOO_MANY_REQUESTS:
            logger.error("rate limited: %s %s %s", resp.status_code, resp.reason_phrase, url)
            return FetchResult(throttled=True)
        if not resp.is_success:
            raise FetchError(f"unexpected status {resp.status_code} for {name}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchError(f"invalid JSON for {name}: {exc}") from exc

        return FetchResult.from_series(self.parse_prices(payload))
