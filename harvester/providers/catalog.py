import json
import logging

import httpx

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    pass


def item_names_from_catalog(items: dict) -> list[str]:
    """Return item names ordered by prefab.

    The sort is stable, so entries sharing a prefab keep their catalog order
    and the same catalog always yields the same traversal.
    """
    prefab_items = [item for item in items.values() if isinstance(item, dict) and item.get("prefab")]
    prefab_items.sort(key=lambda item: str(item["prefab"]))
    return [item["name"] for item in prefab_items if item.get("name")]


async def fetch_item_names(client: httpx.AsyncClient, catalog_url: str) -> list[str]:
    try:
        resp = await client.get(catalog_url)
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, json.JSONDecodeError) as exc:
        raise CatalogError(f"catalog fetch failed: {exc}") from exc

    if not isinstance(payload, dict):
        raise CatalogError("catalog payload is not an object")

    names = item_names_from_catalog(payload)
    if not names:
        raise CatalogError("catalog contains no items")
    logger.info("catalog loaded with %s items", len(names))
    return names
