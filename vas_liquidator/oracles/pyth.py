"""Pyth Network price oracle client (Hermes)."""
from __future__ import annotations

import asyncio
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import UpstreamError
from ..models import PriceQuote, PriceUpdate, normalize_feed_id

logger = logging.getLogger(__name__)

LATEST_UPDATES_PATH = "/v2/updates/price/latest"


class PythOracle:
    """Fetch latest prices and signed update data from Pyth Hermes."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url.rstrip("/")
        self.timeout = config.timeout

    async def fetch_prices(self, feed_ids: list[str]) -> PriceUpdate:
        """Fetch the latest price update for ``feed_ids``.

        Raises:
            UpstreamError: Hermes returned a non-200 status, an unparseable
                body, or did not answer within the configured timeout.
        """
        ids = list(dict.fromkeys(normalize_feed_id(fid) for fid in feed_ids))
        if not ids:
            return PriceUpdate()

        query_params = "&".join([f"ids[]={fid}" for fid in ids])
        url = f"{self.hermes_url}{LATEST_UPDATES_PATH}?{query_params}&encoding=hex&parsed=true"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        raise UpstreamError(
                            f"Error fetching prices from Pyth: HTTP {response.status}"
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"Error fetching prices from Pyth: {e}") from e

        update = parse_price_update(data)
        logger.info("Fetched %d prices from Pyth Network", len(update.quotes))
        for quote in update.quotes.values():
            logger.debug(
                "  %s: %d x 10^%d (published %d)",
                quote.feed_id, quote.price, quote.expo, quote.publish_time,
            )
        return update


def parse_price_update(data: dict) -> PriceUpdate:
    """Turn a Hermes ``/v2/updates/price/latest`` body into a PriceUpdate."""
    try:
        quotes: dict[str, PriceQuote] = {}
        publish_times: list[int] = []

        for item in data.get("parsed", []) or []:
            feed_id = normalize_feed_id(item["id"])
            price_data = item.get("price", {})
            quote = PriceQuote(
                feed_id=feed_id,
                price=int(price_data.get("price", 0)),
                expo=int(price_data.get("expo", 0)),
                publish_time=int(price_data.get("publish_time", 0)),
            )
            quotes[feed_id] = quote
            publish_times.append(quote.publish_time)

        binary = data.get("binary", {}) or {}
        update_data = tuple(str(blob) for blob in binary.get("data", []) or [])
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise UpstreamError(f"Malformed Pyth response: {e}") from e

    return PriceUpdate(
        quotes=quotes,
        update_data=update_data,
        publish_times=tuple(publish_times),
    )
