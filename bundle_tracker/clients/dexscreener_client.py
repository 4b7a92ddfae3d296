"""
DexScreener client for spot USD prices
"""

import aiohttp
import logging
import time
from typing import Dict, Optional


class DexScreenerClient:
    def __init__(self, base_url: str = "https://api.dexscreener.com/latest/dex",
                 cache_ttl: float = 30.0, request_timeout: float = 10.0):
        self.base_url = base_url
        self.logger = logging.getLogger(__name__)
        self.cache_ttl = cache_ttl
        self.request_timeout = request_timeout
        self.cache: Dict[str, Dict] = {}
        self.session = None

    async def _get_session(self):
        """Get or create aiohttp session"""
        if not self.session or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.request_timeout))
        return self.session

    async def get_token_price(self, token_address: str) -> Optional[float]:
        """USD price from the most liquid pair, None if the token has no pairs"""
        key = token_address.lower()
        cached = self.cache.get(key)
        if cached and time.time() - cached['timestamp'] < self.cache_ttl:
            return cached['price']

        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}/tokens/{token_address}") as response:
                if response.status != 200:
                    self.logger.warning(f"DexScreener HTTP {response.status} for {token_address}")
                    return None
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            self.logger.warning(f"DexScreener request failed for {token_address}: {e}")
            return None

        pairs = (data or {}).get('pairs') or []
        if not pairs:
            return None

        pair = max(pairs, key=lambda p: float((p.get('liquidity') or {}).get('usd') or 0))
        try:
            price = float(pair.get('priceUsd') or 0)
        except (TypeError, ValueError):
            return None

        if price <= 0:
            return None

        self.cache[key] = {'price': price, 'timestamp': time.time()}
        return price

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
