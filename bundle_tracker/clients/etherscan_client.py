"""
Etherscan-family API client (Etherscan, BscScan, PolygonScan) implementing the ledger gateway
"""

import aiohttp
import asyncio
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from bundle_tracker.clients.ledger_gateway import LedgerGateway, LedgerGatewayError
from bundle_tracker.core.models import HolderRecord, Transfer


DEFAULT_EXPLORER_APIS = {
    'ethereum': 'https://api.etherscan.io/api',
    'bsc': 'https://api.bscscan.com/api',
    'polygon': 'https://api.polygonscan.com/api',
}

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
DEAD_ADDRESS = '0x000000000000000000000000000000000000dead'

# Holders below this balance are treated as dust when rebuilding snapshots
DUST_BALANCE = Decimal('0.001')


def scale_amount(raw_value, decimals: int) -> Optional[Decimal]:
    """Convert a raw integer token amount into a decimal-scaled one"""
    if raw_value in (None, ''):
        return None
    try:
        return Decimal(str(raw_value)) / (Decimal(10) ** decimals)
    except (InvalidOperation, ValueError, TypeError):
        return None


class EtherscanClient(LedgerGateway):
    def __init__(self, api_keys: Dict[str, str], base_urls: Dict[str, str] = None,
                 min_request_interval: float = 0.2, max_concurrent_requests: int = 3,
                 request_timeout: float = 15.0, default_decimals: int = 18):
        self.api_keys = api_keys or {}
        self.base_urls = dict(DEFAULT_EXPLORER_APIS)
        if base_urls:
            self.base_urls.update(base_urls)
        self.logger = logging.getLogger(__name__)

        # Rate limiting (free tier allows ~5 calls/sec)
        self.last_request_time = 0
        self.min_request_interval = min_request_interval
        self._sem = asyncio.Semaphore(max_concurrent_requests)
        self._rate_lock = asyncio.Lock()

        self.request_timeout = request_timeout
        self.default_decimals = default_decimals

        # Decimals never change for a deployed token
        self._decimals_cache: Dict[str, int] = {}

        self.session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if not self.session or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
        return self.session

    async def _rate_limit(self):
        """Apply rate limiting"""
        async with self._rate_lock:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.min_request_interval:
                await asyncio.sleep(self.min_request_interval - time_since_last)
            self.last_request_time = time.time()

    def _get_base_url(self, network: str) -> str:
        base_url = self.base_urls.get(network)
        if not base_url:
            raise LedgerGatewayError(f"Unsupported network: {network}")
        return base_url

    async def _make_request(self, network: str, params: Dict):
        """Call the explorer API and return its `result` payload"""
        base_url = self._get_base_url(network)
        query = dict(params)
        api_key = self.api_keys.get(network)
        if api_key:
            query['apikey'] = api_key

        async with self._sem:
            await self._rate_limit()
            session = await self._get_session()
            self.logger.debug(f"Explorer request {network}: {params.get('module')}/{params.get('action')}")

            try:
                async with session.get(base_url, params=query) as response:
                    if response.status == 429:
                        raise LedgerGatewayError(f"{network} explorer rate limited")
                    if response.status != 200:
                        error_body = await response.text()
                        raise LedgerGatewayError(f"{network} explorer HTTP {response.status}: {error_body[:200]}")
                    data = await response.json(content_type=None)
            except aiohttp.ClientError as e:
                raise LedgerGatewayError(f"{network} explorer request failed: {e}") from e

        if not isinstance(data, dict):
            raise LedgerGatewayError(f"{network} explorer returned malformed payload")

        # Proxy-style endpoints have no status field
        if 'status' not in data:
            return data.get('result')

        if data.get('status') == '1':
            return data.get('result')

        message = str(data.get('message', ''))
        if 'No transactions found' in message or 'No records found' in message:
            return []

        raise LedgerGatewayError(f"{network} explorer error: {message} {data.get('result', '')}".strip())

    def _remember_decimals(self, token_address: str, rows: List[Dict]):
        for row in rows:
            decimal_str = row.get('tokenDecimal')
            if decimal_str not in (None, ''):
                try:
                    self._decimals_cache[token_address.lower()] = int(decimal_str)
                    return
                except ValueError:
                    continue

    async def _get_decimals(self, token_address: str, network: str) -> int:
        """Token decimals, learned from the first transfer the explorer reports"""
        key = token_address.lower()
        if key in self._decimals_cache:
            return self._decimals_cache[key]

        try:
            rows = await self._make_request(network, {
                'module': 'account',
                'action': 'tokentx',
                'contractaddress': token_address,
                'page': 1,
                'offset': 1,
                'sort': 'asc',
            })
            self._remember_decimals(token_address, rows or [])
        except LedgerGatewayError as e:
            self.logger.warning(f"Could not learn decimals for {token_address}: {e}")

        return self._decimals_cache.get(key, self.default_decimals)

    async def get_holders(self, token_address: str, network: str, limit: int = 100) -> List[HolderRecord]:
        """Rebuild a holder snapshot by netting the most recent token transfers"""
        rows = await self._make_request(network, {
            'module': 'account',
            'action': 'tokentx',
            'contractaddress': token_address,
            'page': 1,
            'offset': 1000,
            'sort': 'desc',
        }) or []

        self._remember_decimals(token_address, rows)
        decimals = self._decimals_cache.get(token_address.lower(), self.default_decimals)

        balances: Dict[str, Decimal] = {}
        tx_counts: Dict[str, int] = {}

        for row in rows:
            value = scale_amount(row.get('value'), decimals)
            to_address = (row.get('to') or '').lower()
            from_address = (row.get('from') or '').lower()

            if value is None or value <= 0 or not to_address or not from_address:
                continue

            for address, signed in ((to_address, value), (from_address, -value)):
                if address in (ZERO_ADDRESS, DEAD_ADDRESS):
                    continue
                balances[address] = balances.get(address, Decimal(0)) + signed
                tx_counts[address] = tx_counts.get(address, 0) + 1

        holders = [
            HolderRecord(address=address, balance=balance, tx_count=tx_counts.get(address, 0))
            for address, balance in balances.items()
            if balance > DUST_BALANCE
        ]
        holders.sort(key=lambda h: h.balance, reverse=True)

        self.logger.info(f"Rebuilt {len(holders)} holders for {token_address} on {network}")
        return holders[:limit]

    async def get_transfer_history(self, wallet_address: str, token_address: str,
                                   network: str, limit: int = 50) -> List[Transfer]:
        rows = await self._make_request(network, {
            'module': 'account',
            'action': 'tokentx',
            'contractaddress': token_address,
            'address': wallet_address,
            'page': 1,
            'offset': limit,
            'sort': 'desc',
        }) or []

        self._remember_decimals(token_address, rows)
        decimals = self._decimals_cache.get(token_address.lower(), self.default_decimals)

        transfers = []
        for row in rows:
            scaled = scale_amount(row.get('value'), decimals)
            try:
                timestamp = float(row.get('timeStamp', 0))
            except (TypeError, ValueError):
                timestamp = 0.0

            transfers.append(Transfer(
                from_address=row.get('from') or '',
                to_address=row.get('to') or '',
                # Keep the raw value when it can't be scaled so callers can skip it
                value=scaled if scaled is not None else row.get('value'),
                tx_hash=row.get('hash') or '',
                timestamp=timestamp,
            ))

        return transfers

    async def get_deployer(self, token_address: str, network: str) -> Optional[str]:
        result = await self._make_request(network, {
            'module': 'contract',
            'action': 'getcontractcreation',
            'contractaddresses': token_address,
        })

        if result and isinstance(result, list):
            creator = result[0].get('contractCreator')
            if creator:
                return creator.lower()
        return None

    async def get_balance(self, wallet_address: str, token_address: str, network: str) -> Decimal:
        decimals = await self._get_decimals(token_address, network)
        result = await self._make_request(network, {
            'module': 'account',
            'action': 'tokenbalance',
            'contractaddress': token_address,
            'address': wallet_address,
            'tag': 'latest',
        })

        balance = scale_amount(result, decimals)
        if balance is None:
            raise LedgerGatewayError(f"Unparsable balance for {wallet_address}: {result!r}")
        return balance

    async def get_total_supply(self, token_address: str, network: str) -> Decimal:
        decimals = await self._get_decimals(token_address, network)
        result = await self._make_request(network, {
            'module': 'stats',
            'action': 'tokensupply',
            'contractaddress': token_address,
        })

        supply = scale_amount(result, decimals)
        if supply is None:
            raise LedgerGatewayError(f"Unparsable total supply for {token_address}: {result!r}")
        return supply

    async def close(self):
        """Close the HTTP session"""
        if self.session and not self.session.closed:
            await self.session.close()
