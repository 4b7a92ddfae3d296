"""
Pytest configuration and shared fixtures
These fixtures are available to all test files
"""

import time
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from bundle_tracker.clients.ledger_gateway import LedgerGateway, LedgerGatewayError
from bundle_tracker.core.models import HolderRecord, Transfer


TOKEN = "0x00000000000000000000000000000000000000aa"
NETWORK = "ethereum"
UNISWAP_V2 = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"


class FakeGateway(LedgerGateway):
    """
    In-memory ledger.

    Values stored as exceptions are raised when requested, so tests can
    script per-wallet failures.
    """

    def __init__(self):
        self.holders: List[HolderRecord] = []
        self.total_supply = Decimal(0)
        self.deployer: Optional[str] = None
        self.balances: Dict[str, object] = {}
        self.transfers: Dict[str, object] = {}
        self.holders_error: Optional[Exception] = None
        self.deployer_error: Optional[Exception] = None
        self.balance_calls: List[str] = []

    async def get_holders(self, token_address, network, limit=100):
        if self.holders_error:
            raise self.holders_error
        return list(self.holders)[:limit]

    async def get_transfer_history(self, wallet_address, token_address, network, limit=50):
        value = self.transfers.get(wallet_address.lower(), [])
        if isinstance(value, Exception):
            raise value
        return list(value)[:limit]

    async def get_deployer(self, token_address, network):
        if self.deployer_error:
            raise self.deployer_error
        return self.deployer

    async def get_balance(self, wallet_address, token_address, network):
        self.balance_calls.append(wallet_address.lower())
        value = self.balances.get(wallet_address.lower())
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise LedgerGatewayError(f"no balance for {wallet_address}")
        return Decimal(value)

    async def get_total_supply(self, token_address, network):
        return self.total_supply


def holder(address: str, balance) -> HolderRecord:
    return HolderRecord(address=address, balance=Decimal(str(balance)))


def transfer(from_address: str, to_address: str, value, age_sec: float = 0,
             tx_hash: str = None) -> Transfer:
    return Transfer(
        from_address=from_address,
        to_address=to_address,
        value=value,
        tx_hash=tx_hash or f"0x{uuid.uuid4().hex}",
        timestamp=time.time() - age_sec,
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def test_config_dict() -> Dict:
    """Full config with pacing and polling turned down for tests"""
    return {
        'classifier': {
            'batch_delay_sec': 0,
        },
        'activity': {
            'history_limit': 50,
            'request_timeout_sec': 1,
        },
        'monitoring': {
            'poll_interval_sec': 0.01,
            'max_concurrency': 3,
            'request_timeout_sec': 1,
            'min_decrease_pct': 1.0,
            'recency_window_sec': 300,
            'history_limit': 20,
        },
    }
