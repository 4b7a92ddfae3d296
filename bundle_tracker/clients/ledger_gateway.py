"""
Abstract ledger data source the classifier and monitor depend on
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

from bundle_tracker.core.models import HolderRecord, Transfer


class LedgerGatewayError(Exception):
    """Raised when the upstream ledger provider fails or returns garbage"""


class LedgerGateway(ABC):
    """
    Fallible, rate-limited source of on-chain token data.

    Every method may raise LedgerGatewayError. Callers bound each call with
    asyncio.wait_for using their own timeout.
    """

    @abstractmethod
    async def get_holders(self, token_address: str, network: str, limit: int = 100) -> List[HolderRecord]:
        """Largest holders first"""

    @abstractmethod
    async def get_transfer_history(self, wallet_address: str, token_address: str,
                                   network: str, limit: int = 50) -> List[Transfer]:
        """Most recent transfers first"""

    @abstractmethod
    async def get_deployer(self, token_address: str, network: str) -> Optional[str]:
        """Contract creator address, None when it cannot be determined"""

    @abstractmethod
    async def get_balance(self, wallet_address: str, token_address: str, network: str) -> Decimal:
        """Decimal-scaled token balance"""

    @abstractmethod
    async def get_total_supply(self, token_address: str, network: str) -> Decimal:
        """Decimal-scaled total supply"""

    async def close(self):
        """Release network resources"""
