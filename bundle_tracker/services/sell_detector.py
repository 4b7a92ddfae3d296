"""
Per-tick balance diffing for tracked wallets

A sell is only reported when a balance drop can be matched to a recent
outgoing transfer; unmatched drops just move the baseline.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bundle_tracker.clients.dexscreener_client import DexScreenerClient
from bundle_tracker.clients.ledger_gateway import LedgerGateway
from bundle_tracker.core.models import MonitoringSession, SellAlert, TrackedWallet, Transfer
from bundle_tracker.utils.venues import explorer_tx_link, identify_venue


@dataclass
class MonitorConfig:
    """Tunables for monitoring sessions"""
    poll_interval_sec: float = 30
    max_concurrency: int = 3
    request_timeout_sec: float = 10
    min_decrease_pct: float = 1.0
    recency_window_sec: float = 300
    history_limit: int = 20

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MonitorConfig":
        """Build from the `monitoring` section of the YAML config"""
        section = config.get('monitoring', {}) or {}
        known = set(cls.__dataclass_fields__)
        return cls(**{key: value for key, value in section.items() if key in known})


class SellDetector:
    def __init__(self, gateway: LedgerGateway, config: Optional[MonitorConfig] = None,
                 price_client: Optional[DexScreenerClient] = None):
        self.gateway = gateway
        self.config = config or MonitorConfig()
        self.price_client = price_client
        self.logger = logging.getLogger(__name__)

    async def run_tick(self, session: MonitoringSession) -> List[SellAlert]:
        """Check every tracked wallet once and return the verified sells"""
        if not session.active:
            return []

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        wallets = list(session.tracked_wallets.values())

        async def check(wallet: TrackedWallet):
            async with semaphore:
                return await self.check_wallet(session, wallet)

        results = await asyncio.gather(*(check(w) for w in wallets), return_exceptions=True)

        alerts = []
        for wallet, result in zip(wallets, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, asyncio.TimeoutError):
                self.logger.warning(f"Timed out checking {wallet.address[:10]}...")
            elif isinstance(result, Exception):
                self.logger.error(f"Error checking {wallet.address[:10]}...: {result}")
            elif result is not None:
                alerts.append(result)

        return alerts

    async def check_wallet(self, session: MonitoringSession, wallet: TrackedWallet) -> Optional[SellAlert]:
        """
        Observe one wallet's balance and update its baseline.

        Raises on gateway failure, leaving the wallet's state untouched.
        """
        if not session.active:
            return None

        current = await asyncio.wait_for(
            self.gateway.get_balance(wallet.address, session.token_address, session.network),
            timeout=self.config.request_timeout_sec
        )
        current = Decimal(current)
        now = time.time()

        if not session.active:
            return None

        previous = wallet.last_balance
        if previous is None:
            # First sight only sets the baseline
            wallet.last_balance = current
            wallet.last_checked_at = now
            self.logger.debug(f"Baseline for {wallet.address[:10]}...: {current}")
            return None

        alert = None
        delta = previous - current
        if delta > 0 and previous > 0:
            change_pct = float(delta / previous * 100)
            if change_pct > self.config.min_decrease_pct:
                alert = await self._resolve_sell(session, wallet, previous, current, change_pct, now)

        if not session.active:
            return None

        wallet.last_balance = current
        wallet.last_checked_at = now
        return alert

    async def _resolve_sell(self, session: MonitoringSession, wallet: TrackedWallet,
                            previous: Decimal, current: Decimal, change_pct: float,
                            now: float) -> Optional[SellAlert]:
        transfers = await asyncio.wait_for(
            self.gateway.get_transfer_history(
                wallet.address, session.token_address, session.network,
                limit=self.config.history_limit
            ),
            timeout=self.config.request_timeout_sec
        )

        transfer = self.find_recent_outgoing(transfers, wallet.address, now - self.config.recency_window_sec)
        if transfer is None:
            self.logger.info(f"Balance of {wallet.address[:10]}... dropped {change_pct:.2f}% "
                             f"but no outgoing transfer in the last {self.config.recency_window_sec}s, skipping")
            return None

        amount_sold = previous - current
        venue = identify_venue(transfer.to_address, session.network)
        usd_value = await self._usd_value(session.token_address, amount_sold)

        self.logger.info(f"🚨 {wallet.role.value} wallet {wallet.address[:10]}... sold "
                         f"{amount_sold} ({change_pct:.2f}%) via {venue}")

        return SellAlert(
            wallet_address=wallet.address,
            wallet_role=wallet.role,
            token_address=session.token_address,
            network=session.network,
            amount_sold=amount_sold,
            previous_balance=previous,
            new_balance=current,
            change_percentage=change_pct,
            counterparty_venue=venue,
            tx_hash=transfer.tx_hash,
            timestamp=now,
            usd_value=usd_value,
            explorer_link=explorer_tx_link(transfer.tx_hash, session.network),
        )

    @staticmethod
    def find_recent_outgoing(transfers: List[Transfer], wallet_address: str,
                             cutoff: float) -> Optional[Transfer]:
        """Most recent transfer sent by the wallet at or after `cutoff`"""
        wallet = wallet_address.lower()
        outgoing = [
            t for t in transfers
            if (t.from_address or '').lower() == wallet and t.timestamp >= cutoff
        ]
        if not outgoing:
            return None
        return max(outgoing, key=lambda t: t.timestamp)

    async def _usd_value(self, token_address: str, amount: Decimal) -> Optional[float]:
        if self.price_client is None:
            return None
        try:
            price = await asyncio.wait_for(
                self.price_client.get_token_price(token_address),
                timeout=self.config.request_timeout_sec
            )
        except Exception as e:
            self.logger.debug(f"Price lookup failed for {token_address[:10]}...: {e}")
            return None
        if not price:
            return None
        return float(amount) * price
