"""
Aggregates a wallet's transfer history into buy/sell totals and a risk score
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from bundle_tracker.clients.ledger_gateway import LedgerGateway, LedgerGatewayError
from bundle_tracker.core.models import ActivitySummary


def calculate_risk_score(total_bought: Decimal, total_sold: Decimal, sell_tx_count: int) -> int:
    """Bounded 0-100 score from sell/buy ratio and sell frequency"""
    score = 0

    sell_ratio = total_sold / (total_bought or Decimal(1))
    if sell_ratio > Decimal('0.8'):
        score += 40
    elif sell_ratio > Decimal('0.5'):
        score += 25
    elif sell_ratio > Decimal('0.3'):
        score += 15

    if sell_tx_count > 10:
        score += 20
    elif sell_tx_count > 5:
        score += 10

    return max(0, min(score, 100))


def parse_transfer_value(value) -> Optional[Decimal]:
    """Positive decimal amount, or None when the row should be skipped"""
    if value is None or value == '':
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


class ActivitySummarizer:
    def __init__(self, gateway: LedgerGateway, config: Dict = None):
        self.gateway = gateway
        self.logger = logging.getLogger(__name__)

        activity_config = (config or {}).get('activity', {})
        self.history_limit = activity_config.get('history_limit', 50)
        self.request_timeout = activity_config.get('request_timeout_sec', 15)

    async def summarize(self, address: str, token_address: str, network: str,
                        history_limit: int = None) -> ActivitySummary:
        """
        Summarize up to `history_limit` recent transfers of `token_address` for a wallet.

        Never raises: a failed or timed-out history fetch yields a zero-valued summary.
        """
        limit = history_limit or self.history_limit

        try:
            transfers = await asyncio.wait_for(
                self.gateway.get_transfer_history(address, token_address, network, limit),
                timeout=self.request_timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning(f"Transfer history timed out for {address[:10]}...")
            return ActivitySummary.empty(address)
        except LedgerGatewayError as e:
            self.logger.warning(f"Transfer history failed for {address[:10]}...: {e}")
            return ActivitySummary.empty(address)
        except Exception as e:
            self.logger.error(f"Unexpected error fetching history for {address[:10]}...: {e}")
            return ActivitySummary.empty(address)

        wallet = address.lower()
        total_bought = Decimal(0)
        total_sold = Decimal(0)
        sell_tx_count = 0
        skipped = 0

        for transfer in transfers or []:
            amount = parse_transfer_value(transfer.value)
            if amount is None:
                skipped += 1
                continue

            if (transfer.to_address or '').lower() == wallet:
                total_bought += amount
            elif (transfer.from_address or '').lower() == wallet:
                total_sold += amount
                sell_tx_count += 1

        if skipped:
            self.logger.debug(f"Skipped {skipped} transfers with invalid value for {address[:10]}...")

        return ActivitySummary(
            address=address,
            total_bought=total_bought,
            total_sold=total_sold,
            sell_tx_count=sell_tx_count,
            risk_score=calculate_risk_score(total_bought, total_sold, sell_tx_count),
        )
