"""
Holder analysis entry point: snapshot a token's holders and classify them
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Optional

from bundle_tracker.clients.ledger_gateway import LedgerGateway, LedgerGatewayError
from bundle_tracker.core.activity_summarizer import ActivitySummarizer
from bundle_tracker.core.models import ClassificationResult
from bundle_tracker.core.role_classifier import RoleClassifier
from bundle_tracker.core.thresholds import ClassifierConfig


class HolderAnalysisService:
    def __init__(self, gateway: LedgerGateway, config: Optional[Dict] = None,
                 classifier: Optional[RoleClassifier] = None):
        self.gateway = gateway
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

        self.classifier_config = ClassifierConfig.from_config(self.config)
        self.classifier = classifier or RoleClassifier(
            ActivitySummarizer(gateway, self.config), self.classifier_config
        )
        self.request_timeout = self.config.get('activity', {}).get('request_timeout_sec', 15)

    async def classify_holders(self, token_address: str, network: str) -> ClassificationResult:
        """
        Fetch holders, supply and deployer for a token, then classify.

        Upstream failures yield an empty result instead of raising. A missing
        deployer only drops the deployer match.
        """
        empty = ClassificationResult(token_address=token_address, network=network)

        try:
            holders, total_supply = await asyncio.gather(
                asyncio.wait_for(
                    self.gateway.get_holders(token_address, network,
                                             limit=self.classifier_config.holder_snapshot_limit),
                    timeout=self.request_timeout
                ),
                asyncio.wait_for(
                    self.gateway.get_total_supply(token_address, network),
                    timeout=self.request_timeout
                ),
            )
        except asyncio.TimeoutError:
            self.logger.error(f"Timed out fetching holders/supply for {token_address}")
            return empty
        except LedgerGatewayError as e:
            self.logger.error(f"Failed to fetch holders/supply for {token_address}: {e}")
            return empty

        deployer = await self._get_deployer(token_address, network)

        self.logger.info(f"Analyzing {len(holders)} holders of {token_address} on {network} "
                         f"(supply {total_supply}, deployer {deployer or 'unknown'})")

        return await self.classifier.classify(
            holders, deployer, Decimal(total_supply), network, token_address=token_address
        )

    async def _get_deployer(self, token_address: str, network: str) -> Optional[str]:
        try:
            return await asyncio.wait_for(
                self.gateway.get_deployer(token_address, network),
                timeout=self.request_timeout
            )
        except (asyncio.TimeoutError, LedgerGatewayError) as e:
            self.logger.warning(f"Could not resolve deployer of {token_address}: {e}")
            return None
