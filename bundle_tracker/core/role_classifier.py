"""
Role classifier: turns a holder snapshot into Team / Bundle / MEV / Holder buckets

The primary pass applies population-adaptive thresholds and activity
heuristics. A separate fallback post-pass guarantees a non-empty signal and
tags every wallet it touches so callers can discount it.
"""

import asyncio
import logging
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from bundle_tracker.core.activity_summarizer import ActivitySummarizer
from bundle_tracker.core.models import (
    ActivitySummary,
    ClassificationResult,
    ClassifiedWallet,
    HolderRecord,
    WalletRole,
    risk_level_for,
)
from bundle_tracker.core.thresholds import ClassifierConfig, ThresholdTier


DEPLOYER_REASON = "Deployer wallet"
TEAM_FALLBACK_REASON = "Team Wallet (Fallback)"
BUNDLE_FALLBACK_REASON = "Bundle Wallet (Fallback)"
BUNDLE_FORCED_REASON = "Bundle Wallet (Forced)"


def _to_decimal(value) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(0)


def supply_percentage(balance: Decimal, total_supply: Decimal) -> float:
    return float(balance / total_supply * 100)


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


class RoleClassifier:
    def __init__(self, summarizer: ActivitySummarizer, config: ClassifierConfig = None):
        self.summarizer = summarizer
        self.config = config or ClassifierConfig()
        self.logger = logging.getLogger(__name__)

    async def classify(self, holders: List[HolderRecord], deployer: Optional[str],
                       total_supply, network: str, token_address: str = "") -> ClassificationResult:
        """
        Classify the largest holders of a token.

        Args:
            holders: Holder snapshot (any order)
            deployer: Contract creator, if known
            total_supply: Decimal-scaled total supply used for every percentage
            network: Network the token lives on
            token_address: Token being analyzed (used for transfer lookups)

        Returns:
            ClassificationResult with disjoint role buckets. Empty (never an
            exception) when the supply is non-positive or there are no holders.
        """
        supply = _to_decimal(total_supply)
        result = ClassificationResult(
            token_address=token_address,
            network=network,
            deployer=deployer.lower() if deployer else None,
            total_supply=supply,
            holder_count=len(holders or []),
        )

        if supply <= 0:
            self.logger.warning(f"Invalid total supply {total_supply} for {token_address}, skipping classification")
            return result

        positive = [h for h in holders or [] if _to_decimal(h.balance) > 0]
        if not positive:
            self.logger.info(f"No positive-balance holders for {token_address}")
            return result

        working_set = sorted(positive, key=lambda h: _to_decimal(h.balance), reverse=True)
        working_set = working_set[:self.config.working_set_size]

        tier = self.config.tier_for(result.holder_count)
        self.logger.info(
            f"Classifying {len(working_set)}/{result.holder_count} holders of {token_address} "
            f"(team > {tier.team_pct}%, bundle > {tier.bundle_pct}%)"
        )

        summaries = await self._summarize_working_set(working_set, token_address, network)

        self._classify_primary(result, working_set, summaries, supply, tier)
        apply_guaranteed_fallback(result, self.config)

        self.logger.info(f"Classification complete for {token_address}: {result.counts}")
        return result

    async def _summarize_working_set(self, working_set: List[HolderRecord],
                                     token_address: str, network: str) -> Dict[str, ActivitySummary]:
        """Summaries in fixed-size concurrent batches, paced between batches"""
        summaries: Dict[str, ActivitySummary] = {}
        batch_size = max(1, self.config.batch_size)

        for i in range(0, len(working_set), batch_size):
            batch = working_set[i:i + batch_size]
            results = await asyncio.gather(
                *(self.summarizer.summarize(h.address, token_address, network) for h in batch),
                return_exceptions=True
            )

            for holder, summary in zip(batch, results):
                if isinstance(summary, BaseException):
                    self.logger.warning(f"Failed to summarize {holder.address[:10]}...: {summary}")
                    summary = ActivitySummary.empty(holder.address)
                summaries[holder.address.lower()] = summary

            if i + batch_size < len(working_set) and self.config.batch_delay_sec > 0:
                await asyncio.sleep(self.config.batch_delay_sec)

        return summaries

    def _is_mev(self, summary: ActivitySummary, pct: float) -> bool:
        cfg = self.config
        return (
            summary.sell_tx_count > cfg.mev_min_sell_txs
            and summary.total_sold >= summary.total_bought * Decimal(str(cfg.mev_sell_buy_ratio))
            and pct < cfg.mev_max_supply_pct
            and summary.risk_score > cfg.mev_min_risk_score
        )

    def _team_reason(self, is_deployer: bool, pct: float, summary: ActivitySummary,
                     tier: ThresholdTier) -> Optional[str]:
        """Reason the wallet is Team, or None when it isn't"""
        if is_deployer:
            return DEPLOYER_REASON
        if pct > tier.team_pct:
            if pct > self.config.large_holder_pct:
                return f"Large holder ({pct:.1f}% of supply)"
            return f"Significant holder ({pct:.4f}% of supply)"
        if summary.sell_tx_count == 0 and summary.total_bought > Decimal(str(self.config.accumulation_floor)):
            return "Large accumulation, no sells"
        return None

    def _classify_primary(self, result: ClassificationResult, working_set: List[HolderRecord],
                          summaries: Dict[str, ActivitySummary], supply: Decimal, tier: ThresholdTier):
        candidates: List[ClassifiedWallet] = []

        for holder in working_set:
            balance = _to_decimal(holder.balance)
            if balance <= 0:
                continue

            pct = supply_percentage(balance, supply)
            summary = summaries.get(holder.address.lower()) or ActivitySummary.empty(holder.address)
            is_deployer = _same_address(holder.address, result.deployer)

            base = ClassifiedWallet(
                address=holder.address,
                balance=balance,
                supply_percentage=pct,
                role=WalletRole.HOLDER,
                reason="Regular holder pattern",
                risk_level=risk_level_for(summary.risk_score),
                total_bought=summary.total_bought,
                total_sold=summary.total_sold,
                sell_tx_count=summary.sell_tx_count,
                tx_count=holder.tx_count,
            )

            # High-frequency extraction overrides the size heuristics
            if self._is_mev(summary, pct):
                result.mev_wallets.append(replace(
                    base, role=WalletRole.MEV, reason="High frequency trading pattern detected"
                ))
                continue

            team_reason = self._team_reason(is_deployer, pct, summary, tier)
            if team_reason:
                role = WalletRole.DEPLOYER if is_deployer else WalletRole.TEAM
                result.team_wallets.append(replace(base, role=role, reason=team_reason))
                continue

            if pct > tier.bundle_pct:
                result.bundle_wallets.append(replace(
                    base, role=WalletRole.BUNDLE, reason=f"Bundle wallet ({pct:.4f}% of supply)"
                ))
                continue

            candidates.append(base)

        self._promote_coordinated_clusters(result, candidates, tier)

    def _promote_coordinated_clusters(self, result: ClassificationResult,
                                      candidates: List[ClassifiedWallet], tier: ThresholdTier):
        """Admit sub-threshold wallets that sit in a tight percentage cluster with peers"""
        cfg = self.config
        pattern_floor = tier.bundle_pct * cfg.pattern_floor_ratio

        # Peers are every non-Team/non-MEV wallet of the run
        peers = result.bundle_wallets + candidates
        promoted = []

        for wallet in candidates:
            pct = wallet.supply_percentage
            if pct <= pattern_floor:
                continue

            close_peers = sum(
                1 for other in peers
                if other.address != wallet.address
                and abs(other.supply_percentage - pct) <= cfg.cluster_tolerance * max(pct, other.supply_percentage)
            )
            if close_peers >= cfg.cluster_min_peers:
                promoted.append(wallet.address)

        for wallet in candidates:
            if wallet.address in promoted:
                result.bundle_wallets.append(replace(
                    wallet, role=WalletRole.BUNDLE,
                    reason=f"Coordinated bundle (~{wallet.supply_percentage:.4f}%)"
                ))
            else:
                result.holder_wallets.append(wallet)

        if promoted:
            self.logger.info(f"Coordinated pattern: {len(promoted)} wallets promoted to bundle")


def apply_guaranteed_fallback(result: ClassificationResult, config: ClassifierConfig) -> ClassificationResult:
    """
    Post-pass guaranteeing that team and bundle buckets are not both empty.

    Every wallet moved here carries a "(Fallback)" or "(Forced)" reason.
    Holders are drawn on first, then team wallets, then MEV wallets.
    """
    logger = logging.getLogger(__name__)

    if not result.all_wallets:
        return result

    if not result.team_wallets and result.holder_wallets:
        pool = sorted(result.holder_wallets, key=lambda w: w.balance, reverse=True)
        chosen = pool[:config.fallback_team_count]
        for wallet in chosen:
            if _same_address(wallet.address, result.deployer):
                result.team_wallets.append(replace(wallet, role=WalletRole.DEPLOYER, reason=DEPLOYER_REASON))
            else:
                result.team_wallets.append(replace(wallet, role=WalletRole.TEAM, reason=TEAM_FALLBACK_REASON))
        result.holder_wallets = [w for w in result.holder_wallets if w not in chosen]
        logger.info(f"Fallback promoted {len(chosen)} holders to team")

    if not result.bundle_wallets and result.holder_wallets:
        pool = sorted(result.holder_wallets, key=lambda w: w.balance, reverse=True)
        chosen = pool[:config.fallback_bundle_count]
        for wallet in chosen:
            result.bundle_wallets.append(replace(wallet, role=WalletRole.BUNDLE, reason=BUNDLE_FALLBACK_REASON))
        result.holder_wallets = [w for w in result.holder_wallets if w not in chosen]
        logger.info(f"Fallback promoted {len(chosen)} holders to bundle")

    if not result.bundle_wallets and len(result.team_wallets) > 1:
        # Only team holders exist: move the smallest non-deployer ones, keep at least one team wallet
        movable = sorted(
            (w for w in result.team_wallets if w.role != WalletRole.DEPLOYER),
            key=lambda w: w.balance
        )
        limit = min(config.forced_bundle_count, len(result.team_wallets) - 1)
        chosen = movable[:limit]
        for wallet in chosen:
            result.bundle_wallets.append(replace(wallet, role=WalletRole.BUNDLE, reason=BUNDLE_FORCED_REASON))
        result.team_wallets = [w for w in result.team_wallets if w not in chosen]
        if chosen:
            logger.info(f"Forced {len(chosen)} team wallets into bundle")

    if not result.team_wallets and not result.bundle_wallets and result.mev_wallets:
        # Every analyzed wallet was MEV: the largest ones become the bundle signal
        pool = sorted(result.mev_wallets, key=lambda w: w.balance, reverse=True)
        chosen = pool[:config.forced_bundle_count]
        for wallet in chosen:
            result.bundle_wallets.append(replace(wallet, role=WalletRole.BUNDLE, reason=BUNDLE_FORCED_REASON))
        result.mev_wallets = [w for w in result.mev_wallets if w not in chosen]
        logger.info(f"Forced {len(chosen)} MEV wallets into bundle")

    return result
