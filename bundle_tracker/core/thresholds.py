"""
Population-adaptive classification thresholds

In a larger holder set a smaller supply share is still anomalous, so the
team/bundle cutoffs step down as the population grows.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple


@dataclass(frozen=True)
class ThresholdTier:
    """Cutoffs for populations up to `population_ceiling` holders"""
    population_ceiling: Optional[int]  # None = unbounded
    team_pct: float
    bundle_pct: float


DEFAULT_TIERS: Tuple[ThresholdTier, ...] = (
    ThresholdTier(population_ceiling=100, team_pct=0.1, bundle_pct=0.01),
    ThresholdTier(population_ceiling=1_000, team_pct=0.05, bundle_pct=0.005),
    ThresholdTier(population_ceiling=10_000, team_pct=0.02, bundle_pct=0.002),
    ThresholdTier(population_ceiling=None, team_pct=0.01, bundle_pct=0.001),
)


def select_tier(population: int, tiers=DEFAULT_TIERS) -> ThresholdTier:
    """Scan tiers top-down, first ceiling that fits wins"""
    for tier in tiers:
        if tier.population_ceiling is None or population <= tier.population_ceiling:
            return tier
    return tiers[-1]


@dataclass
class ClassifierConfig:
    """Tunables for the role classifier"""
    tiers: List[ThresholdTier] = field(default_factory=lambda: list(DEFAULT_TIERS))

    # Working set / upstream pacing
    holder_snapshot_limit: int = 100
    working_set_size: int = 20
    batch_size: int = 3
    batch_delay_sec: float = 0.5

    # MEV detection
    mev_min_sell_txs: int = 5
    mev_sell_buy_ratio: float = 0.8
    mev_max_supply_pct: float = 1.0
    mev_min_risk_score: int = 40

    # Team detection
    accumulation_floor: float = 1000.0
    large_holder_pct: float = 5.0

    # Coordinated bundle detection
    pattern_floor_ratio: float = 0.1
    cluster_tolerance: float = 0.05
    cluster_min_peers: int = 2

    # Guaranteed-signal fallback
    fallback_team_count: int = 3
    fallback_bundle_count: int = 8
    forced_bundle_count: int = 2

    def tier_for(self, population: int) -> ThresholdTier:
        return select_tier(population, self.tiers)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ClassifierConfig":
        """Build from the `classifier` section of the YAML config"""
        section = dict(config.get('classifier', {}) or {})
        tiers_raw = section.pop('tiers', None)

        known = {name for name in cls.__dataclass_fields__ if name != 'tiers'}
        kwargs = {key: value for key, value in section.items() if key in known}

        if tiers_raw:
            kwargs['tiers'] = [
                ThresholdTier(
                    population_ceiling=tier.get('population_ceiling'),
                    team_pct=float(tier['team_pct']),
                    bundle_pct=float(tier['bundle_pct']),
                )
                for tier in tiers_raw
            ]

        return cls(**kwargs)
