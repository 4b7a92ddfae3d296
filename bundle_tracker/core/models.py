"""
Data types for holder classification and sell monitoring
"""

import asyncio
import math
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Optional, Union


class WalletRole(str, Enum):
    """Behavioral role assigned to a holder"""
    DEPLOYER = "Deployer"
    TEAM = "Team"
    BUNDLE = "Bundle"
    MEV = "MEV"
    HOLDER = "Holder"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def risk_level_for(score: int) -> RiskLevel:
    """Map a 0-100 risk score onto a coarse level"""
    if score >= 70:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


@dataclass(frozen=True)
class HolderRecord:
    """One row of a holder snapshot"""
    address: str
    balance: Decimal
    tx_count: int = 0


@dataclass(frozen=True)
class Transfer:
    """Single token transfer as reported by the ledger gateway"""
    from_address: str
    to_address: str
    value: Optional[Union[str, Decimal]]  # Decimal-scaled amount, may be missing or garbage
    tx_hash: str
    timestamp: float  # Unix seconds


@dataclass(frozen=True)
class ActivitySummary:
    """Aggregated transfer activity for one wallet"""
    address: str
    total_bought: Decimal = Decimal(0)
    total_sold: Decimal = Decimal(0)
    sell_tx_count: int = 0
    risk_score: int = 0

    @classmethod
    def empty(cls, address: str) -> "ActivitySummary":
        return cls(address=address)


@dataclass(frozen=True)
class ClassifiedWallet:
    """A holder with its assigned role"""
    address: str
    balance: Decimal
    supply_percentage: float
    role: WalletRole
    reason: str
    risk_level: RiskLevel = RiskLevel.LOW

    # Activity the role was decided on
    total_bought: Decimal = Decimal(0)
    total_sold: Decimal = Decimal(0)
    sell_tx_count: int = 0
    tx_count: int = 0

    def to_dict(self) -> Dict:
        return {
            'address': self.address,
            'balance': str(self.balance),
            'supply_percentage': round(self.supply_percentage, 6),
            'role': self.role.value,
            'reason': self.reason,
            'risk_level': self.risk_level.value,
            'total_bought': str(self.total_bought),
            'total_sold': str(self.total_sold),
            'sell_tx_count': self.sell_tx_count,
            'tx_count': self.tx_count,
        }


@dataclass
class ClassificationResult:
    """Role buckets produced by one classification run"""
    token_address: str
    network: str
    deployer: Optional[str] = None
    total_supply: Decimal = Decimal(0)
    holder_count: int = 0

    team_wallets: List[ClassifiedWallet] = field(default_factory=list)
    bundle_wallets: List[ClassifiedWallet] = field(default_factory=list)
    mev_wallets: List[ClassifiedWallet] = field(default_factory=list)
    holder_wallets: List[ClassifiedWallet] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        return {
            'total_analyzed': len(self.all_wallets),
            'team': len(self.team_wallets),
            'bundle': len(self.bundle_wallets),
            'mev': len(self.mev_wallets),
            'holder': len(self.holder_wallets),
        }

    @property
    def all_wallets(self) -> List[ClassifiedWallet]:
        return self.team_wallets + self.bundle_wallets + self.mev_wallets + self.holder_wallets

    @property
    def is_empty(self) -> bool:
        return not self.all_wallets

    def monitorable_wallets(self) -> List[ClassifiedWallet]:
        """Wallets worth watching for sells (everything but regular holders)"""
        return self.team_wallets + self.bundle_wallets + self.mev_wallets

    def to_dict(self) -> Dict:
        return {
            'token_address': self.token_address,
            'network': self.network,
            'deployer': self.deployer,
            'total_supply': str(self.total_supply),
            'holder_count': self.holder_count,
            'team_wallets': [w.to_dict() for w in self.team_wallets],
            'bundle_wallets': [w.to_dict() for w in self.bundle_wallets],
            'mev_wallets': [w.to_dict() for w in self.mev_wallets],
            'holder_wallets': [w.to_dict() for w in self.holder_wallets],
            'counts': self.counts,
        }


@dataclass
class TrackedWallet:
    """Per-wallet monitoring state, owned by a session's tick loop"""
    address: str
    role: WalletRole
    last_balance: Optional[Decimal] = None
    last_checked_at: Optional[float] = None


@dataclass(frozen=True)
class SellAlert:
    """A transaction-verified balance decrease of a tracked wallet"""
    wallet_address: str
    wallet_role: WalletRole
    token_address: str
    network: str
    amount_sold: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    change_percentage: float
    counterparty_venue: str
    tx_hash: str
    timestamp: float
    usd_value: Optional[float] = None
    explorer_link: Optional[str] = None

    def storage_key(self, tick_interval: float) -> str:
        """Idempotency key: tx hash, else wallet/token/tick bucket"""
        if self.tx_hash:
            return self.tx_hash
        bucket = math.floor(self.timestamp / tick_interval) if tick_interval > 0 else int(self.timestamp)
        return f"{self.wallet_address.lower()}:{self.token_address.lower()}:{bucket}"

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['wallet_role'] = self.wallet_role.value
        for key in ('amount_sold', 'previous_balance', 'new_balance'):
            data[key] = str(data[key])
        return data


@dataclass(frozen=True)
class SessionHandle:
    """Opaque reference to a monitoring session"""
    session_id: str
    token_address: str
    network: str

    @property
    def key(self):
        return (self.token_address.lower(), self.network)


@dataclass
class MonitoringSession:
    """Live watch over a set of wallets for one token/network pair"""
    handle: SessionHandle
    token_address: str
    network: str
    tracked_wallets: Dict[str, TrackedWallet] = field(default_factory=dict)
    active: bool = True
    started_at: float = 0.0
    last_tick_at: Optional[float] = None
    tick_count: int = 0
    alert_count: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    def status(self) -> Dict:
        return {
            'session_id': self.handle.session_id,
            'token_address': self.token_address,
            'network': self.network,
            'active': self.active,
            'wallet_count': len(self.tracked_wallets),
            'started_at': self.started_at,
            'last_tick_at': self.last_tick_at,
            'tick_count': self.tick_count,
            'alert_count': self.alert_count,
        }
