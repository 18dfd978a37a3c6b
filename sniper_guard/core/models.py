from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class GuardAction(str, Enum):
    STOP_BUYING = "STOP_BUYING"
    EMERGENCY_EXIT = "EMERGENCY_EXIT"


class GuardState(str, Enum):
    ARMED = "ARMED"
    TRIGGERED = "TRIGGERED"
    STOPPED = "STOPPED"


def _plain(data: dict[str, Any]) -> dict[str, Any]:
    """Render enums as their values so snapshots are JSON friendly."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Enum):
            out[key] = value.value
        elif isinstance(value, dict):
            out[key] = _plain(value)
        elif isinstance(value, list):
            out[key] = [_plain(v) if isinstance(v, dict) else v for v in value]
        else:
            out[key] = value
    return out


@dataclass(frozen=True)
class LaunchPlan:
    token_id: str
    sniper_wallets: list[str]
    dev_wallet: str
    funder_wallet: str
    known_bot_wallets: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BuyEvent:
    wallet: str
    sol_amount: float
    token_amount: float
    timestamp: float
    tx_signature: str = ""


@dataclass(frozen=True)
class ExternalBuyAlert:
    wallet: str
    sol_amount: float
    cumulative_external_sol: float
    threshold: float
    percentage_of_threshold: float
    timestamp: float
    is_whitelisted: bool = False
    tx_signature: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ThresholdCheck:
    breached: bool
    external_volume: float
    threshold: float


@dataclass(frozen=True)
class GuardStats:
    total_alerts: int
    largest_buy: float
    avg_buy_size: float
    unique_wallets: int


@dataclass(frozen=True)
class Position:
    wallet: str
    token_id: str
    token_symbol: str
    balance: float
    estimated_sol_value: float = 0.0


@dataclass
class SwapResult:
    """Outcome reported by a swap executor for one swap call."""
    success: bool
    output_amount: float = 0.0
    signature: str | None = None
    partial_fill: bool = False
    percentage_sold: float | None = None
    error: str | None = None


@dataclass
class SellResult:
    wallet: str
    success: bool
    sol_received: float = 0.0
    tx_signature: str | None = None
    error: str | None = None
    partial_sell: bool = False
    percentage_sold: float | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SellAllSummary:
    total_positions: int
    sold_count: int
    failed_count: int
    partial_count: int
    total_sol_received: float
    results: list[SellResult] = field(default_factory=list)
    failures: list[SellResult] = field(default_factory=list)
    duration_sec: float = 0.0
    excluded_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))
