"""Launch protection guard and sell-all liquidation engine."""
from sniper_guard.config import GuardConfig, ProtectionConfig, ProtectionConfigManager, SellAllConfig
from sniper_guard.core.guard import GuardRegistry, GuardSession
from sniper_guard.core.hooks import HookEvent, NotificationHooks
from sniper_guard.core.liquidation import LiquidationEngine
from sniper_guard.core.models import (
    BuyEvent,
    ExternalBuyAlert,
    GuardAction,
    GuardState,
    GuardStats,
    LaunchPlan,
    Position,
    SellAllSummary,
    SellResult,
    SwapResult,
    ThresholdCheck,
)
from sniper_guard.core.swap_executor import FakeSwapExecutor, JupiterSwapExecutor, SwapExecutor
from sniper_guard.exceptions import ConfigError, ExecutionError, GuardException, ValidationError

__version__ = "0.1.0"
