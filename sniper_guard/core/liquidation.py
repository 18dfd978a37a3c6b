"""
Sell-All - Liquidation Engine

One-shot exit of every position across all wallets, with per-wallet retry
and partial-fill accounting.

Rules:
- Excluded wallets (dev, treasury) are never touched
- Positions are sold strictly one after another (bounded RPC load,
  deterministic ordering of results and progress events)
- A partial fill is terminal: liquidity is gone, retrying only adds slippage
- One wallet failing never aborts the sweep; a summary is always returned
"""

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from ..config.guard_config import EMERGENCY_PRIORITY_FEE_SOL, SellAllConfig, emergency_config
from ..exceptions import ConfigError, ValidationError
from ..utils.retry import RetryPolicy
from .hooks import HookEvent, NotificationHooks
from .models import Position, SellAllSummary, SellResult
from .swap_executor import SwapExecutor

logger = logging.getLogger(__name__)


class LiquidationEngine:
    """
    Sequential sell-all through an injected swap executor.

    Usage:
        engine = LiquidationEngine(JupiterSwapExecutor(keypairs), hooks=hooks)
        summary = await engine.sell_all(positions, SellAllConfig(excluded_wallets=(dev,)))
    """

    def __init__(
        self,
        executor: SwapExecutor,
        hooks: Optional[NotificationHooks] = None,
        default_config: Optional[SellAllConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.executor = executor
        self.hooks = hooks or NotificationHooks()
        self.default_config = default_config or SellAllConfig()
        self.sleep = sleep
        self.clock = clock

    async def sell_all(
        self,
        positions: Sequence[Position],
        config: Optional[SellAllConfig] = None,
    ) -> SellAllSummary:
        """
        Liquidate every non-excluded position.

        Raises:
            ConfigError: invalid sell-all config (before any swap)
        """
        cfg = config or self.default_config
        errors = cfg.validate()
        if errors:
            raise ConfigError("Invalid sell-all config", errors="; ".join(errors))

        start = self.clock()
        targets = [p for p in positions if not cfg.is_excluded(p.wallet)]
        excluded = len(positions) - len(targets)

        logger.warning(
            f"🚨 SELL ALL: {len(targets)} positions | Excluded: {excluded} | "
            f"Slippage: {cfg.slippage_bps} bps | Retries: {cfg.max_retries}"
        )

        policy = RetryPolicy(max_attempts=cfg.max_retries, base_delay_sec=cfg.retry_delay_sec)
        results: List[SellResult] = []

        for index, position in enumerate(targets, start=1):
            result = await self._execute_sell(position, cfg, policy)
            results.append(result)
            self.hooks.emit(HookEvent.LIQUIDATION_PROGRESS, index, len(targets), result)

        sold_count = sum(1 for r in results if r.success and not r.partial_sell)
        partial_count = sum(1 for r in results if r.partial_sell)
        failures = [r for r in results if not r.success]

        summary = SellAllSummary(
            total_positions=len(targets),
            sold_count=sold_count,
            failed_count=len(results) - sold_count - partial_count,
            partial_count=partial_count,
            total_sol_received=sum(r.sol_received for r in results),
            results=results,
            failures=failures,
            duration_sec=self.clock() - start,
            excluded_count=excluded,
        )

        logger.warning(
            f"🏁 SELL ALL COMPLETE: ✅ {summary.sold_count} sold | ⚠️ {summary.partial_count} partial | "
            f"❌ {summary.failed_count} failed | 💰 {summary.total_sol_received:.4f} SOL | "
            f"{summary.duration_sec:.1f}s"
        )
        return summary

    async def emergency_exit(
        self,
        positions: Sequence[Position],
        priority_fee: float = EMERGENCY_PRIORITY_FEE_SOL,
        excluded_wallets: Sequence[str] = (),
    ) -> SellAllSummary:
        """Sell everything NOW: wider slippage, a single attempt per wallet."""
        base = SellAllConfig(
            excluded_wallets=tuple(self.default_config.excluded_wallets) + tuple(excluded_wallets),
            partial_sell_threshold=self.default_config.partial_sell_threshold,
            retry_delay_sec=self.default_config.retry_delay_sec,
        )
        return await self.sell_all(positions, emergency_config(priority_fee, base=base))

    @staticmethod
    def validate_position(position: Position) -> None:
        """
        Raises:
            ValidationError: missing wallet/token or non-positive balance
        """
        if not isinstance(position.wallet, str) or not position.wallet.strip():
            raise ValidationError("Position has no wallet", token=position.token_id)
        if not isinstance(position.token_id, str) or not position.token_id:
            raise ValidationError("Position has no token", wallet=position.wallet)
        balance = position.balance
        if (
            isinstance(balance, bool)
            or not isinstance(balance, (int, float))
            or not math.isfinite(balance)
            or balance <= 0
        ):
            raise ValidationError("Balance must be positive", wallet=position.wallet, balance=balance)

    async def _execute_sell(self, position: Position, config: SellAllConfig, policy: RetryPolicy) -> SellResult:
        """Sell one position with retry. Never raises."""
        wallet = position.wallet

        try:
            self.validate_position(position)
        except ValidationError as e:
            logger.error(f"❌ Skipping invalid position {str(wallet)[:6]}...: {e}")
            return SellResult(wallet=wallet, success=False, error=f"Invalid position: {e}")

        for attempt in policy.attempts():
            try:
                swap = await self.executor.swap(
                    wallet,
                    position.token_id,
                    "SOL",
                    position.balance,
                    config.slippage_bps,
                    config.priority_fee,
                )
            except Exception as e:
                error = str(e) or "Unknown error"
                logger.warning(
                    f"❌ SELL attempt {attempt}/{policy.max_attempts} raised for {wallet[:6]}... "
                    f"({position.token_symbol}): {error}"
                )
                if policy.is_last(attempt):
                    return SellResult(wallet=wallet, success=False, error=error, attempts=attempt)
            else:
                if swap.success:
                    logger.info(
                        f"✅ SOLD {position.token_symbol} from {wallet[:6]}...: "
                        f"{swap.output_amount:.4f} SOL (attempt {attempt})"
                    )
                    return SellResult(
                        wallet=wallet,
                        success=True,
                        sol_received=swap.output_amount,
                        tx_signature=swap.signature,
                        attempts=attempt,
                    )

                # Partial fill is final, no retry
                if swap.partial_fill and swap.percentage_sold:
                    accepted = swap.percentage_sold >= config.partial_sell_threshold
                    logger.warning(
                        f"⚠️ PARTIAL SELL {position.token_symbol} from {wallet[:6]}...: "
                        f"{swap.percentage_sold:.1f}% sold, {swap.output_amount:.4f} SOL "
                        f"({'accepted' if accepted else 'below threshold'})"
                    )
                    return SellResult(
                        wallet=wallet,
                        success=accepted,
                        sol_received=swap.output_amount,
                        tx_signature=swap.signature,
                        partial_sell=True,
                        percentage_sold=swap.percentage_sold,
                        attempts=attempt,
                    )

                logger.warning(
                    f"❌ SELL attempt {attempt}/{policy.max_attempts} failed for {wallet[:6]}... "
                    f"({position.token_symbol}): {swap.error or 'Swap failed'}"
                )
                if policy.is_last(attempt):
                    return SellResult(
                        wallet=wallet,
                        success=False,
                        error=swap.error or "Swap failed",
                        attempts=attempt,
                    )

            await self.sleep(policy.delay_for(attempt))

        # RetryPolicy always yields at least one attempt
        return SellResult(wallet=wallet, success=False, error="Swap failed", attempts=policy.max_attempts)
