"""
Sniper Guard - Launch Protection

Monitors external (non-team) SOL buys during a token launch and fires a
protective action once external buy pressure crosses a threshold.

Lifecycle per token:
    ARMED ──threshold──▶ TRIGGERED (one-shot)
    ARMED / TRIGGERED ──stop / expiry──▶ STOPPED (terminal)

Whitelist = dev + funder + our snipers + known bots (case-insensitive).
Every non-whitelisted buy adds to the external total and is logged as an
alert. The cooldown only gates action emission, never accumulation.

Usage:
    registry = GuardRegistry(hooks=hooks)
    registry.init_guard(plan, GuardConfig(max_external_sol=50))
    action = registry.process_buy_event(plan.token_id, event)
"""

import logging
import math
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..config.guard_config import GuardConfig
from ..exceptions import ConfigError, ValidationError
from .hooks import HookEvent, NotificationHooks
from .models import (
    BuyEvent,
    ExternalBuyAlert,
    GuardAction,
    GuardState,
    GuardStats,
    LaunchPlan,
    ThresholdCheck,
)

logger = logging.getLogger(__name__)


def _is_amount(value) -> bool:
    """Finite, non-negative real number (bools rejected)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def normalize_wallet(wallet: str) -> str:
    return wallet.strip().lower()


def build_whitelist(plan: LaunchPlan) -> Set[str]:
    """Union of dev, funder, sniper and known-bot wallets, case-normalized."""
    wallets: Iterable[str] = [
        plan.dev_wallet,
        plan.funder_wallet,
        *plan.sniper_wallets,
        *(plan.known_bot_wallets or []),
    ]
    return {normalize_wallet(w) for w in wallets if isinstance(w, str) and w.strip()}


class GuardSession:
    """Per-token monitoring state. Mutated only through GuardRegistry."""

    def __init__(
        self,
        token_id: str,
        whitelist: Set[str],
        config: GuardConfig,
        created_at: float,
        last_action_time: Optional[float] = None,
    ):
        self.token_id = token_id
        self.state = GuardState.ARMED
        self.whitelist = whitelist
        self.external_sol_total = 0.0
        self.alerts: List[ExternalBuyAlert] = []
        self.last_action_time = last_action_time
        self.action_triggered = False

        self.config = config
        self.trigger_config: Optional[GuardConfig] = None

        self.created_at = created_at
        self.expires_at = created_at + config.monitor_duration_sec

        self._lock = threading.Lock()
        self._timer = None

    @property
    def is_active(self) -> bool:
        return self.state != GuardState.STOPPED

    def is_whitelisted(self, wallet: str) -> bool:
        return isinstance(wallet, str) and normalize_wallet(wallet) in self.whitelist

    def snapshot(self) -> dict:
        """Read-only copy of the session state"""
        with self._lock:
            return {
                "token_id": self.token_id,
                "state": self.state.value,
                "is_active": self.is_active,
                "external_sol_total": self.external_sol_total,
                "whitelist": sorted(self.whitelist),
                "alerts": [a.to_dict() for a in self.alerts],
                "last_action_time": self.last_action_time,
                "action_triggered": self.action_triggered,
                "config": self.config.to_dict(),
                "trigger_config": self.trigger_config.to_dict() if self.trigger_config else None,
                "created_at": self.created_at,
                "expires_at": self.expires_at,
            }

    def __repr__(self) -> str:
        return (
            f"GuardSession(token={self.token_id[:8]}..., state={self.state.value}, "
            f"external={self.external_sol_total:.2f} SOL, alerts={len(self.alerts)})"
        )


class GuardRegistry:
    """
    Table of live guard sessions keyed by token id.

    Thread-safe: the key space is protected by a registry lock and every
    session's counters by its own lock, so events for different tokens can
    be processed concurrently while events for one token are serialized.
    """

    def __init__(
        self,
        hooks: Optional[NotificationHooks] = None,
        default_config: Optional[GuardConfig] = None,
        clock: Callable[[], float] = time.time,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.hooks = hooks or NotificationHooks()
        self.default_config = default_config or GuardConfig()
        self.clock = clock
        self.timer_factory = timer_factory

        self._sessions: Dict[str, GuardSession] = {}
        # Last action time per token, survives re-arming the same token
        self._last_action: Dict[str, float] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_guard(self, launch_plan: LaunchPlan, config: Optional[GuardConfig] = None) -> GuardSession:
        """
        Arm the guard for a token launch.

        Replaces (and stops) any previous session for the same token and
        schedules auto-stop after `monitor_duration_sec`.

        Raises:
            ConfigError: threshold or duration not positive
        """
        cfg = config or self.default_config
        errors = cfg.validate()
        if errors:
            raise ConfigError("Invalid guard config", token=launch_plan.token_id, errors="; ".join(errors))

        token_id = launch_plan.token_id
        whitelist = build_whitelist(launch_plan)

        with self._lock:
            self._prune_last_action(cfg)
            previous = self._sessions.pop(token_id, None)
            session = GuardSession(
                token_id=token_id,
                whitelist=whitelist,
                config=cfg,
                created_at=self.clock(),
                last_action_time=self._last_action.get(token_id),
            )
            self._sessions[token_id] = session
            session._timer = self._schedule_expiry(session)

        if previous is not None:
            logger.info(f"♻️ Replacing existing guard for {token_id[:8]}...")
            self._finalize_stop(previous)

        logger.info(
            f"🛡️ GUARD ARMED: {token_id[:8]}... | Threshold: {cfg.max_external_sol} SOL | "
            f"Action: {cfg.action.value} | Whitelist: {len(whitelist)} wallets | "
            f"Duration: {cfg.monitor_duration_sec:.0f}s"
        )
        return session

    def stop_guard(self, token_id: str) -> bool:
        """
        Stop monitoring a token. Idempotent.

        Returns:
            True if a live session was stopped
        """
        with self._lock:
            session = self._sessions.pop(token_id, None)

        if session is None:
            return False

        self._finalize_stop(session)
        return True

    def stop_all(self) -> int:
        """Stop every live session (shutdown path)"""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            self._finalize_stop(session)
        return len(sessions)

    def _prune_last_action(self, config: GuardConfig) -> None:
        """Forget action times that can no longer gate any known config. Caller holds the lock."""
        horizon = max(
            [config.cooldown_sec, self.default_config.cooldown_sec]
            + [s.config.cooldown_sec for s in self._sessions.values()]
        )
        now = self.clock()
        stale = [t for t, at in self._last_action.items() if now - at >= horizon and t not in self._sessions]
        for token_id in stale:
            del self._last_action[token_id]

    def _schedule_expiry(self, session: GuardSession):
        timer = self.timer_factory(
            session.config.monitor_duration_sec,
            self._expire,
            args=(session.token_id, session),
        )
        timer.daemon = True
        timer.start()
        return timer

    def _expire(self, token_id: str, session: GuardSession) -> None:
        # Only the timer of the currently registered session may stop it
        with self._lock:
            if self._sessions.get(token_id) is not session:
                return
            del self._sessions[token_id]

        logger.info(f"⏱️ Guard monitoring window elapsed for {token_id[:8]}...")
        self._finalize_stop(session)

    def _finalize_stop(self, session: GuardSession) -> None:
        with session._lock:
            session.state = GuardState.STOPPED
            timer, session._timer = session._timer, None

        if timer is not None:
            timer.cancel()

        snapshot = session.snapshot()
        logger.info(
            f"🛑 GUARD STOPPED: {session.token_id[:8]}... | "
            f"External: {snapshot['external_sol_total']:.2f} SOL | Alerts: {len(snapshot['alerts'])} | "
            f"Triggered: {snapshot['action_triggered']}"
        )
        self.hooks.emit(HookEvent.GUARD_STOPPED, session.token_id, snapshot)

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    @staticmethod
    def validate_event(event: BuyEvent) -> None:
        """
        Raises:
            ValidationError: missing wallet or negative / non-finite amounts
        """
        if not isinstance(event.wallet, str) or not event.wallet.strip():
            raise ValidationError("Buy event has no wallet", tx=event.tx_signature)
        if not _is_amount(event.sol_amount):
            raise ValidationError("Invalid SOL amount", wallet=event.wallet, sol=event.sol_amount)
        if not _is_amount(event.token_amount):
            raise ValidationError("Invalid token amount", wallet=event.wallet, tokens=event.token_amount)

    def _effective_config(self, session: GuardSession, config: Optional[GuardConfig]) -> GuardConfig:
        if config is None:
            return session.config
        errors = config.validate()
        if errors:
            logger.error(
                f"❌ Ignoring invalid guard config for {session.token_id[:8]}...: {'; '.join(errors)}"
            )
            return session.config
        return config

    def process_buy_event(
        self,
        token_id: str,
        event: BuyEvent,
        config: Optional[GuardConfig] = None,
    ) -> Optional[GuardAction]:
        """
        Account for one observed buy.

        Returns:
            The protective action if this buy triggered the guard, else None
        """
        session = self.get_session(token_id)
        if session is None:
            return None

        try:
            self.validate_event(event)
        except ValidationError as e:
            logger.warning(f"🚫 Rejected buy event for {token_id[:8]}...: {e}")
            return None

        action: Optional[GuardAction] = None

        with session._lock:
            if session.state != GuardState.ARMED or session.action_triggered:
                return None
            if session.is_whitelisted(event.wallet):
                return None

            cfg = self._effective_config(session, config)
            now = self.clock()

            session.external_sol_total += event.sol_amount
            total = session.external_sol_total

            alert = ExternalBuyAlert(
                wallet=event.wallet,
                sol_amount=event.sol_amount,
                cumulative_external_sol=total,
                threshold=cfg.max_external_sol,
                percentage_of_threshold=(total / cfg.max_external_sol) * 100,
                timestamp=now,
                is_whitelisted=False,
                tx_signature=event.tx_signature,
            )
            session.alerts.append(alert)

            in_cooldown = (
                session.last_action_time is not None
                and now - session.last_action_time < cfg.cooldown_sec
            )
            if not in_cooldown and total >= cfg.max_external_sol:
                session.state = GuardState.TRIGGERED
                session.action_triggered = True
                session.last_action_time = now
                session.trigger_config = cfg
                action = cfg.action

        if action is None:
            logger.info(
                f"⚠️ External buy on {token_id[:8]}...: {event.sol_amount:.2f} SOL from {event.wallet[:6]}... | "
                f"Cumulative: {alert.cumulative_external_sol:.2f}/{alert.threshold} SOL "
                f"({alert.percentage_of_threshold:.1f}%)"
                + (" | cooldown active" if in_cooldown else "")
            )
            return None

        with self._lock:
            self._last_action[token_id] = alert.timestamp

        logger.error(
            f"🚨 GUARD TRIGGERED: {token_id[:8]}... | External: {alert.cumulative_external_sol:.2f} SOL "
            f">= {alert.threshold} SOL | Action: {action.value}"
        )
        self.hooks.emit(HookEvent.THRESHOLD_BREACHED, token_id, alert, action)
        return action

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, token_id: str) -> Optional[GuardSession]:
        with self._lock:
            return self._sessions.get(token_id)

    def get_guard_status(self, token_id: str) -> Optional[dict]:
        session = self.get_session(token_id)
        return session.snapshot() if session else None

    def list_active_guards(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def is_whitelisted(self, token_id: str, wallet: str) -> bool:
        session = self.get_session(token_id)
        if session is None:
            return False
        with session._lock:
            return session.is_whitelisted(wallet)

    def add_to_whitelist(self, token_id: str, wallet: str) -> bool:
        """Emergency whitelist correction (e.g. mis-tagged bot wallet)"""
        session = self.get_session(token_id)
        if session is None or not isinstance(wallet, str) or not wallet.strip():
            return False
        with session._lock:
            session.whitelist.add(normalize_wallet(wallet))
        logger.info(f"✅ Whitelisted {wallet[:6]}... for {token_id[:8]}...")
        return True

    def check_threshold(self, token_id: str, config: Optional[GuardConfig] = None) -> ThresholdCheck:
        session = self.get_session(token_id)
        if session is None:
            cfg = config or self.default_config
            return ThresholdCheck(breached=False, external_volume=0.0, threshold=cfg.max_external_sol)

        cfg = self._effective_config(session, config)
        with session._lock:
            total = session.external_sol_total
        return ThresholdCheck(
            breached=total >= cfg.max_external_sol,
            external_volume=total,
            threshold=cfg.max_external_sol,
        )

    def get_guard_stats(self, token_id: str) -> Optional[GuardStats]:
        session = self.get_session(token_id)
        if session is None:
            return None
        with session._lock:
            alerts = list(session.alerts)
        if not alerts:
            return None

        amounts = [a.sol_amount for a in alerts]
        return GuardStats(
            total_alerts=len(alerts),
            largest_buy=max(amounts),
            avg_buy_size=sum(amounts) / len(amounts),
            unique_wallets=len({normalize_wallet(a.wallet) for a in alerts}),
        )
