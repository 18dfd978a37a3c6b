"""Shared fixtures: deterministic clock and timers for guard tests."""

import pytest

from sniper_guard.config import GuardConfig
from sniper_guard.core.guard import GuardRegistry
from sniper_guard.core.hooks import NotificationHooks
from sniper_guard.core.models import BuyEvent, LaunchPlan


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    """Stands in for threading.Timer; fires only when the test says so."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function(*self.args, **self.kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def hooks():
    return NotificationHooks()


@pytest.fixture
def registry(hooks, clock, timers):
    def factory(*args, **kwargs):
        timer = FakeTimer(*args, **kwargs)
        timers.append(timer)
        return timer

    return GuardRegistry(hooks=hooks, clock=clock, timer_factory=factory)


@pytest.fixture
def plan():
    return LaunchPlan(
        token_id="TokenMint1111111111111111111111111111111111",
        sniper_wallets=["Sniper1AAA", "Sniper2BBB"],
        dev_wallet="DevWalletXYZ",
        funder_wallet="FunderWallet123",
        known_bot_wallets=["MevBot777"],
    )


@pytest.fixture
def config():
    return GuardConfig(max_external_sol=50.0, monitor_duration_sec=300.0, cooldown_sec=30.0)


def buy(wallet: str, sol: float, sig: str = "sig") -> BuyEvent:
    return BuyEvent(wallet=wallet, sol_amount=sol, token_amount=sol * 1_000_000, timestamp=0.0, tx_signature=sig)
