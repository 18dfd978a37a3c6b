"""
Guard & Sell-All Configuration

Tunable parameters for the launch guard and the liquidation engine.
Defaults come from environment variables (see .env), and a full
configuration can be loaded from / saved to a YAML or JSON file.
"""

import json
import logging
import math
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..core.models import GuardAction

logger = logging.getLogger(__name__)


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


# ============================================
# LAUNCH GUARD DEFAULTS
# ============================================
GUARD_MAX_EXTERNAL_SOL = _env_float("GUARD_MAX_EXTERNAL_SOL", "50")        # SOL threshold for triggering
GUARD_ACTION = os.getenv("GUARD_ACTION", GuardAction.STOP_BUYING.value)     # STOP_BUYING / EMERGENCY_EXIT
GUARD_MONITOR_DURATION_SEC = _env_float("GUARD_MONITOR_DURATION_SEC", "300")  # 5 min post-launch
GUARD_COOLDOWN_SEC = _env_float("GUARD_COOLDOWN_SEC", "30")                # Time between actions

# ============================================
# SELL-ALL DEFAULTS
# ============================================
SELL_ALL_SLIPPAGE_BPS = _env_int("SELL_ALL_SLIPPAGE_BPS", "100")           # 1%
SELL_ALL_PRIORITY_FEE_SOL = _env_float("SELL_ALL_PRIORITY_FEE_SOL", "0.001")
SELL_ALL_MAX_RETRIES = _env_int("SELL_ALL_MAX_RETRIES", "3")                # Per-wallet attempts
SELL_ALL_PARTIAL_THRESHOLD_PCT = _env_float("SELL_ALL_PARTIAL_THRESHOLD_PCT", "90")
SELL_ALL_RETRY_DELAY_SEC = _env_float("SELL_ALL_RETRY_DELAY_SEC", "1.0")    # Multiplied by attempt number

# Emergency exit: speed over completeness
EMERGENCY_SLIPPAGE_BPS = _env_int("EMERGENCY_SLIPPAGE_BPS", "200")          # 2% for speed
EMERGENCY_PRIORITY_FEE_SOL = _env_float("EMERGENCY_PRIORITY_FEE_SOL", "0.01")
EMERGENCY_MAX_RETRIES = 1                                                   # Fast fail

# ============================================
# LOGGING DEFAULTS
# ============================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")


@dataclass(frozen=True)
class GuardConfig:
    """Launch guard parameters"""
    max_external_sol: float = GUARD_MAX_EXTERNAL_SOL
    action: GuardAction = GuardAction(GUARD_ACTION)
    monitor_duration_sec: float = GUARD_MONITOR_DURATION_SEC
    cooldown_sec: float = GUARD_COOLDOWN_SEC

    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)"""
        errors = []
        if not math.isfinite(self.max_external_sol) or self.max_external_sol <= 0:
            errors.append("max_external_sol must be > 0")
        if not math.isfinite(self.monitor_duration_sec) or self.monitor_duration_sec <= 0:
            errors.append("monitor_duration_sec must be > 0")
        if self.cooldown_sec < 0:
            errors.append("cooldown_sec must be >= 0")
        if not isinstance(self.action, GuardAction):
            errors.append(f"action must be one of {[a.value for a in GuardAction]}")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuardConfig":
        data = dict(data or {})
        if "action" in data:
            data["action"] = GuardAction(data["action"])
        return cls(**data)


@dataclass(frozen=True)
class SellAllConfig:
    """Liquidation sweep parameters"""
    excluded_wallets: Tuple[str, ...] = ()  # Dev / treasury protection
    slippage_bps: int = SELL_ALL_SLIPPAGE_BPS
    priority_fee: float = SELL_ALL_PRIORITY_FEE_SOL
    max_retries: int = SELL_ALL_MAX_RETRIES
    partial_sell_threshold: float = SELL_ALL_PARTIAL_THRESHOLD_PCT
    retry_delay_sec: float = SELL_ALL_RETRY_DELAY_SEC

    def __post_init__(self):
        # Accept any iterable of wallet ids, store an immutable tuple
        object.__setattr__(self, "excluded_wallets", tuple(self.excluded_wallets))

    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)"""
        errors = []
        if self.max_retries < 1:
            errors.append("max_retries must be >= 1")
        if self.slippage_bps < 0 or self.slippage_bps > 10_000:
            errors.append("slippage_bps must be between 0 and 10000")
        if self.priority_fee < 0:
            errors.append("priority_fee must be >= 0")
        if self.partial_sell_threshold < 0 or self.partial_sell_threshold > 100:
            errors.append("partial_sell_threshold must be between 0 and 100")
        if self.retry_delay_sec < 0:
            errors.append("retry_delay_sec must be >= 0")
        return errors

    def is_excluded(self, wallet: str) -> bool:
        # Malformed wallets are never excluded; the sweep reports them as invalid
        if not isinstance(wallet, str):
            return False
        excluded = {w.lower() for w in self.excluded_wallets}
        return wallet.lower() in excluded

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["excluded_wallets"] = list(self.excluded_wallets)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SellAllConfig":
        return cls(**(data or {}))


def emergency_config(
    priority_fee: float = EMERGENCY_PRIORITY_FEE_SOL,
    base: Optional[SellAllConfig] = None,
) -> SellAllConfig:
    """Sell-all preset for panic exits: wider slippage, a single attempt."""
    return replace(
        base or SellAllConfig(),
        priority_fee=priority_fee,
        slippage_bps=EMERGENCY_SLIPPAGE_BPS,
        max_retries=EMERGENCY_MAX_RETRIES,
    )


@dataclass
class ProtectionConfig:
    """Complete guard + liquidation configuration"""
    version: str = "1.0"

    guard: GuardConfig = field(default_factory=GuardConfig)
    sell_all: SellAllConfig = field(default_factory=SellAllConfig)

    log_level: str = LOG_LEVEL
    log_dir: str = LOG_DIR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "guard": self.guard.to_dict(),
            "sell_all": self.sell_all.to_dict(),
            "log_level": self.log_level,
            "log_dir": self.log_dir,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtectionConfig":
        return cls(
            version=data.get("version", "1.0"),
            guard=GuardConfig.from_dict(data.get("guard", {})),
            sell_all=SellAllConfig.from_dict(data.get("sell_all", {})),
            log_level=data.get("log_level", LOG_LEVEL),
            log_dir=data.get("log_dir", LOG_DIR),
        )


class ProtectionConfigManager:
    """
    Protection configuration manager.

    Features:
    - Load from YAML or JSON
    - Save configuration
    - Validation
    - Default fallback

    Usage:
        manager = ProtectionConfigManager("config/guard.yaml")
        config = manager.get_config()
        registry = GuardRegistry(default_config=config.guard)
    """

    DEFAULT_CONFIG_PATH = "config/guard_config.yaml"

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config manager.

        Args:
            config_path: Path to config file (.yaml/.yml or .json)
        """
        self.config_path = Path(config_path or self.DEFAULT_CONFIG_PATH)
        self._config: Optional[ProtectionConfig] = None

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._load_or_create()

    def _load_or_create(self):
        """Load existing config or create default"""
        if self.config_path.exists():
            self._config = self._load_from_file()
            logger.info(f"Protection config loaded from {self.config_path}")
        else:
            self._config = ProtectionConfig()
            self.save_config(self._config)
            logger.info(f"Default protection config created at {self.config_path}")

    def _load_from_file(self) -> ProtectionConfig:
        """Load config from file"""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                if self.config_path.suffix in [".yaml", ".yml"]:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            return ProtectionConfig.from_dict(data or {})

        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.error(f"Error loading config: {e}")
            return ProtectionConfig()

    def save_config(self, config: Optional[ProtectionConfig] = None):
        """Save config to file"""
        config = config or self._config
        data = config.to_dict()

        with open(self.config_path, "w", encoding="utf-8") as f:
            if self.config_path.suffix in [".yaml", ".yml"]:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2, ensure_ascii=False)

        self._config = config
        logger.info(f"Protection config saved to {self.config_path}")

    def get_config(self) -> ProtectionConfig:
        """Get current config"""
        if self._config is None:
            self._config = ProtectionConfig()
        return self._config

    def reload(self) -> bool:
        """Reload config from file"""
        if self.config_path.exists():
            self._config = self._load_from_file()
            logger.info("Protection config reloaded")
            return True
        return False

    def validate(self) -> List[str]:
        """Validate current config, return list of errors"""
        config = self.get_config()
        errors = [f"guard.{e}" for e in config.guard.validate()]
        errors += [f"sell_all.{e}" for e in config.sell_all.validate()]

        if config.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append("log_level must be a standard logging level")

        return errors
