"""Config package"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ============================================
# ENDPOINTS
# ============================================
RPC_URL = os.getenv("RPC_URL", "")
JUPITER_API_BASE = os.getenv("JUPITER_API_BASE", "https://api.jup.ag/swap/v1")
JUPITER_API_KEY = os.getenv("JUPITER_API_KEY", "")

from .guard_config import (
    LOG_DIR,
    LOG_LEVEL,
    GuardConfig,
    SellAllConfig,
    ProtectionConfig,
    ProtectionConfigManager,
    emergency_config,
)

__all__ = [
    "RPC_URL",
    "JUPITER_API_BASE",
    "JUPITER_API_KEY",
    "LOG_LEVEL",
    "LOG_DIR",
    "GuardConfig",
    "SellAllConfig",
    "ProtectionConfig",
    "ProtectionConfigManager",
    "emergency_config",
]
