from __future__ import annotations

import logging
from pathlib import Path

from sniper_guard.config import ProtectionConfig


class ColoredFormatter(logging.Formatter):
    """Console formatter with colors for guard and liquidation events."""

    GREY = "\x1b[90m"
    NEON_GREEN = "\x1b[92m"
    NEON_CYAN = "\x1b[96m"
    NEON_RED = "\x1b[91m"
    MAGENTA = "\x1b[95m"
    YELLOW = "\x1b[93m"
    RESET = "\x1b[0m"

    DATE_FMT = "%H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            color = self.NEON_RED
        elif record.levelno >= logging.WARNING:
            color = self.YELLOW
        else:
            color = self.GREY

        msg = str(record.msg)

        # Keyword highlighting overrides the level color
        if "TRIGGERED" in msg or "EMERGENCY" in msg or "🚨" in msg:
            color = self.NEON_RED
        elif "ARMED" in msg or "🛡️" in msg:
            color = self.NEON_GREEN
        elif "SELL" in msg or "SOLD" in msg or "💰" in msg:
            color = self.MAGENTA
        elif "External buy" in msg:
            color = self.NEON_CYAN
        elif "🚫" in msg:
            color = self.GREY

        formatter = logging.Formatter(f"{color}%(asctime)s %(message)s{self.RESET}", datefmt=self.DATE_FMT)
        return formatter.format(record)


def setup_logging(config: ProtectionConfig) -> Path:
    """Install file + colored console handlers on the root logger. Returns the log file path."""
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "guard.log"

    # File Handler (Plain text, no colors)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter())

    logger = logging.getLogger()
    logger.setLevel(config.log_level.upper())

    # Remove existing handlers to avoid duplicates on reload
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    # Silence noisy HTTP libraries - only show WARNING and above
    for noisy in ("httpx", "httpcore", "hpack", "asyncio", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_path
