"""
Custom exception classes for the launch guard and liquidation engine.

Provides typed exceptions so callers can tell configuration mistakes
(fail-fast) apart from per-item validation and execution failures (isolated).
"""


class GuardException(Exception):
    """Base exception for all guard/liquidation errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigError(GuardException):
    """Raised when a guard or sell-all configuration is invalid."""
    pass


class ValidationError(GuardException):
    """Raised when a buy event or position is malformed."""
    pass


class ExecutionError(GuardException):
    """Raised when a swap fails at the executor or transport level."""
    pass
