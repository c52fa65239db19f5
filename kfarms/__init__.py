"""Staking farm accounting: reward issuance, stake shares and user balances."""

__version__ = "0.1.0"

__all__ = [
    "consts",
    "effects",
    "errors",
    "numeric",
    "penalty",
    "rewards",
    "scope",
    "stake",
    "state",
    "users",
]