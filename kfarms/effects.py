"""Results returned by farm operations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class HarvestEffects:
    reward_user: int
    reward_treasury: int


@dataclass(frozen=True)
class WithdrawEffects:
    amount_to_withdraw: int


@dataclass(frozen=True)
class AddRewardEffects:
    reward_amount: int


@dataclass(frozen=True)
class WithdrawRewardEffects:
    reward_amount: int


@dataclass(frozen=True)
class StakeEffects:
    amount_to_stake: int


@dataclass(frozen=True)
class VaultWithdrawEffects:
    amount_to_withdraw: int
    farm_to_freeze: bool