"""Share accounting for active, pending-deposit and pending-withdrawal stake."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .consts import U64_MAX
from .effects import VaultWithdrawEffects
from .numeric import WadDecimal, full_decimal_mul_div, u64_mul_div
from .penalty import apply_early_withdrawal_penalty
from .state import FarmState, LockingMode, UserState

logger = logging.getLogger(__name__)


def _add_u64(a: int, b: int) -> int:
    result = a + b
    if result > U64_MAX:
        raise OverflowError("attempt to add with overflow")
    return result


def _sub_u64(a: int, b: int) -> int:
    if b > a:
        raise OverflowError("attempt to subtract with overflow")
    return a - b


@dataclass
class UserStake:
    """A user's stake shares, worked on as decimals."""

    active_stake: WadDecimal = field(default_factory=WadDecimal.zero)
    pending_deposit_stake: WadDecimal = field(default_factory=WadDecimal.zero)
    pending_withdrawal_unstake: WadDecimal = field(default_factory=WadDecimal.zero)
    last_stake_ts: int = 0


@dataclass
class FarmStake:
    """A farm's stake totals and locking settings, worked on as decimals."""

    total_active_stake: WadDecimal = field(default_factory=WadDecimal.zero)
    total_pending_stake: WadDecimal = field(default_factory=WadDecimal.zero)
    total_active_amount: int = 0
    total_pending_amount: int = 0
    locking_mode: LockingMode = LockingMode.NONE
    locking_start_timestamp: int = 0
    locking_duration: int = 0
    locking_early_withdrawal_penalty_bps: int = 0


@contextmanager
def user_stake_view(user_state: UserState) -> Iterator[UserStake]:
    """Yield the user's stake; the stake shares are written back on exit."""
    view = UserStake(
        active_stake=user_state.active_stake,
        pending_deposit_stake=user_state.pending_deposit_stake,
        pending_withdrawal_unstake=user_state.pending_withdrawal_unstake,
        last_stake_ts=user_state.last_stake_ts,
    )
    yield view
    user_state.active_stake = view.active_stake
    user_state.pending_deposit_stake = view.pending_deposit_stake
    user_state.pending_withdrawal_unstake = view.pending_withdrawal_unstake


@contextmanager
def farm_stake_view(farm_state: FarmState) -> Iterator[FarmStake]:
    """Yield the farm's stake totals; totals and amounts are written back on exit."""
    view = FarmStake(
        total_active_stake=farm_state.total_active_stake,
        total_pending_stake=farm_state.total_pending_stake,
        total_active_amount=farm_state.total_staked_amount,
        total_pending_amount=farm_state.total_pending_amount,
        locking_mode=farm_state.get_locking_mode(),
        locking_start_timestamp=farm_state.locking_start_timestamp,
        locking_duration=farm_state.locking_duration,
        locking_early_withdrawal_penalty_bps=(
            farm_state.locking_early_withdrawal_penalty_bps
        ),
    )
    yield view
    farm_state.total_active_stake = view.total_active_stake
    farm_state.total_pending_stake = view.total_pending_stake
    farm_state.total_staked_amount = view.total_active_amount
    farm_state.total_pending_amount = view.total_pending_amount


def convert_stake_to_amount(
    stake: WadDecimal, total_stake: WadDecimal, total_amount: int, round_up: bool
) -> int:
    """Return the token amount that `stake` shares are worth."""
    if not stake:
        return 0
    if total_stake:
        amount = full_decimal_mul_div(stake, total_amount, total_stake)
    else:
        amount = WadDecimal.from_int(total_amount)
    return amount.try_ceil() if round_up else amount.try_floor()


def convert_amount_to_stake(
    amount: int, total_stake: WadDecimal, total_amount: int
) -> WadDecimal:
    """Return the stake shares that `amount` tokens buy."""
    if amount == 0:
        return WadDecimal.zero()
    if not total_stake or total_amount == 0:
        if total_stake:
            raise ValueError("Total amount is zero but total stake is not")
        return WadDecimal.from_int(amount)
    return total_stake * amount / total_amount


def add_pending_deposit_stake(
    user_state: UserState, farm_state: FarmState, deposited_amount: int
) -> WadDecimal:
    """Queue a deposit behind the warmup period and return the shares gained."""
    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        gained = convert_amount_to_stake(
            deposited_amount, farm.total_pending_stake, farm.total_pending_amount
        )
        user.pending_deposit_stake = user.pending_deposit_stake + gained
        farm.total_pending_amount = _add_u64(
            farm.total_pending_amount, deposited_amount
        )
        farm.total_pending_stake = farm.total_pending_stake + gained
    return gained


def remove_pending_deposit_stake(user_state: UserState, farm_state: FarmState) -> int:
    """Remove the user's whole pending deposit and return its token amount."""
    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        removed = convert_stake_to_amount(
            user.pending_deposit_stake,
            farm.total_pending_stake,
            farm.total_pending_amount,
            False,
        )
        farm.total_pending_amount = _sub_u64(farm.total_pending_amount, removed)
        farm.total_pending_stake = farm.total_pending_stake - user.pending_deposit_stake
        user.pending_deposit_stake = WadDecimal.zero()
    return removed


def add_active_stake(
    user_state: UserState, farm_state: FarmState, staked_amount: int
) -> WadDecimal:
    """Stake `staked_amount` tokens at once and return the shares gained."""
    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        gained = convert_amount_to_stake(
            staked_amount, farm.total_active_stake, farm.total_active_amount
        )
        user.active_stake = user.active_stake + gained
        farm.total_active_amount = _add_u64(farm.total_active_amount, staked_amount)
        farm.total_active_stake = farm.total_active_stake + gained
    return gained


def activate_pending_stake(
    user_state: UserState, farm_state: FarmState
) -> tuple[int, WadDecimal]:
    """Turn the user's pending deposit into active stake."""
    amount = remove_pending_deposit_stake(user_state, farm_state)
    gained = add_active_stake(user_state, farm_state, amount)
    return amount, gained


def remove_active_stake(
    user_state: UserState, farm_state: FarmState, unstaked_shares: WadDecimal
) -> int:
    """Remove active shares and return the token amount they were worth."""
    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        if unstaked_shares > user.active_stake:
            raise ValueError(
                f"Not enough active stake ({user.active_stake}) to perform "
                f"this unstake ({unstaked_shares} requested)"
            )
        amount = convert_stake_to_amount(
            unstaked_shares, farm.total_active_stake, farm.total_active_amount, False
        )
        user.active_stake = user.active_stake - unstaked_shares
        farm.total_active_amount = _sub_u64(farm.total_active_amount, amount)
        farm.total_active_stake = farm.total_active_stake - unstaked_shares
    return amount


def add_pending_withdrawal_stake(
    user_state: UserState, farm_state: FarmState, unstaked_amount: int
) -> WadDecimal:
    """Queue an unstaked amount behind the cooldown and return the shares gained."""
    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        gained = convert_amount_to_stake(
            unstaked_amount, farm.total_pending_stake, farm.total_pending_amount
        )
        user.pending_withdrawal_unstake = user.pending_withdrawal_unstake + gained
        farm.total_pending_amount = _add_u64(farm.total_pending_amount, unstaked_amount)
        farm.total_pending_stake = farm.total_pending_stake + gained
    return gained


def unstake(
    user_state: UserState,
    farm_state: FarmState,
    stake_share_to_unstake: WadDecimal,
    ts: int,
) -> tuple[int, WadDecimal, int]:
    """Unstake shares into a pending withdrawal, applying any locking penalty.

    Returns (amount after penalty, pending shares gained, penalty amount).
    """
    amount = remove_active_stake(user_state, farm_state, stake_share_to_unstake)

    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        mode = farm.locking_mode
        if mode is LockingMode.NONE:
            post_penalty, penalty = amount, 0
        else:
            start = (
                farm.locking_start_timestamp
                if mode is LockingMode.WITH_EXPIRY
                else user.last_stake_ts
            )
            post_penalty, penalty = apply_early_withdrawal_penalty(
                farm.locking_duration,
                start,
                ts,
                farm.locking_early_withdrawal_penalty_bps,
                amount,
            )
            logger.debug(
                "Unstaking %s, with mode %s, got %s and penalty %s",
                amount,
                mode.name,
                post_penalty,
                penalty,
            )

    gained = add_pending_withdrawal_stake(user_state, farm_state, post_penalty)
    return post_penalty, gained, penalty


def remove_pending_withdrawal_stake(
    user_state: UserState, farm_state: FarmState
) -> int:
    """Remove the user's whole pending withdrawal and return its token amount."""
    with user_stake_view(user_state) as user, farm_stake_view(farm_state) as farm:
        removed = convert_stake_to_amount(
            user.pending_withdrawal_unstake,
            farm.total_pending_stake,
            farm.total_pending_amount,
            False,
        )
        farm.total_pending_amount = _sub_u64(farm.total_pending_amount, removed)
        farm.total_pending_stake = (
            farm.total_pending_stake - user.pending_withdrawal_unstake
        )
        user.pending_withdrawal_unstake = WadDecimal.zero()
    return removed


def increase_total_amount(farm_state: FarmState, amount: int) -> None:
    """Add tokens to the active pool without minting shares."""
    with farm_stake_view(farm_state) as farm:
        farm.total_active_amount = _add_u64(farm.total_active_amount, amount)


def withdraw_farm(farm_state: FarmState, req_withdraw_amount: int) -> VaultWithdrawEffects:
    """Take tokens out of the farm vault pro rata from active and pending amounts."""
    with farm_stake_view(farm_state) as farm:
        vault_amount = _add_u64(farm.total_active_amount, farm.total_pending_amount)

        if req_withdraw_amount >= vault_amount:
            farm.total_active_amount = 0
            farm.total_pending_amount = 0
            logger.debug("Withdraw all farm vault (left frozen): %s", vault_amount)
            return VaultWithdrawEffects(
                amount_to_withdraw=vault_amount, farm_to_freeze=True
            )

        removed_active = u64_mul_div(
            farm.total_active_amount, req_withdraw_amount, vault_amount
        )
        removed_pending = u64_mul_div(
            farm.total_pending_amount, req_withdraw_amount, vault_amount
        )
        farm.total_active_amount -= removed_active
        farm.total_pending_amount -= removed_pending
        amount_to_withdraw = removed_active + removed_pending
        logger.debug(
            "Withdraw farm vault: %s (active) + %s (pending) = %s / %s",
            removed_active,
            removed_pending,
            amount_to_withdraw,
            req_withdraw_amount,
        )
    return VaultWithdrawEffects(
        amount_to_withdraw=amount_to_withdraw, farm_to_freeze=False
    )