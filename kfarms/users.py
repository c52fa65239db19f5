"""User-level operations: staking, unstaking, reward accrual and harvesting."""

from __future__ import annotations

import logging

from . import stake as stake_ops
from .consts import BPS_DIV_FACTOR, MAX_REWARDS_TOKENS, U64_MAX, U128_MAX
from .effects import HarvestEffects, StakeEffects, WithdrawEffects
from .errors import ErrorCode, FarmError
from .numeric import WadDecimal, u64_mul_div
from .rewards import refresh_global_rewards
from .state import DatedPrice, FarmState, GlobalConfig, UserState

logger = logging.getLogger(__name__)


def _checked_add(a: int, b: int) -> int:
    result = a + b
    if result > U64_MAX:
        raise FarmError(ErrorCode.INTEGER_OVERFLOW)
    return result


def _checked_sub(a: int, b: int) -> int:
    if b > a:
        raise FarmError(ErrorCode.INTEGER_OVERFLOW)
    return a - b


def _add_u64(a: int, b: int) -> int:
    result = a + b
    if result > U64_MAX:
        raise OverflowError("attempt to add with overflow")
    return result


def _sub_u64(a: int, b: int) -> int:
    if b > a:
        raise OverflowError("attempt to subtract with overflow")
    return a - b


def initialize_user(
    farm_state: FarmState,
    user_state: UserState,
    owner_key: bytes,
    farm_state_key: bytes,
    ts: int,
) -> None:
    """Set up a fresh user account for the farm and count it."""
    user_state.owner = owner_key
    user_state.farm_state = farm_state_key
    user_state.user_id = farm_state.num_users
    user_state.rewards_tally_scaled = [0] * MAX_REWARDS_TOKENS
    user_state.rewards_issued_unclaimed = [0] * MAX_REWARDS_TOKENS
    user_state.active_stake_scaled = 0
    user_state.last_claim_ts = [ts] * MAX_REWARDS_TOKENS

    if farm_state.is_delegated():
        user_state.is_farm_delegated = True

    farm_state.num_users = _checked_add(farm_state.num_users, 1)


def initialize_reward_ts_if_needed(farm_state: FarmState, current_ts: int) -> None:
    """Restart issuance clocks of all rewards while nothing is staked."""
    if farm_state.total_staked_amount == 0:
        for reward_info in farm_state.reward_infos[: farm_state.num_reward_tokens]:
            reward_info.last_issuance_ts = current_ts


def _update_tally_on_stake_increase(
    farm_state: FarmState, user_state: UserState, added_shares: WadDecimal
) -> None:
    if not added_shares:
        return
    logger.debug("tally update on stake increase, added shares=%s", added_shares)
    for index, reward_info in enumerate(
        farm_state.reward_infos[: farm_state.num_reward_tokens]
    ):
        new_tally = user_state.rewards_tally(index) + (
            added_shares * reward_info.reward_per_share
        )
        try:
            user_state.rewards_tally_scaled[index] = new_tally.to_scaled_val()
        except FarmError as exc:
            raise FarmError(ErrorCode.INTEGER_OVERFLOW) from exc


def _user_refresh_stake(
    farm_state: FarmState, user_state: UserState, current_ts: int
) -> None:
    initialize_reward_ts_if_needed(farm_state, current_ts)
    if (
        user_state.pending_deposit_stake_scaled > 0
        and current_ts >= user_state.pending_deposit_stake_ts
    ):
        amount, gained = stake_ops.activate_pending_stake(user_state, farm_state)
        logger.debug("activated pending stake amount=%s shares=%s", amount, gained)
        _update_tally_on_stake_increase(farm_state, user_state, gained)


def stake(
    farm_state: FarmState,
    user_state: UserState,
    scope_price: DatedPrice | None,
    amount: int,
    current_ts: int,
) -> StakeEffects:
    """Stake `amount` tokens, at once or behind the deposit warmup period."""
    logger.debug("stake amount=%s", amount)
    refresh_global_rewards(farm_state, scope_price, current_ts)
    user_refresh_all_rewards(farm_state, user_state)
    _user_refresh_stake(farm_state, user_state, current_ts)

    if not farm_state.can_accept_deposit(amount, scope_price, current_ts):
        raise FarmError(ErrorCode.DEPOSIT_CAP_REACHED)

    if farm_state.deposit_warmup_period > 0:
        user_state.pending_deposit_stake_ts = _checked_add(
            current_ts, farm_state.deposit_warmup_period
        )
        gained = stake_ops.add_pending_deposit_stake(user_state, farm_state, amount)
        logger.debug(
            "pending stake until %s, gained=%s",
            user_state.pending_deposit_stake_ts,
            gained,
        )
    else:
        gained = stake_ops.add_active_stake(user_state, farm_state, amount)
        logger.debug("active stake gained=%s", gained)
        _update_tally_on_stake_increase(farm_state, user_state, gained)

    user_state.last_stake_ts = current_ts
    return StakeEffects(amount_to_stake=amount)


def set_stake(
    farm_state: FarmState, user_state: UserState, new_stake: int, ts: int
) -> None:
    """Set a user's stake in a delegated farm, where shares equal token amounts."""
    if farm_state.total_active_stake_scaled != farm_state.total_staked_amount:
        raise ValueError("delegated farm: active stake differs from staked amount")
    if farm_state.total_pending_stake_scaled != 0 or farm_state.total_pending_amount != 0:
        raise ValueError("delegated farm: pending stake must be zero")
    if farm_state.deposit_warmup_period != 0 or farm_state.withdrawal_cooldown_period != 0:
        raise ValueError("delegated farm: warmup and cooldown must be zero")

    current = user_state.active_stake_scaled
    if current > U64_MAX:
        raise ValueError("Delegated farm: active stake don't fit on u64")

    if current == new_stake:
        logger.debug("set_stake nothing to do")
        return

    refresh_global_rewards(farm_state, None, ts)
    user_refresh_all_rewards(farm_state, user_state)

    if current > new_stake:
        diff = current - new_stake
        farm_state.total_active_stake_scaled = _sub_u64(
            farm_state.total_active_stake_scaled, diff
        )
        farm_state.total_staked_amount = _sub_u64(farm_state.total_staked_amount, diff)
        user_state.active_stake_scaled -= diff
    else:
        diff = new_stake - current
        initialize_reward_ts_if_needed(farm_state, ts)
        user_state.last_stake_ts = ts
        if not farm_state.can_accept_deposit(diff, None, ts):
            raise FarmError(ErrorCode.DEPOSIT_CAP_REACHED)
        farm_state.total_active_stake_scaled += diff
        if farm_state.total_active_stake_scaled > U128_MAX:
            raise OverflowError("attempt to add with overflow")
        farm_state.total_staked_amount = _add_u64(farm_state.total_staked_amount, diff)
        user_state.active_stake_scaled += diff

    for index, reward_info in enumerate(
        farm_state.reward_infos[: farm_state.num_reward_tokens]
    ):
        tally = reward_info.reward_per_share_scaled * new_stake
        if tally > U128_MAX:
            raise OverflowError("attempt to multiply with overflow")
        user_state.rewards_tally_scaled[index] = tally


def harvest(
    farm_state: FarmState,
    user_state: UserState,
    global_config: GlobalConfig,
    scope_price: DatedPrice | None,
    reward_index: int,
    ts: int,
) -> HarvestEffects:
    """Claim a user's accrued reward, split between user and treasury."""
    logger.debug("harvest reward_index=%s", reward_index)
    refresh_global_rewards(farm_state, scope_price, ts)
    user_refresh_reward(farm_state, user_state, reward_index)

    reward = user_state.rewards_issued_unclaimed[reward_index]
    since_claim = _checked_sub(ts, user_state.last_claim_ts[reward_index])
    reward_info = farm_state.reward_infos[reward_index]
    if since_claim < reward_info.min_claim_duration_seconds:
        raise FarmError(ErrorCode.MIN_CLAIM_DURATION_NOT_REACHED)

    if reward == 0:
        return HarvestEffects(reward_user=0, reward_treasury=0)

    reward_info.rewards_issued_unclaimed = _checked_sub(
        reward_info.rewards_issued_unclaimed, reward
    )
    user_state.rewards_issued_unclaimed[reward_index] = 0
    user_state.last_claim_ts[reward_index] = ts

    reward_treasury = u64_mul_div(reward, global_config.treasury_fee_bps, BPS_DIV_FACTOR)
    reward_user = _checked_sub(reward, reward_treasury)
    return HarvestEffects(reward_user=reward_user, reward_treasury=reward_treasury)


def user_refresh_reward(
    farm_state: FarmState, user_state: UserState, reward_index: int
) -> None:
    """Credit a user with the reward accrued on their stake since the last refresh."""
    reward_info = farm_state.reward_infos[reward_index]
    tally = user_state.rewards_tally(reward_index)
    per_share = reward_info.reward_per_share

    if farm_state.is_delegated():
        new_tally = per_share * user_state.active_stake_scaled
    else:
        new_tally = per_share * user_state.active_stake

    try:
        reward = (new_tally - tally).try_floor()
    except FarmError as exc:
        raise FarmError(ErrorCode.INTEGER_OVERFLOW) from exc

    new_tally = tally + reward
    logger.debug(
        "user_refresh_reward index=%s reward=%s new_tally=%s",
        reward_index,
        reward,
        new_tally,
    )
    user_state.rewards_tally_scaled[reward_index] = new_tally.to_scaled_val()
    user_state.rewards_issued_unclaimed[reward_index] = _add_u64(
        user_state.rewards_issued_unclaimed[reward_index], reward
    )


def user_refresh_all_rewards(farm_state: FarmState, user_state: UserState) -> None:
    """Refresh every registered reward of a user holding active stake."""
    if user_state.active_stake_scaled > 0:
        for reward_index in range(farm_state.num_reward_tokens):
            user_refresh_reward(farm_state, user_state, reward_index)


def user_refresh_state(
    farm_state: FarmState,
    user_state: UserState,
    scope_price: DatedPrice | None,
    current_ts: int,
) -> None:
    """Bring a user's rewards and pending deposit up to `current_ts`."""
    refresh_global_rewards(farm_state, scope_price, current_ts)
    user_refresh_all_rewards(farm_state, user_state)
    user_state.is_farm_delegated = farm_state.is_delegated()
    if not farm_state.is_delegated():
        _user_refresh_stake(farm_state, user_state, current_ts)


def reward_user_once(
    farm_state: FarmState, user_state: UserState, reward_index: int, amount: int
) -> None:
    """Grant a one-off reward to a user."""
    reward_info = farm_state.reward_infos[reward_index]
    reward_info.rewards_issued_unclaimed = _add_u64(
        reward_info.rewards_issued_unclaimed, amount
    )
    reward_info.rewards_issued_cumulative = _add_u64(
        reward_info.rewards_issued_cumulative, amount
    )
    user_state.rewards_issued_unclaimed[reward_index] = _add_u64(
        user_state.rewards_issued_unclaimed[reward_index], amount
    )


def unstake(
    farm_state: FarmState,
    user_state: UserState,
    scope_price: DatedPrice | None,
    requested_stake_withdrawal: WadDecimal,
    ts: int,
) -> None:
    """Move up to the requested shares from active stake into a pending withdrawal."""
    logger.debug("unstake shares=%s", requested_stake_withdrawal)
    refresh_global_rewards(farm_state, scope_price, ts)
    user_refresh_all_rewards(farm_state, user_state)

    shares = min(requested_stake_withdrawal, user_state.active_stake)
    if not shares > WadDecimal.zero():
        raise FarmError(ErrorCode.NOTHING_TO_UNSTAKE)

    if user_state.pending_withdrawal_unstake_scaled > 0:
        if user_state.pending_withdrawal_unstake_ts <= ts:
            raise FarmError(ErrorCode.PENDING_WITHDRAWAL_NOT_WITHDRAWN_YET)
        logger.debug(
            "extending pending withdrawal of %s by %s, old ts=%s",
            user_state.pending_withdrawal_unstake,
            shares,
            user_state.pending_withdrawal_unstake_ts,
        )

    user_state.pending_withdrawal_unstake_ts = _checked_add(
        ts, farm_state.withdrawal_cooldown_period
    )

    removed, added_pending, penalty = stake_ops.unstake(
        user_state, farm_state, shares, ts
    )
    logger.debug("unstaked amount=%s pending shares=%s", removed, added_pending)

    farm_state.slashed_amount_current = _add_u64(
        farm_state.slashed_amount_current, penalty
    )
    farm_state.slashed_amount_cumulative = _add_u64(
        farm_state.slashed_amount_cumulative, penalty
    )

    for index, reward_info in enumerate(
        farm_state.reward_infos[: farm_state.num_reward_tokens]
    ):
        tally = user_state.rewards_tally(index)
        tally_loss = shares * reward_info.reward_per_share
        if not tally + WadDecimal.one() > tally_loss:
            raise FarmError(ErrorCode.INTEGER_OVERFLOW)
        user_state.rewards_tally_scaled[index] = max(
            tally.to_scaled_val() - tally_loss.to_scaled_val(), 0
        )


def withdraw_unstaked_deposits(
    farm_state: FarmState, user_state: UserState, ts: int
) -> WithdrawEffects:
    """Release a pending withdrawal once its cooldown has elapsed."""
    if user_state.pending_withdrawal_unstake_ts > ts:
        raise FarmError(ErrorCode.UNSTAKE_NOT_ELAPSED)
    if user_state.pending_withdrawal_unstake_scaled == 0:
        raise FarmError(ErrorCode.NOTHING_TO_WITHDRAW)
    amount = stake_ops.remove_pending_withdrawal_stake(user_state, farm_state)
    return WithdrawEffects(amount_to_withdraw=amount)