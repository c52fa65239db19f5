"""Farm-level operations: configuration, reward funding and reward issuance."""

from __future__ import annotations

import logging
import struct
from typing import Callable

from .consts import BPS_DIV_FACTOR, MAX_REWARDS_TOKENS, U64_MAX, U128_MAX
from .effects import AddRewardEffects, WithdrawRewardEffects
from .errors import ErrorCode, FarmError
from .numeric import WadDecimal, ten_pow
from .stake import increase_total_amount, withdraw_farm
from .state import (
    Clock,
    DatedPrice,
    FarmConfigOption,
    FarmState,
    GlobalConfig,
    GlobalConfigOption,
    LockingMode,
    RewardInfo,
    RewardPerTimeUnitPoint,
    RewardScheduleCurve,
    RewardType,
    TimeUnit,
)

logger = logging.getLogger(__name__)

_POINT = struct.Struct("<QQ")


def _checked_add(a: int, b: int) -> int:
    result = a + b
    if result > U64_MAX:
        raise FarmError(ErrorCode.INTEGER_OVERFLOW)
    return result


def _checked_sub(a: int, b: int) -> int:
    if b > a:
        raise FarmError(ErrorCode.INTEGER_OVERFLOW)
    return a - b


def _exact(data: bytes, size: int, what: str) -> bytes:
    if len(data) != size:
        raise ValueError(f"expected {size} bytes for {what}, got {len(data)}")
    return bytes(data)


def _prefix(data: bytes, size: int, what: str) -> bytes:
    if len(data) < size:
        raise ValueError(f"expected at least {size} bytes for {what}, got {len(data)}")
    return bytes(data[:size])


def _decode_u64(data: bytes) -> int:
    return int.from_bytes(_exact(data, 8, "u64"), "little")


def _decode_u32(data: bytes) -> int:
    return int.from_bytes(_exact(data, 4, "u32"), "little")


def _decode_u8(data: bytes) -> int:
    return _prefix(data, 1, "u8")[0]


def _decode_pubkey(data: bytes) -> bytes:
    return _exact(data, 32, "public key")


def _decode_points(data: bytes) -> list[RewardPerTimeUnitPoint]:
    header = _prefix(data, 4, "vector length")
    count = int.from_bytes(header, "little")
    body = _exact(data[4:], count * _POINT.size, "curve points")
    return [
        RewardPerTimeUnitPoint(ts_start, rate)
        for ts_start, rate in _POINT.iter_unpack(body)
    ]


def update_global_config(
    global_config: GlobalConfig, key: GlobalConfigOption, value: bytes
) -> None:
    """Apply one global configuration change encoded in `value`."""
    key = GlobalConfigOption(key)
    if key is GlobalConfigOption.SET_PENDING_GLOBAL_ADMIN:
        pubkey = _prefix(value, 32, "public key")
        logger.debug(
            "Changing global_config admin %s -> %s", global_config.global_admin, pubkey
        )
        global_config.pending_global_admin = pubkey
    else:
        fee_bps = int.from_bytes(_prefix(value, 8, "u64"), "little")
        if fee_bps > BPS_DIV_FACTOR:
            raise FarmError(
                ErrorCode.INVALID_CONFIG_VALUE, "treasury_fee_bps must be <= 10000"
            )
        logger.debug(
            "Changing global_config treasury_fee_bps %s -> %s",
            global_config.treasury_fee_bps,
            fee_bps,
        )
        global_config.treasury_fee_bps = fee_bps


def initialize_reward(
    farm_state: FarmState,
    reward_vault: bytes,
    mint: bytes,
    mint_decimals: int,
    mint_token_program: bytes,
    ts: int,
) -> None:
    """Register a new reward token in the next free reward slot."""
    if farm_state.num_reward_tokens == MAX_REWARDS_TOKENS:
        raise FarmError(ErrorCode.MAX_REWARD_NUMBER_REACHED)

    reward_info = farm_state.reward_infos[farm_state.num_reward_tokens]
    reward_info.rewards_available = 0
    reward_info.rewards_vault = reward_vault
    reward_info.token.mint = mint
    reward_info.token.decimals = mint_decimals
    reward_info.token.token_program = mint_token_program
    reward_info.last_issuance_ts = ts

    farm_state.num_reward_tokens = _checked_add(farm_state.num_reward_tokens, 1)


def add_reward(
    farm_state: FarmState,
    scope_price: DatedPrice | None,
    mint: bytes,
    reward_index: int,
    amount: int,
    ts: int,
) -> AddRewardEffects:
    """Fund a reward with `amount` tokens after bringing issuance up to date."""
    logger.debug("add_reward amount=%s", amount)
    refresh_global_rewards(farm_state, scope_price, ts)

    reward = farm_state.reward_infos[reward_index]
    if reward.token.mint != mint:
        raise FarmError(ErrorCode.REWARD_DOES_NOT_EXIST)

    reward.rewards_available = _checked_add(reward.rewards_available, amount)
    return AddRewardEffects(reward_amount=amount)


def withdraw_reward(
    farm_state: FarmState,
    scope_price: DatedPrice | None,
    mint: bytes,
    reward_index: int,
    amount: int,
    ts: int,
) -> WithdrawRewardEffects:
    """Take back up to `amount` of a reward's unissued tokens."""
    logger.debug("withdraw_reward amount=%s", amount)
    if amount <= 0:
        raise FarmError(ErrorCode.REWARD_DOES_NOT_EXIST)
    refresh_global_rewards(farm_state, scope_price, ts)

    reward = farm_state.reward_infos[reward_index]
    if reward.token.mint != mint:
        raise FarmError(ErrorCode.REWARD_DOES_NOT_EXIST)
    if reward.rewards_available <= 0:
        raise FarmError(ErrorCode.WITHDRAW_REWARD_ZERO_AVAILABLE)
    if reward.reward_schedule_curve != RewardScheduleCurve():
        raise FarmError(ErrorCode.REWARD_SCHEDULE_CURVE_SET)

    withdrawn = min(reward.rewards_available, amount)
    reward.rewards_available -= withdrawn
    return WithdrawRewardEffects(reward_amount=withdrawn)


_REWARD_OPTIONS = frozenset(
    {
        FarmConfigOption.UPDATE_REWARD_RPS,
        FarmConfigOption.UPDATE_REWARD_MIN_CLAIM_DURATION,
        FarmConfigOption.REWARD_TYPE,
        FarmConfigOption.RPS_DECIMALS,
        FarmConfigOption.UPDATE_REWARD_SCHEDULE_CURVE_POINTS,
    }
)

_PLAIN_FARM_FIELDS: dict[FarmConfigOption, tuple[str, Callable[[bytes], object]]] = {
    FarmConfigOption.WITHDRAW_AUTHORITY: ("withdraw_authority", _decode_pubkey),
    FarmConfigOption.LOCKING_START_TIMESTAMP: ("locking_start_timestamp", _decode_u64),
    FarmConfigOption.LOCKING_DURATION: ("locking_duration", _decode_u64),
    FarmConfigOption.DEPOSIT_CAP_AMOUNT: ("deposit_cap_amount", _decode_u64),
    FarmConfigOption.SLASHED_AMOUNT_SPILL_ADDRESS: (
        "slashed_amount_spill_address",
        _decode_pubkey,
    ),
    FarmConfigOption.SCOPE_PRICES_ACCOUNT: ("scope_prices", _decode_pubkey),
    FarmConfigOption.SCOPE_ORACLE_PRICE_ID: (
        "scope_oracle_price_id",
        lambda data: _decode_u64(_prefix(data, 8, "u64")),
    ),
    FarmConfigOption.SCOPE_ORACLE_MAX_AGE: ("scope_oracle_max_age", _decode_u64),
    FarmConfigOption.UPDATE_PENDING_FARM_ADMIN: ("pending_farm_admin", _decode_pubkey),
    FarmConfigOption.UPDATE_STRATEGY_ID: ("strategy_id", _decode_pubkey),
    FarmConfigOption.UPDATE_DELEGATED_RPS_ADMIN: (
        "delegated_rps_admin",
        _decode_pubkey,
    ),
    FarmConfigOption.UPDATE_VAULT_ID: ("vault_id", _decode_pubkey),
}


def update_farm_config(
    farm_state: FarmState,
    scope_price: DatedPrice | None,
    mode: FarmConfigOption,
    data: bytes,
    clock: Clock,
) -> None:
    """Apply one farm configuration change; `data` holds its encoded value."""
    mode = FarmConfigOption(mode)
    logger.debug("update_farm_config mode=%s with data of len %s", mode.name, len(data))

    if mode in _REWARD_OPTIONS:
        reward_index = _decode_u64(_prefix(data, 8, "reward index"))
        if reward_index >= farm_state.num_reward_tokens:
            raise FarmError(ErrorCode.REWARD_INDEX_OUT_OF_RANGE)
        ts = TimeUnit.now_from_clock(farm_state.time_unit, clock)
        refresh_global_rewards(farm_state, scope_price, ts)
        reward_info = farm_state.reward_infos[reward_index]
        if not reward_info.is_initialised():
            raise FarmError(ErrorCode.NO_REWARD_IN_LIST)
        logger.debug("Updating reward index=%s", reward_index)
        update_reward_config(reward_info, mode, data[8:], ts)
        return

    if mode in (
        FarmConfigOption.DEPOSIT_WARMUP_PERIOD,
        FarmConfigOption.WITHDRAW_COOLDOWN_PERIOD,
    ):
        if farm_state.is_delegated():
            raise FarmError(
                ErrorCode.FARM_DELEGATED,
                "delegated farm cannot change warmup or cooldown periods",
            )
        value = _decode_u32(data)
        attr = (
            "deposit_warmup_period"
            if mode is FarmConfigOption.DEPOSIT_WARMUP_PERIOD
            else "withdrawal_cooldown_period"
        )
        logger.debug("%s=%s prev=%s", attr, value, getattr(farm_state, attr))
        setattr(farm_state, attr, value)
    elif mode is FarmConfigOption.LOCKING_MODE:
        value = _decode_u64(data)
        logger.debug("locking_mode=%s prev=%s", value, farm_state.locking_mode)
        farm_state.locking_mode = LockingMode(value)
    elif mode is FarmConfigOption.LOCKING_EARLY_WITHDRAWAL_PENALTY_BPS:
        value = _decode_u64(data)
        if value > BPS_DIV_FACTOR:
            raise FarmError(ErrorCode.INVALID_CONFIG_VALUE)
        logger.debug(
            "locking_early_withdrawal_penalty_bps=%s prev=%s",
            value,
            farm_state.locking_early_withdrawal_penalty_bps,
        )
        farm_state.locking_early_withdrawal_penalty_bps = value
    else:
        attr, decode = _PLAIN_FARM_FIELDS[mode]
        value = decode(data)
        logger.debug("%s=%s prev=%s", attr, value, getattr(farm_state, attr))
        setattr(farm_state, attr, value)


def update_reward_config(
    reward_info: RewardInfo, mode: FarmConfigOption, data: bytes, ts: int
) -> None:
    """Apply a reward-specific configuration change and reset its issuance time."""
    mode = FarmConfigOption(mode)
    if mode is FarmConfigOption.UPDATE_REWARD_RPS:
        value = _decode_u64(data)
        logger.debug("reward_rps=%s last_issuance_ts=%s", value, ts)
        reward_info.reward_schedule_curve.set_constant(value)
    elif mode is FarmConfigOption.UPDATE_REWARD_MIN_CLAIM_DURATION:
        value = _decode_u64(data)
        logger.debug("reward_min_claim_duration=%s", value)
        reward_info.min_claim_duration_seconds = value
    elif mode is FarmConfigOption.REWARD_TYPE:
        reward_type = RewardType(_decode_u8(data))
        logger.debug("reward_type=%s prev=%s", reward_type.name, reward_info.reward_type)
        reward_info.reward_type = reward_type
    elif mode is FarmConfigOption.RPS_DECIMALS:
        value = _decode_u8(data)
        logger.debug("rps_decimals=%s", value)
        reward_info.rewards_per_second_decimals = value
    elif mode is FarmConfigOption.UPDATE_REWARD_SCHEDULE_CURVE_POINTS:
        points = _decode_points(data)
        logger.debug("Updating reward schedule curve with points=%s", points)
        reward_info.reward_schedule_curve = RewardScheduleCurve.from_points(points)
    else:
        raise ValueError(f"{mode.name} is not a reward configuration option")

    reward_info.last_issuance_ts = ts


def _oracle_adjusted(
    farm_state: FarmState, scope_price: DatedPrice | None, amount: int, ts: int
) -> int:
    if farm_state.scope_oracle_price_id == U64_MAX:
        return amount
    if scope_price is None:
        raise FarmError(ErrorCode.MISSING_SCOPE_PRICES)
    age = ts - scope_price.unix_timestamp
    if age < 0:
        raise OverflowError("attempt to subtract with overflow")
    if age > farm_state.scope_oracle_max_age:
        logger.debug(
            "ts=%s price_ts=%s max_age=%s",
            ts,
            scope_price.unix_timestamp,
            farm_state.scope_oracle_max_age,
        )
        raise FarmError(ErrorCode.SCOPE_ORACLE_PRICE_TOO_OLD)
    logger.debug("Price: %r", scope_price)
    product = amount * scope_price.price.value
    if product > U128_MAX:
        raise OverflowError("attempt to multiply with overflow")
    return product // ten_pow(scope_price.price.exp)


def refresh_global_reward(
    farm_state: FarmState, scope_price: DatedPrice | None, ts: int, reward_index: int
) -> None:
    """Issue the rewards accrued by one reward since its last issuance."""
    reward_info = farm_state.reward_infos[reward_index]
    last_ts = reward_info.last_issuance_ts

    if ts == last_ts:
        return

    if farm_state.total_active_stake_scaled == 0:
        reward_info.last_issuance_ts = ts
        return

    cumulative = reward_info.reward_schedule_curve.get_cumulative_amount_issued_since_last_ts(
        last_ts, ts
    )
    reward_type = RewardType(reward_info.reward_type)
    if reward_type is RewardType.PROPORTIONAL:
        typed_amount = cumulative
    else:
        typed_amount = cumulative * farm_state.total_staked_amount

    decimal_adjusted = typed_amount // ten_pow(reward_info.rewards_per_second_decimals)
    amount = _oracle_adjusted(farm_state, scope_price, decimal_adjusted, ts)

    logger.debug(
        "time_passed=%s reward_type=%s cumulative_amt=%s decimal_adjusted_amt=%s "
        "oracle_adjusted_amt=%s",
        ts - last_ts,
        reward_type.name,
        cumulative,
        decimal_adjusted,
        amount,
    )

    if amount > U64_MAX:
        raise OverflowError("issued amount does not fit in 64 bits")
    if amount == 0:
        return

    rewards = min(amount, reward_info.rewards_available)
    logger.debug(
        "refresh_global_reward issuing_reward=%s last_ts=%s ts=%s", rewards, last_ts, ts
    )

    reward_info.last_issuance_ts = ts
    reward_info.rewards_issued_unclaimed = _checked_add(
        reward_info.rewards_issued_unclaimed, rewards
    )
    reward_info.rewards_issued_cumulative = _checked_add(
        reward_info.rewards_issued_cumulative, rewards
    )
    reward_info.rewards_available = _checked_sub(reward_info.rewards_available, rewards)

    issued = WadDecimal.from_int(rewards)
    if farm_state.is_delegated():
        added_per_share = issued / farm_state.total_active_stake_scaled
    else:
        added_per_share = issued / farm_state.total_active_stake
    reward_info.reward_per_share = reward_info.reward_per_share + added_per_share


def refresh_global_rewards(
    farm_state: FarmState, scope_price: DatedPrice | None, ts: int
) -> None:
    """Bring issuance of every registered reward up to `ts`."""
    logger.debug("refresh_global_rewards ts=%s", ts)
    for reward_index in range(farm_state.num_reward_tokens):
        refresh_global_reward(farm_state, scope_price, ts, reward_index)


def deposit_to_farm_vault(farm_state: FarmState, amount: int) -> None:
    """Add tokens to the farm vault, raising the value of every active share."""
    logger.debug("deposit_to_farm_vault amount=%s", amount)
    increase_total_amount(farm_state, amount)


def withdraw_from_farm_vault(farm_state: FarmState, amount: int) -> int:
    """Take tokens out of the farm vault; emptying it freezes the farm."""
    logger.debug("withdraw_from_farm_vault amount=%s", amount)
    effects = withdraw_farm(farm_state, amount)
    if effects.farm_to_freeze:
        farm_state.is_farm_frozen = True
    return effects.amount_to_withdraw


def withdraw_slashed_amount(farm_state: FarmState) -> int:
    """Return the slashed amount waiting to be paid out and reset it."""
    amount = farm_state.slashed_amount_current
    farm_state.slashed_amount_current = 0
    return amount