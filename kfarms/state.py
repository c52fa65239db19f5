"""Account state of the farm program: configs, farms, users and reward curves."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from itertools import pairwise
from typing import Iterable

from .consts import MAX_REWARDS_TOKENS, REWARD_CURVE_POINTS, U64_MAX
from .errors import ErrorCode, FarmError
from .numeric import WadDecimal, ten_pow

logger = logging.getLogger(__name__)

DEFAULT_PUBKEY = bytes(32)


class GlobalConfigOption(IntEnum):
    SET_PENDING_GLOBAL_ADMIN = 0
    SET_TREASURY_FEE_BPS = 1


class FarmConfigOption(IntEnum):
    UPDATE_REWARD_RPS = 0
    UPDATE_REWARD_MIN_CLAIM_DURATION = 1
    WITHDRAW_AUTHORITY = 2
    DEPOSIT_WARMUP_PERIOD = 3
    WITHDRAW_COOLDOWN_PERIOD = 4
    REWARD_TYPE = 5
    RPS_DECIMALS = 6
    LOCKING_MODE = 7
    LOCKING_START_TIMESTAMP = 8
    LOCKING_DURATION = 9
    LOCKING_EARLY_WITHDRAWAL_PENALTY_BPS = 10
    DEPOSIT_CAP_AMOUNT = 11
    SLASHED_AMOUNT_SPILL_ADDRESS = 12
    SCOPE_PRICES_ACCOUNT = 13
    SCOPE_ORACLE_PRICE_ID = 14
    SCOPE_ORACLE_MAX_AGE = 15
    UPDATE_REWARD_SCHEDULE_CURVE_POINTS = 16
    UPDATE_PENDING_FARM_ADMIN = 17
    UPDATE_STRATEGY_ID = 18
    UPDATE_DELEGATED_RPS_ADMIN = 19
    UPDATE_VAULT_ID = 20


@dataclass(frozen=True)
class Clock:
    """Current chain time as seen by an instruction."""

    unix_timestamp: int = 0
    slot: int = 0


class TimeUnit(IntEnum):
    SECONDS = 0
    SLOTS = 1

    @classmethod
    def now_from_clock(cls, value: int, clock: Clock) -> int:
        """Return the current time of the clock in the unit numbered `value`."""
        unit = cls(value)
        if unit is cls.SECONDS:
            return clock.unix_timestamp
        return clock.slot


class RewardType(IntEnum):
    PROPORTIONAL = 0
    CONSTANT = 1


class LockingMode(IntEnum):
    NONE = 0
    CONTINUOUS = 1
    WITH_EXPIRY = 2


@dataclass(frozen=True)
class Price:
    """Oracle price: value * 10**-exp."""

    value: int
    exp: int


@dataclass(frozen=True)
class DatedPrice:
    price: Price
    last_updated_slot: int = 0
    unix_timestamp: int = 0


@dataclass(frozen=True)
class RewardPerTimeUnitPoint:
    ts_start: int = 0
    reward_per_time_unit: int = 0


_UNUSED_POINT = RewardPerTimeUnitPoint(U64_MAX, 0)


def _curve_error(detail: str) -> FarmError:
    return FarmError(ErrorCode.INVALID_RPS_CURVE_POINT, detail)


def _default_points() -> list[RewardPerTimeUnitPoint]:
    return [RewardPerTimeUnitPoint(0, 0)] + [_UNUSED_POINT] * (REWARD_CURVE_POINTS - 1)


@dataclass
class RewardScheduleCurve:
    """Piecewise-constant reward rate over time, padded with unused points."""

    points: list[RewardPerTimeUnitPoint] = field(default_factory=_default_points)

    @classmethod
    def from_constant(cls, reward_per_time_unit: int) -> "RewardScheduleCurve":
        return cls.from_points([RewardPerTimeUnitPoint(0, reward_per_time_unit)])

    @classmethod
    def from_points(
        cls, pts: Iterable[RewardPerTimeUnitPoint]
    ) -> "RewardScheduleCurve":
        given = list(pts)
        if not given:
            raise _curve_error("Rps curve must have at least 1 point")
        if len(given) > REWARD_CURVE_POINTS:
            raise _curve_error(
                f"Reward rate curve must have at most {REWARD_CURVE_POINTS} points"
            )
        padding = [_UNUSED_POINT] * (REWARD_CURVE_POINTS - len(given))
        curve = cls(given + padding)
        curve.validate()
        return curve

    def set_constant(self, rps: int) -> None:
        self.points = RewardScheduleCurve.from_constant(rps).points

    def set_point(self, idx: int, point: RewardPerTimeUnitPoint) -> None:
        self.points[idx] = point

    def validate(self) -> None:
        """Raise FarmError if the points do not form a valid curve."""
        pts = self.points
        if any(nxt.ts_start < cur.ts_start for cur, nxt in pairwise(pts)):
            raise _curve_error("Rps curve points must be sorted by timestamp")

        found_max = False
        for pt in pts:
            if pt.ts_start == U64_MAX:
                found_max = True
            elif found_max:
                raise _curve_error(
                    "Rps curve points with a timestamp lower than the maximum "
                    "must never follow a maximum timestamp"
                )

        if any(
            cur.ts_start == nxt.ts_start and cur.ts_start != U64_MAX
            for cur, nxt in pairwise(pts)
        ):
            raise _curve_error("Rps curve points cannot have the same timestamp")

        if pts[0].ts_start == U64_MAX:
            raise _curve_error("Rps curve points cannot start with the maximum timestamp")

    def _most_recent_curve_starting_point(self, last_issued_ts: int) -> int:
        for i, point in enumerate(self.points):
            if point.ts_start > last_issued_ts:
                if i > 0:
                    return i - 1
                raise _curve_error("first point has ts_start > last_issued_ts")
        return len(self.points) - 1

    def get_cumulative_amount_issued_since_last_ts(
        self, last_issued_ts: int, current_ts: int
    ) -> int:
        """Return the rewards issued by the curve between two timestamps."""
        if last_issued_ts > current_ts:
            raise FarmError(
                ErrorCode.INVALID_TIMESTAMP,
                "last_issued_ts should be less than current_ts",
            )

        start_index = self._most_recent_curve_starting_point(last_issued_ts)
        following = self.points[start_index + 1 :] + [None]
        cumulative = 0
        for point, nxt in zip(self.points[start_index:], following):
            if point.ts_start >= current_ts:
                break
            start_ts = max(point.ts_start, last_issued_ts)
            if nxt is not None and nxt.ts_start < current_ts:
                end_ts = nxt.ts_start
            else:
                end_ts = current_ts
            period_amount = point.reward_per_time_unit * (end_ts - start_ts)
            if period_amount > U64_MAX:
                raise OverflowError("attempt to multiply with overflow")
            cumulative += period_amount
            if cumulative > U64_MAX:
                raise OverflowError("attempt to add with overflow")
        return cumulative

    def get_current_rps(self, current_ts: int) -> int:
        index = self._most_recent_curve_starting_point(current_ts)
        return self.points[index].reward_per_time_unit


@dataclass
class TokenInfo:
    mint: bytes = DEFAULT_PUBKEY
    decimals: int = 0
    token_program: bytes = DEFAULT_PUBKEY


@dataclass
class RewardInfo:
    token: TokenInfo = field(default_factory=TokenInfo)
    rewards_vault: bytes = DEFAULT_PUBKEY
    rewards_available: int = 0
    reward_schedule_curve: RewardScheduleCurve = field(
        default_factory=RewardScheduleCurve
    )
    min_claim_duration_seconds: int = 0
    last_issuance_ts: int = 0
    rewards_issued_unclaimed: int = 0
    rewards_issued_cumulative: int = 0
    reward_per_share_scaled: int = 0
    placeholder_0: int = 0
    reward_type: RewardType = RewardType.PROPORTIONAL
    rewards_per_second_decimals: int = 0

    @property
    def reward_per_share(self) -> WadDecimal:
        return WadDecimal.from_scaled_val(self.reward_per_share_scaled)

    @reward_per_share.setter
    def reward_per_share(self, value: WadDecimal) -> None:
        self.reward_per_share_scaled = value.to_scaled_val()

    def is_initialised(self) -> bool:
        return self.rewards_vault != DEFAULT_PUBKEY

    def has_rewards_available(self) -> bool:
        return self.rewards_available > 0


@dataclass
class GlobalConfig:
    global_admin: bytes = DEFAULT_PUBKEY
    treasury_fee_bps: int = 0
    treasury_vaults_authority: bytes = DEFAULT_PUBKEY
    treasury_vaults_authority_bump: int = 0
    pending_global_admin: bytes = DEFAULT_PUBKEY


def _reward_infos() -> list[RewardInfo]:
    return [RewardInfo() for _ in range(MAX_REWARDS_TOKENS)]


@dataclass
class FarmState:
    farm_admin: bytes = DEFAULT_PUBKEY
    global_config: bytes = DEFAULT_PUBKEY
    token: TokenInfo = field(default_factory=TokenInfo)
    reward_infos: list[RewardInfo] = field(default_factory=_reward_infos)
    num_reward_tokens: int = 0
    num_users: int = 0
    total_staked_amount: int = 0
    farm_vault: bytes = DEFAULT_PUBKEY
    farm_vaults_authority: bytes = DEFAULT_PUBKEY
    farm_vaults_authority_bump: int = 0
    delegate_authority: bytes = DEFAULT_PUBKEY
    time_unit: int = TimeUnit.SECONDS
    is_farm_frozen: bool = False
    is_farm_delegated: bool = False
    withdraw_authority: bytes = DEFAULT_PUBKEY
    deposit_warmup_period: int = 0
    withdrawal_cooldown_period: int = 0
    total_active_stake_scaled: int = 0
    total_pending_stake_scaled: int = 0
    total_pending_amount: int = 0
    slashed_amount_current: int = 0
    slashed_amount_cumulative: int = 0
    slashed_amount_spill_address: bytes = DEFAULT_PUBKEY
    locking_mode: int = LockingMode.NONE
    locking_start_timestamp: int = 0
    locking_duration: int = 0
    locking_early_withdrawal_penalty_bps: int = 0
    deposit_cap_amount: int = 0
    scope_prices: bytes = DEFAULT_PUBKEY
    scope_oracle_price_id: int = U64_MAX
    scope_oracle_max_age: int = U64_MAX
    pending_farm_admin: bytes = DEFAULT_PUBKEY
    strategy_id: bytes = DEFAULT_PUBKEY
    delegated_rps_admin: bytes = DEFAULT_PUBKEY
    vault_id: bytes = DEFAULT_PUBKEY

    @property
    def total_active_stake(self) -> WadDecimal:
        return WadDecimal.from_scaled_val(self.total_active_stake_scaled)

    @total_active_stake.setter
    def total_active_stake(self, value: WadDecimal) -> None:
        self.total_active_stake_scaled = value.to_scaled_val()

    @property
    def total_pending_stake(self) -> WadDecimal:
        return WadDecimal.from_scaled_val(self.total_pending_stake_scaled)

    @total_pending_stake.setter
    def total_pending_stake(self, value: WadDecimal) -> None:
        self.total_pending_stake_scaled = value.to_scaled_val()

    def is_delegated(self) -> bool:
        return self.delegate_authority != DEFAULT_PUBKEY

    def get_locking_mode(self) -> LockingMode:
        return LockingMode(self.locking_mode)

    def can_accept_deposit(
        self, amount: int, scope_price: DatedPrice | None, ts: int
    ) -> bool:
        """Return whether adding `amount` keeps the farm within its deposit cap."""
        unadjusted_total = self.total_staked_amount + amount
        if unadjusted_total > U64_MAX:
            raise OverflowError("attempt to add with overflow")

        if self.scope_oracle_price_id == U64_MAX:
            final_amount = unadjusted_total
        else:
            if scope_price is None:
                raise FarmError(ErrorCode.MISSING_SCOPE_PRICES)
            age = ts - scope_price.unix_timestamp
            if age < 0:
                raise OverflowError("attempt to subtract with overflow")
            if age > self.scope_oracle_max_age:
                logger.debug(
                    "ts=%s price_ts=%s max_age=%s",
                    ts,
                    scope_price.unix_timestamp,
                    self.scope_oracle_max_age,
                )
                raise FarmError(ErrorCode.SCOPE_ORACLE_PRICE_TOO_OLD)
            logger.debug("Price: %r", scope_price)
            final_amount = (
                unadjusted_total
                * scope_price.price.value
                // ten_pow(scope_price.price.exp)
            )
            if final_amount > U64_MAX:
                raise OverflowError("price-adjusted total does not fit in 64 bits")

        return self.deposit_cap_amount == 0 or final_amount <= self.deposit_cap_amount


def _zeros() -> list[int]:
    return [0] * MAX_REWARDS_TOKENS


@dataclass
class UserState:
    user_id: int = 0
    farm_state: bytes = DEFAULT_PUBKEY
    owner: bytes = DEFAULT_PUBKEY
    is_farm_delegated: bool = False
    rewards_tally_scaled: list[int] = field(default_factory=_zeros)
    rewards_issued_unclaimed: list[int] = field(default_factory=_zeros)
    last_claim_ts: list[int] = field(default_factory=_zeros)
    active_stake_scaled: int = 0
    pending_deposit_stake_scaled: int = 0
    pending_deposit_stake_ts: int = 0
    pending_withdrawal_unstake_scaled: int = 0
    pending_withdrawal_unstake_ts: int = 0
    bump: int = 0
    delegatee: bytes = DEFAULT_PUBKEY
    last_stake_ts: int = 0

    @property
    def active_stake(self) -> WadDecimal:
        return WadDecimal.from_scaled_val(self.active_stake_scaled)

    @active_stake.setter
    def active_stake(self, value: WadDecimal) -> None:
        self.active_stake_scaled = value.to_scaled_val()

    @property
    def pending_deposit_stake(self) -> WadDecimal:
        return WadDecimal.from_scaled_val(self.pending_deposit_stake_scaled)

    @pending_deposit_stake.setter
    def pending_deposit_stake(self, value: WadDecimal) -> None:
        self.pending_deposit_stake_scaled = value.to_scaled_val()

    @property
    def pending_withdrawal_unstake(self) -> WadDecimal:
        return WadDecimal.from_scaled_val(self.pending_withdrawal_unstake_scaled)

    @pending_withdrawal_unstake.setter
    def pending_withdrawal_unstake(self, value: WadDecimal) -> None:
        self.pending_withdrawal_unstake_scaled = value.to_scaled_val()

    def rewards_tally(self, index: int) -> WadDecimal:
        """Return the reward tally for a reward index as a decimal."""
        return WadDecimal.from_scaled_val(self.rewards_tally_scaled[index])