"""Early-withdrawal penalty for locked stakes."""

from __future__ import annotations

import logging

from .consts import BPS_DIV_FACTOR, U64_MAX
from .errors import ErrorCode, FarmError
from .numeric import u64_mul_div

logger = logging.getLogger(__name__)


def get_withdrawal_penalty_bps(
    timestamp_beginning: int,
    timestamp_now: int,
    timestamp_maturity: int,
    penalty_bps: int,
) -> int:
    """Return the penalty in basis points, decaying linearly to maturity."""
    if timestamp_maturity < timestamp_beginning:
        raise FarmError(ErrorCode.INVALID_LOCKING_TIMESTAMPS)

    if timestamp_now < timestamp_beginning:
        logger.debug("withdrawal before the locking period starts, no penalty")
        return 0

    if timestamp_now >= timestamp_maturity:
        logger.debug(
            "locking period over, no penalty ts_now=%s ts_maturity=%s",
            timestamp_now,
            timestamp_maturity,
        )
        return 0

    if penalty_bps > BPS_DIV_FACTOR:
        raise FarmError(ErrorCode.INVALID_PENALTY_PERCENTAGE)

    if penalty_bps in (0, BPS_DIV_FACTOR):
        raise FarmError(ErrorCode.EARLY_WITHDRAWAL_NOT_ALLOWED)

    time_remaining = timestamp_maturity - timestamp_now
    total_duration = timestamp_maturity - timestamp_beginning
    return penalty_bps * time_remaining // total_duration


def apply_early_withdrawal_penalty(
    locking_duration: int,
    locking_start: int,
    timestamp_now: int,
    penalty_bps: int,
    unstake_amount: int,
) -> tuple[int, int]:
    """Return (amount after penalty, penalty amount) for an unstake."""
    timestamp_maturity = locking_start + locking_duration
    if timestamp_maturity > U64_MAX:
        raise OverflowError("locking maturity timestamp overflow")

    bps = get_withdrawal_penalty_bps(
        locking_start, timestamp_now, timestamp_maturity, penalty_bps
    )
    penalty_amount = u64_mul_div(unstake_amount, bps, BPS_DIV_FACTOR)
    return unstake_amount - penalty_amount, penalty_amount