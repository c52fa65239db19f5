import pytest
from hypothesis import given, strategies as st

from kfarms.errors import ErrorCode, FarmError
from kfarms.numeric import WadDecimal
from kfarms.penalty import apply_early_withdrawal_penalty
from kfarms.stake import (
    activate_pending_stake,
    add_active_stake,
    add_pending_deposit_stake,
    add_pending_withdrawal_stake,
    convert_amount_to_stake,
    convert_stake_to_amount,
    farm_stake_view,
    increase_total_amount,
    remove_active_stake,
    remove_pending_deposit_stake,
    remove_pending_withdrawal_stake,
    unstake,
    user_stake_view,
    withdraw_farm,
)
from kfarms.state import FarmState, LockingMode, UserState


def test_convert_amount_zero_is_zero_stake():
    assert convert_amount_to_stake(0, WadDecimal.from_int(5), 5) == WadDecimal.zero()


def test_convert_amount_on_empty_pool_is_one_to_one():
    assert convert_amount_to_stake(42, WadDecimal.zero(), 0) == WadDecimal.from_int(42)


def test_convert_amount_inconsistent_totals_raises():
    with pytest.raises(ValueError):
        convert_amount_to_stake(10, WadDecimal.from_int(3), 0)


def test_convert_stake_zero_is_zero_amount():
    assert convert_stake_to_amount(WadDecimal.zero(), WadDecimal.from_int(1), 9, True) == 0


def test_convert_stake_with_zero_total_stake_returns_total_amount():
    assert convert_stake_to_amount(WadDecimal.from_int(1), WadDecimal.zero(), 77, False) == 77


@given(
    amount=st.integers(min_value=1, max_value=10**12),
    total_stake=st.integers(min_value=1, max_value=10**12),
    total_amount=st.integers(min_value=1, max_value=10**12),
)
def test_amount_stake_round_trip_bounds(amount, total_stake, total_amount):
    stake = convert_amount_to_stake(amount, WadDecimal.from_int(total_stake), total_amount)
    down = convert_stake_to_amount(stake, WadDecimal.from_int(total_stake), total_amount, False)
    up = convert_stake_to_amount(stake, WadDecimal.from_int(total_stake), total_amount, True)
    assert down <= amount <= up + 1
    assert up - down <= 1


def test_add_active_stake_on_empty_farm():
    farm, user = FarmState(), UserState()
    gained = add_active_stake(user, farm, 100)
    assert gained == WadDecimal.from_int(100)
    assert user.active_stake == gained
    assert farm.total_active_stake == gained
    assert farm.total_staked_amount == 100


def test_second_staker_gets_proportional_shares():
    farm, first, second = FarmState(), UserState(), UserState()
    add_active_stake(first, farm, 100)
    increase_total_amount(farm, 100)
    gained = add_active_stake(second, farm, 100)
    assert gained < first.active_stake
    worth = convert_stake_to_amount(gained, farm.total_active_stake, farm.total_staked_amount, False)
    assert worth == 100
    assert farm.total_active_stake == first.active_stake + second.active_stake


def test_pending_deposit_then_activate():
    farm, user = FarmState(), UserState()
    pending = add_pending_deposit_stake(user, farm, 500)
    assert user.pending_deposit_stake == pending
    assert farm.total_pending_amount == 500
    amount, gained = activate_pending_stake(user, farm)
    assert amount == 500
    assert user.pending_deposit_stake == WadDecimal.zero()
    assert farm.total_pending_amount == 0
    assert farm.total_pending_stake == WadDecimal.zero()
    assert user.active_stake == gained
    assert farm.total_staked_amount == 500


def test_remove_pending_deposit_returns_amount():
    farm, user = FarmState(), UserState()
    add_pending_deposit_stake(user, farm, 321)
    assert remove_pending_deposit_stake(user, farm) == 321
    assert user.pending_deposit_stake_scaled == 0


def test_remove_active_stake_more_than_owned_raises():
    farm, user = FarmState(), UserState()
    add_active_stake(user, farm, 10)
    with pytest.raises(ValueError):
        remove_active_stake(user, farm, WadDecimal.from_int(11))


def test_remove_active_stake_returns_amount():
    farm, user = FarmState(), UserState()
    add_active_stake(user, farm, 80)
    assert remove_active_stake(user, farm, user.active_stake) == 80
    assert farm.total_staked_amount == 0
    assert farm.total_active_stake == WadDecimal.zero()


def test_unstake_without_locking_then_withdraw():
    farm, user = FarmState(), UserState()
    add_active_stake(user, farm, 1000)
    amount, gained, penalty = unstake(user, farm, user.active_stake, 5)
    assert (amount, penalty) == (1000, 0)
    assert user.pending_withdrawal_unstake == gained
    assert farm.total_pending_amount == 1000
    assert remove_pending_withdrawal_stake(user, farm) == 1000
    assert user.pending_withdrawal_unstake == WadDecimal.zero()
    assert farm.total_pending_amount == 0


def test_unstake_with_expiry_applies_penalty():
    farm, user = FarmState(), UserState()
    farm.locking_mode = LockingMode.WITH_EXPIRY
    farm.locking_start_timestamp = 0
    farm.locking_duration = 100
    farm.locking_early_withdrawal_penalty_bps = 5000
    add_active_stake(user, farm, 1000)
    amount, _, penalty = unstake(user, farm, user.active_stake, 50)
    assert (amount, penalty) == apply_early_withdrawal_penalty(100, 0, 50, 5000, 1000)
    assert penalty > 0
    assert amount + penalty == 1000
    assert farm.total_pending_amount == amount


def test_unstake_continuous_uses_last_stake_ts():
    farm, user = FarmState(), UserState()
    farm.locking_mode = LockingMode.CONTINUOUS
    farm.locking_duration = 100
    farm.locking_early_withdrawal_penalty_bps = 5000
    user.last_stake_ts = 1000
    add_active_stake(user, farm, 400)
    amount, _, penalty = unstake(user, farm, user.active_stake, 1100)
    assert (amount, penalty) == (400, 0)


def test_unstake_early_with_zero_penalty_is_rejected():
    farm, user = FarmState(), UserState()
    farm.locking_mode = LockingMode.WITH_EXPIRY
    farm.locking_duration = 100
    add_active_stake(user, farm, 400)
    with pytest.raises(FarmError) as info:
        unstake(user, farm, user.active_stake, 10)
    assert info.value.code is ErrorCode.EARLY_WITHDRAWAL_NOT_ALLOWED


def test_add_pending_withdrawal_stake_accumulates():
    farm, user = FarmState(), UserState()
    first = add_pending_withdrawal_stake(user, farm, 10)
    second = add_pending_withdrawal_stake(user, farm, 10)
    assert user.pending_withdrawal_unstake == first + second
    assert farm.total_pending_amount == 20


def test_increase_total_amount():
    farm = FarmState(total_staked_amount=5)
    increase_total_amount(farm, 7)
    assert farm.total_staked_amount == 12


def test_increase_total_amount_overflow():
    farm = FarmState(total_staked_amount=(1 << 64) - 1)
    with pytest.raises(OverflowError):
        increase_total_amount(farm, 1)


def test_withdraw_farm_all_freezes():
    farm = FarmState(total_staked_amount=300, total_pending_amount=200)
    effects = withdraw_farm(farm, 10_000)
    assert effects.farm_to_freeze is True
    assert effects.amount_to_withdraw == 500
    assert (farm.total_staked_amount, farm.total_pending_amount) == (0, 0)


@given(
    active=st.integers(min_value=0, max_value=10**15),
    pending=st.integers(min_value=0, max_value=10**15),
    fraction=st.floats(min_value=0, max_value=0.999),
)
def test_withdraw_farm_partial_conserves_tokens(active, pending, fraction):
    total = active + pending
    request = int(total * fraction)
    if request >= total:
        request = max(total - 1, 0)
    farm = FarmState(total_staked_amount=active, total_pending_amount=pending)
    effects = withdraw_farm(farm, request)
    if total == 0:
        assert effects.farm_to_freeze is True
    else:
        assert effects.farm_to_freeze is False
        left = farm.total_staked_amount + farm.total_pending_amount
        assert left + effects.amount_to_withdraw == total
        assert effects.amount_to_withdraw <= request


def test_user_view_writes_back_shares_only():
    user = UserState(last_stake_ts=3)
    with user_stake_view(user) as view:
        view.active_stake = WadDecimal.from_int(2)
        view.last_stake_ts = 99
    assert user.active_stake == WadDecimal.from_int(2)
    assert user.last_stake_ts == 3


def test_farm_view_writes_back_totals():
    farm = FarmState()
    with farm_stake_view(farm) as view:
        view.total_pending_amount = 8
        view.total_active_stake = WadDecimal.from_int(4)
    assert farm.total_pending_amount == 8
    assert farm.total_active_stake == WadDecimal.from_int(4)