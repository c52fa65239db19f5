import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from kfarms.consts import MAX_REWARDS_TOKENS
from kfarms.errors import ErrorCode, FarmError
from kfarms.numeric import WadDecimal
from kfarms.rewards import add_reward, initialize_reward
from kfarms.state import (
    FarmState,
    GlobalConfig,
    LockingMode,
    RewardScheduleCurve,
    UserState,
)
from kfarms.users import (
    harvest,
    initialize_reward_ts_if_needed,
    initialize_user,
    reward_user_once,
    set_stake,
    stake,
    unstake,
    user_refresh_all_rewards,
    user_refresh_reward,
    user_refresh_state,
    withdraw_unstaked_deposits,
)

VAULT = b"\x01" * 32
MINT = b"\x02" * 32
PROGRAM = b"\x03" * 32
OWNER = b"\x04" * 32
FARM_KEY = b"\x05" * 32
DELEGATE = b"\x09" * 32
FUNDED = 1_000_000


def _farm_with_reward(rate=10, **kwargs):
    farm = FarmState(**kwargs)
    initialize_reward(farm, VAULT, MINT, 6, PROGRAM, 0)
    farm.reward_infos[0].reward_schedule_curve = RewardScheduleCurve.from_constant(rate)
    add_reward(farm, None, MINT, 0, FUNDED, 0)
    return farm


def _user(farm, ts=0):
    user = UserState()
    initialize_user(farm, user, OWNER, FARM_KEY, ts)
    return user


def test_initialize_user_sets_fields_and_counts():
    farm = FarmState(num_users=3)
    user = _user(farm, ts=42)
    assert user.user_id == 3
    assert farm.num_users == 4
    assert user.owner == OWNER
    assert user.farm_state == FARM_KEY
    assert user.last_claim_ts == [42] * MAX_REWARDS_TOKENS
    assert user.is_farm_delegated is False


def test_initialize_user_on_delegated_farm():
    farm = FarmState(delegate_authority=DELEGATE)
    user = _user(farm)
    assert user.is_farm_delegated is True


def test_initialize_reward_ts_only_when_nothing_staked():
    farm = _farm_with_reward()
    initialize_reward_ts_if_needed(farm, 77)
    assert farm.reward_infos[0].last_issuance_ts == 77
    assert farm.reward_infos[1].last_issuance_ts == 0
    farm.total_staked_amount = 5
    initialize_reward_ts_if_needed(farm, 99)
    assert farm.reward_infos[0].last_issuance_ts == 77


def test_stake_without_warmup_is_active():
    farm = _farm_with_reward()
    user = _user(farm)
    effects = stake(farm, user, None, 1000, 100)
    assert effects.amount_to_stake == 1000
    assert user.active_stake == WadDecimal.from_int(1000)
    assert farm.total_staked_amount == 1000
    assert farm.total_active_stake == WadDecimal.from_int(1000)
    assert user.last_stake_ts == 100


def test_stake_with_warmup_becomes_active_after_refresh():
    farm = _farm_with_reward(deposit_warmup_period=50)
    user = _user(farm)
    stake(farm, user, None, 1000, 100)
    assert user.pending_deposit_stake_ts == 150
    assert user.active_stake_scaled == 0
    assert farm.total_pending_amount == 1000

    user_refresh_state(farm, user, None, 120)
    assert user.active_stake_scaled == 0

    user_refresh_state(farm, user, None, 150)
    assert user.active_stake == WadDecimal.from_int(1000)
    assert user.pending_deposit_stake_scaled == 0
    assert farm.total_pending_amount == 0
    assert farm.total_staked_amount == 1000


def test_stake_respects_deposit_cap():
    farm = _farm_with_reward(deposit_cap_amount=100)
    user = _user(farm)
    with pytest.raises(FarmError) as info:
        stake(farm, user, None, 101, 10)
    assert info.value.code is ErrorCode.DEPOSIT_CAP_REACHED
    stake(farm, user, None, 100, 10)
    assert farm.total_staked_amount == 100


def test_single_user_harvests_everything_issued():
    farm = _farm_with_reward(rate=10)
    user = _user(farm)
    stake(farm, user, None, 1000, 100)
    effects = harvest(farm, user, GlobalConfig(), None, 0, 200)
    info = farm.reward_infos[0]
    assert effects.reward_user == 1000
    assert effects.reward_treasury == 0
    assert effects.reward_user == info.rewards_issued_cumulative
    assert info.rewards_issued_unclaimed == 0
    assert info.rewards_available + info.rewards_issued_cumulative == FUNDED
    assert user.rewards_issued_unclaimed[0] == 0
    assert user.last_claim_ts[0] == 200


def test_equal_stakes_share_rewards_equally():
    farm = _farm_with_reward(rate=10)
    alice = _user(farm)
    bob = _user(farm)
    stake(farm, alice, None, 1000, 100)
    stake(farm, bob, None, 1000, 100)
    a = harvest(farm, alice, GlobalConfig(), None, 0, 200)
    b = harvest(farm, bob, GlobalConfig(), None, 0, 200)
    assert a.reward_user == b.reward_user
    assert a.reward_user + b.reward_user == farm.reward_infos[0].rewards_issued_cumulative


def test_harvest_splits_treasury_fee():
    farm = _farm_with_reward(rate=10)
    user = _user(farm)
    stake(farm, user, None, 1000, 100)
    effects = harvest(farm, user, GlobalConfig(treasury_fee_bps=2500), None, 0, 200)
    total = farm.reward_infos[0].rewards_issued_cumulative
    assert effects.reward_user + effects.reward_treasury == total
    assert 0 < effects.reward_treasury < effects.reward_user


def test_harvest_min_claim_duration():
    farm = _farm_with_reward(rate=10)
    farm.reward_infos[0].min_claim_duration_seconds = 1000
    user = _user(farm)
    stake(farm, user, None, 1000, 100)
    with pytest.raises(FarmError) as info:
        harvest(farm, user, GlobalConfig(), None, 0, 200)
    assert info.value.code is ErrorCode.MIN_CLAIM_DURATION_NOT_REACHED


def test_refresh_without_stake_gives_nothing():
    farm = _farm_with_reward(rate=10)
    user = _user(farm)
    user_refresh_reward(farm, user, 0)
    user_refresh_all_rewards(farm, user)
    assert user.rewards_issued_unclaimed[0] == 0
    assert user.rewards_tally_scaled[0] == 0


def test_unstake_and_withdraw_returns_stake():
    farm = _farm_with_reward(rate=10)
    user = _user(farm)
    stake(farm, user, None, 1000, 100)
    unstake(farm, user, None, user.active_stake, 150)
    assert user.active_stake_scaled == 0
    assert user.rewards_tally_scaled[0] == 0
    assert user.rewards_issued_unclaimed[0] == farm.reward_infos[0].rewards_issued_unclaimed
    effects = withdraw_unstaked_deposits(farm, user, 150)
    assert effects.amount_to_withdraw == 1000
    assert farm.total_pending_amount == 0
    assert farm.total_staked_amount == 0
    assert user.pending_withdrawal_unstake_scaled == 0


def test_unstake_nothing_raises():
    farm = _farm_with_reward()
    user = _user(farm)
    with pytest.raises(FarmError) as info:
        unstake(farm, user, None, WadDecimal.from_int(5), 10)
    assert info.value.code is ErrorCode.NOTHING_TO_UNSTAKE


def test_unstake_cooldown_rules():
    farm = _farm_with_reward(withdrawal_cooldown_period=50)
    user = _user(farm)
    stake(farm, user, None, 1000, 100)
    unstake(farm, user, None, WadDecimal.from_int(400), 100)
    assert user.pending_withdrawal_unstake_ts == 150

    with pytest.raises(FarmError) as info:
        withdraw_unstaked_deposits(farm, user, 120)
    assert info.value.code is ErrorCode.UNSTAKE_NOT_ELAPSED

    unstake(farm, user, None, WadDecimal.from_int(100), 120)
    assert user.pending_withdrawal_unstake_ts == 170

    with pytest.raises(FarmError) as info:
        unstake(farm, user, None, WadDecimal.from_int(100), 180)
    assert info.value.code is ErrorCode.PENDING_WITHDRAWAL_NOT_WITHDRAWN_YET

    effects = withdraw_unstaked_deposits(farm, user, 180)
    assert effects.amount_to_withdraw == 500
    assert user.active_stake == WadDecimal.from_int(500)


def test_withdraw_with_nothing_pending():
    farm = _farm_with_reward()
    user = _user(farm)
    with pytest.raises(FarmError) as info:
        withdraw_unstaked_deposits(farm, user, 10)
    assert info.value.code is ErrorCode.NOTHING_TO_WITHDRAW


def test_locked_unstake_is_slashed():
    farm = FarmState(
        locking_mode=LockingMode.WITH_EXPIRY,
        locking_start_timestamp=0,
        locking_duration=1000,
        locking_early_withdrawal_penalty_bps=5000,
    )
    user = _user(farm)
    stake(farm, user, None, 1000, 500)
    unstake(farm, user, None, user.active_stake, 500)
    withdrawn = withdraw_unstaked_deposits(farm, user, 500).amount_to_withdraw
    assert farm.slashed_amount_current > 0
    assert withdrawn + farm.slashed_amount_current == 1000
    assert farm.slashed_amount_cumulative == farm.slashed_amount_current


def test_continuous_lock_without_penalty_forbids_early_unstake():
    farm = FarmState(
        locking_mode=LockingMode.CONTINUOUS,
        locking_duration=100,
        locking_early_withdrawal_penalty_bps=0,
    )
    user = _user(farm)
    stake(farm, user, None, 1000, 10)
    with pytest.raises(FarmError) as info:
        unstake(farm, user, None, user.active_stake, 20)
    assert info.value.code is ErrorCode.EARLY_WITHDRAWAL_NOT_ALLOWED


def test_set_stake_delegated_up_and_down():
    farm = FarmState(delegate_authority=DELEGATE)
    user = _user(farm)
    set_stake(farm, user, 500, 10)
    assert user.active_stake_scaled == 500
    assert farm.total_staked_amount == 500
    assert farm.total_active_stake_scaled == 500
    assert user.last_stake_ts == 10

    set_stake(farm, user, 200, 20)
    assert user.active_stake_scaled == 200
    assert farm.total_staked_amount == 200
    assert farm.total_active_stake_scaled == 200
    assert user.last_stake_ts == 10

    set_stake(farm, user, 200, 30)
    assert farm.total_staked_amount == 200


def test_set_stake_delegated_accrues_rewards():
    farm = _farm_with_reward(rate=10, delegate_authority=DELEGATE)
    user = _user(farm)
    set_stake(farm, user, 500, 100)
    user_refresh_state(farm, user, None, 200)
    info = farm.reward_infos[0]
    assert info.rewards_issued_cumulative > 0
    assert user.rewards_issued_unclaimed[0] == info.rewards_issued_unclaimed


def test_set_stake_requires_no_warmup():
    farm = FarmState(delegate_authority=DELEGATE, deposit_warmup_period=5)
    user = _user(farm)
    with pytest.raises(ValueError):
        set_stake(farm, user, 10, 1)


def test_set_stake_respects_cap():
    farm = FarmState(delegate_authority=DELEGATE, deposit_cap_amount=10)
    user = _user(farm)
    with pytest.raises(FarmError) as info:
        set_stake(farm, user, 11, 1)
    assert info.value.code is ErrorCode.DEPOSIT_CAP_REACHED


def test_reward_user_once_credits_counters():
    farm = _farm_with_reward()
    user = _user(farm)
    reward_user_once(farm, user, 0, 77)
    info = farm.reward_infos[0]
    assert info.rewards_issued_unclaimed == 77
    assert info.rewards_issued_cumulative == 77
    assert user.rewards_issued_unclaimed[0] == 77


@settings(max_examples=50, deadline=None)
@given(
    a=st.integers(min_value=1, max_value=10**12),
    b=st.integers(min_value=1, max_value=10**12),
)
def test_two_users_get_their_stakes_back(a, b):
    farm = FarmState()
    alice = _user(farm)
    bob = _user(farm)
    stake(farm, alice, None, a, 1)
    stake(farm, bob, None, b, 1)
    unstake(farm, alice, None, alice.active_stake, 2)
    unstake(farm, bob, None, bob.active_stake, 2)
    assert withdraw_unstaked_deposits(farm, alice, 2).amount_to_withdraw == a
    assert withdraw_unstaked_deposits(farm, bob, 2).amount_to_withdraw == b
    assert farm.total_pending_amount == 0
    assert farm.total_staked_amount == 0