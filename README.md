# kfarms

An in-memory accounting engine for staking farms. A farm holds one staked
token and up to ten reward tokens (`kfarms.consts.MAX_REWARDS_TOKENS`).
Rewards are issued over time according to a piecewise-constant schedule and
shared among stakers in proportion to their stake shares. The package models
farm, user and global configuration state as plain dataclasses and provides
the operations that change them.

It has no runtime dependencies.

## Installation

```
pip install kfarms
```

With the test dependencies:

```
pip install "kfarms[test]"
```

## Quick start

```python
from kfarms import rewards, users
from kfarms.state import FarmState, GlobalConfig, RewardScheduleCurve, UserState

farm = FarmState()
config = GlobalConfig()
alice = UserState()

mint = b"\x02" * 32

# Register a reward token at t=0 and fund it.
rewards.initialize_reward(farm, reward_vault=b"\x01" * 32, mint=mint,
                          mint_decimals=6, mint_token_program=b"\x03" * 32, ts=0)
rewards.add_reward(farm, None, mint, 0, 1_000_000, ts=0)
farm.reward_infos[0].reward_schedule_curve = RewardScheduleCurve.from_constant(10)

# Create a user and stake 1000 units at t=0.
users.initialize_user(farm, alice, owner_key=b"\x04" * 32,
                      farm_state_key=b"\x05" * 32, ts=0)
users.stake(farm, alice, None, 1000, current_ts=0)

# After 100 time units, harvest reward 0.
effects = users.harvest(farm, alice, config, None, 0, ts=100)
print(effects.reward_user, effects.reward_treasury)  # 1000 0
```

Addresses (mints, vaults, admins and so on) are 32-byte `bytes` values;
`kfarms.state.DEFAULT_PUBKEY` (all zeros) means "not set".

## Concepts

- **Stake shares.** Stake is held as `kfarms.numeric.WadDecimal`, a
  non-negative fixed-point number with 18 decimal places. Token amounts are
  converted to and from shares by `kfarms.stake.convert_amount_to_stake` and
  `convert_stake_to_amount`, so tokens added with
  `rewards.deposit_to_farm_vault` raise the value of every active share.
- **Reward schedule.** `kfarms.state.RewardScheduleCurve` holds up to 20
  `RewardPerTimeUnitPoint`s, sorted by start time. `validate` checks the
  curve; `get_cumulative_amount_issued_since_last_ts` returns what it issues
  over a window; `get_current_rps` returns the current rate.
- **Reward types.** `RewardType.PROPORTIONAL` issues the curve amount;
  `RewardType.CONSTANT` multiplies it by the total staked amount. The result
  is divided by `10 ** rewards_per_second_decimals`, capped by
  `rewards_available`, and added to the reward-per-share.
- **Oracle prices.** If `FarmState.scope_oracle_price_id` is not the 64-bit
  maximum (its default), issued rewards and deposit-cap checks are scaled by
  a `DatedPrice` (`value * 10 ** -exp`) that must not be older than
  `scope_oracle_max_age`. `kfarms.scope.load_scope_price` picks that price out
  of an `OraclePrices` account after checking its key.
- **Warmup and cooldown.** With a `deposit_warmup_period`, stakes are pending
  until the period ends and are activated by `users.user_refresh_state` or the
  next `users.stake`. `users.unstake` moves shares into a pending withdrawal
  that `users.withdraw_unstaked_deposits` releases after
  `withdrawal_cooldown_period`.
- **Locking.** `LockingMode.CONTINUOUS` (counted from the user's last stake)
  and `LockingMode.WITH_EXPIRY` (counted from `locking_start_timestamp`)
  charge an early-withdrawal penalty that decays linearly to zero at the end
  of `locking_duration` (`kfarms.penalty`). Penalties accumulate in
  `slashed_amount_current`, which `rewards.withdraw_slashed_amount` pays out
  and resets.
- **Delegated farms.** A farm with a `delegate_authority` is delegated; there
  `users.set_stake` sets each user's stake directly, one share per token.
- **Treasury fee.** `users.harvest` sends `treasury_fee_bps` of a harvested
  reward to the treasury and the rest to the user.

## Configuration

`rewards.update_global_config(config, key, value)` takes a
`GlobalConfigOption` and a byte string: a 32-byte address for
`SET_PENDING_GLOBAL_ADMIN`, or a little-endian 64-bit value (at most 10000)
for `SET_TREASURY_FEE_BPS`.

`rewards.update_farm_config(farm, scope_price, mode, data, clock)` takes a
`FarmConfigOption`, encoded data and a `kfarms.state.Clock`. Values are
little-endian: 64-bit for most numeric options, 32-bit for the warmup and
cooldown periods, 32 bytes for addresses. Reward options
(`UPDATE_REWARD_RPS`, `UPDATE_REWARD_MIN_CLAIM_DURATION`, `REWARD_TYPE`,
`RPS_DECIMALS`, `UPDATE_REWARD_SCHEDULE_CURVE_POINTS`) start with a 64-bit
reward index; curve points are a 32-bit count followed by that many
(start, rate) pairs of 64-bit values. The farm's `time_unit` chooses whether
the clock's Unix timestamp or slot is used.

## Errors

Rejected operations raise `kfarms.errors.FarmError`; its `code` attribute is
a member of `kfarms.errors.ErrorCode` (an `IntEnum` numbered from 6000, each
with a `message`), for example `ErrorCode.DEPOSIT_CAP_REACHED` or
`ErrorCode.MIN_CLAIM_DURATION_NOT_REACHED`. Arithmetic that leaves its
integer range raises `OverflowError`; broken preconditions, such as
unstaking more shares than held or badly sized configuration data, raise
`ValueError`.

## Modules

- `kfarms.errors`: `ErrorCode` and `FarmError`.
- `kfarms.consts`: limits, seeds, account sizes and integer bounds.
- `kfarms.effects`: frozen result records returned by operations.
- `kfarms.numeric`: `WadDecimal`, `ten_pow`, `full_decimal_mul_div`,
  `u64_mul_div`.
- `kfarms.penalty`: `get_withdrawal_penalty_bps`,
  `apply_early_withdrawal_penalty`.
- `kfarms.state`: enums, `Clock`, prices, reward curves, `RewardInfo`,
  `GlobalConfig`, `FarmState`, `UserState`.
- `kfarms.stake`: share accounting, with `user_stake_view` and
  `farm_stake_view` context managers.
- `kfarms.scope`: `OraclePrices` and `load_scope_price`.
- `kfarms.rewards`: farm configuration, reward funding and issuance, farm
  vault deposits and withdrawals.
- `kfarms.users`: user set-up, staking, unstaking, refreshing, harvesting
  and one-off rewards.

## What it does not do

The package only keeps the books. It moves no tokens: operations return the
amounts to transfer (for example `HarvestEffects`, `WithdrawEffects`) and
leave the transfer to the caller. It does not check who is allowed to call
an operation, does not store or serialize account state, and has no command
line.

## Running the tests

```
pytest
```