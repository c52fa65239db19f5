"""Error codes and the exception raised by farm operations."""

from __future__ import annotations

from enum import IntEnum

ERROR_CODE_OFFSET = 6000


class ErrorCode(IntEnum):
    """Farm error codes, numbered from ERROR_CODE_OFFSET in declaration order."""

    def __new__(cls, message: str) -> "ErrorCode":
        value = ERROR_CODE_OFFSET + len(cls.__members__)
        member = int.__new__(cls, value)
        member._value_ = value
        member.message = message
        return member

    STAKE_ZERO = "Cannot stake 0 amount"
    UNSTAKE_ZERO = "Cannot unstake 0 amount"
    NOTHING_TO_UNSTAKE = "Nothing to unstake"
    NO_REWARD_TO_HARVEST = "No reward to harvest"
    NO_REWARD_IN_LIST = "Reward not present in reward list"
    REWARD_ALREADY_INITIALIZED = "Reward already initialized"
    MAX_REWARD_NUMBER_REACHED = "Max number of reward tokens reached"
    REWARD_DOES_NOT_EXIST = "Reward does not exist"
    WRONG_REWARD_VAULT_ACCOUNT = "Reward vault exists but the account is wrong"
    REWARD_VAULT_MISMATCH = "Reward vault pubkey does not match staking pool vault"
    REWARD_VAULT_AUTHORITY_MISMATCH = (
        "Reward vault authority pubkey does not match staking pool vault"
    )
    NOTHING_STAKED = "Nothing staked, cannot collect any rewards"
    INTEGER_OVERFLOW = "Integer overflow"
    CONVERSION_FAILURE = "Conversion failure"
    UNEXPECTED_ACCOUNT = "Unexpected account in instruction"
    OPERATION_FORBIDDEN = "Operation forbidden"
    MATH_OVERFLOW = "Mathematical operation with overflow"
    MIN_CLAIM_DURATION_NOT_REACHED = "Minimum claim duration has not been reached"
    REWARDS_VAULT_HAS_DELEGATE = "Reward vault has a delegate"
    REWARDS_VAULT_HAS_CLOSE_AUTHORITY = "Reward vault has a close authority"
    FARM_VAULT_HAS_DELEGATE = "Farm vault has a delegate"
    FARM_VAULT_HAS_CLOSE_AUTHORITY = "Farm vault has a close authority"
    REWARDS_TREASURY_VAULT_HAS_DELEGATE = "Reward vault has a delegate"
    REWARDS_TREASURY_VAULT_HAS_CLOSE_AUTHORITY = "Reward vault has a close authority"
    USER_ATA_REWARD_VAULT_MINT_MISSMATCH = (
        "User ata and reward vault have different mints"
    )
    USER_ATA_FARM_TOKEN_MINT_MISSMATCH = "User ata and farm token have different mints"
    TOKEN_FARM_TOKEN_MINT_MISSMATCH = "Token mint and farm token have different mints"
    REWARD_ATA_REWARD_MINT_MISSMATCH = "Reward ata mint is different than reward mint"
    REWARD_ATA_OWNER_NOT_PAYER = "Reward ata owner is different than payer"
    INVALID_GLOBAL_CONFIG_MODE = "Mode to update global_config is invalid"
    REWARD_INDEX_OUT_OF_RANGE = "Reward Index is higher than number of rewards"
    NOTHING_TO_WITHDRAW = "No tokens available to withdraw"
    USER_DELEGATED_FARM_NON_DELEGATED_MISSMATCH = (
        "user, user_ref, authority and payer must match for non-delegated farm"
    )
    AUTHORITY_FARM_DELEGATE_MISSMATCH = "Authority must match farm delegate authority"
    FARM_NOT_DELEGATED = "Farm not delegated, can not set stake"
    FARM_DELEGATED = "Operation not allowed for delegated farm"
    UNSTAKE_NOT_ELAPSED = (
        "Unstake lockup period is not elapsed. "
        "Deposit is locked until end of unstake period"
    )
    PENDING_WITHDRAWAL_NOT_WITHDRAWN_YET = (
        "Pending withdrawal already exist and not withdrawn yet"
    )
    DEPOSIT_ZERO = "Cannot deposit zero amount directly to farm vault"
    INVALID_CONFIG_VALUE = "Invalid config value"
    INVALID_PENALTY_PERCENTAGE = "Invalid penalty percentage"
    EARLY_WITHDRAWAL_NOT_ALLOWED = "Early withdrawal not allowed"
    INVALID_LOCKING_TIMESTAMPS = "Invalid locking timestamps"
    INVALID_RPS_CURVE_POINT = "Invalid reward rate curve point"
    INVALID_TIMESTAMP = "Invalid timestamp"
    DEPOSIT_CAP_REACHED = "Deposit cap reached"
    MISSING_SCOPE_PRICES = "Missing Scope Prices"
    SCOPE_ORACLE_PRICE_TOO_OLD = "Scope Oracle Price Too Old"
    INVALID_ORACLE_CONFIG = "Invalid Oracle Config"
    COULD_NOT_DESERIALIZE_SCOPE = "Could not deserialize scope"
    REWARD_ATA_OWNER_NOT_ADMIN = "Reward ata owner is different than farm admin"
    WITHDRAW_REWARD_ZERO_AVAILABLE = (
        "Cannot withdraw reward as available amount is zero"
    )
    REWARD_SCHEDULE_CURVE_SET = "Cannot withdraw reward as reward schedule is set"
    UNSUPPORTED_TOKEN_EXTENSION = (
        "Cannot initialize farm while having a mint with token22 "
        "and requested extensions"
    )
    INVALID_FARM_CONFIG_UPDATE_AUTHORITY = "Invalid authority for updating farm config"


class FarmError(Exception):
    """Raised when a farm operation is rejected."""

    def __init__(self, code: ErrorCode, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        text = f"{code.name} ({int(code)}): {code.message}"
        if detail:
            text = f"{text} - {detail}"
        super().__init__(text)