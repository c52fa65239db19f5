"""Fixed limits, seeds and account sizes of the farm program."""

MAX_REWARDS_TOKENS = 10
REWARD_CURVE_POINTS = 20
BPS_DIV_FACTOR = 10_000

BASE_SEED_FARM_VAULT = b"fvault"
BASE_SEED_REWARD_VAULT = b"rvault"
BASE_SEED_REWARD_TREASURY_VAULT = b"tvault"
BASE_SEED_FARM_VAULTS_AUTHORITY = b"authority"
BASE_SEED_TREASURY_VAULTS_AUTHORITY = b"authority"
BASE_SEED_USER_STATE = b"user"

SIZE_GLOBAL_CONFIG = 2136
SIZE_FARM_STATE = 8336
SIZE_USER_STATE = 920

U8_MAX = (1 << 8) - 1
U16_MAX = (1 << 16) - 1
U32_MAX = (1 << 32) - 1
U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1