"""Constants and defaults for the crypt vault engine."""

TOTAL_BASIS_POINTS = 100_00
SECONDS_PER_YEAR = 365 * 24 * 60 * 60
MAX_UINT256 = 2**256 - 1

# getPricePerFullShare() is scaled to one whole share (18 decimals) regardless of want decimals.
PRICE_PER_SHARE_SCALE = 10**18

# MasterChef-style reward accumulators carry 12 extra decimals of precision.
ACC_REWARD_PRECISION = 10**12

DEFAULT_DEPOSIT_FEE_BPS = 0
# "securityFee" in Solidity crypts: 0.1% of every withdrawal stays in the vault.
DEFAULT_WITHDRAW_FEE_BPS = 10

DEFAULT_TREASURY_FEE_BPS = 300
DEFAULT_STRATEGIST_FEE_BPS = 100
DEFAULT_CALL_FEE_BPS = 50

HARVEST_LOG_CAPACITY = 30
DEFAULT_HARVEST_LOG_CADENCE = 60  # seconds

# 2022-01-01 00:00:00 UTC, deterministic clock start for simulations
GENESIS_TIMESTAMP = 1_640_995_200

# Persistence
STATE_DIR_NAME = ".crypt_harvest"
STATE_VERSION = "1"  # Increment when the snapshot layout changes
DEFAULT_STATE_FILE = "ledger.json"

CONFIG_ENV_VAR = "CRYPT_HARVEST_CONFIG"
