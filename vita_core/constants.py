# vita_core/constants.py

SCHEMA_VERSION = "1.0"

NONCE_SIZE = 12
POSITION_KEY_SIZE = 32

# fixed little-endian widths for integer plaintexts
AMOUNT_WIDTH = 64   # unbounded-magnitude quantities (collateral, debt, prices)
SCALAR_WIDTH = 32   # bounded quantities

# 1 SOL in lamports (9 decimals)
DEFAULT_PRIVATE_MIN_COLLATERAL = 1_000_000_000

DEFAULT_COMPUTATION_TIMEOUT_S = 60.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_S = 0.5
DEFAULT_BATCH_SIZE = 10

COMPUTATION_CREATED_MARKER = "Computation created:"
