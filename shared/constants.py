"""Centralized constants"""

# Redis TTLs
REDIS_KEY_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
SESSION_RECORD_TTL_SECONDS = 24 * 60 * 60  # 1 day

# Pipeline limits
MAX_NODES_PER_PIPELINE = 1000
MAX_CONFIG_SIZE_BYTES = 10 * 1024   # 10KB
MAX_EXPRESSION_LENGTH = 500

# Expressions are evaluated inside the simulated runtime, never in-process
FORBIDDEN_EXPRESSION_NAMES = {'__import__', 'eval', 'exec', 'compile', 'open', 'globals', 'locals', 'vars', 'getattr', 'setattr', 'delattr', 'input', 'breakpoint'}

# Simulation
DEFAULT_SIMULATION_TIMEOUT_SECONDS = 60
MAX_SIMULATION_TIMEOUT_SECONDS = 600
MAX_LOG_LINE_BYTES = 8 * 1024
MAX_LOG_LINES = 5000
PERSISTED_LOG_LINES = 500
SESSION_RETENTION_SECONDS = 60

# Exit code sentinels for runs that did not exit on their own
EXIT_CODE_TIMEOUT = -1
EXIT_CODE_CANCELLED = -2
EXIT_CODE_OUTPUT_LIMIT = -3
EXIT_CODE_LAUNCH_FAILED = -4

# Log fan-out
SUBSCRIBER_BUFFER_SIZE = 1000

# Default ports when an edge omits them
DEFAULT_SOURCE_PORT = "out"
DEFAULT_TARGET_PORT = "in"

# Condition branch ports
CONDITION_TRUE_PORT = "out"
CONDITION_FALSE_PORT = "else"

# Kinds with special roles
TRIGGER_KINDS = {"cron-trigger", "http-trigger", "evm-log-trigger"}
EFFECT_KINDS = {"evm-write"}

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Chain selector name to RPC URL mapping (defaults)
DEFAULT_RPC_URLS = {
    "ethereum-testnet-sepolia": "https://ethereum-sepolia-rpc.publicnode.com",
    "ethereum-mainnet": "https://ethereum-rpc.publicnode.com",
    "arbitrum-testnet-sepolia": "https://arbitrum-sepolia-rpc.publicnode.com",
    "arbitrum-mainnet": "https://arbitrum-one-rpc.publicnode.com",
    "base-testnet-sepolia": "https://base-sepolia-rpc.publicnode.com",
    "base-mainnet": "https://base-rpc.publicnode.com",
    "avalanche-testnet-fuji": "https://avalanche-fuji-c-chain-rpc.publicnode.com",
    "avalanche-mainnet": "https://avalanche-c-chain-rpc.publicnode.com",
    "polygon-testnet-amoy": "https://polygon-amoy-bor-rpc.publicnode.com",
    "polygon-mainnet": "https://polygon-bor-rpc.publicnode.com",
    "optimism-testnet-sepolia": "https://optimism-sepolia-rpc.publicnode.com",
    "optimism-mainnet": "https://optimism-rpc.publicnode.com",
}
