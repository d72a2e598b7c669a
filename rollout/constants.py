from pathlib import Path

#
# Filesystem
#

# relative to the working directory of the invocation
ARTIFACTS_DIR = Path("artifacts")
LEDGER_DIR = Path("deployments")
DEFAULT_ENV_FILE = Path(".env")

#
# Environment
#

ETHERSCAN_API_KEY_ENVVAR = "ETHERSCAN_API_KEY"
LEDGER_DIR_ENVVAR = "ROLLOUT_LEDGER_DIR"
ARTIFACTS_DIR_ENVVAR = "ROLLOUT_ARTIFACTS_DIR"
NETWORKS_FILE_ENVVAR = "ROLLOUT_NETWORKS_FILE"

#
# Networks
#

HARDHAT = "hardhat"
LOCALHOST = "localhost"
LOCAL_NETWORKS = [HARDHAT, LOCALHOST]

# name -> connection and explorer settings; secrets are referenced by env var name
NETWORKS = {
    HARDHAT: {
        "rpc_url": "http://127.0.0.1:8545",
        "chain_id": 31337,
        "signer_env": "KEY_HARDHAT",
    },
    "fraxTestnet": {
        "rpc_url": "https://rpc.testnet.frax.com",
        "chain_id": 2522,
        "signer_env": "KEY_FRAX_TESTNET",
        "explorer_key_env": ETHERSCAN_API_KEY_ENVVAR,
        "explorer_api_url": "https://api-holesky.fraxscan.com/api",
        "explorer_browser_url": "https://holesky.fraxscan.com",
    },
    "bscTestnet": {
        "rpc_url": "https://data-seed-prebsc-1-s1.binance.org:8545/",
        "chain_id": 97,
        "signer_env": "KEY_TESTNET",
        "explorer_key_env": ETHERSCAN_API_KEY_ENVVAR,
        "explorer_api_url": "https://api-testnet.bscscan.com/api",
        "explorer_browser_url": "https://testnet.bscscan.com",
    },
    "bscMainnet": {
        "rpc_url": "https://bsc-dataseed.binance.org/",
        "chain_id": 56,
        "signer_env": "KEY_MAINNET",
        "explorer_key_env": ETHERSCAN_API_KEY_ENVVAR,
        "explorer_api_url": "https://api.bscscan.com/api",
        "explorer_browser_url": "https://bscscan.com",
    },
    "goerli": {
        "rpc_url": "https://rpc.ankr.com/eth_goerli",
        "chain_id": 5,
        "signer_env": "KEY_GOERLI",
        "explorer_key_env": ETHERSCAN_API_KEY_ENVVAR,
        "explorer_api_url": "https://api-goerli.etherscan.io/api",
        "explorer_browser_url": "https://goerli.etherscan.io",
    },
    "eth": {
        "rpc_url": "https://eth.llamarpc.com",
        "chain_id": 1,
        "signer_env": "KEY_ETH",
        "explorer_key_env": ETHERSCAN_API_KEY_ENVVAR,
        "explorer_api_url": "https://api.etherscan.io/api",
        "explorer_browser_url": "https://etherscan.io",
    },
}

#
# Compiler settings
#

DEFAULT_PROFILE = "default"

COMPILER_PROFILES = {
    "default": {
        "version": "0.7.6",
        "optimizer_runs": 1_000_000,
        "evm_version": "istanbul",
    },
    "default-8": {
        "version": "0.8.19",
        "optimizer_runs": 1_000_000,
    },
    "low": {
        "version": "0.7.6",
        "optimizer_runs": 2_000,
    },
    "lowest": {
        "version": "0.7.6",
        "optimizer_runs": 400,
    },
    "lowest-8": {
        "version": "0.8.19",
        "optimizer_runs": 400,
    },
}

# contract name -> profile name
COMPILER_OVERRIDES = {
    "PancakeV3Pool": "lowest",
    "PancakeV3PoolDeployer": "lowest",
    "PancakeV3Factory": "default",
    "SwapFee": "default-8",
}

#
# Deployment
#

DEPLOYMENT_TIMEOUT = 180  # seconds to wait for a deployment receipt
RECEIPT_POLL_LATENCY = 2.0

#
# Verification
#

VERIFICATION_DELAY = 10.0  # seconds between explorer requests
VERIFICATION_ATTEMPTS = 3
VERIFICATION_BACKOFF = 5.0
VERIFICATION_WORKERS = 1
EXPLORER_TIMEOUT = 30
EXPLORER_POLL_INTERVAL = 5.0
EXPLORER_MAX_POLLS = 12
