from pathlib import Path

import deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(deployment.__file__).parent
PROJECT_ROOT = DEPLOYMENT_DIR.parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
DEFAULT_PARAMS_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "pool.yml"

# compiled interfaces (hardhat layout: artifacts/contracts/<Source>.sol/<Name>.json)
BUILD_DIR = PROJECT_ROOT / "artifacts"

# consumed by the front-end
FRONTEND_CONTRACTS_DIR = PROJECT_ROOT / "front" / "contracts"

ADDRESS_FILENAME_SUFFIX = "-contract-address.json"
ARTIFACT_JSON_FORMAT = {"indent": 2}

#
# Networks
#

TESTER = "tester"
LOCALHOST = "localhost"

# created and destroyed with the process
EPHEMERAL_NETWORKS = [TESTER]
LOCAL_NETWORKS = [TESTER, LOCALHOST]

LOCAL_RPC_URLS = {
    LOCALHOST: "http://127.0.0.1:8545",
}

DEPLOYER_PRIVATE_KEY_ENVVAR = "DEPLOYER_PRIVATE_KEY"

# seconds
CONFIRMATION_TIMEOUT = 120
CONFIRMATION_POLL_LATENCY = 0.5
REQUIRED_CONFIRMATIONS = 1

#
# Contracts
#

TOKEN = "Token"
BASE_STRATEGY = "BaseStrategy"

# smallest token units
STRATEGY_FUNDING_AMOUNT = 10000

FUNDING_METHOD = "mintForStrategy"
STRATEGY_BALANCE_VIEW = "getBalance"
TOKEN_BALANCE_VIEW = "balanceOf"
