from .abi import FunctionSignature, TypeTag

DEFAULT_DECIMALS = 18
API3_TOKEN_DECIMALS = 18

# DapiServer / Api3ServerV1
READ_DATA_FEED_WITH_DAPI_NAME = FunctionSignature("readDataFeedWithDapiName", (TypeTag.BYTES32,))
READ_DATA_FEED_WITH_ID = FunctionSignature("readDataFeedWithId", (TypeTag.BYTES32,))
DAPI_NAME_TO_DATA_FEED_ID = FunctionSignature("dapiNameToDataFeedId", (TypeTag.BYTES32,))

# API3 token (ERC-20)
BALANCE_OF = FunctionSignature("balanceOf", (TypeTag.ADDRESS,))
TOTAL_SUPPLY = FunctionSignature("totalSupply")
TRANSFER = FunctionSignature("transfer", (TypeTag.ADDRESS, TypeTag.UINT256))

# Api3Pool
USER_STAKE = FunctionSignature("userStake", (TypeTag.ADDRESS,))
TOTAL_STAKE = FunctionSignature("totalStake")
GET_USER_REWARD = FunctionSignature("getUserReward", (TypeTag.ADDRESS,))
APR = FunctionSignature("apr")
STAKE = FunctionSignature("stake", (TypeTag.UINT256,))
UNSTAKE = FunctionSignature("unstake")
CLAIM_REWARD = FunctionSignature("claimReward")

# Api3Voting
PROPOSAL = FunctionSignature("proposal", (TypeTag.UINT256,))
CAST_VOTE = FunctionSignature("castVote", (TypeTag.UINT256, TypeTag.UINT8))

API_ENDPOINTS = {
    "API3_MARKET": "https://market.api3.org/api",
    "OEV_NETWORK": "https://oev.api3.org/api",
    "COINGECKO": "https://api.coingecko.com/api/v3",
}

COMMON_DAPIS = (
    "ETH/USD",
    "BTC/USD",
    "MATIC/USD",
    "AVAX/USD",
    "BNB/USD",
    "SOL/USD",
    "ARB/USD",
    "OP/USD",
    "LINK/USD",
    "UNI/USD",
    "AAVE/USD",
    "CRV/USD",
    "MKR/USD",
    "SNX/USD",
    "COMP/USD",
    "SUSHI/USD",
    "YFI/USD",
    "BAL/USD",
    "API3/USD",
    "EUR/USD",
    "GBP/USD",
    "JPY/USD",
    "AUD/USD",
    "CAD/USD",
    "CHF/USD",
)

# Seconds
DEFAULT_HEARTBEAT = 86400
UNSTAKING_PERIOD = 604800

# Basis points
DEFAULT_DEVIATION_THRESHOLD_BPS = 100
# APY is only compounded for APRs up to 10000%
MAX_COMPOUNDING_APR_BPS = 10**6
COMPOUNDING_PERIODS = 365

CACHE_TTL_SECONDS = {
    "TOKEN_PRICE": 60,
    "PROPOSALS": 300,
    "OEV": 60,
    "MARKET": 300,
    "HEALTH": 10,
}
