from typing import Any, Dict, List, Optional

import pytest

from api3_mcp.config import Config
from api3_mcp.errors import FetchError
from api3_mcp.log import reset_notice
from api3_mcp.networks import NetworkConfig, NetworkRegistry

DAPI_SERVER = "0x3dEC619dc529363767dEe9E71d8dD1A5bc270D76"
TOKEN = "0x0b38210ea11411557c13457D4dA7dC6ea731B88a"
POOL = "0x6dd655f10d4b9E242aE186D9050B68F725c76d76"
GOVERNANCE = "0xdb6c812E439Ce5C740570578B9fd1ac3C6e90d4E"
USER = "0x1111111111111111111111111111111111111111"


def word(value: int) -> str:
    return format(value % (1 << 256), "064x")


class FakeTransport:
    """Answers eth_call by selector and other methods by name; records every request."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses = dict(responses or {})
        self.calls: List[tuple] = []

    def call(self, method: str, params: Optional[list] = None) -> Any:
        self.calls.append((method, params))
        key = method
        if method == "eth_call":
            key = params[0]["data"][:10]
        answer = self.responses[key]
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeRest:
    def __init__(self, payloads: Optional[Dict[str, Any]] = None) -> None:
        self.payloads = dict(payloads or {})
        self.requests: List[tuple] = []

    def get_json(self, url, params=None, headers=None, ttl_seconds=0):
        self.requests.append((url, params, headers))
        for suffix, payload in self.payloads.items():
            if url.endswith(suffix):
                return payload
        raise FetchError(url, "503 Service Unavailable")


@pytest.fixture(autouse=True)
def _fresh_notice():
    reset_notice()
    yield
    reset_notice()


@pytest.fixture
def registry() -> NetworkRegistry:
    return NetworkRegistry(
        [
            NetworkConfig(
                network_id="ethereum-mainnet-fixture",
                chain_id=1,
                display_name="Fixture Mainnet",
                explorer_url="https://explorer.invalid",
                dapi_server_address=DAPI_SERVER,
                api3_token_address=TOKEN,
                staking_pool_address=POOL,
                governance_address=GOVERNANCE,
            ),
            # carries a pool address but is not the DAO network
            NetworkConfig(
                network_id="sidechain-fixture",
                chain_id=137,
                display_name="Fixture Sidechain",
                explorer_url="https://side.invalid",
                dapi_server_address=DAPI_SERVER,
                staking_pool_address=POOL,
            ),
        ],
        dao_network="ethereum-mainnet-fixture",
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> Config:
    return Config(rpc_endpoint="http://rpc.invalid", network="ethereum-mainnet-fixture")
