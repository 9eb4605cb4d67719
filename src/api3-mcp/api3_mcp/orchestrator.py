"""
Read-only contract calls against the API3 contracts.

Every helper resolves the contract through the network registry, encodes the
call, performs exactly one ``eth_call`` and decodes the result. Nothing here
retries; RPC failures propagate as RpcCallError.
"""

from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Tuple

from . import constants
from .abi import FunctionSignature, TagLike, dapi_name_to_bytes32, encode_call
from .decoder import decode_bytes32, decode_int224, decode_uint32_at, decode_unsigned
from .errors import FormatError, RpcCallError
from .log import get_logger
from .networks import DEFAULT_REGISTRY, ContractRole, Feature, NetworkRegistry
from .numeric import to_decimal_string
from .rpc_client import RpcClient

logger = get_logger(__name__)


class Transport(Protocol):
    def call(self, method: str, params: Optional[list] = None) -> Any:
        ...


TransportFactory = Callable[[str], Transport]


def validate_bytes32(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 66:
        raise FormatError(f"Invalid {field} format. Must be a bytes32 value.")
    try:
        int(value[2:], 16)
    except ValueError:
        raise FormatError(f"Invalid {field} format. Must be a bytes32 value.") from None
    return value


class CallOrchestrator:
    """Compose registry lookup, ABI encoding, eth_call and decoding."""

    def __init__(
        self,
        registry: NetworkRegistry = DEFAULT_REGISTRY,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.registry = registry
        self.transport_factory: TransportFactory = transport_factory or RpcClient

    def read_contract(
        self,
        rpc_endpoint: str,
        network_id: str,
        contract_role: ContractRole,
        function_name: str,
        type_tags: Sequence[TagLike] = (),
        values: Sequence[Any] = (),
    ) -> str:
        address = self.registry.contract_address(network_id, contract_role)
        call = encode_call(function_name, type_tags, values)
        transport = self.transport_factory(rpc_endpoint)
        logger.debug("eth_call %s on %s (%s)", function_name, address, network_id)
        result = transport.call("eth_call", [{"to": address, "data": call.data}, "latest"])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RpcCallError(f"eth_call {function_name} returned unexpected result.")
        return result

    def _read(
        self,
        rpc_endpoint: str,
        network_id: str,
        role: ContractRole,
        signature: FunctionSignature,
        values: Sequence[Any] = (),
    ) -> str:
        return self.read_contract(
            rpc_endpoint, network_id, role, signature.name, signature.parameter_types, values
        )

    def _read_feed(
        self,
        rpc_endpoint: str,
        network_id: str,
        signature: FunctionSignature,
        key: str,
        decimals: int,
    ) -> Dict[str, Any]:
        result = self._read(rpc_endpoint, network_id, ContractRole.DAPI_SERVER, signature, [key])
        value = decode_int224(result)
        return {
            "value": str(value),
            "formattedValue": to_decimal_string(value, decimals),
            "timestamp": decode_uint32_at(result, 32),
            "decimals": decimals,
        }

    def read_dapi_value(
        self,
        rpc_endpoint: str,
        network_id: str,
        dapi_name: str,
        decimals: int = constants.DEFAULT_DECIMALS,
    ) -> Dict[str, Any]:
        """Current value and timestamp of a dAPI, read by name."""
        key = dapi_name_to_bytes32(dapi_name)
        record = self._read_feed(
            rpc_endpoint, network_id, constants.READ_DATA_FEED_WITH_DAPI_NAME, key, decimals
        )
        return {"dapiName": dapi_name, "network": network_id, **record}

    def read_data_feed_by_id(
        self,
        rpc_endpoint: str,
        network_id: str,
        feed_id: str,
        decimals: int = constants.DEFAULT_DECIMALS,
    ) -> Dict[str, Any]:
        validate_bytes32(feed_id, "feed ID")
        record = self._read_feed(rpc_endpoint, network_id, constants.READ_DATA_FEED_WITH_ID, feed_id, decimals)
        return {"feedId": feed_id, "network": network_id, **record}

    def dapi_name_to_data_feed_id(self, rpc_endpoint: str, network_id: str, dapi_name: str) -> str:
        result = self._read(
            rpc_endpoint,
            network_id,
            ContractRole.DAPI_SERVER,
            constants.DAPI_NAME_TO_DATA_FEED_ID,
            [dapi_name_to_bytes32(dapi_name)],
        )
        return decode_bytes32(result)

    def token_balance(self, rpc_endpoint: str, network_id: str, account: str) -> int:
        result = self._read(rpc_endpoint, network_id, ContractRole.TOKEN, constants.BALANCE_OF, [account])
        return decode_unsigned(result)

    def total_supply(self, rpc_endpoint: str, network_id: str) -> int:
        result = self._read(rpc_endpoint, network_id, ContractRole.TOKEN, constants.TOTAL_SUPPLY)
        return decode_unsigned(result)

    def _read_staking(
        self,
        rpc_endpoint: str,
        network_id: str,
        signature: FunctionSignature,
        values: Sequence[Any] = (),
    ) -> int:
        self.registry.require_feature(network_id, Feature.STAKING)
        result = self._read(rpc_endpoint, network_id, ContractRole.STAKING_POOL, signature, values)
        return decode_unsigned(result)

    def user_stake(self, rpc_endpoint: str, network_id: str, user: str) -> int:
        return self._read_staking(rpc_endpoint, network_id, constants.USER_STAKE, [user])

    def total_stake(self, rpc_endpoint: str, network_id: str) -> int:
        return self._read_staking(rpc_endpoint, network_id, constants.TOTAL_STAKE)

    def user_reward(self, rpc_endpoint: str, network_id: str, user: str) -> int:
        return self._read_staking(rpc_endpoint, network_id, constants.GET_USER_REWARD, [user])

    def staking_apr(self, rpc_endpoint: str, network_id: str) -> int:
        """Raw APR as stored by the pool (percent * 100)."""
        return self._read_staking(rpc_endpoint, network_id, constants.APR)

    def proposal_votes(self, rpc_endpoint: str, network_id: str, proposal_id: int) -> Tuple[int, int]:
        """(forVotes, againstVotes) from the voting app's ``proposal`` getter."""
        self.registry.require_feature(network_id, Feature.GOVERNANCE)
        result = self._read(
            rpc_endpoint, network_id, ContractRole.GOVERNANCE, constants.PROPOSAL, [proposal_id]
        )
        return decode_unsigned(result, 0), decode_unsigned(result, 64)

    def treasury_balance(self, rpc_endpoint: str, network_id: str) -> int:
        config = self.registry.require_feature(network_id, Feature.GOVERNANCE)
        governance = self.registry.contract_address(config.network_id, ContractRole.GOVERNANCE)
        return self.token_balance(rpc_endpoint, network_id, governance)

    def _quantity(self, rpc_endpoint: str, method: str, params: Optional[list] = None) -> int:
        result = self.transport_factory(rpc_endpoint).call(method, params or [])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RpcCallError(f"{method} returned unexpected result.")
        return int(result, 16)

    def block_number(self, rpc_endpoint: str) -> int:
        return self._quantity(rpc_endpoint, "eth_blockNumber")

    def chain_id(self, rpc_endpoint: str) -> int:
        return self._quantity(rpc_endpoint, "eth_chainId")

    def native_balance(self, rpc_endpoint: str, address: str) -> int:
        return self._quantity(rpc_endpoint, "eth_getBalance", [address, "latest"])

    def block(self, rpc_endpoint: str, tag: str = "latest") -> Dict[str, Any]:
        result = self.transport_factory(rpc_endpoint).call("eth_getBlockByNumber", [tag, False])
        if not isinstance(result, dict) or not isinstance(result.get("timestamp"), str):
            raise RpcCallError(f"eth_getBlockByNumber {tag} returned unexpected result.")
        return result
