from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ConfigError, UnsupportedNetworkError

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_SPACE_RE = re.compile(r"[\s_]+")

DAPI_SERVER_ADDRESS = "0x3dEC619dc529363767dEe9E71d8dD1A5bc270D76"
DAO_NETWORK = "ethereum"


def _norm(text: str) -> str:
    candidate = (text or "").strip().lower()
    return _SPACE_RE.sub("-", candidate)


class ContractRole(str, Enum):
    DAPI_SERVER = "dapi_server"
    TOKEN = "api3_token"
    STAKING_POOL = "staking_pool"
    GOVERNANCE = "governance"


class Feature(str, Enum):
    PRICE_FEEDS = "price_feeds"
    TOKEN = "token"
    STAKING = "staking"
    DAO = "dao"
    GOVERNANCE = "governance"


# Features gated by address presence; the rest are gated by network identity.
_ADDRESS_GATED = {
    Feature.PRICE_FEEDS: ContractRole.DAPI_SERVER,
    Feature.TOKEN: ContractRole.TOKEN,
}
_IDENTITY_GATED = frozenset({Feature.STAKING, Feature.DAO, Feature.GOVERNANCE})


@dataclass(frozen=True)
class NetworkConfig:
    network_id: str
    chain_id: int
    display_name: str
    explorer_url: str
    dapi_server_address: str
    api3_token_address: Optional[str] = None
    staking_pool_address: Optional[str] = None
    governance_address: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.dapi_server_address:
            raise ConfigError(f"{self.network_id} missing dAPI server address")
        for role in ContractRole:
            address = self.address_for(role)
            if address and not _ADDRESS_RE.fullmatch(address):
                raise ConfigError(f"Invalid {role.value} address for {self.network_id}: {address}")

    def address_for(self, role: ContractRole) -> Optional[str]:
        return {
            ContractRole.DAPI_SERVER: self.dapi_server_address,
            ContractRole.TOKEN: self.api3_token_address,
            ContractRole.STAKING_POOL: self.staking_pool_address,
            ContractRole.GOVERNANCE: self.governance_address,
        }[role]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network_id,
            "chainId": self.chain_id,
            "name": self.display_name,
            "explorerUrl": self.explorer_url,
            "dapiServer": self.dapi_server_address,
            "api3Token": self.api3_token_address,
            "stakingPool": self.staking_pool_address,
            "governance": self.governance_address,
        }


def _net(network_id: str, chain_id: int, name: str, explorer: str, **addresses: str) -> NetworkConfig:
    return NetworkConfig(
        network_id=network_id,
        chain_id=chain_id,
        display_name=name,
        explorer_url=explorer,
        dapi_server_address=addresses.pop("dapi_server_address", DAPI_SERVER_ADDRESS),
        **addresses,
    )


NETWORK_CONFIGS: Tuple[NetworkConfig, ...] = (
    _net(
        "ethereum",
        1,
        "Ethereum Mainnet",
        "https://etherscan.io",
        api3_token_address="0x0b38210ea11411557c13457D4dA7dC6ea731B88a",
        staking_pool_address="0x6dd655f10d4b9E242aE186D9050B68F725c76d76",
        governance_address="0xdb6c812E439Ce5C740570578B9fd1ac3C6e90d4E",
    ),
    _net("polygon", 137, "Polygon", "https://polygonscan.com"),
    _net("arbitrum", 42161, "Arbitrum One", "https://arbiscan.io"),
    _net("arbitrum-nova", 42170, "Arbitrum Nova", "https://nova.arbiscan.io"),
    _net("optimism", 10, "Optimism", "https://optimistic.etherscan.io"),
    _net("avalanche", 43114, "Avalanche C-Chain", "https://snowtrace.io"),
    _net("bsc", 56, "BNB Smart Chain", "https://bscscan.com"),
    _net("base", 8453, "Base", "https://basescan.org"),
    _net("gnosis", 100, "Gnosis", "https://gnosisscan.io"),
    _net("fantom", 250, "Fantom", "https://ftmscan.com"),
    _net("zksync", 324, "zkSync Era", "https://explorer.zksync.io"),
    _net("scroll", 534352, "Scroll", "https://scrollscan.com"),
    _net("linea", 59144, "Linea", "https://lineascan.build"),
    _net("mantle", 5000, "Mantle", "https://explorer.mantle.xyz"),
    _net("moonbeam", 1284, "Moonbeam", "https://moonscan.io"),
    _net("moonriver", 1285, "Moonriver", "https://moonriver.moonscan.io"),
    _net("celo", 42220, "Celo", "https://celoscan.io"),
    _net("goerli", 5, "Goerli Testnet", "https://goerli.etherscan.io"),
    _net("sepolia", 11155111, "Sepolia Testnet", "https://sepolia.etherscan.io"),
    _net("mumbai", 80001, "Mumbai Testnet", "https://mumbai.polygonscan.com"),
)

NETWORK_ALIASES = {
    "eth": "ethereum",
    "mainnet": "ethereum",
    "ethereum-mainnet": "ethereum",
    "matic": "polygon",
    "arb": "arbitrum",
    "arb1": "arbitrum",
    "arbitrum-one": "arbitrum",
    "nova": "arbitrum-nova",
    "op": "optimism",
    "avax": "avalanche",
    "bnb": "bsc",
    "zksync-era": "zksync",
}


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class SupportedChain:
    chain_id: int
    name: str
    short_name: str
    native_currency: NativeCurrency
    explorer_url: str
    testnet: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "name": self.name,
            "shortName": self.short_name,
            "nativeCurrency": {
                "name": self.native_currency.name,
                "symbol": self.native_currency.symbol,
                "decimals": self.native_currency.decimals,
            },
            "explorerUrl": self.explorer_url,
            "testnet": self.testnet,
        }


_ETHER = NativeCurrency("Ether", "ETH")

SUPPORTED_CHAINS: Tuple[SupportedChain, ...] = (
    SupportedChain(1, "Ethereum Mainnet", "eth", _ETHER, "https://etherscan.io"),
    SupportedChain(137, "Polygon", "matic", NativeCurrency("MATIC", "MATIC"), "https://polygonscan.com"),
    SupportedChain(42161, "Arbitrum One", "arb1", _ETHER, "https://arbiscan.io"),
    SupportedChain(10, "Optimism", "oeth", _ETHER, "https://optimistic.etherscan.io"),
    SupportedChain(43114, "Avalanche C-Chain", "avax", NativeCurrency("Avalanche", "AVAX"), "https://snowtrace.io"),
    SupportedChain(56, "BNB Smart Chain", "bnb", NativeCurrency("BNB", "BNB"), "https://bscscan.com"),
    SupportedChain(8453, "Base", "base", _ETHER, "https://basescan.org"),
    SupportedChain(100, "Gnosis", "gno", NativeCurrency("xDAI", "xDAI"), "https://gnosisscan.io"),
    SupportedChain(250, "Fantom", "ftm", NativeCurrency("Fantom", "FTM"), "https://ftmscan.com"),
    SupportedChain(324, "zkSync Era", "zksync", _ETHER, "https://explorer.zksync.io"),
    SupportedChain(11155111, "Sepolia Testnet", "sep", _ETHER, "https://sepolia.etherscan.io", testnet=True),
)


class NetworkRegistry:
    """
    Static per-network configuration.
    - Built once from a list of NetworkConfig and never mutated.
    - Staking/DAO/governance are available only on the designated network.
    """

    def __init__(
        self,
        configs: Iterable[NetworkConfig],
        dao_network: str = DAO_NETWORK,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> None:
        by_id: Dict[str, NetworkConfig] = {}
        for config in configs:
            key = _norm(config.network_id)
            if key in by_id:
                raise ConfigError(f"Duplicate network id '{config.network_id}'.")
            by_id[key] = config
        self._configs: Mapping[str, NetworkConfig] = MappingProxyType(by_id)
        self._aliases: Mapping[str, str] = MappingProxyType(dict(aliases or {}))
        self.dao_network = _norm(dao_network)

    def _key(self, network_id: str) -> str:
        if not isinstance(network_id, str) or not network_id.strip():
            raise UnsupportedNetworkError(str(network_id), "network must be a non-empty string.")
        key = _norm(network_id)
        return self._aliases.get(key, key)

    def lookup(self, network_id: str) -> NetworkConfig:
        config = self._configs.get(self._key(network_id))
        if config is None:
            allowed = ", ".join(sorted(self._configs))
            raise UnsupportedNetworkError(
                network_id, f"Unsupported network: {network_id}. Supported: {allowed}."
            )
        return config

    def __contains__(self, network_id: object) -> bool:
        return isinstance(network_id, str) and self._key(network_id) in self._configs

    def supports_feature(self, network_id: str, feature: Feature) -> bool:
        config = self.lookup(network_id)
        feature = Feature(feature)
        if feature in _IDENTITY_GATED:
            return _norm(config.network_id) == self.dao_network
        return bool(config.address_for(_ADDRESS_GATED[feature]))

    def require_feature(self, network_id: str, feature: Feature) -> NetworkConfig:
        config = self.lookup(network_id)
        if not self.supports_feature(network_id, feature):
            message = f"{Feature(feature).value} is not available on {config.network_id}."
            if feature in _IDENTITY_GATED:
                message += f" It is only supported on {self.dao_network}."
            raise UnsupportedNetworkError(config.network_id, message)
        return config

    def contract_address(self, network_id: str, role: ContractRole) -> str:
        config = self.lookup(network_id)
        address = config.address_for(ContractRole(role))
        if not address:
            raise UnsupportedNetworkError(
                config.network_id,
                f"No {ContractRole(role).value} contract configured on {config.network_id}.",
            )
        return address

    def list_networks(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for config in sorted(self._configs.values(), key=lambda c: c.chain_id):
            item = config.to_dict()
            item["features"] = sorted(
                feature.value for feature in Feature if self.supports_feature(config.network_id, feature)
            )
            out.append(item)
        return out

    def explorer_tx_url(self, network_id: str, tx_hash: str) -> str:
        return f"{self.lookup(network_id).explorer_url}/tx/{tx_hash}"

    def explorer_address_url(self, network_id: str, address: str) -> str:
        return f"{self.lookup(network_id).explorer_url}/address/{address}"


DEFAULT_REGISTRY = NetworkRegistry(NETWORK_CONFIGS, aliases=NETWORK_ALIASES)
