import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import quote

from . import constants
from .abi import encode_call, parse_signature
from .config import Config
from .errors import DecodeError, FetchError, FormatError, MissingCredentialError, RpcCallError
from .log import emit_notice_once, get_logger
from .networks import DEFAULT_REGISTRY, SUPPORTED_CHAINS, ContractRole, Feature, NetworkRegistry
from .numeric import (
    compound_bps,
    format_thousands,
    parse_decimals,
    percentage_change,
    to_decimal_string,
    to_padded_decimal_string,
    to_raw_integer,
)
from .orchestrator import CallOrchestrator, TransportFactory, validate_bytes32
from .rest_client import FetchResult, RestClient, fetch_with_fallback
from .rpc_client import RpcClient

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
PROPOSAL_STATUSES = {"all", "pending", "active", "executed", "rejected"}
SUBSCRIPTION_STATUSES = {"all", "active", "expired", "cancelled"}
VOTE_TYPES = ("Against", "For", "Abstain")

logger = get_logger(__name__)


class Api3Service:
    """Combine configuration, registry, RPC and REST transports to serve API3 operations."""

    def __init__(
        self,
        config: Config,
        registry: NetworkRegistry = DEFAULT_REGISTRY,
        transport_factory: Optional[TransportFactory] = None,
        rest_client: Optional[RestClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.registry = registry
        if transport_factory is None:
            transport_factory = self._rpc_client
        self.calls = CallOrchestrator(registry, transport_factory)
        self.rest = rest_client or RestClient(
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            backoff_seconds=config.backoff_seconds,
        )
        self._clock = clock
        get_logger("api3_mcp", config.log_level)
        emit_notice_once(logger)

    def _rpc_client(self, rpc_endpoint: str) -> RpcClient:
        return RpcClient(
            rpc_endpoint,
            timeout=self.config.request_timeout,
            max_retries=self.config.max_retries,
            backoff_seconds=self.config.backoff_seconds,
        )

    def _now(self) -> int:
        return int(self._clock())

    def _network(self, network: Optional[str]) -> str:
        candidate = network or self.config.network
        return self.registry.lookup(candidate).network_id

    def _rpc(self) -> str:
        return self.config.rpc_endpoint

    def _normalize_address(self, address: str, field: str = "address") -> str:
        if not isinstance(address, str):
            raise FormatError(f"{field} must be a string.")
        candidate = address.strip()
        if not ADDRESS_PATTERN.match(candidate):
            raise FormatError(f"Invalid {field} format. Expected 0x-prefixed 40 hex characters.")
        return candidate

    def _require_private_key(self, action: str) -> None:
        if not self.config.has_private_key:
            raise MissingCredentialError(f"Private key is required for {action}. Set API3_PRIVATE_KEY.")

    def _governance_network(self, network: Optional[str]) -> str:
        net = self._network(network)
        self.registry.require_feature(net, Feature.GOVERNANCE)
        return net

    def _market_headers(self) -> Optional[Dict[str, str]]:
        return _bearer(self.config.api3_market_api_key)

    def _oev_headers(self) -> Optional[Dict[str, str]]:
        return _bearer(self.config.oev_api_key)

    def _enrich(
        self,
        url: str,
        parse: Callable[[Any], Any],
        placeholder: Callable[[FetchError], Any],
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        ttl_seconds: float = 0,
    ) -> FetchResult:
        """
        GET ``url`` and shape the payload with ``parse``.

        A failed request and a payload ``parse`` cannot read (KeyError,
        TypeError, ValueError) both end up as the placeholder.
        """

        def fetch() -> Any:
            payload = self.rest.get_json(url, params, headers=headers, ttl_seconds=ttl_seconds)
            try:
                return parse(payload)
            except (KeyError, TypeError, ValueError) as exc:
                raise FetchError(url, f"unexpected response shape: {exc!r}") from exc

        return fetch_with_fallback(fetch, placeholder)

    def _status(self, result: FetchResult, source: str) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "degraded": result.degraded,
            "source": "placeholder" if result.degraded else source,
        }
        if result.error is not None:
            out["error"] = str(result.error)
        return out

    # dAPIs

    def get_dapi_value(self, dapi_name: str, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        return self.calls.read_dapi_value(self._rpc(), net, dapi_name)

    def get_dapi_info(self, dapi_name: str, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        config = self.registry.lookup(net)
        reading = self.calls.read_dapi_value(self._rpc(), net, dapi_name)
        return {
            "name": dapi_name,
            "category": "Price Feed" if "/" in dapi_name else "Custom",
            "description": f"{dapi_name} price feed on {config.display_name}",
            "decimals": reading["decimals"],
            "deviation": "1%",
            "heartbeat": constants.DEFAULT_HEARTBEAT,
            "network": net,
            "contractAddress": config.dapi_server_address,
            "value": reading["value"],
            "formattedValue": reading["formattedValue"],
            "lastUpdated": reading["timestamp"],
        }

    def list_dapis(self, network: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read the common dAPIs; unreadable ones are listed as inactive with the error."""
        net = self._network(network)
        out: List[Dict[str, Any]] = []
        for name in constants.COMMON_DAPIS:
            item: Dict[str, Any] = {"name": name, "category": "Price Feed", "network": net}
            try:
                reading = self.calls.read_dapi_value(self._rpc(), net, name)
            except (RpcCallError, DecodeError) as exc:
                item.update({"active": False, "error": str(exc)})
                out.append(item)
                continue
            active = reading["timestamp"] > 0 and reading["value"] != "0"
            item["active"] = active
            if active:
                item["price"] = reading["formattedValue"]
            out.append(item)
        return out

    def get_dapi_update_time(self, dapi_name: str, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        reading = self.calls.read_dapi_value(self._rpc(), net, dapi_name)
        timestamp = reading["timestamp"]
        return {
            "dapiName": dapi_name,
            "lastUpdateTimestamp": timestamp,
            "nextExpectedUpdate": timestamp + constants.DEFAULT_HEARTBEAT,
            "heartbeatSeconds": constants.DEFAULT_HEARTBEAT,
            "secondsSinceUpdate": max(0, self._now() - timestamp),
        }

    def get_dapi_deviation(
        self, dapi_name: str, reference_value: Optional[Any] = None, network: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Compare the current dAPI value with ``reference_value`` (a decimal
        string in the dAPI's units) against the deviation threshold.
        Without a reference only the threshold and current value are known.
        """
        net = self._network(network)
        reading = self.calls.read_dapi_value(self._rpc(), net, dapi_name)
        threshold = constants.DEFAULT_DEVIATION_THRESHOLD_BPS
        out: Dict[str, Any] = {
            "dapiName": dapi_name,
            "network": net,
            "deviationThresholdPercent": to_padded_decimal_string(threshold, 2),
            "heartbeatSeconds": constants.DEFAULT_HEARTBEAT,
            "currentValue": reading["formattedValue"],
            "lastUpdated": reading["timestamp"],
            "referenceValue": None,
            "currentDeviation": None,
            "exceedsThreshold": None,
        }
        if reference_value is None:
            return out

        decimals = reading["decimals"]
        reference_raw = to_raw_integer(str(reference_value), decimals)
        deviation = percentage_change(reference_raw, int(reading["value"]))
        out.update(
            referenceValue=to_decimal_string(reference_raw, decimals),
            currentDeviation=deviation,
            exceedsThreshold=abs(to_raw_integer(deviation, 2)) >= threshold,
        )
        return out

    def get_dapi_sources(self, dapi_name: str, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        feed_id = self.calls.dapi_name_to_data_feed_id(self._rpc(), net, dapi_name)
        url = f"{constants.API_ENDPOINTS['API3_MARKET']}/dapis/{quote(dapi_name, safe='')}/sources"
        result = self._enrich(
            url,
            lambda payload: _records(payload, "sources"),
            lambda exc: [],
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["MARKET"],
        )
        return {
            "dapiName": dapi_name,
            "network": net,
            "dataFeedId": feed_id,
            "sources": result.value,
            **self._status(result, "api3-market"),
        }

    # Data feeds

    def read_data_feed(self, feed_id: str, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        return self.calls.read_data_feed_by_id(self._rpc(), net, feed_id)

    def get_multiple_feeds(
        self, feed_ids: Union[str, Sequence[str]], network: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Read several feeds in order; failures are reported per feed, never as zero values."""
        net = self._network(network)
        if isinstance(feed_ids, str):
            ids = [part.strip() for part in feed_ids.split(",") if part.strip()]
        else:
            ids = [str(part).strip() for part in feed_ids]

        results: List[Dict[str, Any]] = []
        for feed_id in ids:
            try:
                results.append(self.calls.read_data_feed_by_id(self._rpc(), net, feed_id))
            except (FormatError, RpcCallError, DecodeError) as exc:
                results.append({"feedId": feed_id, "network": net, "error": str(exc)})
        return results

    def get_feed_beacon(self, feed_id: str, network: Optional[str] = None) -> Dict[str, Any]:
        reading = self.read_data_feed(feed_id, network)
        return {
            "beaconId": feed_id,
            "value": reading["value"],
            "formattedValue": reading["formattedValue"],
            "timestamp": reading["timestamp"],
        }

    def get_data_feed_id(self, dapi_name: str, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        feed_id = self.calls.dapi_name_to_data_feed_id(self._rpc(), net, dapi_name)
        return {"dapiName": dapi_name, "network": net, "dataFeedId": feed_id}

    def get_feed_history(
        self,
        feed_id: str,
        start_timestamp: Any = 0,
        end_timestamp: Any = 0,
        network: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        History of a feed within a time window.

        Past values need an indexer or an archive node, so the current
        reading is returned as the only point.
        """
        start = _non_negative_int(start_timestamp, "start_timestamp")
        end = _non_negative_int(end_timestamp, "end_timestamp")
        if start and end and start > end:
            raise FormatError("start_timestamp must not be after end_timestamp.")
        reading = self.read_data_feed(feed_id, network)
        block_number = self.calls.block_number(self._rpc())
        return {
            "feedId": feed_id,
            "network": reading["network"],
            "values": [
                {
                    "value": reading["value"],
                    "formattedValue": reading["formattedValue"],
                    "timestamp": reading["timestamp"],
                    "blockNumber": block_number,
                }
            ],
            "startTimestamp": start or reading["timestamp"],
            "endTimestamp": end or self._now(),
        }

    def get_feed_metadata(self, feed_id: str, network: Optional[str] = None) -> Dict[str, Any]:
        validate_bytes32(feed_id, "feed ID")
        net = self._network(network)
        config = self.registry.lookup(net)
        return {
            "feedId": feed_id,
            "network": net,
            "name": f"Feed {feed_id[:10]}...",
            "description": f"Data feed on {config.display_name}",
            "category": "Custom",
            "decimals": constants.DEFAULT_DECIMALS,
            "dapiServerAddress": self.registry.contract_address(net, ContractRole.DAPI_SERVER),
        }

    # Token

    def get_token_price(self) -> Dict[str, Any]:
        url = f"{constants.API_ENDPOINTS['COINGECKO']}/simple/price"
        params = {"ids": "api3", "vs_currencies": "usd,eth", "include_24hr_change": "true"}
        result = self._enrich(
            url,
            _parse_token_price,
            lambda exc: {"usd": None, "eth": None, "change24h": None},
            params=params,
            ttl_seconds=constants.CACHE_TTL_SECONDS["TOKEN_PRICE"],
        )
        return {**result.value, "lastUpdated": self._now(), **self._status(result, "coingecko")}

    def get_token_supply(self, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        config = self.registry.lookup(net)
        total = self.calls.total_supply(self._rpc(), net)
        staked = 0
        if config.staking_pool_address:
            staked = self.calls.token_balance(self._rpc(), net, config.staking_pool_address)
        circulating = max(total - staked, 0)
        decimals = constants.API3_TOKEN_DECIMALS
        return {
            "network": net,
            "totalSupply": to_decimal_string(total, decimals),
            "stakedSupply": to_decimal_string(staked, decimals),
            "circulatingSupply": to_decimal_string(circulating, decimals),
            "totalSupplyRaw": str(total),
        }

    def get_user_balance(self, address: str, network: Optional[str] = None) -> Dict[str, Any]:
        user = self._normalize_address(address, "user address")
        net = self._network(network)
        decimals = constants.API3_TOKEN_DECIMALS
        balance = self.calls.token_balance(self._rpc(), net, user)
        staked = 0
        if self.registry.supports_feature(net, Feature.STAKING):
            staked = self.calls.user_stake(self._rpc(), net, user)
        formatted = to_decimal_string(balance, decimals)
        return {
            "address": user,
            "network": net,
            "balance": formatted,
            "formattedBalance": f"{formatted} API3",
            "stakedBalance": to_decimal_string(staked, decimals),
            "totalBalance": to_decimal_string(balance + staked, decimals),
            "explorerUrl": self.registry.explorer_address_url(net, user),
        }

    def _prepared(self, network: str, role: ContractRole, call_data: str, **extra: Any) -> Dict[str, Any]:
        config = self.registry.lookup(network)
        payload = {
            "network": network,
            "chainId": config.chain_id,
            "to": self.registry.contract_address(network, role),
            "data": call_data,
            "value": "0x0",
            "status": "unsigned",
            "preparedAt": self._now(),
        }
        payload.update(extra)
        return payload

    def prepare_transfer(self, to_address: str, amount: str, network: Optional[str] = None) -> Dict[str, Any]:
        """Build (but do not sign) an API3 ``transfer`` call."""
        self._require_private_key("transfers")
        recipient = self._normalize_address(to_address, "recipient address")
        net = self._network(network)
        raw = to_raw_integer(amount, constants.API3_TOKEN_DECIMALS)
        if raw <= 0:
            raise FormatError("amount must be greater than zero.")
        call = encode_call(constants.TRANSFER.name, constants.TRANSFER.parameter_types, [recipient, raw])
        logger.info("Prepared unsigned transfer of %s API3 on %s", amount, net)
        return self._prepared(
            net,
            ContractRole.TOKEN,
            call.data,
            type="transfer",
            recipient=recipient,
            amount=to_decimal_string(raw, constants.API3_TOKEN_DECIMALS),
            amountRaw=str(raw),
        )

    # Staking

    def get_staking_info(self, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        config = self.registry.require_feature(net, Feature.STAKING)
        total = self.calls.total_stake(self._rpc(), net)
        apr_raw = self.calls.staking_apr(self._rpc(), net)
        return {
            "network": net,
            "totalStaked": to_decimal_string(total, constants.API3_TOKEN_DECIMALS),
            "apr": f"{to_padded_decimal_string(apr_raw, 2)}%",
            "stakingPoolAddress": config.staking_pool_address,
            "minStakeAmount": "1",
            "unstakingPeriod": constants.UNSTAKING_PERIOD,
        }

    def get_user_stake(self, address: str, network: Optional[str] = None) -> Dict[str, Any]:
        user = self._normalize_address(address, "user address")
        net = self._network(network)
        self.registry.require_feature(net, Feature.STAKING)
        staked = self.calls.user_stake(self._rpc(), net, user)
        rewards = self.calls.user_reward(self._rpc(), net, user)
        decimals = constants.API3_TOKEN_DECIMALS
        return {
            "address": user,
            "network": net,
            "stakedAmount": to_decimal_string(staked, decimals),
            "pendingRewards": to_decimal_string(rewards, decimals),
            "votingPower": to_decimal_string(staked, decimals),
        }

    def get_rewards(self, address: str, network: Optional[str] = None) -> Dict[str, Any]:
        user = self._normalize_address(address, "user address")
        net = self._network(network)
        rewards = self.calls.user_reward(self._rpc(), net, user)
        return {
            "address": user,
            "network": net,
            "pendingRewards": to_decimal_string(rewards, constants.API3_TOKEN_DECIMALS),
        }

    def get_apr(self, network: Optional[str] = None) -> Dict[str, Any]:
        """APR, daily-compounded APY and daily reward rate; the pool stores APR in basis points."""
        net = self._network(network)
        apr_raw = self.calls.staking_apr(self._rpc(), net)
        periods = constants.COMPOUNDING_PERIODS
        apy: Optional[str] = None
        if apr_raw <= constants.MAX_COMPOUNDING_APR_BPS:
            apy = f"{to_padded_decimal_string(compound_bps(apr_raw, periods), 2)}%"
        return {
            "network": net,
            "apr": f"{to_padded_decimal_string(apr_raw, 2)}%",
            "apy": apy,
            "rewardRate": f"{to_padded_decimal_string(apr_raw * 10**4 // periods, 6)}%",
            "aprRaw": str(apr_raw),
        }

    def _prepare_staking(self, action: str, network: Optional[str], signature: Any, values: List[Any], **extra: Any) -> Dict[str, Any]:
        self._require_private_key(action)
        net = self._network(network)
        self.registry.require_feature(net, Feature.STAKING)
        call = encode_call(signature.name, signature.parameter_types, values)
        logger.info("Prepared unsigned %s on %s", action, net)
        return self._prepared(net, ContractRole.STAKING_POOL, call.data, **extra)

    def prepare_stake(self, amount: str, network: Optional[str] = None) -> Dict[str, Any]:
        raw = to_raw_integer(amount, constants.API3_TOKEN_DECIMALS)
        if raw <= 0:
            raise FormatError("amount must be greater than zero.")
        return self._prepare_staking(
            "staking", network, constants.STAKE, [raw], type="stake", amount=str(raw)
        )

    def prepare_unstake(self, network: Optional[str] = None) -> Dict[str, Any]:
        return self._prepare_staking("unstaking", network, constants.UNSTAKE, [], type="unstake")

    def prepare_claim_rewards(self, network: Optional[str] = None) -> Dict[str, Any]:
        return self._prepare_staking("claiming rewards", network, constants.CLAIM_REWARD, [], type="claim")

    # Governance

    def get_proposals(self, status: str = "all", limit: int = 10, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._governance_network(network)
        status_norm = (status or "all").strip().lower()
        if status_norm not in PROPOSAL_STATUSES:
            raise FormatError(f"status must be one of: {', '.join(sorted(PROPOSAL_STATUSES))}.")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise FormatError("limit must be a positive integer.")

        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/governance/proposals",
            lambda payload: [_map_proposal(item) for item in _records(payload, "proposals")],
            lambda exc: [],
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["PROPOSALS"],
        )
        proposals = result.value
        if status_norm != "all":
            proposals = [p for p in proposals if p["status"] == status_norm]
        return {"network": net, "proposals": proposals[:limit], **self._status(result, "api3-market")}

    def get_proposal(self, proposal_id: Any, network: Optional[str] = None) -> Dict[str, Any]:
        """
        One proposal from the market API. When the API is unavailable the
        vote tallies are read from the voting app instead and the remaining
        fields are left empty.
        """
        net = self._governance_network(network)
        pid = _non_negative_int(proposal_id, "proposal_id")
        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/governance/proposals/{pid}",
            lambda payload: _map_proposal(_record(payload)),
            lambda exc: None,
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["PROPOSALS"],
        )
        if not result.degraded:
            return {"network": net, **result.value, **self._status(result, "api3-market")}

        for_votes, against_votes = self.calls.proposal_votes(self._rpc(), net, pid)
        decimals = constants.API3_TOKEN_DECIMALS
        return {
            "network": net,
            "proposalId": str(pid),
            "title": None,
            "description": None,
            "proposer": None,
            "startTime": None,
            "endTime": None,
            "forVotes": to_decimal_string(for_votes, decimals),
            "againstVotes": to_decimal_string(against_votes, decimals),
            "abstainVotes": None,
            "status": None,
            "degraded": True,
            "source": "on-chain",
            "error": str(result.error),
        }

    def get_vote_record(self, address: str, network: Optional[str] = None) -> Dict[str, Any]:
        user = self._normalize_address(address, "user address")
        net = self._governance_network(network)
        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/governance/votes/{user}",
            lambda payload: _records(payload, "votes"),
            lambda exc: [],
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["PROPOSALS"],
        )
        return {
            "address": user,
            "network": net,
            "totalVotes": len(result.value),
            "votes": result.value,
            **self._status(result, "api3-market"),
        }

    def get_treasury(self, network: Optional[str] = None) -> Dict[str, Any]:
        """API3 and native balances held by the DAO voting app."""
        net = self._governance_network(network)
        treasury = self.registry.contract_address(net, ContractRole.GOVERNANCE)
        api3_balance = self.calls.treasury_balance(self._rpc(), net)
        native_balance = self.calls.native_balance(self._rpc(), treasury)
        decimals = constants.API3_TOKEN_DECIMALS
        return {
            "network": net,
            "address": treasury,
            "api3Balance": to_decimal_string(api3_balance, decimals),
            "api3BalanceRaw": str(api3_balance),
            "ethBalance": to_decimal_string(native_balance, 18),
            "explorerUrl": self.registry.explorer_address_url(net, treasury),
        }

    def prepare_vote(self, proposal_id: Any, support: Any, network: Optional[str] = None) -> Dict[str, Any]:
        """Build (but do not sign) a ``castVote`` call; support is against/for/abstain or 0/1/2."""
        self._require_private_key("voting")
        net = self._governance_network(network)
        pid = _non_negative_int(proposal_id, "proposal_id")
        support_value = _vote_support(support)
        call = encode_call(
            constants.CAST_VOTE.name, constants.CAST_VOTE.parameter_types, [pid, support_value]
        )
        logger.info("Prepared unsigned vote on proposal %s on %s", pid, net)
        return self._prepared(
            net,
            ContractRole.GOVERNANCE,
            call.data,
            type="vote",
            proposalId=str(pid),
            support=support_value,
            voteType=VOTE_TYPES[support_value],
        )

    # OEV Network

    def get_oev_network_info(self, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        config = self.registry.lookup(net)
        result = self._enrich(
            f"{constants.API_ENDPOINTS['OEV_NETWORK']}/network/{config.chain_id}",
            _record,
            lambda exc: {"networkName": config.display_name, "chainId": config.chain_id},
            headers=self._oev_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["OEV"],
        )
        return {"network": net, **result.value, **self._status(result, "oev-network")}

    def get_auction_info(self, auction_id: str) -> Dict[str, Any]:
        segment = _path_segment(auction_id, "auction_id")
        result = self._enrich(
            f"{constants.API_ENDPOINTS['OEV_NETWORK']}/auctions/{segment}",
            _record,
            lambda exc: {"auctionId": auction_id},
            headers=self._oev_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["OEV"],
        )
        return {**result.value, **self._status(result, "oev-network")}

    def get_bid_status(self, bid_id: str) -> Dict[str, Any]:
        segment = _path_segment(bid_id, "bid_id")
        result = self._enrich(
            f"{constants.API_ENDPOINTS['OEV_NETWORK']}/bids/{segment}",
            _record,
            lambda exc: {"bidId": bid_id},
            headers=self._oev_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["OEV"],
        )
        return {**result.value, **self._status(result, "oev-network")}

    def get_oev_stats(self) -> Dict[str, Any]:
        result = self._enrich(
            f"{constants.API_ENDPOINTS['OEV_NETWORK']}/stats",
            _record,
            lambda exc: {},
            headers=self._oev_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["OEV"],
        )
        return {**result.value, **self._status(result, "oev-network")}

    # Airnodes

    def get_airnode_info(self, airnode_address: str) -> Dict[str, Any]:
        airnode = self._normalize_address(airnode_address, "Airnode address")
        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/airnodes/{airnode}",
            _record,
            lambda exc: {"airnodeAddress": airnode},
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["MARKET"],
        )
        return {**result.value, **self._status(result, "api3-market")}

    def list_airnodes(self) -> Dict[str, Any]:
        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/airnodes",
            lambda payload: _records(payload, "airnodes"),
            lambda exc: [],
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["MARKET"],
        )
        return {"airnodes": result.value, **self._status(result, "api3-market")}

    def get_airnode_endpoints(self, airnode_address: str) -> Dict[str, Any]:
        airnode = self._normalize_address(airnode_address, "Airnode address")
        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/airnodes/{airnode}/endpoints",
            lambda payload: _records(payload, "endpoints"),
            lambda exc: [],
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["MARKET"],
        )
        return {"airnodeAddress": airnode, "endpoints": result.value, **self._status(result, "api3-market")}

    # Subscriptions

    def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        segment = _path_segment(subscription_id, "subscription_id")
        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/subscriptions/{segment}",
            lambda payload: _map_subscription(_record(payload)),
            lambda exc: {"subscriptionId": subscription_id},
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["MARKET"],
        )
        return {**result.value, **self._status(result, "api3-market")}

    def list_subscriptions(
        self,
        subscriber: Optional[str] = None,
        dapi_name: Optional[str] = None,
        status: str = "all",
    ) -> Dict[str, Any]:
        status_norm = (status or "all").strip().lower()
        if status_norm not in SUBSCRIPTION_STATUSES:
            raise FormatError(f"status must be one of: {', '.join(sorted(SUBSCRIPTION_STATUSES))}.")
        params: Dict[str, Any] = {}
        if subscriber:
            params["subscriber"] = self._normalize_address(subscriber, "subscriber address")
        if dapi_name:
            params["dapi"] = dapi_name
        if status_norm != "all":
            params["status"] = status_norm

        result = self._enrich(
            f"{constants.API_ENDPOINTS['API3_MARKET']}/subscriptions",
            lambda payload: [_map_subscription(item) for item in _records(payload, "subscriptions")],
            lambda exc: [],
            params=params,
            headers=self._market_headers(),
            ttl_seconds=constants.CACHE_TTL_SECONDS["MARKET"],
        )
        return {"subscriptions": result.value, "filters": params, **self._status(result, "api3-market")}

    # Utility

    def get_supported_chains(self) -> List[Dict[str, Any]]:
        return [chain.to_dict() for chain in SUPPORTED_CHAINS]

    def get_networks(self) -> List[Dict[str, Any]]:
        return self.registry.list_networks()

    def get_contract_addresses(self, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        return self.registry.lookup(net).to_dict()

    def encode_function_data(self, function: str, args: Optional[List[Any]] = None) -> Dict[str, Any]:
        signature = parse_signature(function)
        call = encode_call(signature.name, signature.parameter_types, list(args or []))
        return {
            "function": signature.canonical,
            "selector": call.selector,
            "data": call.data,
            "words": list(call.words),
        }

    def get_block_number(self) -> Dict[str, Any]:
        return {"blockNumber": self.calls.block_number(self._rpc())}

    def get_chain_id(self, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        chain_id = self.calls.chain_id(self._rpc())
        expected = self.registry.lookup(net).chain_id
        return {"network": net, "chainId": chain_id, "expectedChainId": expected, "matches": chain_id == expected}

    def get_api_health(self, network: Optional[str] = None) -> Dict[str, Any]:
        net = self._network(network)
        started = time.monotonic()
        rpc_error: Optional[str] = None
        latency_ms = 0
        chain_matches = False
        last_block_time = 0
        try:
            block = self.calls.block(self._rpc())
            latency_ms = int((time.monotonic() - started) * 1000)
            last_block_time = int(block["timestamp"], 16)
            chain_matches = self.calls.chain_id(self._rpc()) == self.registry.lookup(net).chain_id
        except RpcCallError as exc:
            rpc_error = str(exc)

        lag = self._now() - last_block_time if last_block_time else None
        if lag is not None and lag < 120:
            sync_status = "synced"
        elif lag is not None and lag < 600:
            sync_status = "syncing"
        else:
            sync_status = "behind"

        market = fetch_with_fallback(
            lambda: self.rest.get_json(
                f"{constants.API_ENDPOINTS['API3_MARKET']}/health",
                ttl_seconds=constants.CACHE_TTL_SECONDS["HEALTH"],
            ),
            lambda exc: None,
        )
        oev = fetch_with_fallback(
            lambda: self.rest.get_json(
                f"{constants.API_ENDPOINTS['OEV_NETWORK']}/health",
                ttl_seconds=constants.CACHE_TTL_SECONDS["HEALTH"],
            ),
            lambda exc: None,
        )
        services = {
            "rpc": rpc_error is None,
            "dapiServer": chain_matches,
            "api3Market": not market.degraded,
            "oevNetwork": not oev.degraded,
        }
        healthy = sum(1 for ok in services.values() if ok)
        if healthy == len(services):
            status = "healthy"
        elif healthy:
            status = "degraded"
        else:
            status = "down"
        out: Dict[str, Any] = {
            "network": net,
            "status": status,
            "rpcLatencyMs": latency_ms,
            "lastBlockTime": last_block_time,
            "syncStatus": sync_status,
            "services": services,
        }
        if rpc_error:
            out["rpcError"] = rpc_error
        return out

    def convert(
        self,
        value: Any,
        from_unit: str,
        to_unit: str,
        decimals: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """
        Convert between hex/raw/human/wei/gwei/eth with optional decimals (default 18).
        Returns JSON with original/converted/explain.
        """
        from_norm = (from_unit or "").lower()
        to_norm = (to_unit or "").lower()
        allowed = {"hex", "raw", "human", "wei", "gwei", "eth"}
        if from_norm not in allowed or to_norm not in allowed:
            raise FormatError("from/to must be one of: hex, raw, human, wei, gwei, eth.")

        decimals_val = parse_decimals(decimals)
        base_int = self._convert_to_int(value, from_norm, decimals_val)
        converted = self._convert_from_int(base_int, to_norm, decimals_val)

        resp: Dict[str, Any] = {
            "original": {"value": str(value), "unit": from_norm},
            "converted": {"value": converted, "unit": to_norm},
            "decimals": decimals_val,
            "explain": f"{from_norm} -> {to_norm} | value={value} | base_int={base_int} | result={converted}",
        }
        if to_norm in {"human", "eth", "gwei"}:
            resp["converted"]["thousands"] = format_thousands(converted)
        return resp

    def _scale(self, unit: str, decimals: int) -> int:
        return {"eth": 18, "gwei": 9, "wei": 0, "raw": 0}.get(unit, decimals)

    def _convert_to_int(self, value: Any, unit: str, decimals: int) -> int:
        if unit == "hex":
            if not isinstance(value, str) or not re.fullmatch(r"(0x)?[0-9a-fA-F]+", value.strip()):
                raise FormatError("For from=hex, value must be a hex string.")
            return int(value.strip(), 16)
        return to_raw_integer(str(value), self._scale(unit, decimals))

    def _convert_from_int(self, value: int, unit: str, decimals: int) -> str:
        if unit == "hex":
            if value < 0:
                return "-" + hex(-value)
            return hex(value)
        return to_decimal_string(value, self._scale(unit, decimals))


def _map_proposal(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "proposalId": str(item.get("id", "")),
        "title": item.get("title", ""),
        "description": item.get("description", ""),
        "proposer": item.get("proposer", ""),
        "startTime": int(item.get("startTime") or 0),
        "endTime": int(item.get("endTime") or 0),
        "forVotes": str(item.get("forVotes", "0")),
        "againstVotes": str(item.get("againstVotes", "0")),
        "abstainVotes": str(item.get("abstainVotes") or "0"),
        "status": _map_proposal_status(item.get("status")),
    }


def _map_proposal_status(status: Any) -> str:
    text = str(status or "").strip().lower()
    if text in {"active", "open", "voting"}:
        return "active"
    if text in {"executed", "passed", "succeeded"}:
        return "executed"
    if text in {"rejected", "failed", "defeated"}:
        return "rejected"
    return "pending"


def _map_subscription(item: Dict[str, Any]) -> Dict[str, Any]:
    tier = str(item.get("tier") or "").strip().lower()
    status = str(item.get("status") or "").strip().lower()
    if status == "canceled":
        status = "cancelled"
    return {
        "subscriptionId": str(item["subscriptionId"]),
        "dapiName": item.get("dapiName", ""),
        "subscriber": item.get("subscriber", ""),
        "startTime": int(item.get("startTime") or 0),
        "endTime": int(item.get("endTime") or 0),
        "tier": tier if tier in {"pro", "enterprise"} else "basic",
        "updateFrequency": int(item.get("updateFrequency") or 0),
        "status": status if status in {"active", "cancelled"} else "expired",
    }


def _bearer(key: Optional[str]) -> Optional[Dict[str, str]]:
    return {"Authorization": f"Bearer {key}"} if key else None


def _record(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
    return dict(payload)


def _records(payload: Any, key: str) -> List[Dict[str, Any]]:
    """A list of objects, either bare or under ``payload[key]``."""
    items = payload[key] if isinstance(payload, dict) else payload
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise TypeError(f"expected a list of objects under '{key}'")
    return [dict(item) for item in items]


def _parse_token_price(payload: Any) -> Dict[str, Any]:
    entry = payload["api3"]
    return {"usd": entry["usd"], "eth": entry.get("eth"), "change24h": entry.get("usd_24h_change")}


def _non_negative_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise FormatError(f"{field} must be a non-negative integer.")
    if isinstance(value, int) and value >= 0:
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise FormatError(f"{field} must be a non-negative integer.")


def _path_segment(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise FormatError(f"{field} must be a non-empty string.")
    return quote(value.strip(), safe="")


def _vote_support(support: Any) -> int:
    if isinstance(support, bool):
        return int(support)
    if isinstance(support, int) and 0 <= support < len(VOTE_TYPES):
        return support
    if isinstance(support, str):
        text = support.strip().lower()
        names = [name.lower() for name in VOTE_TYPES]
        if text in names:
            return names.index(text)
        if text in {"0", "1", "2"}:
            return int(text)
    raise FormatError("support must be one of: against, for, abstain (or 0, 1, 2).")
