"""
MCP server exposing API3 oracle, token, staking, DAO and market reads.
"""

import argparse
from collections.abc import Mapping
from typing import Any, Optional, Union

from mcp.server.fastmcp import FastMCP

from .config import load_config
from .service import Api3Service

server = FastMCP(
    name="api3-mcp",
    instructions=(
        "Read API3 dAPIs and data feeds, API3 token and staking state, DAO governance, OEV Network, "
        "Airnodes and subscriptions. "
        "prepare_* tools return unsigned call data only."
    ),
)

_service: Optional[Api3Service] = None


def _get_service() -> Api3Service:
    global _service
    if _service is None:
        cfg = load_config()
        _service = Api3Service(cfg)
    return _service


def _normalize_array_param(value: Optional[Any], name: str) -> Optional[list]:
    """
    Ensure a parameter intended as an array is actually treated as one:
    - str/bytes: comma-separated values are split
    - list/tuple: keep as list
    - Mapping: reject (not an array)
    - other scalars: auto-wrap into single-element list
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        raise ValueError(f"{name} must be an array; got bytes.")
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Mapping):
        raise ValueError(f"{name} must be an array, not an object/map.")
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@server.tool(
    name="get_dapi_value",
    title="Get dAPI Value",
    description="Read the current value and timestamp of a dAPI by name (e.g. 'ETH/USD').",
)
def get_dapi_value(dapi_name: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_dapi_value(dapi_name, network)


@server.tool(
    name="get_dapi_info",
    title="Get dAPI Info",
    description="Describe a dAPI: current value, decimals, heartbeat and serving contract.",
)
def get_dapi_info(dapi_name: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_dapi_info(dapi_name, network)


@server.tool(
    name="list_dapis",
    title="List dAPIs",
    description="Read the common dAPIs on a network and report which are active.",
)
def list_dapis(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return {"dapis": svc.list_dapis(network)}


@server.tool(
    name="get_dapi_update_time",
    title="Get dAPI Update Time",
    description="Last update timestamp of a dAPI and the next expected heartbeat update.",
)
def get_dapi_update_time(dapi_name: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_dapi_update_time(dapi_name, network)


@server.tool(
    name="get_dapi_deviation",
    title="Get dAPI Deviation",
    description="Deviation threshold of a dAPI and, given `reference_value` (decimal string), the current deviation from it.",
)
def get_dapi_deviation(dapi_name: str, reference_value: Optional[str] = None, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_dapi_deviation(dapi_name, reference_value, network)


@server.tool(
    name="get_dapi_sources",
    title="Get dAPI Sources",
    description="Data feed ID behind a dAPI and the Airnode sources listed by API3 Market.",
)
def get_dapi_sources(dapi_name: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_dapi_sources(dapi_name, network)


@server.tool(
    name="read_data_feed",
    title="Read Data Feed",
    description="Read a data feed by its bytes32 feed ID.",
)
def read_data_feed(feed_id: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.read_data_feed(feed_id, network)


@server.tool(
    name="get_multiple_feeds",
    title="Read Multiple Data Feeds",
    description="Read several data feeds. `feed_ids` is an array (or comma-separated string) of bytes32 IDs; failures are reported per feed.",
)
def get_multiple_feeds(feed_ids: Any, network: Optional[str] = None) -> dict:
    svc = _get_service()
    normalized = _normalize_array_param(feed_ids, "feed_ids") or []
    return {"feeds": svc.get_multiple_feeds(normalized, network)}


@server.tool(
    name="get_feed_beacon",
    title="Get Feed Beacon",
    description="Read the beacon value behind a bytes32 feed ID.",
)
def get_feed_beacon(feed_id: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_feed_beacon(feed_id, network)


@server.tool(
    name="get_data_feed_id",
    title="Get Data Feed ID",
    description="Resolve the data feed ID a dAPI name currently points to.",
)
def get_data_feed_id(dapi_name: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_data_feed_id(dapi_name, network)


@server.tool(
    name="get_feed_history",
    title="Get Feed History",
    description="Feed values in a time window. Only the current reading (with its block number) is available.",
)
def get_feed_history(
    feed_id: str,
    start_timestamp: int = 0,
    end_timestamp: int = 0,
    network: Optional[str] = None,
) -> dict:
    svc = _get_service()
    return svc.get_feed_history(feed_id, start_timestamp, end_timestamp, network)


@server.tool(
    name="get_feed_metadata",
    title="Get Feed Metadata",
    description="Static metadata of a bytes32 feed ID on a network.",
)
def get_feed_metadata(feed_id: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_feed_metadata(feed_id, network)


@server.tool(
    name="get_token_price",
    title="Get API3 Token Price",
    description="API3 token price in USD/ETH; `degraded` is true when the price source was unavailable.",
)
def get_token_price() -> dict:
    svc = _get_service()
    return svc.get_token_price()


@server.tool(
    name="get_token_supply",
    title="Get API3 Token Supply",
    description="Total, staked and circulating API3 supply.",
)
def get_token_supply(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_token_supply(network)


@server.tool(
    name="get_user_balance",
    title="Get API3 Balance",
    description="API3 token and staked balance of an address.",
)
def get_user_balance(address: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_user_balance(address, network)


@server.tool(
    name="prepare_transfer",
    title="Prepare API3 Transfer",
    description="Build unsigned call data for an API3 token transfer. Requires API3_PRIVATE_KEY to be configured; nothing is signed or sent.",
)
def prepare_transfer(to_address: str, amount: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.prepare_transfer(to_address, amount, network)


@server.tool(
    name="get_staking_info",
    title="Get Staking Info",
    description="Total staked API3, APR and staking pool parameters.",
)
def get_staking_info(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_staking_info(network)


@server.tool(
    name="get_user_stake",
    title="Get User Stake",
    description="Staked amount and pending rewards of an address.",
)
def get_user_stake(address: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_user_stake(address, network)


@server.tool(
    name="get_rewards",
    title="Get Pending Rewards",
    description="Pending staking rewards of an address.",
)
def get_rewards(address: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_rewards(address, network)


@server.tool(
    name="get_apr",
    title="Get Staking APR",
    description="Current staking APR and the derived APY.",
)
def get_apr(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_apr(network)


@server.tool(
    name="prepare_stake",
    title="Prepare Stake",
    description="Build unsigned call data to stake API3. Nothing is signed or sent.",
)
def prepare_stake(amount: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.prepare_stake(amount, network)


@server.tool(
    name="prepare_unstake",
    title="Prepare Unstake",
    description="Build unsigned call data to unstake API3. Nothing is signed or sent.",
)
def prepare_unstake(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.prepare_unstake(network)


@server.tool(
    name="prepare_claim_rewards",
    title="Prepare Claim Rewards",
    description="Build unsigned call data to claim staking rewards. Nothing is signed or sent.",
)
def prepare_claim_rewards(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.prepare_claim_rewards(network)


@server.tool(
    name="get_proposals",
    title="Get DAO Proposals",
    description="List API3 DAO proposals filtered by status (all|pending|active|executed|rejected).",
)
def get_proposals(status: str = "all", limit: int = 10, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_proposals(status, limit, network)


@server.tool(
    name="get_proposal",
    title="Get DAO Proposal",
    description="One API3 DAO proposal; falls back to on-chain vote tallies when API3 Market is unavailable.",
)
def get_proposal(proposal_id: Union[str, int], network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_proposal(proposal_id, network)


@server.tool(
    name="get_vote_record",
    title="Get Vote Record",
    description="Votes cast by an address in the API3 DAO.",
)
def get_vote_record(address: str, network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_vote_record(address, network)


@server.tool(
    name="get_treasury",
    title="Get DAO Treasury",
    description="API3 and native balances held by the DAO voting app.",
)
def get_treasury(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_treasury(network)


@server.tool(
    name="prepare_vote",
    title="Prepare Vote",
    description="Build unsigned castVote call data. `support` is against|for|abstain (or 0|1|2). Nothing is signed or sent.",
)
def prepare_vote(proposal_id: Union[str, int], support: Union[str, int, bool], network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.prepare_vote(proposal_id, support, network)


@server.tool(
    name="get_oev_network_info",
    title="Get OEV Network Info",
    description="OEV Network auction summary for a chain.",
)
def get_oev_network_info(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_oev_network_info(network)


@server.tool(
    name="get_auction_info",
    title="Get OEV Auction",
    description="Details of one OEV auction.",
)
def get_auction_info(auction_id: str) -> dict:
    svc = _get_service()
    return svc.get_auction_info(auction_id)


@server.tool(
    name="get_bid_status",
    title="Get OEV Bid Status",
    description="Status of one OEV bid.",
)
def get_bid_status(bid_id: str) -> dict:
    svc = _get_service()
    return svc.get_bid_status(bid_id)


@server.tool(
    name="get_oev_stats",
    title="Get OEV Stats",
    description="Aggregate OEV Network statistics.",
)
def get_oev_stats() -> dict:
    svc = _get_service()
    return svc.get_oev_stats()


@server.tool(
    name="get_airnode_info",
    title="Get Airnode Info",
    description="API3 Market record of an Airnode by address.",
)
def get_airnode_info(airnode_address: str) -> dict:
    svc = _get_service()
    return svc.get_airnode_info(airnode_address)


@server.tool(
    name="list_airnodes",
    title="List Airnodes",
    description="Airnodes listed on API3 Market.",
)
def list_airnodes() -> dict:
    svc = _get_service()
    return svc.list_airnodes()


@server.tool(
    name="get_airnode_endpoints",
    title="Get Airnode Endpoints",
    description="Endpoints served by an Airnode.",
)
def get_airnode_endpoints(airnode_address: str) -> dict:
    svc = _get_service()
    return svc.get_airnode_endpoints(airnode_address)


@server.tool(
    name="get_subscription",
    title="Get Subscription",
    description="One dAPI subscription from API3 Market.",
)
def get_subscription(subscription_id: str) -> dict:
    svc = _get_service()
    return svc.get_subscription(subscription_id)


@server.tool(
    name="list_subscriptions",
    title="List Subscriptions",
    description="dAPI subscriptions filtered by subscriber address, dAPI name and status (all|active|expired|cancelled).",
)
def list_subscriptions(
    subscriber: Optional[str] = None,
    dapi_name: Optional[str] = None,
    status: str = "all",
) -> dict:
    svc = _get_service()
    return svc.list_subscriptions(subscriber, dapi_name, status)


@server.tool(
    name="get_supported_chains",
    title="Get Supported Chains",
    description="Chains with API3 dAPI coverage and their native currencies.",
)
def get_supported_chains() -> dict:
    svc = _get_service()
    return {"chains": svc.get_supported_chains()}


@server.tool(
    name="get_contract_addresses",
    title="Get Contract Addresses",
    description="API3 contract addresses configured for a network.",
)
def get_contract_addresses(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_contract_addresses(network)


@server.tool(
    name="encode_function_data",
    title="Encode Function Call",
    description="Compute selector and ABI-encoded call data from a signature such as 'balanceOf(address)'. `args` must be an array.",
)
def encode_function_data(function: str, args: Optional[Any] = None) -> dict:
    svc = _get_service()
    normalized_args = _normalize_array_param(args, "args")
    return svc.encode_function_data(function, normalized_args)


@server.tool(
    name="get_block_number",
    title="Get Block Number",
    description="Latest block number seen by the configured RPC endpoint.",
)
def get_block_number() -> dict:
    svc = _get_service()
    return svc.get_block_number()


@server.tool(
    name="get_chain_id",
    title="Get Chain ID",
    description="Chain ID reported by the RPC endpoint compared with the configured network.",
)
def get_chain_id(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_chain_id(network)


@server.tool(
    name="get_api_health",
    title="Get API Health",
    description="Health of the RPC endpoint, dAPI server and API3 web services.",
)
def get_api_health(network: Optional[str] = None) -> dict:
    svc = _get_service()
    return svc.get_api_health(network)


@server.tool(
    name="convert",
    title="Number Convert",
    description="Convert hex/raw/human/wei/gwei/eth with decimals (default 18). Returns JSON with original, converted, explain.",
)
def convert(value: Union[str, int], from_unit: str, to_unit: str, decimals: Optional[Any] = None) -> dict:
    svc = _get_service()
    return svc.convert(value, from_unit, to_unit, decimals)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the API3 MCP server.")
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default="stdio",
        help="Transport protocol for MCP.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host for SSE/HTTP transports.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for SSE/HTTP transports.",
    )
    parser.add_argument(
        "--mount-path",
        default="/",
        help="Mount path for SSE transport (only when transport=sse).",
    )
    args = parser.parse_args()

    # stdio ignores host/port.
    server.settings.host = args.host
    server.settings.port = args.port

    if args.transport == "sse":
        server.run(transport="sse", mount_path=args.mount_path)
    else:
        server.run(transport=args.transport)


if __name__ == "__main__":
    main()
