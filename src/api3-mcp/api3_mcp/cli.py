import argparse
import json
import sys
from typing import Optional

from .config import load_config
from .service import Api3Service


def _add_network(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--network",
        required=False,
        help="Optional network override. Defaults to API3_NETWORK env or ethereum.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Read API3 dAPIs, data feeds, token, staking and DAO state.",
        allow_abbrev=False,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    dapi_parser = subparsers.add_parser("dapi", help="Read a dAPI value by name")
    dapi_parser.add_argument("--name", required=True, help="dAPI name, e.g. ETH/USD.")
    _add_network(dapi_parser)

    feed_parser = subparsers.add_parser("feed", help="Read one or more data feeds by ID")
    feed_parser.add_argument(
        "--id",
        dest="feed_ids",
        required=True,
        action="append",
        help="bytes32 data feed ID (repeat for several feeds).",
    )
    _add_network(feed_parser)

    list_parser = subparsers.add_parser("list-dapis", help="Read the common dAPIs")
    _add_network(list_parser)

    balance_parser = subparsers.add_parser("balance", help="API3 token and staked balance of an address")
    balance_parser.add_argument("--address", required=True, help="Account address (0x-prefixed).")
    _add_network(balance_parser)

    staking_parser = subparsers.add_parser("staking", help="Staking pool totals and APR")
    _add_network(staking_parser)

    proposals_parser = subparsers.add_parser("proposals", help="List DAO proposals")
    proposals_parser.add_argument(
        "--status",
        default="all",
        choices=["all", "pending", "active", "executed", "rejected"],
        help="Proposal status filter.",
    )
    proposals_parser.add_argument("--limit", type=int, default=10, help="Maximum number of proposals.")
    _add_network(proposals_parser)

    proposal_parser = subparsers.add_parser("proposal", help="Show one DAO proposal")
    proposal_parser.add_argument("--id", dest="proposal_id", required=True, help="Proposal ID.")
    _add_network(proposal_parser)

    treasury_parser = subparsers.add_parser("treasury", help="DAO treasury balances")
    _add_network(treasury_parser)

    encode_parser = subparsers.add_parser("encode", help="Encode call data for a function signature")
    encode_parser.add_argument("--function", required=True, help="Signature, e.g. balanceOf(address).")
    encode_parser.add_argument("--arg", dest="args", action="append", default=[], help="Argument (repeatable).")

    subparsers.add_parser("networks", help="List configured networks and their features")
    subparsers.add_parser("health", help="Check RPC and API3 service health")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
        service = Api3Service(config)

        if args.command == "dapi":
            result = service.get_dapi_value(args.name, args.network)
        elif args.command == "feed":
            if len(args.feed_ids) == 1:
                result = service.read_data_feed(args.feed_ids[0], args.network)
            else:
                result = service.get_multiple_feeds(args.feed_ids, args.network)
        elif args.command == "list-dapis":
            result = service.list_dapis(args.network)
        elif args.command == "balance":
            result = service.get_user_balance(args.address, args.network)
        elif args.command == "staking":
            result = service.get_staking_info(args.network)
        elif args.command == "proposals":
            result = service.get_proposals(args.status, args.limit, args.network)
        elif args.command == "proposal":
            result = service.get_proposal(args.proposal_id, args.network)
        elif args.command == "treasury":
            result = service.get_treasury(args.network)
        elif args.command == "encode":
            result = service.encode_function_data(args.function, args.args)
        elif args.command == "networks":
            result = service.get_networks()
        else:
            result = service.get_api_health()
        print(json.dumps(result, indent=2))
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
