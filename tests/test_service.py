import dataclasses

import pytest

from api3_mcp import constants
from api3_mcp.errors import FormatError, MissingCredentialError, RpcCallError, UnsupportedNetworkError
from api3_mcp.service import Api3Service

from conftest import DAPI_SERVER, GOVERNANCE, POOL, TOKEN, USER, FakeRest, FakeTransport, word

FEED_A = "0x" + "aa" * 32
FEED_B = "0x" + "bb" * 32


def _service(config, registry, transport, rest=None, now=1_700_000_100):
    return Api3Service(
        config,
        registry=registry,
        transport_factory=lambda url: transport,
        rest_client=rest or FakeRest(),
        clock=lambda: now,
    )


@pytest.fixture
def service(config, registry, transport):
    return _service(config, registry, transport)


@pytest.fixture
def keyed_service(config, registry, transport):
    return _service(dataclasses.replace(config, private_key="0x" + "11" * 32), registry, transport)


def test_get_dapi_value_and_update_time(service, transport):
    transport.responses[constants.READ_DATA_FEED_WITH_DAPI_NAME.selector] = (
        "0x" + word(2500 * 10**18) + word(1_700_000_000)
    )
    assert service.get_dapi_value("ETH/USD")["formattedValue"] == "2500"

    update = service.get_dapi_update_time("ETH/USD")
    assert update["lastUpdateTimestamp"] == 1_700_000_000
    assert update["nextExpectedUpdate"] == 1_700_000_000 + constants.DEFAULT_HEARTBEAT
    assert update["secondsSinceUpdate"] == 100


def test_list_dapis_reports_failures(service, transport):
    transport.responses[constants.READ_DATA_FEED_WITH_DAPI_NAME.selector] = RpcCallError("execution reverted")
    listed = service.list_dapis()
    assert len(listed) == len(constants.COMMON_DAPIS)
    assert all(item["active"] is False and "error" in item for item in listed)


def test_multiple_feeds_report_errors_per_feed(service, transport):
    transport.responses[constants.READ_DATA_FEED_WITH_ID.selector] = "0x" + word(3 * 10**18) + word(10)
    results = service.get_multiple_feeds(f"{FEED_A}, 0x1234,{FEED_B}")
    assert [r["feedId"] for r in results] == [FEED_A, "0x1234", FEED_B]
    assert results[0]["formattedValue"] == "3"
    assert "error" in results[1]
    assert "value" not in results[1]
    assert results[2]["timestamp"] == 10


def test_token_supply(service, transport):
    transport.responses[constants.TOTAL_SUPPLY.selector] = "0x" + word(1000 * 10**18)
    transport.responses[constants.BALANCE_OF.selector] = "0x" + word(400 * 10**18)
    supply = service.get_token_supply()
    assert supply["totalSupply"] == "1000"
    assert supply["stakedSupply"] == "400"
    assert supply["circulatingSupply"] == "600"
    assert transport.calls[1][1][0]["data"].endswith(POOL[2:].lower())


def test_user_balance_includes_stake(service, transport):
    transport.responses[constants.BALANCE_OF.selector] = "0x" + word(15 * 10**17)
    transport.responses[constants.USER_STAKE.selector] = "0x" + word(10**18)
    balance = service.get_user_balance(USER)
    assert balance["balance"] == "1.5"
    assert balance["formattedBalance"] == "1.5 API3"
    assert balance["stakedBalance"] == "1"
    assert balance["totalBalance"] == "2.5"


def test_user_balance_rejects_bad_address(service, transport):
    with pytest.raises(FormatError):
        service.get_user_balance("0x123")
    assert transport.calls == []


def test_prepare_requires_private_key(service, transport):
    with pytest.raises(MissingCredentialError):
        service.prepare_transfer(USER, "1")
    with pytest.raises(MissingCredentialError):
        service.prepare_stake("1")
    assert transport.calls == []


def test_prepare_transfer_payload(keyed_service, transport):
    payload = keyed_service.prepare_transfer(USER, "2.5")
    assert payload["to"] == TOKEN
    assert payload["data"].startswith("0xa9059cbb")
    assert len(payload["data"]) == 10 + 128
    assert int(payload["data"][74:], 16) == 25 * 10**17
    assert payload["value"] == "0x0"
    assert payload["status"] == "unsigned"
    assert payload["chainId"] == 1
    assert transport.calls == []


def test_prepare_transfer_rejects_zero(keyed_service):
    with pytest.raises(FormatError):
        keyed_service.prepare_transfer(USER, "0")


def test_prepare_staking_payloads(keyed_service):
    stake = keyed_service.prepare_stake("10")
    assert stake["to"] == POOL
    assert stake["data"] == constants.STAKE.selector + word(10 * 10**18)
    assert keyed_service.prepare_unstake()["data"] == constants.UNSTAKE.selector
    assert keyed_service.prepare_claim_rewards()["data"] == constants.CLAIM_REWARD.selector


def test_staking_refused_off_dao_network(keyed_service, transport):
    with pytest.raises(UnsupportedNetworkError):
        keyed_service.get_staking_info("sidechain-fixture")
    with pytest.raises(UnsupportedNetworkError):
        keyed_service.prepare_stake("1", "sidechain-fixture")
    assert transport.calls == []


def test_staking_info_and_apr(service, transport):
    transport.responses[constants.TOTAL_STAKE.selector] = "0x" + word(5_000_000 * 10**18)
    transport.responses[constants.APR.selector] = "0x" + word(1250)
    info = service.get_staking_info()
    assert info["totalStaked"] == "5000000"
    assert info["apr"] == "12.50%"
    assert info["unstakingPeriod"] == constants.UNSTAKING_PERIOD

    apr = service.get_apr()
    assert apr["apr"] == "12.50%"
    assert apr["apy"] == "13.31%"
    assert apr["rewardRate"] == "0.034246%"
    assert apr["aprRaw"] == "1250"


def test_user_stake_and_rewards(service, transport):
    transport.responses[constants.USER_STAKE.selector] = "0x" + word(2 * 10**18)
    transport.responses[constants.GET_USER_REWARD.selector] = "0x" + word(10**17)
    stake = service.get_user_stake(USER)
    assert stake["stakedAmount"] == "2"
    assert stake["pendingRewards"] == "0.1"
    assert service.get_rewards(USER)["pendingRewards"] == "0.1"


def test_token_price_placeholder_is_labelled(service):
    price = service.get_token_price()
    assert price["degraded"] is True
    assert price["source"] == "placeholder"
    assert price["usd"] is None
    assert "503" in price["error"]


def test_token_price_from_rest(config, registry, transport):
    rest = FakeRest({"/simple/price": {"api3": {"usd": 1.25, "eth": 0.0005, "usd_24h_change": -2.1}}})
    price = _service(config, registry, transport, rest).get_token_price()
    assert price["degraded"] is False
    assert price["usd"] == 1.25
    assert price["change24h"] == -2.1


def test_proposals_fallback_and_filter(config, registry, transport):
    degraded = _service(config, registry, transport).get_proposals()
    assert degraded["proposals"] == []
    assert degraded["degraded"] is True

    rest = FakeRest(
        {
            "/governance/proposals": {
                "proposals": [
                    {"id": 1, "title": "A", "status": "Active", "startTime": 1, "endTime": 2},
                    {"id": 2, "title": "B", "status": "passed"},
                    {"id": 3, "title": "C", "status": "open"},
                ]
            }
        }
    )
    result = _service(config, registry, transport, rest).get_proposals(status="active", limit=1)
    assert result["degraded"] is False
    assert [p["proposalId"] for p in result["proposals"]] == ["1"]


def test_proposals_validation(service):
    with pytest.raises(FormatError):
        service.get_proposals(status="weird")
    with pytest.raises(FormatError):
        service.get_proposals(limit=0)
    with pytest.raises(UnsupportedNetworkError):
        service.get_proposals(network="sidechain-fixture")


def test_encode_function_data(service):
    encoded = service.encode_function_data("balanceOf(address)", [USER])
    assert encoded["selector"] == "0x70a08231"
    assert encoded["data"] == "0x70a08231" + word(int(USER, 16))
    assert encoded["function"] == "balanceOf(address)"


def test_contract_addresses_and_chains(service):
    addresses = service.get_contract_addresses()
    assert addresses["api3Token"] == TOKEN
    assert addresses["stakingPool"] == POOL
    with pytest.raises(UnsupportedNetworkError):
        service.get_contract_addresses("unknown")
    assert any(chain["chainId"] == 1 for chain in service.get_supported_chains())


def test_chain_id_check(config, registry):
    transport = FakeTransport({"eth_chainId": "0x89", "eth_blockNumber": "0x64"})
    service = _service(config, registry, transport)
    assert service.get_chain_id() == {
        "network": "ethereum-mainnet-fixture",
        "chainId": 137,
        "expectedChainId": 1,
        "matches": False,
    }
    assert service.get_block_number() == {"blockNumber": 100}


def test_api_health(config, registry):
    transport = FakeTransport(
        {"eth_getBlockByNumber": {"timestamp": hex(1_700_000_050)}, "eth_chainId": "0x1"}
    )
    health = _service(config, registry, transport).get_api_health()
    assert health["services"] == {"rpc": True, "dapiServer": True, "api3Market": False, "oevNetwork": False}
    assert health["status"] == "degraded"
    assert health["syncStatus"] == "synced"
    assert health["lastBlockTime"] == 1_700_000_050


def test_api_health_when_rpc_down(config, registry):
    transport = FakeTransport({"eth_getBlockByNumber": RpcCallError("connection refused")})
    health = _service(config, registry, transport).get_api_health()
    assert health["services"]["rpc"] is False
    assert health["status"] == "down"
    assert health["syncStatus"] == "behind"
    assert "connection refused" in health["rpcError"]


@pytest.mark.parametrize(
    "value, from_unit, to_unit, expected",
    [
        ("1.5", "eth", "wei", "1500000000000000000"),
        ("1000000000", "wei", "gwei", "1"),
        ("0x10", "hex", "raw", "16"),
        ("255", "raw", "hex", "0xff"),
        ("1234567", "raw", "human", "1.234567"),
    ],
)
def test_convert(service, value, from_unit, to_unit, expected):
    decimals = 6 if to_unit == "human" else None
    assert service.convert(value, from_unit, to_unit, decimals)["converted"]["value"] == expected


def test_convert_rejects_unknown_unit(service):
    with pytest.raises(FormatError):
        service.convert("1", "btc", "wei")


def test_dapi_info_feed_beacon_and_feed_id(service, transport):
    transport.responses[constants.READ_DATA_FEED_WITH_DAPI_NAME.selector] = "0x" + word(65_000 * 10**18) + word(42)
    transport.responses[constants.READ_DATA_FEED_WITH_ID.selector] = "0x" + word(10**18) + word(43)
    transport.responses[constants.DAPI_NAME_TO_DATA_FEED_ID.selector] = FEED_A

    info = service.get_dapi_info("BTC/USD")
    assert info["formattedValue"] == "65000"
    assert info["lastUpdated"] == 42
    assert info["heartbeat"] == constants.DEFAULT_HEARTBEAT

    beacon = service.get_feed_beacon(FEED_B)
    assert beacon == {"beaconId": FEED_B, "value": str(10**18), "formattedValue": "1", "timestamp": 43}

    assert service.get_data_feed_id("BTC/USD")["dataFeedId"] == FEED_A


@pytest.mark.parametrize("raw", [25 * 10**15, 2**255])
def test_apr_from_oversized_word(service, transport, raw):
    transport.responses[constants.APR.selector] = "0x" + word(raw)
    apr = service.get_apr()
    assert apr["aprRaw"] == str(raw)
    assert apr["apr"] == f"{raw // 100}.{raw % 100:02d}%"
    assert apr["apy"] is None


def test_proposals_with_unreadable_fields_degrade(config, registry, transport):
    rest = FakeRest({"/governance/proposals": {"proposals": [{"id": 1, "startTime": "soon"}]}})
    result = _service(config, registry, transport, rest).get_proposals()
    assert result["degraded"] is True
    assert result["source"] == "placeholder"
    assert result["proposals"] == []
    assert "unexpected response shape" in result["error"]


def test_token_price_without_api3_entry_is_degraded(config, registry, transport):
    rest = FakeRest({"/simple/price": {"bitcoin": {"usd": 60000}}})
    price = _service(config, registry, transport, rest).get_token_price()
    assert price["degraded"] is True
    assert price["source"] == "placeholder"
    assert price["usd"] is None


def test_market_and_oev_requests_carry_bearer_keys(config, registry, transport):
    rest = FakeRest()
    keyed = dataclasses.replace(config, api3_market_api_key="market-key", oev_api_key="oev-key")
    service = _service(keyed, registry, transport, rest)
    service.get_proposals()
    service.get_oev_stats()
    assert rest.requests[0][2] == {"Authorization": "Bearer market-key"}
    assert rest.requests[1][2] == {"Authorization": "Bearer oev-key"}

    _service(config, registry, transport, rest).get_oev_stats()
    assert rest.requests[2][2] is None


def test_get_proposal_from_market(config, registry, transport):
    rest = FakeRest(
        {"/governance/proposals/4": {"id": 4, "title": "Grant", "status": "succeeded", "forVotes": "10"}}
    )
    proposal = _service(config, registry, transport, rest).get_proposal("4")
    assert proposal["proposalId"] == "4"
    assert proposal["title"] == "Grant"
    assert proposal["status"] == "executed"
    assert proposal["degraded"] is False
    assert proposal["source"] == "api3-market"
    assert transport.calls == []


def test_get_proposal_falls_back_to_chain(service, transport):
    transport.responses[constants.PROPOSAL.selector] = "0x" + word(5 * 10**18) + word(0) + word(2 * 10**18)
    proposal = service.get_proposal(4)
    assert proposal["forVotes"] == "5"
    assert proposal["againstVotes"] == "2"
    assert proposal["status"] is None
    assert proposal["degraded"] is True
    assert proposal["source"] == "on-chain"
    assert "503" in proposal["error"]


def test_get_proposal_validation(service, transport):
    with pytest.raises(FormatError):
        service.get_proposal("abc")
    with pytest.raises(UnsupportedNetworkError):
        service.get_proposal(1, "sidechain-fixture")
    assert transport.calls == []


def test_vote_record(config, registry, transport):
    rest = FakeRest({f"/governance/votes/{USER}": {"votes": [{"proposalId": "1", "support": True}]}})
    record = _service(config, registry, transport, rest).get_vote_record(USER)
    assert record["totalVotes"] == 1
    assert record["votes"][0]["proposalId"] == "1"
    assert record["degraded"] is False

    missing = _service(config, registry, transport).get_vote_record(USER)
    assert missing["votes"] == []
    assert missing["degraded"] is True


def test_treasury_balances(config, registry):
    transport = FakeTransport(
        {constants.BALANCE_OF.selector: "0x" + word(1000 * 10**18), "eth_getBalance": hex(10**18)}
    )
    treasury = _service(config, registry, transport).get_treasury()
    assert treasury["address"] == GOVERNANCE
    assert treasury["api3Balance"] == "1000"
    assert treasury["ethBalance"] == "1"
    assert transport.calls[1] == ("eth_getBalance", [GOVERNANCE, "latest"])


def test_prepare_vote_payload(keyed_service, transport):
    vote = keyed_service.prepare_vote("3", "for")
    assert vote["to"] == GOVERNANCE
    assert vote["data"] == constants.CAST_VOTE.selector + word(3) + word(1)
    assert vote["voteType"] == "For"
    assert vote["status"] == "unsigned"
    assert keyed_service.prepare_vote(3, "abstain")["support"] == 2
    assert keyed_service.prepare_vote(3, False)["voteType"] == "Against"
    with pytest.raises(FormatError):
        keyed_service.prepare_vote(3, "maybe")
    assert transport.calls == []


def test_prepare_vote_requires_private_key(service):
    with pytest.raises(MissingCredentialError):
        service.prepare_vote(1, "for")


@pytest.mark.parametrize(
    "reference, deviation, exceeds",
    [("2450", "2.04", True), ("2490", "0.40", False), ("2550", "-1.96", True), ("2500", "0.00", False)],
)
def test_dapi_deviation_against_reference(service, transport, reference, deviation, exceeds):
    transport.responses[constants.READ_DATA_FEED_WITH_DAPI_NAME.selector] = "0x" + word(2500 * 10**18) + word(42)
    result = service.get_dapi_deviation("ETH/USD", reference)
    assert result["deviationThresholdPercent"] == "1.00"
    assert result["referenceValue"] == reference
    assert result["currentDeviation"] == deviation
    assert result["exceedsThreshold"] is exceeds


def test_dapi_deviation_without_reference(service, transport):
    transport.responses[constants.READ_DATA_FEED_WITH_DAPI_NAME.selector] = "0x" + word(2500 * 10**18) + word(42)
    result = service.get_dapi_deviation("ETH/USD")
    assert result["currentValue"] == "2500"
    assert result["currentDeviation"] is None
    assert result["exceedsThreshold"] is None


def test_dapi_sources(config, registry, transport):
    transport.responses[constants.DAPI_NAME_TO_DATA_FEED_ID.selector] = FEED_A
    rest = FakeRest({"/dapis/ETH%2FUSD/sources": {"sources": [{"airnodeAddress": USER}]}})
    sources = _service(config, registry, transport, rest).get_dapi_sources("ETH/USD")
    assert sources["dataFeedId"] == FEED_A
    assert sources["sources"] == [{"airnodeAddress": USER}]
    assert sources["degraded"] is False

    offline = _service(config, registry, transport).get_dapi_sources("ETH/USD")
    assert offline["dataFeedId"] == FEED_A
    assert offline["sources"] == []
    assert offline["degraded"] is True


def test_feed_history_returns_current_point(service, transport):
    transport.responses[constants.READ_DATA_FEED_WITH_ID.selector] = "0x" + word(3 * 10**18) + word(10)
    transport.responses["eth_blockNumber"] = "0x64"
    history = service.get_feed_history(FEED_A)
    assert history["values"] == [{"value": str(3 * 10**18), "formattedValue": "3", "timestamp": 10, "blockNumber": 100}]
    assert history["startTimestamp"] == 10
    assert history["endTimestamp"] == 1_700_000_100


def test_feed_history_rejects_inverted_window(service, transport):
    with pytest.raises(FormatError):
        service.get_feed_history(FEED_A, 20, 10)
    assert transport.calls == []


def test_feed_metadata(service):
    metadata = service.get_feed_metadata(FEED_A)
    assert metadata["dapiServerAddress"] == DAPI_SERVER
    assert metadata["decimals"] == 18
    assert metadata["description"] == "Data feed on Fixture Mainnet"
    with pytest.raises(FormatError):
        service.get_feed_metadata("0x1234")


def test_oev_network_info(config, registry, transport):
    offline = _service(config, registry, transport).get_oev_network_info()
    assert offline["chainId"] == 1
    assert offline["networkName"] == "Fixture Mainnet"
    assert offline["degraded"] is True

    rest = FakeRest({"/network/1": {"activeAuctions": 3}})
    online = _service(config, registry, transport, rest).get_oev_network_info()
    assert online["activeAuctions"] == 3
    assert online["source"] == "oev-network"


def test_oev_lookups(config, registry, transport):
    rest = FakeRest({"/stats": ["not", "an", "object"], "/auctions/a-1": {"auctionId": "a-1", "bidCount": 2}})
    service = _service(config, registry, transport, rest)
    assert service.get_oev_stats()["degraded"] is True
    assert service.get_auction_info("a-1")["bidCount"] == 2
    bid = service.get_bid_status("b/1")
    assert bid == {
        "bidId": "b/1",
        "degraded": True,
        "source": "placeholder",
        "error": bid["error"],
    }
    assert rest.requests[-1][0].endswith("/bids/b%2F1")
    with pytest.raises(FormatError):
        service.get_auction_info(" ")


def test_airnodes(config, registry, transport):
    rest = FakeRest(
        {
            "/airnodes": [{"airnodeAddress": USER}],
            "/endpoints": {"endpoints": [{"endpointId": "0x01"}]},
        }
    )
    service = _service(config, registry, transport, rest)
    assert service.list_airnodes()["airnodes"] == [{"airnodeAddress": USER}]
    assert service.get_airnode_endpoints(USER)["endpoints"] == [{"endpointId": "0x01"}]
    info = service.get_airnode_info(USER)
    assert info["airnodeAddress"] == USER
    assert info["degraded"] is True
    with pytest.raises(FormatError):
        service.get_airnode_info("0x12")


def test_subscriptions(config, registry, transport):
    entry = {"subscriptionId": "sub-1", "dapiName": "ETH/USD", "tier": "PRO", "status": "canceled", "endTime": 2}
    rest = FakeRest({"/subscriptions/sub-1": entry, "/subscriptions": {"subscriptions": [entry, {"tier": "basic"}]}})
    service = _service(config, registry, transport, rest)

    single = service.get_subscription("sub-1")
    assert single["tier"] == "pro"
    assert single["status"] == "cancelled"
    assert single["endTime"] == 2

    # the second entry has no id, so the whole listing degrades
    listed = service.list_subscriptions(subscriber=USER, status="active")
    assert listed["subscriptions"] == []
    assert listed["degraded"] is True
    assert rest.requests[-1][1] == {"subscriber": USER, "status": "active"}

    with pytest.raises(FormatError):
        service.list_subscriptions(status="weird")
