import pytest
from hypothesis import given
from hypothesis import strategies as st

from api3_mcp.abi import (
    KNOWN_SELECTORS,
    UINT256_MAX,
    FunctionSignature,
    TypeTag,
    build_call_data,
    dapi_name_to_bytes32,
    encode_call,
    encode_parameter,
    encode_parameters,
    parse_signature,
    resolve_selector,
    selector_is_known,
)
from api3_mcp import constants
from api3_mcp.errors import FormatError, SelectorResolutionError

ADDRESS = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


@pytest.mark.parametrize("signature, selector", sorted(KNOWN_SELECTORS.items()))
def test_known_selectors(signature, selector):
    assert parse_signature(signature).selector == selector
    assert selector_is_known(signature)


def test_resolve_selector_matches_transfer():
    assert resolve_selector("transfer", ["address", "uint256"]) == "0xa9059cbb"
    assert resolve_selector("balanceOf", [TypeTag.ADDRESS]) == "0x70a08231"


def test_selector_depends_on_types():
    assert resolve_selector("stake", ["uint256"]) != resolve_selector("stake", [])


@pytest.mark.parametrize("name", ["", "1abc", "bad name", "x(y)"])
def test_invalid_function_name(name):
    with pytest.raises(SelectorResolutionError):
        FunctionSignature(name)


def test_unsupported_type_tag():
    with pytest.raises(SelectorResolutionError):
        resolve_selector("foo", ["string"])
    with pytest.raises(SelectorResolutionError):
        parse_signature("foo(address,)")
    with pytest.raises(SelectorResolutionError):
        parse_signature("foo")


def test_address_word_is_lowercase_and_left_padded():
    encoded = encode_parameter("address", ADDRESS)
    assert len(encoded) == 64
    assert encoded == "0" * 24 + ADDRESS[2:].lower()


@pytest.mark.parametrize("value", ["0x1234", ADDRESS + "00", "0xZZcdef0123456789abcdef0123456789abcdef01", 5])
def test_bad_address_rejected(value):
    with pytest.raises(FormatError):
        encode_parameter("address", value)


def test_uint256_bounds():
    assert encode_parameter("uint256", 0) == "0" * 64
    assert encode_parameter("uint256", UINT256_MAX) == "f" * 64
    assert encode_parameter("uint256", "255") == "0" * 62 + "ff"
    assert encode_parameter("uint256", "0xff") == "0" * 62 + "ff"
    with pytest.raises(FormatError):
        encode_parameter("uint256", UINT256_MAX + 1)
    with pytest.raises(FormatError):
        encode_parameter("uint256", -1)
    with pytest.raises(FormatError):
        encode_parameter("uint256", "-5")
    with pytest.raises(FormatError):
        encode_parameter("uint256", True)


def test_bytes32_is_right_padded():
    assert encode_parameter("bytes32", "0xabcd") == "abcd" + "0" * 60
    assert encode_parameter("bytes32", b"\x01") == "01" + "0" * 62
    with pytest.raises(FormatError):
        encode_parameter("bytes32", "0x" + "00" * 33)
    with pytest.raises(FormatError):
        encode_parameter("bytes32", "0xabc")


def test_decode_only_tags_cannot_be_encoded():
    with pytest.raises(FormatError):
        encode_parameter("int224", 1)
    with pytest.raises(FormatError):
        encode_parameter(TypeTag.UINT32, 1)


def test_dapi_name_to_bytes32():
    assert dapi_name_to_bytes32("ETH/USD") == "0x" + "4554482f555344" + "0" * 50
    assert dapi_name_to_bytes32("ETH/USD") != dapi_name_to_bytes32("BTC/USD")
    with pytest.raises(FormatError):
        dapi_name_to_bytes32("")
    with pytest.raises(FormatError):
        dapi_name_to_bytes32("x" * 33)


def test_common_dapi_names_encode_to_distinct_words():
    encoded = [dapi_name_to_bytes32(name) for name in constants.COMMON_DAPIS]
    assert len(set(encoded)) == len(constants.COMMON_DAPIS)
    assert all(len(value) == 66 for value in encoded)


def test_uint8_bounds():
    assert encode_parameter("uint8", 2) == "0" * 63 + "2"
    assert encode_parameter(TypeTag.UINT8, "255") == "0" * 62 + "ff"
    with pytest.raises(FormatError):
        encode_parameter("uint8", 256)
    with pytest.raises(FormatError):
        encode_parameter("uint8", -1)


def test_cast_vote_call_data():
    data = build_call_data("castVote", ["uint256", "uint8"], [7, 1])
    assert data.startswith(constants.CAST_VOTE.selector)
    assert int(data[10:74], 16) == 7
    assert int(data[74:], 16) == 1


def test_transfer_call_data():
    data = build_call_data("transfer", ["address", "uint256"], [ADDRESS, 10**18])
    assert data.startswith("0xa9059cbb")
    assert data[10:74] == "0" * 24 + ADDRESS[2:].lower()
    assert int(data[74:], 16) == 10**18


def test_argument_count_mismatch():
    with pytest.raises(FormatError):
        encode_call("transfer", ["address", "uint256"], [ADDRESS])


@given(st.lists(st.integers(min_value=0, max_value=UINT256_MAX), max_size=6))
def test_call_length_is_selector_plus_words(values):
    call = encode_call("f", ["uint256"] * len(values), values)
    assert len(call.data) == 10 + 64 * len(values)
    assert len(call) == len(call.data)


def test_encode_parameters_concatenates_words():
    encoded = encode_parameters(["uint256", "bytes32"], [1, "0xff"])
    assert encoded == "0" * 63 + "1" + "ff" + "0" * 62
    with pytest.raises(FormatError):
        encode_parameters(["uint256"], [])
