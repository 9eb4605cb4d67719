"""
ABI encoding for the handful of static types the API3 contracts need.

Call data is ``0x`` + 4-byte selector + one 64-hex-char word per parameter.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Sequence, Tuple, Union

from eth_utils import keccak

from .errors import FormatError, SelectorResolutionError

WORD_HEX_CHARS = 64
UINT256_MAX = 2**256 - 1

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")

# Standard ERC-20 selectors, used to sanity-check the hash backend.
KNOWN_SELECTORS = {
    "balanceOf(address)": "0x70a08231",
    "totalSupply()": "0x18160ddd",
    "transfer(address,uint256)": "0xa9059cbb",
}


class TypeTag(str, Enum):
    ADDRESS = "address"
    UINT256 = "uint256"
    UINT8 = "uint8"
    BYTES32 = "bytes32"
    INT224 = "int224"
    UINT32 = "uint32"

    @property
    def encodable(self) -> bool:
        return self in (TypeTag.ADDRESS, TypeTag.UINT256, TypeTag.UINT8, TypeTag.BYTES32)

    @classmethod
    def parse(cls, value: Union[str, "TypeTag"]) -> "TypeTag":
        if isinstance(value, TypeTag):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            allowed = ", ".join(tag.value for tag in cls)
            raise SelectorResolutionError(f"Unsupported ABI type '{value}'. Supported: {allowed}.") from None


TagLike = Union[str, TypeTag]


def _parse_tags(tags: Sequence[TagLike]) -> Tuple[TypeTag, ...]:
    return tuple(TypeTag.parse(tag) for tag in tags)


@dataclass(frozen=True)
class FunctionSignature:
    name: str
    parameter_types: Tuple[TypeTag, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_RE.fullmatch(self.name):
            raise SelectorResolutionError(f"Invalid function name '{self.name}'.")
        object.__setattr__(self, "parameter_types", _parse_tags(self.parameter_types))

    @property
    def canonical(self) -> str:
        return f"{self.name}({','.join(tag.value for tag in self.parameter_types)})"

    @property
    def selector(self) -> str:
        digest = keccak(self.canonical.encode("utf-8"))
        return "0x" + digest.hex()[:8]


@dataclass(frozen=True)
class EncodedCall:
    selector: str
    words: Tuple[str, ...] = ()

    @property
    def data(self) -> str:
        return self.selector + "".join(self.words)

    def __len__(self) -> int:
        return len(self.data)


def parse_signature(signature: str) -> FunctionSignature:
    """Parse ``name(type1,type2)`` into a :class:`FunctionSignature`."""
    text = (signature or "").strip()
    if "(" not in text or not text.endswith(")"):
        raise SelectorResolutionError("function must be in the form name(type1,type2,...)")
    name, rest = text.split("(", 1)
    params = rest[:-1]
    types: List[str] = []
    if params.strip():
        types = [part.strip() for part in params.split(",")]
        if any(not part for part in types):
            raise SelectorResolutionError("Empty type in function signature.")
    return FunctionSignature(name.strip(), tuple(types))


def resolve_selector(function_name: str, type_tags: Sequence[TagLike] = ()) -> str:
    """Return the 4-byte selector (``0x`` + 8 hex) of ``name(types)``."""
    return FunctionSignature(function_name, tuple(type_tags)).selector


def selector_is_known(signature: str) -> bool:
    expected = KNOWN_SELECTORS.get(signature)
    return expected is not None and parse_signature(signature).selector == expected


def _strip_0x(value: str) -> str:
    return value[2:] if value[:2].lower() == "0x" else value


def _encode_address(value: Any) -> str:
    if not isinstance(value, str):
        raise FormatError("address value must be a string.")
    body = _strip_0x(value.strip()).lower()
    if len(body) != 40 or not _HEX_RE.fullmatch(body):
        raise FormatError(f"Invalid address value '{value}'. Expected 40 hex characters.")
    return body.rjust(WORD_HEX_CHARS, "0")


def _encode_uint(value: Any, bits: int = 256) -> str:
    label = f"uint{bits}"
    if isinstance(value, bool):
        raise FormatError(f"{label} value must be an integer.")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        candidate = value.strip()
        if re.fullmatch(r"\d+", candidate):
            number = int(candidate, 10)
        elif re.fullmatch(r"0[xX][0-9a-fA-F]+", candidate):
            number = int(candidate, 16)
        elif re.fullmatch(r"-\d+", candidate):
            raise FormatError(f"{label} value must be non-negative.")
        else:
            raise FormatError(f"{label} value '{value}' is not an integer.")
    else:
        raise FormatError(f"{label} value must be an integer.")
    if number < 0:
        raise FormatError(f"{label} value must be non-negative.")
    if number >> bits:
        raise FormatError(f"{label} value exceeds {bits} bits.")
    return format(number, "x").rjust(WORD_HEX_CHARS, "0")


def _encode_bytes32(value: Any) -> str:
    if isinstance(value, bytes):
        body = value.hex()
    elif isinstance(value, str):
        if value[:2].lower() == "0x":
            body = value[2:]
            if not _HEX_RE.fullmatch(body):
                raise FormatError(f"bytes32 value '{value}' is not valid hex.")
            if len(body) % 2:
                raise FormatError("bytes32 hex value must have an even number of digits.")
            body = body.lower()
        else:
            body = value.encode("utf-8").hex()
    else:
        raise FormatError("bytes32 value must be a string or bytes.")
    if len(body) > WORD_HEX_CHARS:
        raise FormatError("bytes32 value exceeds 32 bytes.")
    # raw bytes are anchored at the start of the word
    return body.ljust(WORD_HEX_CHARS, "0")


_ENCODERS = {
    TypeTag.ADDRESS: _encode_address,
    TypeTag.UINT256: _encode_uint,
    TypeTag.UINT8: lambda value: _encode_uint(value, 8),
    TypeTag.BYTES32: _encode_bytes32,
}


def encode_parameter(type_tag: TagLike, value: Any) -> str:
    """Encode one value as a 64-hex-char word."""
    try:
        tag = TypeTag.parse(type_tag)
    except SelectorResolutionError as exc:
        raise FormatError(str(exc)) from None
    if not tag.encodable:
        raise FormatError(f"{tag.value} is decode-only and cannot be encoded.")
    return _ENCODERS[tag](value)


def encode_parameters(type_tags: Sequence[TagLike], values: Sequence[Any]) -> str:
    if len(type_tags) != len(values):
        raise FormatError(f"Argument count mismatch: expected {len(type_tags)}, got {len(values)}.")
    return "".join(encode_parameter(tag, value) for tag, value in zip(type_tags, values))


def encode_call(function_name: str, type_tags: Sequence[TagLike], values: Sequence[Any]) -> EncodedCall:
    signature = FunctionSignature(function_name, tuple(type_tags))
    if len(signature.parameter_types) != len(values):
        raise FormatError(
            f"Argument count mismatch: expected {len(signature.parameter_types)}, got {len(values)}."
        )
    words = tuple(encode_parameter(tag, value) for tag, value in zip(signature.parameter_types, values))
    return EncodedCall(selector=signature.selector, words=words)


def build_call_data(function_name: str, type_tags: Sequence[TagLike], values: Sequence[Any]) -> str:
    """Selector plus encoded parameters, ``0x``-prefixed."""
    return encode_call(function_name, type_tags, values).data


def dapi_name_to_bytes32(name: str) -> str:
    """UTF-8 bytes of a dAPI name, right-padded to 32 bytes."""
    if not isinstance(name, str) or not name:
        raise FormatError("dAPI name must be a non-empty string.")
    return "0x" + _encode_bytes32(name.encode("utf-8"))
