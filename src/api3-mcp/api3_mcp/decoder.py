import re
from typing import List

from .errors import DecodeError

WORD_BYTES = 32
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def _clean(hex_response: str) -> str:
    if not isinstance(hex_response, str):
        raise DecodeError("Result must be a hex string.")
    body = hex_response[2:] if hex_response[:2].lower() == "0x" else hex_response
    if not _HEX_RE.fullmatch(body):
        raise DecodeError("Result must be a hex string.")
    return body


def read_word(hex_response: str, byte_offset: int = 0) -> str:
    """Return the 64 hex chars of the word starting at ``byte_offset``."""
    if isinstance(byte_offset, bool) or not isinstance(byte_offset, int) or byte_offset < 0:
        raise DecodeError("byte_offset must be a non-negative integer.")
    if byte_offset % WORD_BYTES:
        raise DecodeError(f"byte_offset {byte_offset} is not aligned to a 32-byte word.")
    body = _clean(hex_response)
    start = byte_offset * 2
    end = start + WORD_BYTES * 2
    if len(body) < end:
        raise DecodeError(
            f"Result shorter than expected for ABI decoding: need {end // 2} bytes, got {len(body) // 2}."
        )
    return body[start:end]


def split_words(hex_response: str) -> List[str]:
    body = _clean(hex_response)
    if len(body) % (WORD_BYTES * 2):
        raise DecodeError("Result length is not a multiple of 32 bytes.")
    return [body[i : i + WORD_BYTES * 2] for i in range(0, len(body), WORD_BYTES * 2)]


def _check_width(bit_width: int) -> None:
    if isinstance(bit_width, bool) or not isinstance(bit_width, int) or not 0 < bit_width <= 256 or bit_width % 8:
        raise DecodeError(f"Unsupported bit width {bit_width}.")


def decode_unsigned(hex_response: str, byte_offset: int = 0, bit_width: int = 256) -> int:
    """Read a full word as uint256, then narrow to ``bit_width`` bits."""
    _check_width(bit_width)
    value = int(read_word(hex_response, byte_offset), 16)
    if bit_width < 256:
        value &= (1 << bit_width) - 1
    return value


def decode_signed(hex_response: str, byte_offset: int = 0, bit_width: int = 256) -> int:
    """Read a sign-extended two's complement word as an ``int<bit_width>``."""
    _check_width(bit_width)
    value = int(read_word(hex_response, byte_offset), 16)
    if value >= 1 << 255:
        value -= 1 << 256
    low, high = -(1 << (bit_width - 1)), (1 << (bit_width - 1)) - 1
    if not low <= value <= high:
        raise DecodeError(f"Word at byte {byte_offset} does not hold a valid int{bit_width}.")
    return value


def decode_int224(hex_response: str) -> int:
    return decode_signed(hex_response, 0, 224)


def decode_uint32_at(hex_response: str, byte_offset: int = 32) -> int:
    return decode_unsigned(hex_response, byte_offset, 32)


def decode_bytes32(hex_response: str, byte_offset: int = 0) -> str:
    return "0x" + read_word(hex_response, byte_offset).lower()
