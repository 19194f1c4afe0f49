"""
Byte-exact encodings shared by everything that is hashed or signed.

Diff-tree leaves, block hashes, witness signing payloads and recipient
commitments are all derived from these helpers, so a maker, a verifier and a
rollup operator computing the same value independently get the same bytes.

JSON form: UTF-8, keys sorted, no whitespace, no floats, no NaN.
"""

from __future__ import annotations

import hashlib
import json
import string
from typing import Any, Optional


DOMAIN_NAMESPACE = b"crossoffer"

_HEXDIGITS = frozenset(string.hexdigits)


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _check_json_value(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError(f"float {value!r} has no canonical encoding")
    if isinstance(value, str):
        if any(0xD800 <= ord(ch) <= 0xDFFF for ch in value):
            raise TypeError("lone surrogates have no canonical encoding")
    elif isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"object key {key!r} is not a str")
            _check_json_value(key)
            _check_json_value(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_json_value(item)


def canonical_json_bytes(value: Any) -> bytes:
    _check_json_value(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode(
        "utf-8"
    )


def sha256_bytes(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    return "0x" + sha256_bytes(data).hex()


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """`crossoffer:<label>:v<version>` followed by a NUL terminator."""
    if not isinstance(label, str) or not label:
        raise TypeError("domain label must be a non-empty str")
    if not label.isascii() or "\x00" in label:
        raise ValueError(f"domain label {label!r} must be ASCII without NUL")
    if not _is_uint(version) or version < 1:
        raise ValueError(f"domain version must be >= 1, got {version!r}")
    return b":".join((DOMAIN_NAMESPACE, label.encode("ascii"), b"v%d" % version)) + b"\x00"


def encode_uvarint(value: int) -> bytes:
    """LEB128, unsigned."""
    if not _is_uint(value):
        raise ValueError(f"uvarint must be a non-negative int, got {value!r}")
    out = bytearray([value & 0x7F])
    value >>= 7
    while value:
        out[-1] |= 0x80
        out.append(value & 0x7F)
        value >>= 7
    return bytes(out)


def encode_bytes(value: bytes) -> bytes:
    """Length-prefixed (uvarint) byte string."""
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"expected bytes, got {type(value).__name__}")
    return encode_uvarint(len(value)) + bytes(value)


def _check_width(nbytes: int) -> None:
    if not _is_uint(nbytes) or nbytes == 0:
        raise ValueError(f"nbytes must be a positive int, got {nbytes!r}")


def hex_to_bytes_fixed(hex_str: str, *, nbytes: int, name: str) -> bytes:
    """Decode `0x` + exactly `2 * nbytes` hex digits; anything else is rejected."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str, got {type(hex_str).__name__}")
    _check_width(nbytes)
    body = hex_str[2:]
    if hex_str[:2] != "0x" or len(body) != 2 * nbytes:
        raise ValueError(f"{name} must be 0x followed by {2 * nbytes} hex digits")
    if not _HEXDIGITS.issuperset(body):
        raise ValueError(f"{name} contains non-hex characters")
    return bytes.fromhex(body)


def normalize_fixed_hex(hex_str: str, *, nbytes: int, name: str) -> str:
    """Lowercase `0x` form of a fixed-width hex value given with or without its prefix."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str, got {type(hex_str).__name__}")
    _check_width(nbytes)
    body = hex_str.strip()
    if body[:2] in ("0x", "0X"):
        body = body[2:]
    if len(body) != 2 * nbytes or not _HEXDIGITS.issuperset(body):
        raise ValueError(f"{name} must be {nbytes} bytes of hex")
    return "0x" + body.lower()


def require_uint(value: Any, *, name: str, max_bits: Optional[int] = None) -> int:
    if not _is_uint(value):
        raise ValueError(f"{name} must be a non-negative int, got {value!r}")
    if max_bits is not None and value.bit_length() > max_bits:
        raise ValueError(f"{name} does not fit in {max_bits} bits")
    return value
