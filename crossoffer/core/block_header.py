"""
Rollup block headers and block hashing.

The block hash is a fixed pairwise tree over the header fields:

    a = H(number, latest_account_digest)
    b = H(deposit_digest, transactions_digest)
    c = H(a, b)
    d = H(proposed_world_state_digest, approved_world_state_digest)
    e = H(c, d)
    block_hash = H(block_headers_digest, e)

`transactions_digest` is the state-diff tree root that inclusion proofs are
checked against.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping

from ..state.canonical import domain_sep_bytes, hex_to_bytes_fixed, require_uint, sha256_bytes


BLOCK_HASH_VERSION = 1

_PAIR_PREFIX = domain_sep_bytes("block_hash_pair", version=BLOCK_HASH_VERSION)

DIGEST_FIELDS = (
    "prev_block_hash",
    "block_headers_digest",
    "transactions_digest",
    "deposit_digest",
    "proposed_world_state_digest",
    "approved_world_state_digest",
    "latest_account_digest",
)


@dataclass(frozen=True)
class BlockHeader:
    block_number: int
    prev_block_hash: str
    block_headers_digest: str
    transactions_digest: str
    deposit_digest: str
    proposed_world_state_digest: str
    approved_world_state_digest: str
    latest_account_digest: str

    def __post_init__(self) -> None:
        require_uint(self.block_number, name="block_number", max_bits=32)
        for name in DIGEST_FIELDS:
            hex_to_bytes_fixed(getattr(self, name), nbytes=32, name=name)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "BlockHeader":
        if not isinstance(obj, Mapping):
            raise TypeError("block header must be an object")
        expected = {"block_number", *DIGEST_FIELDS}
        if set(obj.keys()) != expected:
            raise ValueError(f"block header fields mismatch: {sorted(set(obj.keys()) ^ expected)}")
        return cls(**{k: obj[k] for k in expected})


def _pair(left: bytes, right: bytes) -> bytes:
    return sha256_bytes(_PAIR_PREFIX + left + right)


def _digest(header: BlockHeader, name: str) -> bytes:
    return hex_to_bytes_fixed(getattr(header, name), nbytes=32, name=name)


def block_hash(header: BlockHeader) -> bytes:
    number_b = header.block_number.to_bytes(32, "big")
    a = _pair(number_b, _digest(header, "latest_account_digest"))
    b = _pair(_digest(header, "deposit_digest"), _digest(header, "transactions_digest"))
    c = _pair(a, b)
    d = _pair(_digest(header, "proposed_world_state_digest"), _digest(header, "approved_world_state_digest"))
    e = _pair(c, d)
    return _pair(_digest(header, "block_headers_digest"), e)


def block_hash_hex(header: BlockHeader) -> str:
    return "0x" + block_hash(header).hex()
