"""
State-diff tree hashing (v1).

A rollup block commits to the asset transfers it contains with a fixed-depth
binary Merkle tree whose root is the block header's `transactions_digest`.
Each leaf binds one recipient commitment to the ordered list of asset claims
it received.

Hashing rules:
- leaf  = sha256(domain("diff_leaf") || recipient(32) || uvarint(n) || claim_1 .. claim_n)
- claim = settlement_address(32) || asset_id(32) || uvarint(amount)
- node  = sha256(domain("diff_node") || left(32) || right(32))
- empty leaves are 32 zero bytes; empty subtrees hash up from them.

Verification is bottom-up: bit `i` of the leaf index says whether the running
node is the right (1) or left (0) child at level `i`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..state.canonical import domain_sep_bytes, encode_uvarint, hex_to_bytes_fixed, sha256_bytes
from .types import AssetClaim


DIFF_TREE_VERSION = 1
DIGEST_BYTES = 32
EMPTY_LEAF = b"\x00" * DIGEST_BYTES

_LEAF_PREFIX = domain_sep_bytes("diff_leaf", version=DIFF_TREE_VERSION)
_NODE_PREFIX = domain_sep_bytes("diff_node", version=DIFF_TREE_VERSION)


def encode_asset_claim(claim: AssetClaim) -> bytes:
    address_b = hex_to_bytes_fixed(claim.settlement_address, nbytes=32, name="settlement_address")
    asset_b = hex_to_bytes_fixed(claim.asset_id, nbytes=32, name="asset_id")
    return address_b + asset_b + encode_uvarint(claim.amount)


def diff_leaf_hash(recipient_commitment: str, claims: Sequence[AssetClaim]) -> bytes:
    recipient_b = hex_to_bytes_fixed(recipient_commitment, nbytes=32, name="recipient_commitment")
    out = bytearray(_LEAF_PREFIX)
    out += recipient_b
    out += encode_uvarint(len(claims))
    for claim in claims:
        out += encode_asset_claim(claim)
    return sha256_bytes(bytes(out))


def node_hash(left: bytes, right: bytes) -> bytes:
    if len(left) != DIGEST_BYTES or len(right) != DIGEST_BYTES:
        raise ValueError("diff tree nodes must be 32 bytes")
    return sha256_bytes(_NODE_PREFIX + left + right)


def compute_root(leaf: bytes, index: int, siblings: Sequence[bytes]) -> bytes:
    """Fold a leaf up its sibling path (leaf level first)."""
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise ValueError(f"index must be a non-negative int, got {index!r}")
    if index >> len(siblings):
        raise ValueError("index does not fit the sibling path")
    node = leaf
    for level, sibling in enumerate(siblings):
        if (index >> level) & 1:
            node = node_hash(sibling, node)
        else:
            node = node_hash(node, sibling)
    return node


def _zero_hashes(depth: int) -> List[bytes]:
    zeros = [EMPTY_LEAF]
    for _ in range(depth):
        zeros.append(node_hash(zeros[-1], zeros[-1]))
    return zeros


@dataclass(frozen=True)
class DiffTree:
    """A diff tree; `levels[0]` are the leaves, missing nodes are empty subtrees."""

    depth: int
    levels: Tuple[Tuple[bytes, ...], ...]
    zeros: Tuple[bytes, ...]

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    @property
    def root_hex(self) -> str:
        return "0x" + self.root.hex()

    def proof(self, index: int) -> List[bytes]:
        """Sibling path for leaf `index`, leaf level first."""
        if not 0 <= index < (1 << self.depth):
            raise IndexError(f"leaf index {index} out of range for depth {self.depth}")
        siblings: List[bytes] = []
        for level in range(self.depth):
            pos = (index >> level) ^ 1
            nodes = self.levels[level]
            siblings.append(nodes[pos] if pos < len(nodes) else self.zeros[level])
        return siblings


def build_diff_tree(leaves: Sequence[bytes], *, depth: int) -> DiffTree:
    """Build a depth-`depth` tree; missing leaves are `EMPTY_LEAF`."""
    if not isinstance(depth, int) or isinstance(depth, bool) or not 0 < depth <= 32:
        raise ValueError("depth must be an int in [1, 32]")
    if len(leaves) > (1 << depth):
        raise ValueError(f"too many leaves for depth {depth}: {len(leaves)}")
    for leaf in leaves:
        if len(leaf) != DIGEST_BYTES:
            raise ValueError("diff tree leaves must be 32 bytes")

    zeros = _zero_hashes(depth)
    level: List[bytes] = list(leaves)
    levels: List[Tuple[bytes, ...]] = []
    for height in range(depth):
        if len(level) % 2:
            level.append(zeros[height])
        levels.append(tuple(level))
        level = [node_hash(level[i], level[i + 1]) for i in range(0, len(level), 2)]
    levels.append((level[0] if level else zeros[depth],))
    return DiffTree(depth=depth, levels=tuple(levels), zeros=tuple(zeros))
