"""
Pure offer, auction and proof-hashing kernels
"""

from .types import (
    AssetClaim,
    AuctionState,
    AuctionStatus,
    Event,
    Offer,
    OfferEvent,
    OfferStatus,
    ReverseOffer,
    ReverseOfferStatus,
    TakerAsset,
)
from .block_header import BlockHeader, block_hash, block_hash_hex
from .merkle import DiffTree, build_diff_tree, compute_root, diff_leaf_hash

__all__ = [
    "AssetClaim",
    "AuctionState",
    "AuctionStatus",
    "Event",
    "Offer",
    "OfferEvent",
    "OfferStatus",
    "ReverseOffer",
    "ReverseOfferStatus",
    "TakerAsset",
    "BlockHeader",
    "block_hash",
    "block_hash_hex",
    "DiffTree",
    "build_diff_tree",
    "compute_root",
    "diff_leaf_hash",
]
