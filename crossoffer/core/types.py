"""Data types for offers, reverse offers and auctions.

All records are frozen dataclasses; transitions in `offer.py` / `auction.py`
return new records instead of mutating.

Units/conventions:
- settlement identities, asset ids and commitments are 32-byte 0x hex.
- anchor accounts and token addresses are 20-byte 0x hex.
- amounts are unsigned integers in the anchor layer's native unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Mapping, Optional

from ..state.identities import AnchorAccount, AssetId, Commitment, SettlementAddress, TokenAddress


@unique
class OfferStatus(Enum):
    OPEN = "open"
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"


@unique
class ReverseOfferStatus(Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    CANCELLED = "cancelled"


@unique
class AuctionStatus(Enum):
    OPEN = "open"
    SETTLED = "settled"


@unique
class Event(Enum):
    """Observable event types."""
    OFFER_REGISTERED = "OfferRegistered"
    OFFER_TAKER_UPDATED = "OfferTakerUpdated"
    OFFER_ACTIVATED = "OfferActivated"
    OFFER_DEACTIVATED = "OfferDeactivated"
    REVERSE_OFFER_LOCKED = "ReverseOfferLocked"
    REVERSE_OFFER_UNLOCKED = "ReverseOfferUnlocked"
    REVERSE_OFFER_CANCELLED = "ReverseOfferCancelled"
    BID_PLACED = "BidPlaced"
    TOKEN_WITHDRAWN = "TokenWithdrawn"


@dataclass(frozen=True)
class AssetClaim:
    """An amount of one settlement-layer asset sent from `settlement_address`."""

    settlement_address: SettlementAddress
    asset_id: AssetId
    amount: int


@dataclass(frozen=True)
class TakerAsset:
    """What the taker side pays on the anchor layer."""

    token: TokenAddress
    amount: int


@dataclass(frozen=True)
class Offer:
    offer_id: int
    maker: AnchorAccount
    maker_claim: AssetClaim
    escrow_agent: AnchorAccount
    taker_commitment: SettlementAddress
    taker_asset: TakerAsset
    status: OfferStatus = OfferStatus.OPEN

    @property
    def activated(self) -> bool:
        return self.status is OfferStatus.ACTIVATED

    @property
    def deactivated(self) -> bool:
        return self.status is OfferStatus.DEACTIVATED

    @property
    def is_open(self) -> bool:
        return self.status is OfferStatus.OPEN


@dataclass(frozen=True)
class ReverseOffer:
    offer_id: int
    taker: AnchorAccount
    taker_commitment: Commitment
    maker: AnchorAccount
    maker_settlement_address: SettlementAddress
    maker_asset_id: AssetId
    maker_amount: int
    payment: TakerAsset
    status: ReverseOfferStatus = ReverseOfferStatus.LOCKED

    @property
    def maker_claim(self) -> AssetClaim:
        return AssetClaim(
            settlement_address=self.maker_settlement_address,
            asset_id=self.maker_asset_id,
            amount=self.maker_amount,
        )


@dataclass(frozen=True)
class AuctionState:
    """Bid state of one auction. `largest_bidder is None` means no bid yet."""

    offer_id: int
    closing_time: int
    beneficiary: AnchorAccount
    largest_bid_amount: int
    largest_bidder: Optional[AnchorAccount] = None
    status: AuctionStatus = AuctionStatus.OPEN

    @property
    def done(self) -> bool:
        return self.status is AuctionStatus.SETTLED

    @property
    def has_bid(self) -> bool:
        return self.largest_bidder is not None


@dataclass(frozen=True)
class OfferEvent:
    """One emitted event; `fields` holds the event arguments by name."""

    event: Event
    fields: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)
