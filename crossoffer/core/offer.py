"""
Offer transition kernel (pure).

The registry shell owns locking, payments and events; this module only
decides whether a transition is allowed and returns the next record.
Guards raise the protocol exceptions from `crossoffer.errors`.
"""

from __future__ import annotations

from dataclasses import replace

from ..errors import AuthorizationFailure, InvalidParameter, StateConflict
from ..state.identities import anchor_account, settlement_id
from .types import AssetClaim, Offer, OfferStatus, ReverseOffer, ReverseOfferStatus, TakerAsset


def _positive(value: object, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidParameter(f"{name} must be a positive int, got {value!r}")
    return int(value)


def normalize_claim(claim: AssetClaim) -> AssetClaim:
    try:
        return AssetClaim(
            settlement_address=settlement_id(claim.settlement_address, name="settlement_address"),
            asset_id=settlement_id(claim.asset_id, name="asset_id"),
            amount=_positive(claim.amount, "claim amount"),
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, InvalidParameter):
            raise
        raise InvalidParameter(str(exc)) from exc


def normalize_taker_asset(asset: TakerAsset) -> TakerAsset:
    try:
        return TakerAsset(token=anchor_account(asset.token, name="token"), amount=_positive(asset.amount, "taker amount"))
    except (TypeError, ValueError) as exc:
        if isinstance(exc, InvalidParameter):
            raise
        raise InvalidParameter(str(exc)) from exc


def new_offer(
    *,
    offer_id: int,
    maker: str,
    maker_claim: AssetClaim,
    escrow_agent: str,
    taker_commitment: str,
    taker_asset: TakerAsset,
) -> Offer:
    try:
        maker = anchor_account(maker, name="maker")
        escrow_agent = anchor_account(escrow_agent, name="escrow_agent")
        taker_commitment = settlement_id(taker_commitment, name="taker_commitment")
    except (TypeError, ValueError) as exc:
        raise InvalidParameter(str(exc)) from exc
    return Offer(
        offer_id=offer_id,
        maker=maker,
        maker_claim=normalize_claim(maker_claim),
        escrow_agent=escrow_agent,
        taker_commitment=taker_commitment,
        taker_asset=normalize_taker_asset(taker_asset),
    )


def _require_escrow_agent(offer: Offer, caller: str) -> None:
    if caller != offer.escrow_agent:
        raise AuthorizationFailure(f"offer {offer.offer_id} can only be operated by its escrow agent")


def _require_open(offer: Offer) -> None:
    if offer.status is not OfferStatus.OPEN:
        raise StateConflict(f"offer {offer.offer_id} is already finalized ({offer.status.value})")


def update_taker(offer: Offer, *, caller: str, taker_commitment: str) -> Offer:
    _require_escrow_agent(offer, caller)
    _require_open(offer)
    try:
        commitment = settlement_id(taker_commitment, name="taker_commitment")
    except (TypeError, ValueError) as exc:
        raise InvalidParameter(str(exc)) from exc
    return replace(offer, taker_commitment=commitment)


def activate(offer: Offer, *, caller: str, token: str, amount: int) -> Offer:
    """Guard an activation paying exactly `taker_asset`."""
    _require_escrow_agent(offer, caller)
    _require_open(offer)
    if token != offer.taker_asset.token:
        raise InvalidParameter(f"offer {offer.offer_id} is paid in {offer.taker_asset.token}, got {token}")
    if amount != offer.taker_asset.amount:
        raise InvalidParameter(
            f"offer {offer.offer_id} requires exactly {offer.taker_asset.amount}, got {amount}"
        )
    return replace(offer, status=OfferStatus.ACTIVATED)


def deactivate(offer: Offer, *, caller: str) -> Offer:
    _require_escrow_agent(offer, caller)
    _require_open(offer)
    return replace(offer, status=OfferStatus.DEACTIVATED)


def unlock_reverse(offer: ReverseOffer, *, caller: str) -> ReverseOffer:
    if caller != offer.maker:
        raise AuthorizationFailure(f"reverse offer {offer.offer_id} can only be unlocked by its maker")
    if offer.status is not ReverseOfferStatus.LOCKED:
        raise StateConflict(f"reverse offer {offer.offer_id} is already finalized ({offer.status.value})")
    return replace(offer, status=ReverseOfferStatus.UNLOCKED)


def cancel_reverse(offer: ReverseOffer, *, caller: str) -> ReverseOffer:
    if caller != offer.taker:
        raise AuthorizationFailure(f"reverse offer {offer.offer_id} can only be cancelled by its taker")
    if offer.status is not ReverseOfferStatus.LOCKED:
        raise StateConflict(f"reverse offer {offer.offer_id} is already finalized ({offer.status.value})")
    return replace(offer, status=ReverseOfferStatus.CANCELLED)
