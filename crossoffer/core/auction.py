"""
Ascending-price auction kernel (pure).

State machine:
    OPEN --bid (now < closing_time)--> OPEN
    OPEN --settle (now >= closing_time)--> SETTLED

Whether settlement activates or deactivates the underlying offer is decided
by `has_bid`; the shell performs the registry call and ledger credits.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ..errors import InvalidParameter, StateConflict, TemporalViolation
from ..state.identities import anchor_account
from .types import AuctionState, AuctionStatus


ZERO_SETTLEMENT_ID = "0x" + "00" * 32


@dataclass(frozen=True)
class BidOutcome:
    state: AuctionState
    # (previous leader, amount) to credit to the withdraw ledger, if any.
    refund: Optional[Tuple[str, int]] = None


@dataclass(frozen=True)
class SettlePlan:
    state: AuctionState
    activate: bool
    winning_amount: int = 0


def open_state(*, offer_id: int, closing_time: int, beneficiary: str, min_bid: int) -> AuctionState:
    if not isinstance(min_bid, int) or isinstance(min_bid, bool) or min_bid <= 0:
        raise InvalidParameter(f"min_bid must be a positive int, got {min_bid!r}")
    if not isinstance(closing_time, int) or isinstance(closing_time, bool) or closing_time < 0:
        raise InvalidParameter(f"closing_time must be a non-negative int, got {closing_time!r}")
    return AuctionState(
        offer_id=offer_id,
        closing_time=closing_time,
        beneficiary=anchor_account(beneficiary, name="beneficiary"),
        largest_bid_amount=min_bid,
    )


def place_bid(state: AuctionState, *, caller: Optional[str], bidder_commitment: str, amount: int, now: int) -> BidOutcome:
    if not caller:
        raise InvalidParameter("bidder identity is unset")
    if bidder_commitment == ZERO_SETTLEMENT_ID:
        raise InvalidParameter("bidder settlement identity is unset")
    if state.status is not AuctionStatus.OPEN or now >= state.closing_time:
        raise TemporalViolation(f"auction for offer {state.offer_id} closed at {state.closing_time}")
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= state.largest_bid_amount:
        raise StateConflict(
            f"bid should be larger than the previous bid ({amount!r} <= {state.largest_bid_amount})"
        )

    refund = None
    if state.largest_bidder is not None:
        refund = (state.largest_bidder, state.largest_bid_amount)
    new_state = replace(state, largest_bidder=caller, largest_bid_amount=amount)
    return BidOutcome(state=new_state, refund=refund)


def settle(state: AuctionState, *, now: int) -> SettlePlan:
    if now < state.closing_time:
        raise TemporalViolation(f"auction for offer {state.offer_id} is not closed (closes at {state.closing_time})")
    if state.status is AuctionStatus.SETTLED:
        raise StateConflict(f"auction for offer {state.offer_id} is already claimed")
    new_state = replace(state, status=AuctionStatus.SETTLED)
    if not state.has_bid:
        return SettlePlan(state=new_state, activate=False)
    return SettlePlan(state=new_state, activate=True, winning_amount=state.largest_bid_amount)
