"""
Ascending-price auction over one registered offer.

The auction owns an anchor account that acts as both maker and escrow agent
of its offer. Bids are paid into that account; outbid bidders and, after
settlement, the beneficiary are paid out through a pull-payment
`WithdrawLedger`. `bid`, `claim` and `withdraw` serialize on one re-entrant
lock per auction.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from ..core import auction as auction_kernel
from ..core.types import AssetClaim, AuctionState, Event, Offer, TakerAsset
from ..errors import InvalidParameter
from ..state.balances import AnchorBank, WithdrawLedger
from ..state.identities import (
    NATIVE_TOKEN,
    AnchorAccount,
    derive_contract_account,
    require_anchor_account,
    require_settlement_id,
)
from .clock import LedgerClock
from .registry import OfferRegistry
from .witness import Witness


logger = logging.getLogger(__name__)


def auction_account(sequence: int) -> AnchorAccount:
    """Anchor account of the `sequence`-th auction; sellers deliver the asset to its commitment."""
    return derive_contract_account("auction", sequence)


class Auction:
    def __init__(
        self,
        *,
        registry: OfferRegistry,
        bank: AnchorBank,
        clock: LedgerClock,
        account: AnchorAccount,
        offer_id: int,
        beneficiary: AnchorAccount,
        closing_time: int,
        min_bid: int,
    ) -> None:
        self.registry = registry
        self.bank = bank
        self.clock = clock
        self.account = require_anchor_account(account, "account")
        self._state = auction_kernel.open_state(
            offer_id=offer_id, closing_time=closing_time, beneficiary=beneficiary, min_bid=min_bid
        )
        self._ledger = WithdrawLedger()
        self._lock = threading.RLock()

    @classmethod
    def open(
        cls,
        *,
        registry: OfferRegistry,
        bank: AnchorBank,
        clock: LedgerClock,
        account: AnchorAccount,
        beneficiary: AnchorAccount,
        maker_claim: AssetClaim,
        witness: Witness,
        period: int,
        min_bid: int,
    ) -> "Auction":
        """
        Register the seller's claim as an offer escrowed by `account` and open bidding.

        The offer's taker asset is `min_bid` of the native token and its
        initial taker is the seller's own settlement address; bidding runs
        for `period` seconds from now.
        """
        if not isinstance(period, int) or isinstance(period, bool) or period <= 0:
            raise InvalidParameter(f"period must be a positive int, got {period!r}")
        if not isinstance(min_bid, int) or isinstance(min_bid, bool) or min_bid <= 0:
            raise InvalidParameter(f"min_bid must be a positive int, got {min_bid!r}")
        account = require_anchor_account(account, "account")
        beneficiary = require_anchor_account(beneficiary, "beneficiary")

        offer_id = registry.register(
            caller=account,
            maker_claim=maker_claim,
            recipient_commitment=registry.recipient_commitment_for(account),
            escrow_agent=account,
            taker_commitment=maker_claim.settlement_address,
            taker_asset=TakerAsset(token=NATIVE_TOKEN, amount=min_bid),
            witness=witness,
        )
        auction = cls(
            registry=registry,
            bank=bank,
            clock=clock,
            account=account,
            offer_id=offer_id,
            beneficiary=beneficiary,
            closing_time=clock.now() + period,
            min_bid=min_bid,
        )
        logger.info("auction %s opened on offer %d, closes at %d", account, offer_id, auction.closing_time)
        return auction

    # -- views -------------------------------------------------------------

    @property
    def state(self) -> AuctionState:
        return self._state

    @property
    def offer_id(self) -> int:
        return self._state.offer_id

    @property
    def closing_time(self) -> int:
        return self._state.closing_time

    @property
    def beneficiary(self) -> AnchorAccount:
        return self._state.beneficiary

    @property
    def largest_bidder(self) -> Optional[AnchorAccount]:
        return self._state.largest_bidder

    @property
    def largest_bid_amount(self) -> int:
        return self._state.largest_bid_amount

    @property
    def done(self) -> bool:
        return self._state.done

    def withdrawable_amount(self, identity: AnchorAccount) -> int:
        with self._lock:
            return self._ledger.owed(require_anchor_account(identity, "identity"))

    def total_owed(self) -> int:
        with self._lock:
            return self._ledger.total_owed()

    def info(self) -> Dict[str, Any]:
        with self._lock:
            s = self._state
            return {
                "offer_id": s.offer_id,
                "closing_time": s.closing_time,
                "beneficiary": s.beneficiary,
                "largest_bidder": s.largest_bidder,
                "largest_bid_amount": s.largest_bid_amount,
                "done": s.done,
            }

    # -- operations ----------------------------------------------------------

    def bid(self, *, caller: Optional[str], bidder_commitment: str, value: int) -> None:
        """
        Outbid the current leader with `value`, paid from `caller`.

        The previous leader's bid is credited to the withdraw ledger.

        If the registry refuses the taker update after payment was taken, the
        leader and the previous leader's credit are restored and `value` is
        credited to `caller` for withdrawal instead of being pushed back; the
        error is re-raised. Every other rejection happens before any funds move.
        """
        if not caller:
            raise InvalidParameter("bidder identity is unset")
        caller = require_anchor_account(caller, "caller")
        commitment = require_settlement_id(bidder_commitment, "bidder_commitment")
        with self._lock:
            before = self._state
            outcome = auction_kernel.place_bid(
                self._state, caller=caller, bidder_commitment=commitment, amount=value, now=self.clock.now()
            )
            self.bank.transfer(caller, self.account, value)
            self._state = outcome.state
            if outcome.refund is not None:
                previous, amount = outcome.refund
                self._ledger.credit(previous, amount)
                logger.debug("auction %s: %s outbid, %d credited for withdrawal", self.account, previous, amount)
            try:
                self.registry.update_taker(
                    caller=self.account, offer_id=self.offer_id, taker_commitment=commitment
                )
            except Exception:
                # Payment already taken: keep the funds claimable by the bidder.
                self._state = before
                if outcome.refund is not None:
                    self._ledger.debit(outcome.refund[0], outcome.refund[1])
                self._ledger.credit(caller, value)
                raise
            logger.debug("auction %s: bid %d by %s", self.account, value, caller)
            self.registry.events.emit(Event.BID_PLACED, auction=self.account, bidder=caller, amount=value)

    def claim(self, caller: Optional[str] = None) -> Offer:
        """
        Settle after the deadline; anyone may call.

        With no bid the offer is deactivated. Otherwise the beneficiary is
        credited the winning bid and the offer is activated for the winner,
        forwarding the registered reserve.
        """
        with self._lock:
            before = self._state
            plan = auction_kernel.settle(before, now=self.clock.now())
            self._state = plan.state
            try:
                if not plan.activate:
                    offer = self.registry.deactivate(caller=self.account, offer_id=self.offer_id)
                else:
                    self._ledger.credit(before.beneficiary, plan.winning_amount)
                    try:
                        reserve = self.registry.get_offer(self.offer_id).taker_asset
                        offer = self.registry.activate(
                            caller=self.account,
                            offer_id=self.offer_id,
                            payment_token=reserve.token,
                            payment_amount=reserve.amount,
                        )
                    except Exception:
                        self._ledger.debit(before.beneficiary, plan.winning_amount)
                        raise
            except Exception:
                self._state = before
                logger.warning("auction %s: claim rolled back", self.account)
                raise
            logger.info(
                "auction %s settled (claimed by %s): %s",
                self.account,
                caller or "anyone",
                "no bids" if not plan.activate else f"{plan.winning_amount} from {before.largest_bidder}",
            )
            return offer

    def withdraw(self, caller: str) -> int:
        """Pay out everything owed to `caller`; returns the amount paid (0 if nothing owed)."""
        caller = require_anchor_account(caller, "caller")
        with self._lock:
            amount = self._ledger.take(caller)
            if amount == 0:
                return 0
            try:
                self.bank.transfer(self.account, caller, amount)
            except Exception:
                self._ledger.credit(caller, amount)
                raise
            self.registry.events.emit(Event.TOKEN_WITHDRAWN, claimer=caller, amount=amount)
            logger.debug("auction %s: %d withdrawn by %s", self.account, amount, caller)
            return amount