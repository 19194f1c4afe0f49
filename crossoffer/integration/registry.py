"""
Offer registry (imperative shell).

Owns every `Offer` record. Each public operation on one offer id runs under
that offer's re-entrant lock; the pure guards in `core.offer` decide whether
a transition is legal, this module stores the result, moves funds and emits
events.

Ordering rules:
- `register` verifies the witness before any id is allocated.
- `activate` records ACTIVATED before paying the maker and restores OPEN if
  the payment fails, so a re-entrant call from the maker's receive hook sees
  the terminal state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Set

from ..core import offer as offer_kernel
from ..core.types import AssetClaim, Event, Offer, TakerAsset
from ..errors import StateConflict, UnknownOffer, VerificationFailure
from ..state.balances import AnchorBank
from ..state.identities import recipient_commitment_for, require_anchor_account, require_settlement_id
from .events import EventLog
from .proof_verifier import RejectReason, StateProofVerifier
from .witness import Witness, witness_digest


logger = logging.getLogger(__name__)


class OfferRegistry:
    def __init__(
        self,
        *,
        bank: AnchorBank,
        verifier: StateProofVerifier,
        chain_id: str,
        events: Optional[EventLog] = None,
    ) -> None:
        if not chain_id:
            raise ValueError("chain_id must be non-empty")
        self.bank = bank
        self.verifier = verifier
        self.chain_id = chain_id
        self.events = events if events is not None else EventLog()
        self._offers: Dict[int, Offer] = {}
        self._offer_locks: Dict[int, threading.RLock] = {}
        self._consumed: Set[str] = set()
        self._next_id = 0
        self._lock = threading.Lock()

    # -- queries -----------------------------------------------------------

    @property
    def next_offer_id(self) -> int:
        with self._lock:
            return self._next_id

    def is_registered(self, offer_id: int) -> bool:
        with self._lock:
            return offer_id in self._offers

    def get_offer(self, offer_id: int) -> Offer:
        with self._lock:
            offer = self._offers.get(offer_id)
        if offer is None:
            raise UnknownOffer(f"offer {offer_id} is not registered")
        return offer

    def is_activated(self, offer_id: int) -> bool:
        return self.get_offer(offer_id).activated

    def offers(self) -> List[Offer]:
        with self._lock:
            return [self._offers[k] for k in sorted(self._offers)]

    def recipient_commitment_for(self, escrow_agent: str) -> str:
        return recipient_commitment_for(require_anchor_account(escrow_agent, "escrow_agent"), chain_id=self.chain_id)

    def _offer_lock(self, offer_id: int) -> threading.RLock:
        with self._lock:
            lock = self._offer_locks.get(offer_id)
        if lock is None:
            raise UnknownOffer(f"offer {offer_id} is not registered")
        return lock

    # -- mutations ---------------------------------------------------------

    def register(
        self,
        *,
        caller: str,
        maker_claim: AssetClaim,
        recipient_commitment: str,
        escrow_agent: str,
        taker_commitment: str,
        taker_asset: TakerAsset,
        witness: Witness,
    ) -> int:
        """Verify `witness` for `maker_claim` and record a new open offer; returns its id."""
        maker = require_anchor_account(caller, "maker")
        draft = offer_kernel.new_offer(
            offer_id=self.next_offer_id,
            maker=maker,
            maker_claim=maker_claim,
            escrow_agent=require_anchor_account(escrow_agent, "escrow_agent"),
            taker_commitment=taker_commitment,
            taker_asset=taker_asset,
        )
        recipient = require_settlement_id(recipient_commitment, "recipient_commitment")
        if not isinstance(witness, Witness):
            raise VerificationFailure(RejectReason.MALFORMED_WITNESS, "witness must be a Witness")

        if recipient != witness.recipient_commitment:
            raise VerificationFailure(
                RejectReason.BAD_INCLUSION_PATH, "witness names a different recipient commitment"
            )
        if recipient != recipient_commitment_for(draft.escrow_agent, chain_id=self.chain_id):
            raise VerificationFailure(
                RejectReason.BAD_INCLUSION_PATH,
                f"recipient commitment is not bound to escrow agent {draft.escrow_agent}",
            )

        digest = witness_digest(witness)
        with self._lock:
            if digest in self._consumed:
                raise StateConflict("witness has already been used")

        verdict = self.verifier.verify(draft.maker_claim, witness)
        if not verdict.ok:
            logger.warning("offer registration by %s rejected: %s", maker, verdict.as_tuple()[1])
            raise VerificationFailure(verdict.reason, verdict.detail)

        with self._lock:
            if digest in self._consumed:
                raise StateConflict("witness has already been used")
            offer_id = self._next_id
            self._next_id += 1
            self._consumed.add(digest)
            self._offers[offer_id] = replace(draft, offer_id=offer_id)
            self._offer_locks[offer_id] = threading.RLock()

        logger.info("offer %d registered by %s (escrow %s)", offer_id, maker, draft.escrow_agent)
        self.events.emit(Event.OFFER_REGISTERED, offer_id=offer_id)
        return offer_id

    def update_taker(self, *, caller: str, offer_id: int, taker_commitment: str) -> Offer:
        caller = require_anchor_account(caller, "caller")
        with self._offer_lock(offer_id):
            updated = offer_kernel.update_taker(
                self.get_offer(offer_id), caller=caller, taker_commitment=taker_commitment
            )
            self._store(updated)
            self.events.emit(
                Event.OFFER_TAKER_UPDATED, offer_id=offer_id, taker_commitment=updated.taker_commitment
            )
        return updated

    def activate(self, *, caller: str, offer_id: int, payment_token: str, payment_amount: int) -> Offer:
        """
        Finalize the offer for its current taker, paying the maker.

        The caller must be the escrow agent and must pay exactly the taker asset.
        """
        caller = require_anchor_account(caller, "caller")
        token = require_anchor_account(payment_token, "payment_token")
        with self._offer_lock(offer_id):
            current = self.get_offer(offer_id)
            activated = offer_kernel.activate(current, caller=caller, token=token, amount=payment_amount)
            self._store(activated)
            try:
                self.bank.transfer(caller, current.maker, payment_amount, token)
            except Exception:
                self._store(current)
                logger.warning("activation of offer %d rolled back: payment to maker failed", offer_id)
                raise
            logger.info("offer %d activated for taker %s", offer_id, activated.taker_commitment)
            self.events.emit(
                Event.OFFER_ACTIVATED, offer_id=offer_id, taker_commitment=activated.taker_commitment
            )
        return activated

    def deactivate(self, *, caller: str, offer_id: int) -> Offer:
        """Cancel the offer; the maker claim goes back to the maker."""
        caller = require_anchor_account(caller, "caller")
        with self._offer_lock(offer_id):
            deactivated = offer_kernel.deactivate(self.get_offer(offer_id), caller=caller)
            self._store(deactivated)
            logger.info("offer %d deactivated", offer_id)
            self.events.emit(Event.OFFER_DEACTIVATED, offer_id=offer_id)
        return deactivated

    def _store(self, offer: Offer) -> None:
        with self._lock:
            self._offers[offer.offer_id] = offer
