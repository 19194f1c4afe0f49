"""
Reverse offers: the taker pays first.

A taker locks anchor-layer payment in the registry's escrow vault, naming the
maker who will be paid and the settlement-layer asset it expects to receive
at `taker_commitment`. The maker unlocks the payment by presenting a witness
that the asset was delivered there. Until then the taker may cancel and take
the payment back.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Set

from ..core import offer as offer_kernel
from ..core.types import AssetClaim, Event, ReverseOffer, ReverseOfferStatus, TakerAsset
from ..errors import StateConflict, UnknownOffer, VerificationFailure
from ..state.balances import AnchorBank
from ..state.identities import AnchorAccount, derive_contract_account, require_anchor_account, require_settlement_id
from .events import EventLog
from .proof_verifier import RejectReason, StateProofVerifier
from .witness import Witness, witness_digest


logger = logging.getLogger(__name__)


class ReverseOfferRegistry:
    def __init__(
        self,
        *,
        bank: AnchorBank,
        verifier: StateProofVerifier,
        events: Optional[EventLog] = None,
        vault: Optional[AnchorAccount] = None,
    ) -> None:
        self.bank = bank
        self.verifier = verifier
        self.events = events if events is not None else EventLog()
        self.vault = require_anchor_account(vault, "vault") if vault else derive_contract_account("reverse_offer_vault", 0)
        self._offers: Dict[int, ReverseOffer] = {}
        self._offer_locks: Dict[int, threading.RLock] = {}
        self._consumed: Set[str] = set()
        self._next_id = 0
        self._lock = threading.Lock()

    @property
    def next_offer_id(self) -> int:
        with self._lock:
            return self._next_id

    def get_offer(self, offer_id: int) -> ReverseOffer:
        with self._lock:
            offer = self._offers.get(offer_id)
        if offer is None:
            raise UnknownOffer(f"reverse offer {offer_id} is not registered")
        return offer

    def is_registered(self, offer_id: int) -> bool:
        with self._lock:
            return offer_id in self._offers

    def offers(self) -> List[ReverseOffer]:
        with self._lock:
            return [self._offers[k] for k in sorted(self._offers)]

    def _offer_lock(self, offer_id: int) -> threading.RLock:
        with self._lock:
            lock = self._offer_locks.get(offer_id)
        if lock is None:
            raise UnknownOffer(f"reverse offer {offer_id} is not registered")
        return lock

    def _store(self, offer: ReverseOffer) -> None:
        with self._lock:
            self._offers[offer.offer_id] = offer

    def lock(
        self,
        *,
        caller: str,
        taker_commitment: str,
        maker: str,
        maker_settlement_address: str,
        maker_asset_id: str,
        maker_amount: int,
        payment: TakerAsset,
    ) -> int:
        taker = require_anchor_account(caller, "taker")
        claim = offer_kernel.normalize_claim(
            AssetClaim(
                settlement_address=maker_settlement_address, asset_id=maker_asset_id, amount=maker_amount
            )
        )
        payment = offer_kernel.normalize_taker_asset(payment)
        draft = ReverseOffer(
            offer_id=-1,
            taker=taker,
            taker_commitment=require_settlement_id(taker_commitment, "taker_commitment"),
            maker=require_anchor_account(maker, "maker"),
            maker_settlement_address=claim.settlement_address,
            maker_asset_id=claim.asset_id,
            maker_amount=claim.amount,
            payment=payment,
        )

        self.bank.transfer(taker, self.vault, payment.amount, payment.token)
        with self._lock:
            offer_id = self._next_id
            self._next_id += 1
            self._offers[offer_id] = replace(draft, offer_id=offer_id)
            self._offer_locks[offer_id] = threading.RLock()

        logger.info("reverse offer %d locked by %s for maker %s", offer_id, taker, draft.maker)
        self.events.emit(Event.REVERSE_OFFER_LOCKED, offer_id=offer_id)
        return offer_id

    def unlock(self, *, caller: str, offer_id: int, witness: Witness) -> ReverseOffer:
        """Release the locked payment to the maker against a delivery witness."""
        caller = require_anchor_account(caller, "caller")
        with self._offer_lock(offer_id):
            current = self.get_offer(offer_id)
            unlocked = offer_kernel.unlock_reverse(current, caller=caller)
            if not isinstance(witness, Witness):
                raise VerificationFailure(RejectReason.MALFORMED_WITNESS, "witness must be a Witness")
            if witness.recipient_commitment != current.taker_commitment:
                raise VerificationFailure(
                    RejectReason.BAD_INCLUSION_PATH, "witness does not deliver to the taker commitment"
                )
            digest = witness_digest(witness)
            with self._lock:
                if digest in self._consumed:
                    raise StateConflict("witness has already been used")

            verdict = self.verifier.verify(current.maker_claim, witness)
            if not verdict.ok:
                logger.warning("unlock of reverse offer %d rejected: %s", offer_id, verdict.as_tuple()[1])
                raise VerificationFailure(verdict.reason, verdict.detail)

            self._store(unlocked)
            with self._lock:
                self._consumed.add(digest)
            try:
                self.bank.transfer(self.vault, current.maker, current.payment.amount, current.payment.token)
            except Exception:
                self._store(current)
                with self._lock:
                    self._consumed.discard(digest)
                raise
            logger.info("reverse offer %d unlocked, paid %d to %s", offer_id, current.payment.amount, current.maker)
            self.events.emit(Event.REVERSE_OFFER_UNLOCKED, offer_id=offer_id)
        return unlocked

    def cancel(self, *, caller: str, offer_id: int) -> ReverseOffer:
        """Refund the locked payment to the taker."""
        caller = require_anchor_account(caller, "caller")
        with self._offer_lock(offer_id):
            current = self.get_offer(offer_id)
            cancelled = offer_kernel.cancel_reverse(current, caller=caller)
            self._store(cancelled)
            try:
                self.bank.transfer(self.vault, current.taker, current.payment.amount, current.payment.token)
            except Exception:
                self._store(current)
                raise
            logger.info("reverse offer %d cancelled by taker", offer_id)
            self.events.emit(Event.REVERSE_OFFER_CANCELLED, offer_id=offer_id)
        return cancelled

    def locked_total(self) -> int:
        """Sum of payments still held for LOCKED reverse offers (all tokens)."""
        with self._lock:
            return sum(o.payment.amount for o in self._offers.values() if o.status is ReverseOfferStatus.LOCKED)
