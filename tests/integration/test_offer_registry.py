# [TESTER] v1

from __future__ import annotations

import threading

import pytest

from crossoffer.core.types import AssetClaim, Event, OfferStatus, TakerAsset
from crossoffer.errors import (
    AuthorizationFailure,
    InvalidParameter,
    PaymentFailure,
    StateConflict,
    UnknownOffer,
    VerificationFailure,
)
from crossoffer.integration.proof_verifier import RejectReason, Verdict
from crossoffer.state.identities import NATIVE_TOKEN


MAKER = "0x" + "11" * 20
ESCROW_A = "0x" + "e1" * 20
ESCROW_B = "0x" + "e2" * 20
STRANGER = "0x" + "99" * 20
TAKER_A = "0x" + "0a" * 32
TAKER_B = "0x" + "0b" * 32
# Registered with the seller key by the `world` fixture.
SELLER_ADDRESS = "0x" + "5e" * 32
CLAIM = AssetClaim(SELLER_ADDRESS, "0x" + "a5" * 32, 10)


def _register(world, make_witness, *, escrow: str = ESCROW_A, amount: int = 100, witness=None, secret_key=None) -> int:
    recipient = world.registry.recipient_commitment_for(escrow)
    if witness is None:
        witness = make_witness(world, claims=[CLAIM], recipient=recipient, secret_key=secret_key)
    return world.registry.register(
        caller=MAKER,
        maker_claim=CLAIM,
        recipient_commitment=recipient,
        escrow_agent=escrow,
        taker_commitment=TAKER_A,
        taker_asset=TakerAsset(token=NATIVE_TOKEN, amount=amount),
        witness=witness,
    )


def test_register_allocates_sequential_ids(stub_world, make_witness) -> None:
    registry = stub_world.registry
    assert registry.next_offer_id == 0
    assert _register(stub_world, make_witness) == 0
    assert _register(stub_world, make_witness) == 1
    assert registry.next_offer_id == 2
    assert [o.offer_id for o in registry.offers()] == [0, 1]

    offer = registry.get_offer(0)
    assert offer.maker == MAKER
    assert offer.escrow_agent == ESCROW_A
    assert offer.maker_claim == CLAIM
    assert offer.taker_commitment == TAKER_A
    assert offer.status is OfferStatus.OPEN
    assert registry.is_registered(0) and not registry.is_activated(0)
    assert [e.get("offer_id") for e in stub_world.events.events(Event.OFFER_REGISTERED)] == [0, 1]


def test_register_moves_no_funds(stub_world, make_witness) -> None:
    stub_world.bank.mint(MAKER, 50)
    _register(stub_world, make_witness)
    assert stub_world.bank.balance_of(MAKER) == 50
    assert stub_world.bank.total_supply() == 50


@pytest.mark.parametrize("reason", list(RejectReason))
def test_register_never_creates_offer_when_verifier_rejects(stub_world, make_witness, reason) -> None:
    stub_world.verifier.verdict = Verdict.reject(reason, "nope")
    with pytest.raises(VerificationFailure) as excinfo:
        _register(stub_world, make_witness)
    assert excinfo.value.reason is reason
    assert excinfo.value.code == "verification_failure"
    assert stub_world.registry.next_offer_id == 0
    assert stub_world.registry.offers() == []
    assert not stub_world.events.events(Event.OFFER_REGISTERED)


def test_rejected_witness_is_not_consumed(stub_world, make_witness) -> None:
    recipient = stub_world.registry.recipient_commitment_for(ESCROW_A)
    witness = make_witness(stub_world, claims=[CLAIM], recipient=recipient)
    stub_world.verifier.verdict = Verdict.reject(RejectReason.UNTRUSTED_HEADER)
    with pytest.raises(VerificationFailure):
        _register(stub_world, make_witness, witness=witness)
    stub_world.verifier.verdict = Verdict.accept()
    assert _register(stub_world, make_witness, witness=witness) == 0


def test_witness_is_single_use(stub_world, make_witness) -> None:
    recipient = stub_world.registry.recipient_commitment_for(ESCROW_A)
    witness = make_witness(stub_world, claims=[CLAIM], recipient=recipient)
    _register(stub_world, make_witness, witness=witness)
    with pytest.raises(StateConflict, match="already been used"):
        _register(stub_world, make_witness, witness=witness)
    assert stub_world.registry.next_offer_id == 1


def test_witness_replayed_against_other_escrow_is_rejected(world, make_witness, seller_key) -> None:
    recipient_a = world.registry.recipient_commitment_for(ESCROW_A)
    witness = make_witness(world, claims=[CLAIM], recipient=recipient_a, secret_key=seller_key[0])

    # Naming B's own commitment: the witness delivered elsewhere.
    with pytest.raises(VerificationFailure) as excinfo:
        world.registry.register(
            caller=MAKER,
            maker_claim=CLAIM,
            recipient_commitment=world.registry.recipient_commitment_for(ESCROW_B),
            escrow_agent=ESCROW_B,
            taker_commitment=TAKER_A,
            taker_asset=TakerAsset(NATIVE_TOKEN, 100),
            witness=witness,
        )
    assert excinfo.value.reason is RejectReason.BAD_INCLUSION_PATH

    # Naming A's commitment under escrow B: not bound to B.
    with pytest.raises(VerificationFailure, match="not bound"):
        world.registry.register(
            caller=MAKER,
            maker_claim=CLAIM,
            recipient_commitment=recipient_a,
            escrow_agent=ESCROW_B,
            taker_commitment=TAKER_A,
            taker_asset=TakerAsset(NATIVE_TOKEN, 100),
            witness=witness,
        )
    assert world.registry.offers() == []

    # The rightful escrow can still use it.
    assert _register(world, make_witness, witness=witness) == 0


def test_register_with_real_verifier_rejects_unsigned_witness(world, make_witness) -> None:
    with pytest.raises(VerificationFailure) as excinfo:
        _register(world, make_witness)
    assert excinfo.value.reason is RejectReason.BAD_SIGNATURE


@pytest.mark.parametrize(
    "kwargs",
    [
        {"caller": None},
        {"caller": "0x1234"},
        {"taker_asset": TakerAsset(NATIVE_TOKEN, 0)},
        {"maker_claim": AssetClaim(SELLER_ADDRESS, "0x" + "a5" * 32, 0)},
        {"taker_commitment": "0x00"},
        {"recipient_commitment": "garbage"},
    ],
)
def test_register_rejects_malformed_parameters_before_verifying(stub_world, make_witness, kwargs) -> None:
    recipient = stub_world.registry.recipient_commitment_for(ESCROW_A)
    params = dict(
        caller=MAKER,
        maker_claim=CLAIM,
        recipient_commitment=recipient,
        escrow_agent=ESCROW_A,
        taker_commitment=TAKER_A,
        taker_asset=TakerAsset(NATIVE_TOKEN, 100),
        witness=make_witness(stub_world, claims=[CLAIM], recipient=recipient),
    )
    params.update(kwargs)
    with pytest.raises(InvalidParameter):
        stub_world.registry.register(**params)
    assert stub_world.verifier.calls == []


def test_update_taker(stub_world, make_witness) -> None:
    offer_id = _register(stub_world, make_witness)
    registry = stub_world.registry
    with pytest.raises(AuthorizationFailure):
        registry.update_taker(caller=MAKER, offer_id=offer_id, taker_commitment=TAKER_B)
    updated = registry.update_taker(caller=ESCROW_A, offer_id=offer_id, taker_commitment=TAKER_B)
    assert updated.taker_commitment == TAKER_B
    assert registry.get_offer(offer_id).taker_commitment == TAKER_B
    (event,) = stub_world.events.events(Event.OFFER_TAKER_UPDATED)
    assert event.fields == {"offer_id": offer_id, "taker_commitment": TAKER_B}


def test_activate_pays_maker_and_is_write_once(stub_world, make_witness) -> None:
    offer_id = _register(stub_world, make_witness)
    registry, bank = stub_world.registry, stub_world.bank
    bank.mint(ESCROW_A, 250)

    with pytest.raises(AuthorizationFailure):
        registry.activate(caller=STRANGER, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    with pytest.raises(InvalidParameter):
        registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=101)

    offer = registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    assert offer.activated
    assert registry.is_activated(offer_id)
    assert bank.balance_of(MAKER) == 100
    assert bank.balance_of(ESCROW_A) == 150
    (event,) = stub_world.events.events(Event.OFFER_ACTIVATED)
    assert event.fields == {"offer_id": offer_id, "taker_commitment": TAKER_A}

    with pytest.raises(StateConflict, match="already finalized"):
        registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    with pytest.raises(StateConflict, match="already finalized"):
        registry.deactivate(caller=ESCROW_A, offer_id=offer_id)
    with pytest.raises(StateConflict):
        registry.update_taker(caller=ESCROW_A, offer_id=offer_id, taker_commitment=TAKER_B)
    assert bank.balance_of(MAKER) == 100


def test_failed_payment_leaves_offer_open(stub_world, make_witness) -> None:
    offer_id = _register(stub_world, make_witness)
    registry, bank = stub_world.registry, stub_world.bank

    with pytest.raises(PaymentFailure):
        registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    assert registry.get_offer(offer_id).is_open

    bank.mint(ESCROW_A, 100)

    def refuse(sender, token, amount):
        raise RuntimeError("maker refuses")

    bank.set_receive_hook(MAKER, refuse)
    with pytest.raises(PaymentFailure):
        registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    assert registry.get_offer(offer_id).is_open
    assert bank.balance_of(ESCROW_A) == 100
    assert not stub_world.events.events(Event.OFFER_ACTIVATED)

    bank.set_receive_hook(MAKER, None)
    assert registry.activate(
        caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100
    ).activated


def test_reentrant_activation_sees_terminal_state(stub_world, make_witness) -> None:
    offer_id = _register(stub_world, make_witness)
    registry, bank = stub_world.registry, stub_world.bank
    bank.mint(ESCROW_A, 200)
    inner_errors = []

    def reenter(sender, token, amount):
        try:
            registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
        except StateConflict as exc:
            inner_errors.append(exc)

    bank.set_receive_hook(MAKER, reenter)
    registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    assert len(inner_errors) == 1
    assert bank.balance_of(MAKER) == 100
    assert len(stub_world.events.events(Event.OFFER_ACTIVATED)) == 1


def test_deactivate(stub_world, make_witness) -> None:
    offer_id = _register(stub_world, make_witness)
    registry = stub_world.registry
    with pytest.raises(AuthorizationFailure):
        registry.deactivate(caller=MAKER, offer_id=offer_id)
    assert registry.deactivate(caller=ESCROW_A, offer_id=offer_id).deactivated
    assert not registry.is_activated(offer_id)
    with pytest.raises(StateConflict, match="already finalized"):
        registry.deactivate(caller=ESCROW_A, offer_id=offer_id)
    with pytest.raises(StateConflict):
        registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
    assert [e.get("offer_id") for e in stub_world.events.events(Event.OFFER_DEACTIVATED)] == [offer_id]


def test_unknown_offer_ids(stub_world) -> None:
    registry = stub_world.registry
    assert not registry.is_registered(5)
    with pytest.raises(UnknownOffer):
        registry.get_offer(5)
    with pytest.raises(UnknownOffer):
        registry.is_activated(5)
    with pytest.raises(KeyError):
        registry.deactivate(caller=ESCROW_A, offer_id=5)
    with pytest.raises(UnknownOffer):
        registry.update_taker(caller=ESCROW_A, offer_id=5, taker_commitment=TAKER_B)


def test_concurrent_activations_succeed_once(stub_world, make_witness) -> None:
    offer_id = _register(stub_world, make_witness)
    registry, bank = stub_world.registry, stub_world.bank
    bank.mint(ESCROW_A, 100 * 8)
    outcomes = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        try:
            registry.activate(caller=ESCROW_A, offer_id=offer_id, payment_token=NATIVE_TOKEN, payment_amount=100)
            outcomes.append("ok")
        except StateConflict:
            outcomes.append("conflict")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(outcomes) == ["conflict"] * 7 + ["ok"]
    assert bank.balance_of(MAKER) == 100
