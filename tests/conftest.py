# [TESTER] v1

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import pytest
from py_ecc.bls import G2Basic

from crossoffer.core.block_header import BlockHeader
from crossoffer.core.merkle import build_diff_tree, diff_leaf_hash
from crossoffer.core.types import AssetClaim
from crossoffer.integration.clock import LedgerClock
from crossoffer.integration.events import EventLog
from crossoffer.integration.proof_verifier import (
    DiffTreeStateProofVerifier,
    SettlementKeyDirectory,
    StateProofVerifier,
    TrustedHeaderStore,
    Verdict,
)
from crossoffer.integration.registry import OfferRegistry
from crossoffer.integration.reverse_registry import ReverseOfferRegistry
from crossoffer.integration.witness import InclusionProof, Witness, sign_witness
from crossoffer.state.balances import AnchorBank


CHAIN_ID = "crossoffer-test"

SELLER_ADDRESS = "0x" + "5e" * 32
ASSET_ID = "0x" + "a5" * 32


class StubVerifier(StateProofVerifier):
    """Returns `verdict` for every call and records the calls."""

    def __init__(self, verdict: Verdict = Verdict.accept()) -> None:
        self.verdict = verdict
        self.calls: List[Tuple[AssetClaim, Witness]] = []

    def verify(self, claim: AssetClaim, witness: Witness) -> Verdict:
        self.calls.append((claim, witness))
        return self.verdict


@dataclass
class World:
    bank: AnchorBank
    clock: LedgerClock
    events: EventLog
    headers: TrustedHeaderStore
    keys: SettlementKeyDirectory
    verifier: StateProofVerifier
    registry: OfferRegistry
    reverse: ReverseOfferRegistry
    blocks: Iterator[int] = field(default_factory=lambda: itertools.count(1))


def _digest(byte: str) -> str:
    return "0x" + byte * 32


def _build_world(verifier: Optional[StateProofVerifier] = None) -> World:
    bank = AnchorBank()
    events = EventLog()
    headers = TrustedHeaderStore()
    keys = SettlementKeyDirectory()
    if verifier is None:
        verifier = DiffTreeStateProofVerifier(headers=headers, keys=keys, chain_id=CHAIN_ID)
    return World(
        bank=bank,
        clock=LedgerClock(start=1_000),
        events=events,
        headers=headers,
        keys=keys,
        verifier=verifier,
        registry=OfferRegistry(bank=bank, verifier=verifier, chain_id=CHAIN_ID, events=events),
        reverse=ReverseOfferRegistry(bank=bank, verifier=verifier, events=events),
    )


def _make_witness(
    world: World,
    *,
    claims: Sequence[AssetClaim],
    recipient: str,
    secret_key: Optional[int] = None,
    index: int = 0,
    depth: int = 4,
    block_number: Optional[int] = None,
    finalize: bool = True,
) -> Witness:
    """Build a diff tree holding one leaf for `recipient`, a header over it, and the witness."""
    claims = tuple(claims)
    filler = [bytes([i + 1]) * 32 for i in range(index)]
    tree = build_diff_tree(filler + [diff_leaf_hash(recipient, claims)], depth=depth)
    header = BlockHeader(
        block_number=next(world.blocks) if block_number is None else block_number,
        prev_block_hash=_digest("01"),
        block_headers_digest=_digest("02"),
        transactions_digest=tree.root_hex,
        deposit_digest=_digest("03"),
        proposed_world_state_digest=_digest("04"),
        approved_world_state_digest=_digest("05"),
        latest_account_digest=_digest("06"),
    )
    if finalize:
        world.headers.finalize(header)
    witness = Witness(
        asset_claims=claims,
        recipient_commitment=recipient,
        inclusion_proof=InclusionProof(index=index, siblings=tuple("0x" + s.hex() for s in tree.proof(index))),
        block_header=header,
    )
    if secret_key is not None:
        witness = sign_witness(witness, secret_key=secret_key, chain_id=CHAIN_ID)
    return witness


@pytest.fixture(scope="session")
def seller_key() -> Tuple[int, str]:
    # Deterministic keypair from fixed seed.
    sk = G2Basic.KeyGen(b"\x01" * 32)
    return sk, "0x" + G2Basic.SkToPk(sk).hex()


@pytest.fixture(scope="session")
def stranger_key() -> Tuple[int, str]:
    sk = G2Basic.KeyGen(b"\x02" * 32)
    return sk, "0x" + G2Basic.SkToPk(sk).hex()


@pytest.fixture
def new_world() -> Callable[..., World]:
    """Factory: `new_world()` for the BLS verifier, `new_world(verifier)` for a custom one."""
    return _build_world


@pytest.fixture
def make_witness() -> Callable[..., Witness]:
    return _make_witness


@pytest.fixture
def world(seller_key: Tuple[int, str]) -> World:
    w = _build_world()
    w.keys.register(SELLER_ADDRESS, seller_key[1])
    return w


@pytest.fixture
def new_stub_world() -> Callable[[], World]:
    """Factory for worlds whose verifier accepts everything (for property tests)."""
    return lambda: _build_world(StubVerifier())


@pytest.fixture
def stub_world() -> World:
    return _build_world(StubVerifier())
