#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from py_ecc.bls import G2Basic

from crossoffer.core.block_header import BlockHeader
from crossoffer.core.merkle import build_diff_tree, diff_leaf_hash
from crossoffer.core.types import AssetClaim
from crossoffer.errors import OfferError
from crossoffer.integration import (
    Auction,
    EventLog,
    InclusionProof,
    LedgerClock,
    OfferRegistry,
    SettlementKeyDirectory,
    TrustedHeaderStore,
    Witness,
    WitnessDecodeError,
    auction_account,
    configure_logging,
    load_config,
    make_state_proof_verifier,
    sign_witness,
    witness_from_hex_for,
    witness_to_hex,
)
from crossoffer.state import AnchorBank


SELLER = "0x" + "5e" * 32
ASSET = "0x" + "a5" * 32
BENEFICIARY = "0x" + "be" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20


def _delivery_witness(recipient: str, claim: AssetClaim, headers: TrustedHeaderStore, *, sk: int, chain_id: str) -> Witness:
    tree = build_diff_tree([b"\x42" * 32, diff_leaf_hash(recipient, [claim])], depth=4)
    header = BlockHeader(
        block_number=1,
        prev_block_hash="0x" + "00" * 32,
        block_headers_digest="0x" + "01" * 32,
        transactions_digest=tree.root_hex,
        deposit_digest="0x" + "02" * 32,
        proposed_world_state_digest="0x" + "03" * 32,
        approved_world_state_digest="0x" + "03" * 32,
        latest_account_digest="0x" + "04" * 32,
    )
    headers.finalize(header)
    witness = Witness(
        asset_claims=(claim,),
        recipient_commitment=recipient,
        inclusion_proof=InclusionProof(index=1, siblings=tuple("0x" + s.hex() for s in tree.proof(1))),
        block_header=header,
    )
    return sign_witness(witness, secret_key=sk, chain_id=chain_id)


def main() -> int:
    cfg = load_config(sys.argv[1] if len(sys.argv) > 1 else None)
    configure_logging(cfg.log_level)

    bank = AnchorBank()
    clock = LedgerClock(start=1_700_000_000)
    events = EventLog()
    headers = TrustedHeaderStore()
    keys = SettlementKeyDirectory()
    verifier = make_state_proof_verifier(cfg, headers=headers, keys=keys)
    registry = OfferRegistry(bank=bank, verifier=verifier, chain_id=cfg.chain_id, events=events)

    sk = G2Basic.KeyGen(b"auction-demo-seller-key-material!")
    keys.register(SELLER, "0x" + G2Basic.SkToPk(sk).hex())

    account = auction_account(0)
    claim = AssetClaim(settlement_address=SELLER, asset_id=ASSET, amount=1)
    recipient = registry.recipient_commitment_for(account)
    witness_hex = witness_to_hex(_delivery_witness(recipient, claim, headers, sk=sk, chain_id=cfg.chain_id))
    try:
        witness = witness_from_hex_for(cfg, witness_hex)
    except WitnessDecodeError as exc:
        print(f"[auction-demo] FAIL (witness): {exc}")
        return 1

    bank.mint(ALICE, 1_000)
    bank.mint(BOB, 1_000)
    supply = bank.total_supply()
    try:
        auction = Auction.open(
            registry=registry,
            bank=bank,
            clock=clock,
            account=account,
            beneficiary=BENEFICIARY,
            maker_claim=claim,
            witness=witness,
            period=600,
            min_bid=100,
        )
        auction.bid(caller=ALICE, bidder_commitment="0x" + "ac" * 32, value=150)
        clock.advance_by(60)
        auction.bid(caller=BOB, bidder_commitment="0x" + "bc" * 32, value=220)
        clock.advance_to(auction.closing_time)
        offer = auction.claim()
        refunded = auction.withdraw(ALICE)
        proceeds = auction.withdraw(BENEFICIARY)
    except OfferError as exc:
        print(f"[auction-demo] FAIL ({exc.code}): {exc}")
        return 1

    print(f"[auction-demo] offer_id={offer.offer_id} status={offer.status.value} taker={offer.taker_commitment}")
    print(f"[auction-demo] alice refunded={refunded} beneficiary proceeds={proceeds}")
    print(f"[auction-demo] auction balance={bank.balance_of(account)} events={len(events)}")
    if bank.balance_of(account) != 0 or proceeds != 220 or bank.total_supply() != supply:
        print("[auction-demo] FAIL (funds not conserved)")
        return 1
    print("[auction-demo] OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
