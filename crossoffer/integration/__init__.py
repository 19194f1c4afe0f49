"""
Anchor-layer integration: verifier, registries, auctions and configuration
"""

from .auction_house import Auction, auction_account
from .clock import LedgerClock
from .config import OfferConfig, configure_logging, decode_witness_for, load_config, witness_from_hex_for
from .events import EventLog
from .proof_verifier import (
    DiffTreeStateProofVerifier,
    DisabledStateProofVerifier,
    RejectReason,
    SettlementKeyDirectory,
    StateProofVerifier,
    TrustedHeaderStore,
    Verdict,
    make_state_proof_verifier,
)
from .registry import OfferRegistry
from .reverse_registry import ReverseOfferRegistry
from .witness import (
    InclusionProof,
    Witness,
    WitnessDecodeError,
    decode_witness,
    encode_witness,
    sign_witness,
    signing_payload,
    witness_from_hex,
    witness_to_hex,
)

__all__ = [
    "Auction",
    "auction_account",
    "LedgerClock",
    "OfferConfig",
    "configure_logging",
    "load_config",
    "decode_witness_for",
    "witness_from_hex_for",
    "EventLog",
    "DiffTreeStateProofVerifier",
    "DisabledStateProofVerifier",
    "RejectReason",
    "SettlementKeyDirectory",
    "StateProofVerifier",
    "TrustedHeaderStore",
    "Verdict",
    "make_state_proof_verifier",
    "OfferRegistry",
    "ReverseOfferRegistry",
    "InclusionProof",
    "Witness",
    "WitnessDecodeError",
    "decode_witness",
    "encode_witness",
    "sign_witness",
    "signing_payload",
    "witness_from_hex",
    "witness_to_hex",
]
