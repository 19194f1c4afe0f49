"""
State-proof verification (imperative shell).

The registry only ever asks one question: is this asset claim proven to have
been delivered, under a block the anchor layer already trusts, and signed by
the key behind the sending settlement address?

Checks run in a fixed order and the first failure wins:
1. the witness's block header is finalized in the `TrustedHeaderStore`;
2. the claim is one of the witness's asset claims and its diff-tree leaf folds
   up the inclusion path to the header's `transactions_digest`;
3. the BLS (G2Basic) signature over the witness signing message verifies
   against the key in the `SettlementKeyDirectory`.

Verification is fail-closed: malformed input yields a rejecting `Verdict`,
never an exception.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, unique
from typing import Dict, Optional, Tuple

from py_ecc.bls import G2Basic

from ..core.block_header import BlockHeader, block_hash
from ..core.merkle import compute_root, diff_leaf_hash
from ..core.offer import normalize_claim
from ..core.types import AssetClaim
from ..errors import InvalidParameter, StateConflict
from ..state.canonical import hex_to_bytes_fixed
from ..state.identities import settlement_id
from .witness import SIGNATURE_BYTES, Witness, witness_signing_message


PUBKEY_BYTES = 48


@unique
class RejectReason(Enum):
    UNTRUSTED_HEADER = "untrusted_header"
    BAD_INCLUSION_PATH = "bad_inclusion_path"
    BAD_SIGNATURE = "bad_signature"
    MALFORMED_WITNESS = "malformed_witness"
    VERIFIER_DISABLED = "verifier_disabled"


@dataclass(frozen=True)
class Verdict:
    ok: bool
    reason: Optional[RejectReason] = None
    detail: Optional[str] = None

    @classmethod
    def accept(cls) -> "Verdict":
        return cls(ok=True)

    @classmethod
    def reject(cls, reason: RejectReason, detail: Optional[str] = None) -> "Verdict":
        return cls(ok=False, reason=reason, detail=detail)

    def as_tuple(self) -> Tuple[bool, Optional[str]]:
        if self.ok:
            return True, None
        label = self.reason.value if self.reason is not None else "rejected"
        return False, f"{label}: {self.detail}" if self.detail else label


class TrustedHeaderStore:
    """Block hashes of rollup headers the anchor layer has finalized."""

    def __init__(self) -> None:
        self._hashes: Dict[int, bytes] = {}
        self._lock = threading.Lock()

    def finalize(self, header: BlockHeader) -> None:
        digest = block_hash(header)
        with self._lock:
            existing = self._hashes.get(header.block_number)
            if existing is not None and existing != digest:
                raise StateConflict(f"block {header.block_number} is already finalized with a different hash")
            self._hashes[header.block_number] = digest

    def is_trusted(self, header: BlockHeader) -> bool:
        with self._lock:
            expected = self._hashes.get(header.block_number)
        return expected is not None and expected == block_hash(header)


class SettlementKeyDirectory:
    """settlement address -> BLS public key (48 bytes, compressed G1)."""

    def __init__(self) -> None:
        self._keys: Dict[str, bytes] = {}

    def register(self, settlement_address: str, pubkey_hex: str) -> None:
        try:
            address = settlement_id(settlement_address, name="settlement_address")
            pubkey = hex_to_bytes_fixed(pubkey_hex, nbytes=PUBKEY_BYTES, name="pubkey")
        except (TypeError, ValueError) as exc:
            raise InvalidParameter(str(exc)) from exc
        try:
            valid = bool(G2Basic.KeyValidate(pubkey))
        except Exception as exc:
            raise InvalidParameter(f"invalid BLS public key for {address}: {exc}") from exc
        if not valid:
            raise InvalidParameter(f"invalid BLS public key for {address}")
        self._keys[address] = pubkey

    def pubkey_for(self, settlement_address: str) -> Optional[bytes]:
        return self._keys.get(settlement_address)


class StateProofVerifier:
    """Interface for verifying an asset claim against a witness."""

    def verify(self, claim: AssetClaim, witness: Witness) -> Verdict:
        raise NotImplementedError


class DisabledStateProofVerifier(StateProofVerifier):
    def verify(self, claim: AssetClaim, witness: Witness) -> Verdict:
        return Verdict.reject(RejectReason.VERIFIER_DISABLED, "state-proof verification disabled")


class MisconfiguredStateProofVerifier(StateProofVerifier):
    def __init__(self, reason: str) -> None:
        self._reason = str(reason)

    def verify(self, claim: AssetClaim, witness: Witness) -> Verdict:
        return Verdict.reject(RejectReason.VERIFIER_DISABLED, self._reason)


class DiffTreeStateProofVerifier(StateProofVerifier):
    def __init__(
        self,
        *,
        headers: TrustedHeaderStore,
        keys: SettlementKeyDirectory,
        chain_id: str,
        max_proof_depth: int = 32,
    ) -> None:
        if not chain_id:
            raise ValueError("chain_id must be non-empty")
        if max_proof_depth <= 0:
            raise ValueError("max_proof_depth must be positive")
        self._headers = headers
        self._keys = keys
        self._chain_id = chain_id
        self._max_depth = int(max_proof_depth)

    def verify(self, claim: AssetClaim, witness: Witness) -> Verdict:
        if not isinstance(witness, Witness) or not isinstance(witness.block_header, BlockHeader):
            return Verdict.reject(RejectReason.MALFORMED_WITNESS, "witness must be a Witness")
        try:
            claim = normalize_claim(claim)
            claims = [normalize_claim(c) for c in witness.asset_claims]
            siblings = witness.inclusion_proof.sibling_bytes()
            root = hex_to_bytes_fixed(
                witness.block_header.transactions_digest, nbytes=32, name="transactions_digest"
            )
        except (AttributeError, TypeError, ValueError) as exc:
            return Verdict.reject(RejectReason.MALFORMED_WITNESS, str(exc))
        if len(siblings) > self._max_depth:
            return Verdict.reject(RejectReason.MALFORMED_WITNESS, f"inclusion path deeper than {self._max_depth}")

        if not self._headers.is_trusted(witness.block_header):
            return Verdict.reject(
                RejectReason.UNTRUSTED_HEADER, f"block {witness.block_header.block_number} is not finalized"
            )

        if claim not in claims:
            return Verdict.reject(RejectReason.BAD_INCLUSION_PATH, "claim is not among the witness asset claims")
        try:
            leaf = diff_leaf_hash(witness.recipient_commitment, claims)
            computed = compute_root(leaf, witness.inclusion_proof.index, siblings)
        except (TypeError, ValueError) as exc:
            return Verdict.reject(RejectReason.BAD_INCLUSION_PATH, str(exc))
        if computed != root:
            return Verdict.reject(RejectReason.BAD_INCLUSION_PATH, "inclusion path does not match transactions_digest")

        pubkey = self._keys.pubkey_for(claim.settlement_address)
        if pubkey is None:
            return Verdict.reject(RejectReason.BAD_SIGNATURE, f"no key registered for {claim.settlement_address}")
        try:
            sig = hex_to_bytes_fixed(witness.signature, nbytes=SIGNATURE_BYTES, name="signature")
            msg = witness_signing_message(witness, chain_id=self._chain_id)
            ok = bool(G2Basic.Verify(pubkey, msg, sig))
        except Exception as exc:
            return Verdict.reject(RejectReason.BAD_SIGNATURE, f"signature verification error: {exc}")
        if not ok:
            return Verdict.reject(RejectReason.BAD_SIGNATURE, "invalid witness signature")
        return Verdict.accept()


def make_state_proof_verifier(
    config, *, headers: TrustedHeaderStore, keys: SettlementKeyDirectory
) -> StateProofVerifier:
    if not config.verifier_enabled:
        return DisabledStateProofVerifier()
    if not config.chain_id:
        return MisconfiguredStateProofVerifier("state-proof verifier misconfigured (missing chain_id)")
    return DiffTreeStateProofVerifier(
        headers=headers,
        keys=keys,
        chain_id=config.chain_id,
        max_proof_depth=config.max_proof_depth,
    )
