"""
Witness codec.

A witness is the proof bundle a maker presents to register an offer (or to
unlock a reverse offer):

    {
      "asset_claims": [{"settlement_address", "asset_id", "amount"}, ...],
      "recipient_commitment": "0x<32 bytes>",
      "inclusion_proof": {"index": int, "siblings": ["0x<32 bytes>", ...]},
      "block_header": {...},
      "signature": "0x<96 bytes>"
    }

The wire form is canonical JSON (see `state.canonical`), optionally carried as
a single 0x-hex blob. Decoding is strict and bounded; every problem surfaces
as `WitnessDecodeError`.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Tuple

from py_ecc.bls import G2Basic

from ..core.block_header import DIGEST_FIELDS, BlockHeader
from ..core.types import AssetClaim
from ..state.canonical import (
    canonical_json_bytes,
    domain_sep_bytes,
    hex_to_bytes_fixed,
    sha256_hex,
)


WITNESS_CODEC_VERSION = 1
SIGNATURE_BYTES = 96

DEFAULT_MAX_WITNESS_BYTES = 64_000
DEFAULT_MAX_ASSET_CLAIMS = 64
DEFAULT_MAX_PROOF_DEPTH = 32

_WITNESS_KEYS = {"asset_claims", "recipient_commitment", "inclusion_proof", "block_header", "signature"}
_CLAIM_KEYS = {"settlement_address", "asset_id", "amount"}
_PROOF_KEYS = {"index", "siblings"}


class WitnessDecodeError(ValueError):
    pass


@dataclass(frozen=True)
class InclusionProof:
    index: int
    siblings: Tuple[str, ...]

    def sibling_bytes(self) -> List[bytes]:
        return [hex_to_bytes_fixed(s, nbytes=32, name="sibling") for s in self.siblings]


@dataclass(frozen=True)
class Witness:
    asset_claims: Tuple[AssetClaim, ...]
    recipient_commitment: str
    inclusion_proof: InclusionProof
    block_header: BlockHeader
    signature: str = "0x" + "00" * SIGNATURE_BYTES


def _claim_to_obj(claim: AssetClaim) -> Dict[str, Any]:
    return {
        "settlement_address": claim.settlement_address,
        "asset_id": claim.asset_id,
        "amount": claim.amount,
    }


def signing_payload(witness: Witness) -> Dict[str, Any]:
    """Every witness field except the signature."""
    return {
        "asset_claims": [_claim_to_obj(c) for c in witness.asset_claims],
        "recipient_commitment": witness.recipient_commitment,
        "inclusion_proof": {
            "index": witness.inclusion_proof.index,
            "siblings": list(witness.inclusion_proof.siblings),
        },
        "block_header": witness.block_header.to_dict(),
    }


def witness_to_obj(witness: Witness) -> Dict[str, Any]:
    obj = signing_payload(witness)
    obj["signature"] = witness.signature
    return obj


def encode_witness(witness: Witness) -> bytes:
    return canonical_json_bytes(witness_to_obj(witness))


def witness_to_hex(witness: Witness) -> str:
    return "0x" + encode_witness(witness).hex()


def witness_digest(witness: Witness) -> str:
    """Identity of a witness for single-use tracking (covers the signature too)."""
    return sha256_hex(domain_sep_bytes("witness_digest", version=WITNESS_CODEC_VERSION) + encode_witness(witness))


def witness_signing_message(witness: Witness, *, chain_id: str) -> bytes:
    msg = domain_sep_bytes(f"witness_sig:{chain_id}", version=1) + canonical_json_bytes(signing_payload(witness))
    return hashlib.sha256(msg).digest()


def sign_witness(witness: Witness, *, secret_key: int, chain_id: str) -> Witness:
    """Attach a BLS (G2Basic) signature by the holder of `secret_key`."""
    sig = G2Basic.Sign(secret_key, witness_signing_message(witness, chain_id=chain_id))
    return replace(witness, signature="0x" + bytes(sig).hex())


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _require_keys(obj: Any, expected: set, what: str) -> Mapping[str, Any]:
    if not isinstance(obj, Mapping):
        raise WitnessDecodeError(f"{what} must be an object")
    keys = set(obj.keys())
    if keys != expected:
        missing = sorted(expected - keys)
        extra = sorted(keys - expected)
        raise WitnessDecodeError(f"{what} fields mismatch (missing={missing}, unexpected={extra})")
    return obj


def _hex_field(value: Any, name: str, *, nbytes: int = 32) -> str:
    try:
        hex_to_bytes_fixed(value, nbytes=nbytes, name=name)
    except (TypeError, ValueError) as exc:
        raise WitnessDecodeError(str(exc)) from exc
    if value != value.lower():
        raise WitnessDecodeError(f"{name} must be lowercase hex")
    return value


def _uint(value: Any, name: str, *, max_bits: int | None = None) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise WitnessDecodeError(f"{name} must be a non-negative int")
    if max_bits is not None and value >> max_bits:
        raise WitnessDecodeError(f"{name} must fit in u{max_bits}")
    return value


def _decode_claims(raw: Any, *, max_claims: int) -> Tuple[AssetClaim, ...]:
    if not isinstance(raw, list):
        raise WitnessDecodeError("asset_claims must be a list")
    if not raw:
        raise WitnessDecodeError("asset_claims must not be empty")
    if len(raw) > max_claims:
        raise WitnessDecodeError(f"too many asset_claims: {len(raw)} > {max_claims}")
    claims: List[AssetClaim] = []
    for i, item in enumerate(raw):
        c = _require_keys(item, _CLAIM_KEYS, f"asset_claims[{i}]")
        claims.append(
            AssetClaim(
                settlement_address=_hex_field(c["settlement_address"], f"asset_claims[{i}].settlement_address"),
                asset_id=_hex_field(c["asset_id"], f"asset_claims[{i}].asset_id"),
                amount=_uint(c["amount"], f"asset_claims[{i}].amount"),
            )
        )
    return tuple(claims)


def _decode_proof(raw: Any, *, max_depth: int) -> InclusionProof:
    p = _require_keys(raw, _PROOF_KEYS, "inclusion_proof")
    siblings = p["siblings"]
    if not isinstance(siblings, list):
        raise WitnessDecodeError("inclusion_proof.siblings must be a list")
    if len(siblings) > max_depth:
        raise WitnessDecodeError(f"inclusion path too deep: {len(siblings)} > {max_depth}")
    return InclusionProof(
        index=_uint(p["index"], "inclusion_proof.index", max_bits=max_depth),
        siblings=tuple(_hex_field(s, f"inclusion_proof.siblings[{i}]") for i, s in enumerate(siblings)),
    )


def _decode_header(raw: Any) -> BlockHeader:
    h = _require_keys(raw, {"block_number", *DIGEST_FIELDS}, "block_header")
    number = _uint(h["block_number"], "block_header.block_number", max_bits=32)
    digests = {name: _hex_field(h[name], f"block_header.{name}") for name in DIGEST_FIELDS}
    return BlockHeader(block_number=number, **digests)


def witness_from_obj(
    obj: Any,
    *,
    max_claims: int = DEFAULT_MAX_ASSET_CLAIMS,
    max_depth: int = DEFAULT_MAX_PROOF_DEPTH,
) -> Witness:
    w = _require_keys(obj, _WITNESS_KEYS, "witness")
    return Witness(
        asset_claims=_decode_claims(w["asset_claims"], max_claims=max_claims),
        recipient_commitment=_hex_field(w["recipient_commitment"], "recipient_commitment"),
        inclusion_proof=_decode_proof(w["inclusion_proof"], max_depth=max_depth),
        block_header=_decode_header(w["block_header"]),
        signature=_hex_field(w["signature"], "signature", nbytes=SIGNATURE_BYTES),
    )


def decode_witness(
    blob: bytes,
    *,
    max_bytes: int = DEFAULT_MAX_WITNESS_BYTES,
    max_claims: int = DEFAULT_MAX_ASSET_CLAIMS,
    max_depth: int = DEFAULT_MAX_PROOF_DEPTH,
) -> Witness:
    if not isinstance(blob, (bytes, bytearray)):
        raise WitnessDecodeError("witness blob must be bytes")
    if len(blob) > max_bytes:
        raise WitnessDecodeError(f"witness blob too large: {len(blob)} > {max_bytes}")
    try:
        obj = json.loads(bytes(blob).decode("utf-8"))
    except (ValueError, RecursionError) as exc:
        raise WitnessDecodeError(f"witness blob is not valid JSON: {exc}") from exc
    return witness_from_obj(obj, max_claims=max_claims, max_depth=max_depth)


def witness_from_hex(
    blob_hex: str,
    *,
    max_bytes: int = DEFAULT_MAX_WITNESS_BYTES,
    max_claims: int = DEFAULT_MAX_ASSET_CLAIMS,
    max_depth: int = DEFAULT_MAX_PROOF_DEPTH,
) -> Witness:
    if not isinstance(blob_hex, str) or not blob_hex.startswith("0x"):
        raise WitnessDecodeError("witness hex must be a 0x-prefixed str")
    try:
        blob = bytes.fromhex(blob_hex[2:])
    except ValueError as exc:
        raise WitnessDecodeError(f"witness hex is not valid hex: {exc}") from exc
    return decode_witness(blob, max_bytes=max_bytes, max_claims=max_claims, max_depth=max_depth)
