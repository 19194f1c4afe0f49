"""
Identity encodings for the two ledgers.

- Settlement-layer identities (rollup accounts, asset ids, commitments) are
  fixed 32-byte values carried as 0x-prefixed lowercase hex.
- Anchor-layer identities are 20-byte account identifiers, also 0x hex.
"""

from __future__ import annotations

from typing import Optional

from ..errors import InvalidParameter
from .canonical import (
    domain_sep_bytes,
    encode_bytes,
    encode_uvarint,
    hex_to_bytes_fixed,
    normalize_fixed_hex,
    sha256_hex,
)


# Type aliases
SettlementAddress = str  # 32-byte hex string (0x...)
AssetId = str  # 32-byte hex string (0x...)
Commitment = str  # 32-byte hex string (0x...)
AnchorAccount = str  # 20-byte hex string (0x...)
TokenAddress = str  # 20-byte hex string (0x...)
Amount = int  # Non-negative integer in the anchor layer's native unit

SETTLEMENT_ID_BYTES = 32
ANCHOR_ID_BYTES = 20

# The zero address denotes the anchor layer's native token.
NATIVE_TOKEN: TokenAddress = "0x" + "00" * ANCHOR_ID_BYTES

DISPLAY_BYTES = 16


def settlement_id(value: str, *, name: str = "settlement id") -> SettlementAddress:
    return normalize_fixed_hex(value, nbytes=SETTLEMENT_ID_BYTES, name=name)


def anchor_account(value: str, *, name: str = "anchor account") -> AnchorAccount:
    return normalize_fixed_hex(value, nbytes=ANCHOR_ID_BYTES, name=name)


def encode_settlement_address(value: str) -> SettlementAddress:
    """Left-pad a short 0x value to a full 32-byte settlement identity."""
    if not isinstance(value, str):
        raise TypeError("settlement address must be a str")
    if not value.startswith("0x"):
        raise ValueError("settlement address must have 0x-prefix")
    body = value[2:]
    if len(body) > 2 * SETTLEMENT_ID_BYTES:
        raise ValueError("settlement address is too long")
    return settlement_id("0x" + body.rjust(2 * SETTLEMENT_ID_BYTES, "0"))


def display_settlement_address(value: str) -> str:
    """
    Short human-readable form: the low 16 bytes only.

    This is lossy and must never be fed back into verification.
    """
    full = settlement_id(value)
    return "0x" + full[-2 * DISPLAY_BYTES :]


def recipient_commitment_for(escrow_agent: AnchorAccount, *, chain_id: str) -> Commitment:
    """
    Settlement-layer recipient commitment owned by an anchor escrow agent.

    A witness names this commitment as the receiver of the staked asset, so a
    witness produced for one escrow agent cannot be registered under another.
    """
    agent_b = hex_to_bytes_fixed(anchor_account(escrow_agent), nbytes=ANCHOR_ID_BYTES, name="escrow_agent")
    payload = domain_sep_bytes("escrow_recipient") + encode_bytes(chain_id.encode("utf-8")) + agent_b
    return sha256_hex(payload)


def derive_contract_account(label: str, sequence: int) -> AnchorAccount:
    """Deterministic anchor account for a protocol-owned contract (auction, escrow vault)."""
    digest = sha256_hex(domain_sep_bytes("contract_account") + encode_bytes(label.encode("utf-8")) + encode_uvarint(sequence))
    return "0x" + digest[-2 * ANCHOR_ID_BYTES :]


def require_anchor_account(value: Optional[str], name: str) -> AnchorAccount:
    """`anchor_account` for caller-supplied input: failures are `InvalidParameter`."""
    if not value:
        raise InvalidParameter(f"{name} is unset")
    try:
        return anchor_account(value, name=name)
    except (TypeError, ValueError) as exc:
        raise InvalidParameter(str(exc)) from exc


def require_settlement_id(value: str, name: str) -> SettlementAddress:
    try:
        return settlement_id(value, name=name)
    except (TypeError, ValueError) as exc:
        raise InvalidParameter(str(exc)) from exc
