"""
Ledger-resident state for the offer protocol
"""

from .balances import AnchorBank, BalanceTable, WithdrawLedger
from .identities import (
    NATIVE_TOKEN,
    anchor_account,
    display_settlement_address,
    encode_settlement_address,
    recipient_commitment_for,
    settlement_id,
)

__all__ = [
    "AnchorBank",
    "BalanceTable",
    "WithdrawLedger",
    "NATIVE_TOKEN",
    "anchor_account",
    "display_settlement_address",
    "encode_settlement_address",
    "recipient_commitment_for",
    "settlement_id",
]
