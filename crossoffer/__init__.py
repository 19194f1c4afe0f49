"""
crossoffer: proof-gated cross-layer offers, escrow and auctions.
"""

__version__ = "0.1.0"
