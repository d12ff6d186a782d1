"""
Marketplace listings.

The escrow engine only needs one thing from the catalogue: a Product with
a price, a seller, and a sold flag that can be claimed exactly once.
"""
