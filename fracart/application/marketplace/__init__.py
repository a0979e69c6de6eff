"""
Marketplace bounded context: application layer.

Use cases and DTOs for artworks, purchases, portfolios and auctions.
"""
