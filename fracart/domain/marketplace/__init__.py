"""
Marketplace bounded context: domain layer.

This module contains all domain logic for the marketplace context:
- Fractional ownership ledger rules
- Ownership aggregation and portfolio valuation
- Auction lifecycle and bid ordering
"""
