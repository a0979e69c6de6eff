"""
Infrastructure adapters for the marketplace bounded context.

Each adapter implements a domain port (ABC) and connects
to external systems: databases, market data, event delivery.
"""
