"""Marketplace HTTP interface: router, schemas and composition root."""
