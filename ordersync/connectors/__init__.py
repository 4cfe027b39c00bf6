"""Connectors to external systems of record."""
