"""Integration sync reconciliation service."""
