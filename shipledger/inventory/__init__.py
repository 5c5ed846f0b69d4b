"""Inventory ledger: location resolution, lot keys and idempotent delta application."""
