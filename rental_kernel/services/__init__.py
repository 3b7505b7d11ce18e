"""Kernel services: ledger posting and listing audit trail."""
