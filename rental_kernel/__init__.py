"""Kernel for the rental ledger: persistence, ledger posting, audit and logging."""
