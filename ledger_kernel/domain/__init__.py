"""Pure domain values for the ledger kernel (no I/O)."""
