"""Read-only query layer over the ledger models."""
