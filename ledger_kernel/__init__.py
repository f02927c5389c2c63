"""
Ledger Kernel - currency-aware double-entry sales ledger

Turns completed POS sales and invoices into balanced transactions with:
- Locked-counter transaction numbering
- Atomic posting (entries and account balances commit together)
- Idempotent posting per source document
- Multi-currency conversion with explicit rounding
"""

__version__ = "0.1.0"
