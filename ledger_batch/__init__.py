"""
ledger_batch -- Background refresh of the supported currencies' rates.

Provides the pure due-check for the configured update frequency, the batch
updater that resolves every supported currency and writes the results in
one settings write, and the in-process polling scheduler that drives it.

Architecture:
    ledger_batch/ is a top-level package.  It reads and writes currency
    settings through ledger_kernel services and resolves rates through
    ledger_rates.  Nothing in ledger_kernel imports from ledger_batch.
"""
