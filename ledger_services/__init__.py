"""
ledger_services -- process wiring for the sales ledger.

``LedgerOrchestrator`` composes configuration, the database engine, the
rate providers, the rate refresh scheduler and the posting engine.  The
``sales-ledger`` command line lives in ``ledger_services.cli``.
"""
