"""
settlement_kernel -- Core of the payment settlement service.

Owns the payment and batch records, the payment/batch state machines,
the append-only payment timeline, typed exceptions, structured logging
and the database plumbing.  Pure validation engines live in
``settlement_engines``; batch orchestration lives in ``settlement_batch``.

Architecture:
    settlement_kernel imports nothing from settlement_engines or
    settlement_config.  db/ imports settlement_batch.models lazily so
    table creation and immutability listeners cover the batch tables.
"""
