"""shipledger: ShipHero webhook intake and inventory ledger.

Receives signed ShipHero webhooks, acknowledges them immediately, and applies
inventory changes to per-location ledgers in a transactional document store.
"""

__version__ = "0.4.0"
