"""Exception hierarchy shared across the ledger, store and remote clients."""

from __future__ import annotations


class ShipLedgerError(Exception):
    """Base class for all shipledger errors."""


class EventValidationError(ShipLedgerError):
    """An inventory event is missing one of its required identity fields.

    Non-retryable: raised before any side effect.
    """

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


class LocationNotFoundError(ShipLedgerError):
    """A location name could not be resolved locally or remotely."""

    def __init__(
        self,
        warehouse_id: str,
        location_name: str,
        sku: str | None = None,
        dead_letter_path: str | None = None,
    ):
        self.warehouse_id = warehouse_id
        self.location_name = location_name
        self.sku = sku
        self.dead_letter_path = dead_letter_path
        super().__init__(
            f"Location not found for {location_name!r} in warehouse {warehouse_id!r}"
        )


class TransactionConflictError(ShipLedgerError):
    """The transaction runner gave up after repeated write conflicts."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Transaction aborted after {attempts} conflicting attempts")


class TransactionOrderError(ShipLedgerError):
    """A transaction tried to read after it had already written."""


class GraphQLError(ShipLedgerError):
    """A GraphQL endpoint answered with an ``errors`` array."""

    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__("; ".join(messages) or "GraphQL request failed")


class AuthenticationError(ShipLedgerError):
    """Access token could not be obtained or refreshed."""
