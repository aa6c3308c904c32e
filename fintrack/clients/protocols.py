"""Protocol definitions for the bank aggregator client.

The sync pipeline only depends on this interface, so tests can hand it an
in-memory client and production wires in the Plaid implementation.
"""
from typing import Protocol

from fintrack.schemas.sync import AggregatorSyncResult


class AggregatorClient(Protocol):
    """Fetches raw transactions for one of our accounts."""

    def sync_transactions(self, account_id: str) -> AggregatorSyncResult:
        """Return the account's recent transactions.

        Raises (or returns success=False with) an error whose message the
        retry classifier inspects.
        """
        ...
