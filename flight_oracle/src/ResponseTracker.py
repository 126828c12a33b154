"""ResponseTracker: Per-identity submission outcome counters.

Every terminal ``StatusResponse`` is recorded here. The tracker only feeds
logging and the status endpoint; nothing in the dispatch path reads it back,
so a failing identity is never skipped or retried because of its history.

.. code-block:: python

    >>> tracker = ResponseTracker(["0xA", "0xB"])
    >>> tracker.record(response)  # FAILED response from 0xA
    >>> tracker.get_identity_status("0xA").consecutive_failures
    1
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .FlightStatus import DispatchState

if TYPE_CHECKING:
    from .FlightStatus import StatusResponse


@dataclass
class IdentityStatus:
    """Submission history of a single identity.

    :ivar consecutive_failures: Failures since the last success.
    :ivar total_failures: Total failures since tracking began.
    :ivar total_submitted: Total successful submissions.
    :ivar last_error: Message of the most recent failure.
    :ivar last_activity: Unix timestamp of the most recent outcome.
    """

    consecutive_failures: int = 0
    total_failures: int = 0
    total_submitted: int = 0
    last_error: str | None = None
    last_activity: float = 0.0


class ResponseTracker:
    """Tracks submission outcomes for every identity in the pool.

    Also counts requests seen and requests that matched no identity. Updated
    only from the event loop thread, so no locking is needed.

    :ivar addresses: Tracked identity addresses.
    :ivar requests_seen: Number of requests received.
    :ivar requests_unmatched: Number of requests with no eligible identity.
    """

    def __init__(self, addresses: list[str]) -> None:
        """Initialize the tracker.

        :param addresses: Addresses of the provisioned identities.
        """
        self.addresses = list(addresses)
        self.requests_seen = 0
        self.requests_unmatched = 0
        self._status: dict[str, IdentityStatus] = {a: IdentityStatus() for a in addresses}

    def record_request(self, matched: bool) -> None:
        """Count a received request.

        :param matched: Whether at least one identity was eligible.
        """
        self.requests_seen += 1
        if not matched:
            self.requests_unmatched += 1

    def record(self, response: StatusResponse) -> None:
        """Record the outcome of a terminal response.

        :param response: Response in SUBMITTED or FAILED state.
        :raises ValueError: If the response is not terminal.
        """
        if not response.is_terminal:
            raise ValueError(f"Cannot record response in state {response.state.value}")

        address = response.identity.address
        if address not in self._status:
            self._status[address] = IdentityStatus()

        status = self._status[address]
        status.last_activity = time.time()
        if response.state is DispatchState.SUBMITTED:
            status.consecutive_failures = 0
            status.total_submitted += 1
        else:
            status.consecutive_failures += 1
            status.total_failures += 1
            status.last_error = str(response.error) if response.error else None

    def get_identity_status(self, address: str) -> IdentityStatus | None:
        """Get the status of a specific identity.

        :param address: Identity address.
        :returns: IdentityStatus or None if the address is not tracked.
        """
        return self._status.get(address)

    def get_all_status(self) -> dict[str, IdentityStatus]:
        """Get status of all identities.

        :returns: Dict mapping addresses to their status.
        """
        return dict(self._status)

    def totals(self) -> dict[str, int]:
        """Get aggregate counters across the pool."""
        return {
            "requests_seen": self.requests_seen,
            "requests_unmatched": self.requests_unmatched,
            "responses_submitted": sum(s.total_submitted for s in self._status.values()),
            "responses_failed": sum(s.total_failures for s in self._status.values()),
        }
