"""FlightStatus: Status requests, status codes and per-identity responses.

A ``StatusRequest`` is one decoded ``OracleRequest`` event. Each eligible
identity produces one ``StatusResponse`` which moves through::

    PENDING -> SUBMITTING -> SUBMITTED
                          -> FAILED
    PENDING -> FAILED

Terminal responses never change again.

.. code-block:: python

    >>> request = StatusRequest(4, "0xAirline", "ND1309", 1700000000)
    >>> str(request)
    'index=4 ND1309@1700000000 (0xAirline)'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .OracleIdentity import OracleIdentity


class StatusCode(IntEnum):
    """Flight status codes understood by the FlightSuretyApp contract."""

    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50


class DispatchState(str, Enum):
    """Lifecycle of a single (request, identity) submission."""

    PENDING = "pending"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


_TRANSITIONS: dict[DispatchState, frozenset[DispatchState]] = {
    DispatchState.PENDING: frozenset({DispatchState.SUBMITTING, DispatchState.FAILED}),
    DispatchState.SUBMITTING: frozenset({DispatchState.SUBMITTED, DispatchState.FAILED}),
    DispatchState.SUBMITTED: frozenset(),
    DispatchState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class StatusRequest:
    """A flight status request emitted by the contract.

    :ivar index: Selector index deciding which oracles may respond.
    :ivar airline: Airline address.
    :ivar flight: Flight reference.
    :ivar timestamp: Flight timestamp (unix seconds).
    :ivar block_number: Block the event was emitted in.
    :ivar log_index: Position of the event in its block.
    """

    index: int
    airline: str
    flight: str
    timestamp: int
    block_number: int = 0
    log_index: int = 0

    def __str__(self) -> str:
        """Return a compact description for log lines."""
        return f"index={self.index} {self.flight}@{self.timestamp} ({self.airline})"

    @classmethod
    def from_event(cls, event: Any) -> StatusRequest:
        """Decode a Web3 ``OracleRequest`` log entry.

        :param event: Decoded event with ``args``, ``blockNumber`` and ``logIndex``.
        :returns: New StatusRequest.
        :raises ValueError: If the event is missing fields.
        """
        try:
            args = event["args"]
            return cls(
                index=int(args["index"]),
                airline=str(args["airline"]),
                flight=str(args["flight"]),
                timestamp=int(args["timestamp"]),
                block_number=int(event.get("blockNumber") or 0),
                log_index=int(event.get("logIndex") or 0),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed OracleRequest event: {e}") from e


@dataclass
class StatusResponse:
    """One submission attempt by one identity for one request.

    :ivar identity: The responding oracle identity.
    :ivar request: The request being answered.
    :ivar status_code: Status code chosen by the policy.
    :ivar state: Current dispatch state.
    :ivar tx_hash: Transaction hash once submitted.
    :ivar error: Failure detail once failed.
    """

    identity: OracleIdentity
    request: StatusRequest
    status_code: StatusCode | None = None
    state: DispatchState = DispatchState.PENDING
    tx_hash: str | None = None
    error: Exception | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        """Check if the response reached SUBMITTED or FAILED."""
        return not _TRANSITIONS[self.state]

    @property
    def succeeded(self) -> bool:
        """Check if the response was submitted successfully."""
        return self.state is DispatchState.SUBMITTED

    def _move(self, new_state: DispatchState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(
                f"Invalid transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def mark_submitting(self, status_code: StatusCode) -> None:
        """Record the chosen status code and start submission."""
        self._move(DispatchState.SUBMITTING)
        self.status_code = status_code

    def mark_submitted(self, tx_hash: str) -> None:
        """Record a successful submission."""
        self._move(DispatchState.SUBMITTED)
        self.tx_hash = tx_hash

    def mark_failed(self, error: Exception) -> None:
        """Record a failed submission."""
        self._move(DispatchState.FAILED)
        self.error = error
