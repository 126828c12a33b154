"""RequestSubscriber: Resumable stream of OracleRequest events.

The subscriber polls ``OracleRequest`` logs block range by block range and
yields decoded ``StatusRequest`` objects in delivery order. A cursor tracks
the next unscanned block, so after a transport error the stream resumes
exactly where it stopped without skipping or repeating events.

Error handling:
    - Transport errors are logged and retried with exponential backoff
    - The failure counter resets after every successful poll
    - ``max_consecutive_failures`` failures in a row raise ``StreamError``
    - Malformed events are logged and skipped
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from .errors import StreamError
from .FlightStatus import StatusRequest

if TYPE_CHECKING:
    from .FlightSuretyClient import FlightSuretyClient

logger = logging.getLogger(__name__)

# Reconnect backoff, mirroring the appd retry schedule
BACKOFF_BASE = 1.0
BACKOFF_MAX = 30.0


class RequestSubscriber:
    """Polls the contract for status requests.

    :ivar client: FlightSuretyApp client.
    :ivar poll_interval: Seconds to wait once caught up with the chain head.
    :ivar max_block_range: Maximum blocks scanned per log query.
    :ivar max_consecutive_failures: Failures in a row before giving up.
    :ivar next_block: Next block to scan, None until the stream starts.
    :ivar latest_block: Chain head seen by the last poll.
    """

    def __init__(
        self,
        client: FlightSuretyClient,
        from_block: int | None = None,
        poll_interval: float = 2.0,
        max_block_range: int = 1000,
        max_consecutive_failures: int = 10,
    ) -> None:
        """Initialize the subscriber.

        :param client: FlightSuretyApp client.
        :param from_block: First block to scan; None starts at the chain head.
        :param poll_interval: Seconds between polls when idle (default: 2.0).
        :param max_block_range: Blocks per log query (default: 1000).
        :param max_consecutive_failures: Failures before raising StreamError
            (default: 10).
        :raises ValueError: If a numeric parameter is out of range.
        """
        if from_block is not None and from_block < 0:
            raise ValueError("from_block must not be negative")
        if max_block_range < 1:
            raise ValueError("max_block_range must be at least 1")
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        self.client = client
        self.next_block = from_block
        self.poll_interval = poll_interval
        self.max_block_range = max_block_range
        self.max_consecutive_failures = max_consecutive_failures
        self.consecutive_failures = 0
        self.latest_block = -1

    @staticmethod
    def backoff_delay(failures: int) -> float:
        """Return the reconnect delay after ``failures`` consecutive failures."""
        return min(BACKOFF_BASE * (1.5 ** (failures - 1)), BACKOFF_MAX)

    async def poll(self) -> list[StatusRequest]:
        """Scan the next block range and advance the cursor.

        :returns: Requests found in the range, in delivery order.
        :raises Exception: Any transport error; the cursor is left unchanged.
        """
        latest = await asyncio.to_thread(self.client.latest_block)
        self.latest_block = latest
        if self.next_block is None:
            self.next_block = latest
            logger.info(f"Subscribing to OracleRequest events from block {latest}")

        if latest < self.next_block:
            return []

        to_block = min(latest, self.next_block + self.max_block_range - 1)
        events = await asyncio.to_thread(
            self.client.fetch_request_events, self.next_block, to_block
        )

        requests: list[StatusRequest] = []
        for event in events:
            try:
                requests.append(StatusRequest.from_event(event))
            except ValueError as e:
                logger.warning(f"Skipping event in block {self.next_block}-{to_block}: {e}")

        self.next_block = to_block + 1
        return requests

    @property
    def caught_up(self) -> bool:
        """Check if the cursor has passed the last observed chain head."""
        return self.next_block is not None and self.next_block > self.latest_block

    async def stream(self) -> AsyncIterator[StatusRequest]:
        """Yield status requests forever, reconnecting on transport errors.

        :raises StreamError: After too many consecutive failures.
        """
        while True:
            try:
                requests = await self.poll()
            except Exception as e:
                self.consecutive_failures += 1
                if self.consecutive_failures >= self.max_consecutive_failures:
                    logger.error(
                        f"OracleRequest stream lost after {self.consecutive_failures} "
                        f"consecutive failures: {e}"
                    )
                    raise StreamError(
                        f"Event stream unavailable after {self.consecutive_failures} attempts: {e}"
                    ) from e
                delay = self.backoff_delay(self.consecutive_failures)
                logger.warning(
                    f"OracleRequest poll failed: {e} "
                    f"(attempt {self.consecutive_failures}/{self.max_consecutive_failures}), "
                    f"resubscribing from block {self.next_block} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            if self.consecutive_failures:
                logger.info(f"OracleRequest stream re-established at block {self.next_block}")
            self.consecutive_failures = 0

            for request in requests:
                yield request

            if self.caught_up:
                await asyncio.sleep(self.poll_interval)
