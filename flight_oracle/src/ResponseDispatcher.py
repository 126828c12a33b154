"""ResponseDispatcher: Concurrent status submission for eligible oracles.

For every eligible identity of a request, the dispatcher picks a status code
with the configured policy and submits ``submitOracleResponse`` signed by that
identity. Submissions run concurrently and independently:

    - Each submission has its own timeout
    - A failure (revert, transport error, timeout) marks only that response FAILED
    - Nothing is retried; a late duplicate could contradict an already
      finalized status on the contract
    - Concurrency across all requests is bounded by a shared semaphore
    - Submissions run on a dedicated thread pool, separate from the event
      subscriber's RPC calls
    - Submissions of one identity are serialized so they never share a nonce
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from .errors import SubmissionError
from .FlightStatus import StatusCode, StatusResponse

if TYPE_CHECKING:
    from .FlightStatus import StatusRequest
    from .FlightSuretyClient import FlightSuretyClient
    from .OracleIdentity import OracleIdentity
    from .ResponseTracker import ResponseTracker
    from .StatusPolicy import StatusPolicy

logger = logging.getLogger(__name__)


class ResponseDispatcher:
    """Fans out one response submission per eligible identity.

    :ivar client: FlightSuretyApp client.
    :ivar status_policy: Callable choosing the status code for a request.
    :ivar submit_timeout: Timeout for a single submission in seconds.
    :ivar tracker: Optional tracker receiving every terminal response.
    """

    def __init__(
        self,
        client: FlightSuretyClient,
        status_policy: StatusPolicy,
        submit_timeout: float = 60.0,
        max_concurrency: int = 10,
        tracker: ResponseTracker | None = None,
    ) -> None:
        """Initialize the response dispatcher.

        :param client: FlightSuretyApp client.
        :param status_policy: Status code policy.
        :param submit_timeout: Timeout per submission (default: 60.0).
        :param max_concurrency: Maximum submissions in flight (default: 10).
        :param tracker: Optional response tracker.
        :raises ValueError: If submit_timeout or max_concurrency is not positive.
        """
        if submit_timeout <= 0:
            raise ValueError("submit_timeout must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.client = client
        self.status_policy = status_policy
        self.submit_timeout = submit_timeout
        self.tracker = tracker
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrency, thread_name_prefix="submit"
        )
        self._account_locks: dict[str, asyncio.Lock] = {}

    async def dispatch(
        self,
        request: StatusRequest,
        identities: list[OracleIdentity],
    ) -> list[StatusResponse]:
        """Submit one response per identity and wait for all of them.

        :param request: Request being answered.
        :param identities: Eligible identities.
        :returns: Terminal responses in the order of ``identities``.
        """
        responses = [StatusResponse(identity=i, request=request) for i in identities]
        if not responses:
            return responses

        logger.debug(f"[{request}] Dispatching {len(responses)} responses")
        await asyncio.gather(*(self._submit(r) for r in responses))

        submitted = sum(1 for r in responses if r.succeeded)
        logger.info(
            f"[{request}] {submitted}/{len(responses)} responses submitted"
            + (f", {len(responses) - submitted} failed" if submitted < len(responses) else "")
        )
        return responses

    async def _submit(self, response: StatusResponse) -> None:
        """Drive a single response to a terminal state.

        Never raises except for cancellation, which still leaves the
        response FAILED.

        :param response: Pending response.
        """
        identity = response.identity
        request = response.request
        try:
            async with self._semaphore:
                try:
                    status_code = StatusCode(self.status_policy(request))
                except Exception as e:
                    self._fail(response, SubmissionError(identity.address, "policy", str(e)))
                    return

                response.mark_submitting(status_code)
                try:
                    tx_hash = await asyncio.wait_for(
                        self._send(identity, request, status_code),
                        timeout=self.submit_timeout,
                    )
                except asyncio.TimeoutError:
                    self._fail(
                        response,
                        SubmissionError(
                            identity.address,
                            "timeout",
                            f"no receipt within {self.submit_timeout}s",
                        ),
                    )
                    return
                except Exception as e:
                    self._fail(response, SubmissionError(identity.address, "submit", str(e)))
                    return

                response.mark_submitted(tx_hash)
                logger.info(
                    f"[{request}] Oracle {identity.address} reported "
                    f"{status_code.name} ({int(status_code)}) in tx {tx_hash}"
                )
                self._record(response)
        except asyncio.CancelledError:
            if not response.is_terminal:
                self._fail(
                    response,
                    SubmissionError(identity.address, "abandoned", "dispatch cancelled"),
                )
            raise

    async def _send(
        self,
        identity: OracleIdentity,
        request: StatusRequest,
        status_code: StatusCode,
    ) -> str:
        """Submit on the dispatcher's thread pool, one submission per identity at a time."""
        lock = self._account_locks.setdefault(identity.address, asyncio.Lock())
        async with lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                self._executor,
                self.client.submit_oracle_response,
                identity.account,
                request,
                status_code,
            )

    def shutdown(self) -> None:
        """Release the submission thread pool without waiting for stuck calls.

        Queued submissions are cancelled; calls already running in a worker
        thread are left to end on their own receipt timeout.
        """
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _fail(self, response: StatusResponse, error: SubmissionError) -> None:
        response.mark_failed(error)
        logger.warning(
            f"[{response.request}] Oracle {response.identity.address} "
            f"(slot {response.identity.slot}) response failed at {error}"
        )
        self._record(response)

    def _record(self, response: StatusResponse) -> None:
        if self.tracker is not None:
            self.tracker.record(response)
