"""FlightOracle: Main orchestrator for the flight status oracle pool.

This module provisions a pool of oracle identities against FlightSuretyApp,
follows the contract's ``OracleRequest`` events and answers every request
with one signed response per eligible identity.

Architecture:
    - OracleRegistrar provisions the pool once at startup; the pool is
      read-only afterwards
    - A single consumer drains RequestSubscriber in delivery order
    - Each request is matched against the pool with select_eligible
    - Matching requests are handed to ResponseDispatcher as tracked tasks, so
      the next event is accepted while submissions are still pending
    - On shutdown, in-flight dispatches get a grace period, then are cancelled
      and the submission thread pool is released without waiting
    - A stop request during provisioning cancels the remaining registrations
    - Finalization of the flight status is left to the contract
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, Any

from .ContractUtility import ContractUtility
from .EligibilityFilter import select_eligible
from .errors import ProvisioningError
from .FlightSuretyClient import DEFAULT_RECEIPT_TIMEOUT, FlightSuretyClient
from .KeyProviderAppd import KeyProviderAppd
from .KeyProviderLocalnet import DEFAULT_FIRST_ACCOUNT, DEFAULT_LOCALNET_MNEMONIC, KeyProviderLocalnet
from .OracleRegistrar import OracleRegistrar
from .RequestSubscriber import RequestSubscriber
from .ResponseDispatcher import ResponseDispatcher
from .ResponseTracker import ResponseTracker
from .StatusServer import StatusServer

if TYPE_CHECKING:
    from pathlib import Path

    from .FlightStatus import StatusRequest, StatusResponse
    from .KeyProvider import KeyProvider
    from .OraclePool import OraclePool
    from .StatusPolicy import StatusPolicy

logger = logging.getLogger(__name__)

# Key sources selectable from the command line
KEY_SOURCES = ("localnet", "appd")


class FlightOracle:
    """Main orchestrator for the oracle pool.

    :ivar client: FlightSuretyApp client.
    :ivar pool_size: Number of identities to provision.
    :ivar pool: Provisioned pool, None until provisioning completes.
    :ivar tracker: Submission tracker, None until provisioning completes.
    :ivar shutdown_grace: Seconds granted to in-flight dispatches on shutdown.
    """

    def __init__(
        self,
        client: FlightSuretyClient,
        key_provider: KeyProvider,
        status_policy: StatusPolicy,
        pool_size: int = 20,
        stake_wei: int = 10**18,
        reuse_registered: bool = True,
        submit_timeout: float = 60.0,
        max_concurrency: int = 10,
        from_block: int | None = None,
        poll_interval: float = 2.0,
        shutdown_grace: float = 30.0,
        status_host: str = "127.0.0.1",
        status_port: int | None = None,
    ) -> None:
        """Initialize the flight oracle.

        :param client: FlightSuretyApp client.
        :param key_provider: Source of per-slot signing keys.
        :param status_policy: Status code policy.
        :param pool_size: Identities to provision (default: 20).
        :param stake_wei: Registration fee per identity (default: 1 ether).
        :param reuse_registered: Adopt already registered identities (default: True).
        :param submit_timeout: Timeout per submission (default: 60.0).
        :param max_concurrency: Maximum submissions in flight (default: 10).
        :param from_block: First block to scan; None starts at the chain head.
        :param poll_interval: Seconds between idle polls (default: 2.0).
        :param shutdown_grace: Seconds to wait for in-flight work (default: 30.0).
        :param status_host: Status endpoint bind address.
        :param status_port: Status endpoint port; None disables the endpoint.
        :raises ValueError: If pool_size or shutdown_grace is out of range.
        """
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        if shutdown_grace < 0:
            raise ValueError("shutdown_grace must not be negative")

        self.client = client
        self.pool_size = pool_size
        self.shutdown_grace = shutdown_grace
        self.registrar = OracleRegistrar(
            client, key_provider, stake_wei, reuse_registered=reuse_registered
        )
        self.subscriber = RequestSubscriber(
            client, from_block=from_block, poll_interval=poll_interval
        )
        self._status_policy = status_policy
        self._submit_timeout = submit_timeout
        self._max_concurrency = max_concurrency

        self.pool: OraclePool | None = None
        self.tracker: ResponseTracker | None = None
        self.dispatcher: ResponseDispatcher | None = None

        self._inflight: set[asyncio.Task[list[StatusResponse]]] = set()
        self._stop_event: asyncio.Event | None = None

        self.status_server: StatusServer | None = None
        if status_port:
            self.status_server = StatusServer(self.status, host=status_host, port=status_port)

    @classmethod
    def from_network(
        cls,
        network_name: str,
        app_address: str,
        status_policy: StatusPolicy,
        build_dir: str | Path | None = None,
        key_source: str = "localnet",
        mnemonic: str = DEFAULT_LOCALNET_MNEMONIC,
        first_account: int = DEFAULT_FIRST_ACCOUNT,
        appd_url: str = "",
        **kwargs: Any,
    ) -> FlightOracle:
        """Build an oracle connected to a deployed FlightSuretyApp.

        :param network_name: Network name or RPC URL.
        :param app_address: FlightSuretyApp contract address.
        :param status_policy: Status code policy.
        :param build_dir: Truffle build directory holding the ABI.
        :param key_source: "localnet" (mnemonic) or "appd" (ROFL keys).
        :param mnemonic: Mnemonic for the localnet key source.
        :param first_account: Derivation index of slot 0 for localnet.
        :param appd_url: Optional appd URL or socket path.
        :param kwargs: Passed through to the constructor.
        :returns: Configured FlightOracle.
        :raises ValueError: If key_source is unknown.
        """
        contract_utility = ContractUtility(network_name)
        abi = ContractUtility.get_contract_abi("FlightSuretyApp", build_dir)
        # A receipt wait must end no later than the submission deadline
        receipt_timeout = min(DEFAULT_RECEIPT_TIMEOUT, kwargs.get("submit_timeout", 60.0))
        client = FlightSuretyClient.from_abi(
            contract_utility.w3, app_address, abi, receipt_timeout=receipt_timeout
        )

        key_provider: KeyProvider
        if key_source == "localnet":
            key_provider = KeyProviderLocalnet(mnemonic=mnemonic, first_account=first_account)
        elif key_source == "appd":
            key_provider = KeyProviderAppd(url=appd_url)
        else:
            raise ValueError(f"Unknown key source '{key_source}'. Available: {', '.join(KEY_SOURCES)}")

        logger.info(f"Connected to {contract_utility.network}, FlightSuretyApp at {app_address}")
        return cls(client, key_provider, status_policy, **kwargs)

    @property
    def in_flight(self) -> int:
        """Number of requests whose responses are still being submitted."""
        return len(self._inflight)

    async def provision(self) -> OraclePool:
        """Provision the pool and prepare the dispatcher.

        :returns: Frozen oracle pool.
        :raises ProvisioningError: If no identity could be registered.
        """
        pool = await self.registrar.provision(self.pool_size)
        if not len(pool):
            logger.error(f"No oracle identity registered out of {self.pool_size}")
            raise ProvisioningError(
                f"All {self.pool_size} oracle registrations failed, cannot answer requests"
            )

        self.pool = pool
        self.tracker = ResponseTracker([i.address for i in pool])
        self.dispatcher = ResponseDispatcher(
            self.client,
            self._status_policy,
            submit_timeout=self._submit_timeout,
            max_concurrency=self._max_concurrency,
            tracker=self.tracker,
        )
        return pool

    def handle_request(self, request: StatusRequest) -> asyncio.Task[list[StatusResponse]] | None:
        """Match a request against the pool and start its dispatch.

        Returns without waiting for submissions.

        :param request: Decoded status request.
        :returns: Dispatch task, or None if no identity is eligible.
        :raises RuntimeError: If the pool has not been provisioned.
        """
        if self.pool is None or self.dispatcher is None or self.tracker is None:
            raise RuntimeError("Oracle pool not provisioned")

        eligible = select_eligible(request, self.pool)
        self.tracker.record_request(bool(eligible))
        if not eligible:
            logger.info(f"[{request}] No oracle holds index {request.index}, nothing to submit")
            return None

        logger.info(
            f"[{request}] Eligible oracles: {[i.slot for i in eligible]}"
        )
        task = asyncio.create_task(
            self.dispatcher.dispatch(request, eligible),
            name=f"dispatch-{request.block_number}-{request.log_index}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._dispatch_done)
        return task

    def _dispatch_done(self, task: asyncio.Task[list[StatusResponse]]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{task.get_name()} crashed: {exc!r}")

    async def _consume(self) -> None:
        """Drain the subscriber, one request at a time, in delivery order."""
        async for request in self.subscriber.stream():
            logger.info(f"OracleRequest received: {request}")
            self.handle_request(request)

    async def drain(self, grace: float | None = None) -> int:
        """Wait for in-flight dispatches, cancelling those that overrun.

        :param grace: Seconds to wait (default: shutdown_grace).
        :returns: Number of abandoned dispatches.
        """
        if not self._inflight:
            return 0

        grace = self.shutdown_grace if grace is None else grace
        tasks = set(self._inflight)
        logger.info(f"Waiting up to {grace}s for {len(tasks)} in-flight dispatches")
        _, pending = await asyncio.wait(tasks, timeout=grace)
        if not pending:
            return 0

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning(
            f"Abandoned {len(pending)} in-flight dispatches after {grace}s grace period"
        )
        return len(pending)

    def stop(self) -> None:
        """Request a graceful shutdown of ``run``."""
        logger.info("Shutdown requested")
        if self._stop_event is not None:
            self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                pass

    async def run(self, install_signal_handlers: bool = False) -> None:
        """Run the oracle until stopped or the event stream is lost.

        :param install_signal_handlers: Stop gracefully on SIGINT/SIGTERM.
        :raises ProvisioningError: If no identity could be registered.
        :raises StreamError: If the event stream cannot be re-established.
        """
        self._stop_event = asyncio.Event()
        if install_signal_handlers:
            self._install_signal_handlers()

        server_task = None
        if self.status_server is not None:
            server_task = asyncio.create_task(self.status_server.serve(), name="status-server")

        consumer = None
        stopper = asyncio.create_task(self._stop_event.wait(), name="stop")
        provisioner = asyncio.create_task(self.provision(), name="provision")
        try:
            done, _ = await asyncio.wait(
                {provisioner, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            if provisioner not in done:
                logger.info("Shutdown requested during provisioning")
                return
            provisioner.result()
            logger.info(
                f"Oracle pool ready with {len(self.pool)} identities, "
                "listening for OracleRequest events"
            )

            consumer = asyncio.create_task(self._consume(), name="consumer")
            done, _ = await asyncio.wait(
                {consumer, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            if consumer in done:
                # The stream only ends by raising StreamError
                consumer.result()
        finally:
            stopper.cancel()
            if not provisioner.done():
                provisioner.cancel()
                await asyncio.gather(provisioner, return_exceptions=True)
            if consumer is not None and not consumer.done():
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)
            await self.drain()
            if self.dispatcher is not None:
                self.dispatcher.shutdown()
            if server_task is not None:
                self.status_server.shutdown()
                await asyncio.gather(server_task, return_exceptions=True)
            logger.info("Flight oracle stopped")

    def status(self) -> dict[str, Any]:
        """Return a snapshot for the status endpoint."""
        snapshot: dict[str, Any] = {
            "state": "running" if self.pool is not None else "provisioning",
            "contract": self.client.contract.address,
            "pool_target": self.pool_size,
            "pool_size": len(self.pool) if self.pool is not None else 0,
            "in_flight": self.in_flight,
            "stream": {
                "next_block": self.subscriber.next_block,
                "latest_block": self.subscriber.latest_block,
                "consecutive_failures": self.subscriber.consecutive_failures,
            },
        }
        if self.pool is None or self.tracker is None:
            return snapshot

        snapshot["totals"] = self.tracker.totals()
        oracles = []
        for identity in self.pool:
            stats = self.tracker.get_identity_status(identity.address)
            oracles.append(
                {
                    "slot": identity.slot,
                    "address": identity.address,
                    "indexes": list(identity.indexes),
                    "submitted": stats.total_submitted if stats else 0,
                    "failed": stats.total_failures if stats else 0,
                    "consecutive_failures": stats.consecutive_failures if stats else 0,
                    "last_error": stats.last_error if stats else None,
                }
            )
        snapshot["oracles"] = oracles
        return snapshot
