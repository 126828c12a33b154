"""Unit tests for the FlightOracle orchestrator."""

import asyncio
import json
import threading
import time
from unittest.mock import patch

import pytest
from conftest import StaticKeyProvider, account_for, make_event

from flight_oracle.src.errors import ProvisioningError, StreamError
from flight_oracle.src.FlightOracle import FlightOracle
from flight_oracle.src.FlightStatus import StatusCode, StatusRequest
from flight_oracle.src.StatusPolicy import FixedStatusPolicy

AIRLINE = "0x00000000000000000000000000000000000A1A1A"


def _oracle(client, pool_size=2, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    return FlightOracle(
        client,
        StaticKeyProvider(),
        FixedStatusPolicy(StatusCode.ON_TIME),
        pool_size=pool_size,
        **kwargs,
    )


def _assign(client, index_sets):
    for slot, indexes in enumerate(index_sets):
        client.assigned_indexes[account_for(slot).address] = indexes


async def _wait_for(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestFlightOracleInit:
    """Test FlightOracle construction."""

    def test_invalid_pool_size(self, fake_client) -> None:
        """pool_size < 1 should raise ValueError."""
        with pytest.raises(ValueError, match="pool_size must be at least 1"):
            _oracle(fake_client, pool_size=0)

    def test_invalid_grace(self, fake_client) -> None:
        """Negative shutdown grace should raise ValueError."""
        with pytest.raises(ValueError, match="shutdown_grace must not be negative"):
            _oracle(fake_client, shutdown_grace=-1)

    def test_status_server_disabled_by_default(self, fake_client) -> None:
        """No port means no status endpoint."""
        assert _oracle(fake_client).status_server is None


class TestHandleRequest:
    """Test request matching and dispatch."""

    def test_not_provisioned(self, fake_client) -> None:
        """Requests before provisioning should raise RuntimeError."""
        oracle = _oracle(fake_client)
        with pytest.raises(RuntimeError, match="not provisioned"):
            oracle.handle_request(StatusRequest(1, AIRLINE, "ND1309", 1))

    def test_no_eligible_identity(self, fake_client) -> None:
        """An unmatched request should produce no submissions."""
        _assign(fake_client, [(1, 4, 7), (2, 3, 5)])
        oracle = _oracle(fake_client)

        async def scenario():
            await oracle.provision()
            return oracle.handle_request(StatusRequest(9, AIRLINE, "ND1309", 1))

        assert asyncio.run(scenario()) is None
        assert fake_client.submissions == []
        assert oracle.tracker.requests_unmatched == 1

    def test_eligible_identities_submit(self, fake_client) -> None:
        """Each eligible identity should submit once."""
        _assign(fake_client, [(1, 4, 7), (2, 4, 5), (0, 3, 6)])
        oracle = _oracle(fake_client, pool_size=3)
        request = StatusRequest(4, AIRLINE, "ND1309", 1)

        async def scenario():
            await oracle.provision()
            return await oracle.handle_request(request)

        responses = asyncio.run(scenario())

        assert len(responses) == 2
        submitted = sorted(address for address, _, _ in fake_client.submissions)
        assert submitted == sorted([account_for(0).address, account_for(1).address])
        assert oracle.in_flight == 0

    def test_next_request_not_blocked(self, fake_client) -> None:
        """A pending dispatch should not delay the next request."""
        _assign(fake_client, [(1,), (2,)])
        gate = threading.Event()
        fake_client.submit_gates[account_for(0).address] = gate
        oracle = _oracle(fake_client)

        async def scenario():
            await oracle.provision()
            first = oracle.handle_request(StatusRequest(1, AIRLINE, "ND1309", 1))
            second = oracle.handle_request(StatusRequest(2, AIRLINE, "ND1310", 1))
            await second
            still_pending = not first.done()
            gate.set()
            await first
            return still_pending

        assert asyncio.run(scenario())
        assert [s[1].flight for s in fake_client.submissions] == ["ND1310", "ND1309"]


class TestDrain:
    """Test shutdown draining."""

    def test_drain_idle(self, fake_client) -> None:
        """Nothing in flight means nothing abandoned."""
        oracle = _oracle(fake_client)
        assert asyncio.run(oracle.drain()) == 0

    def test_drain_abandons_overrun(self, fake_client) -> None:
        """Dispatches exceeding the grace period should be abandoned."""
        _assign(fake_client, [(1,)])
        gate = threading.Event()
        fake_client.submit_gates[account_for(0).address] = gate
        oracle = _oracle(fake_client, pool_size=1)

        async def scenario():
            await oracle.provision()
            oracle.handle_request(StatusRequest(1, AIRLINE, "ND1309", 1))
            await asyncio.sleep(0.05)
            abandoned = await oracle.drain(grace=0.05)
            gate.set()
            return abandoned

        assert asyncio.run(scenario()) == 1
        assert oracle.in_flight == 0
        status = oracle.tracker.get_identity_status(account_for(0).address)
        assert status.total_failures == 1
        assert "abandoned" in status.last_error


class TestRun:
    """Test the full run loop against the fake contract."""

    def test_answers_requests_then_stops(self, fake_client) -> None:
        """Events should be answered in order and stop should be graceful."""
        _assign(fake_client, [(1, 4, 7), (2, 4, 5)])
        fake_client.block = 3
        fake_client.events = [
            make_event(4, flight="ND1309", block=2, log_index=0),
            make_event(2, flight="ND1310", block=3, log_index=0),
        ]
        oracle = _oracle(fake_client, from_block=1)

        async def scenario():
            runner = asyncio.create_task(oracle.run())
            await _wait_for(lambda: len(fake_client.submissions) == 3)
            oracle.stop()
            await runner

        asyncio.run(scenario())

        flights = sorted(s[1].flight for s in fake_client.submissions)
        assert flights == ["ND1309", "ND1309", "ND1310"]
        assert oracle.tracker.totals()["requests_seen"] == 2
        assert oracle.subscriber.next_block == 4

    def test_all_registrations_failed(self, fake_client) -> None:
        """An empty pool should stop the oracle with ProvisioningError."""
        fake_client.register_failures = {account_for(0).address, account_for(1).address}
        oracle = _oracle(fake_client)

        with pytest.raises(ProvisioningError, match="All 2 oracle registrations failed"):
            asyncio.run(oracle.run())
        assert oracle.pool is None

    def test_failed_submission_keeps_processing(self, fake_client) -> None:
        """A failed submission should not stop later events from being answered."""
        _assign(fake_client, [(1,), (2,)])
        fake_client.submit_failures[account_for(0).address] = ConnectionError("connection reset")
        fake_client.block = 3
        fake_client.events = [
            make_event(1, flight="ND1309", block=2),
            make_event(2, flight="ND1310", block=3),
        ]
        oracle = _oracle(fake_client, from_block=1)

        async def scenario():
            runner = asyncio.create_task(oracle.run())
            await _wait_for(lambda: len(fake_client.submissions) == 1)
            await _wait_for(lambda: oracle.in_flight == 0)
            still_running = not runner.done()
            oracle.stop()
            await runner
            return still_running

        assert asyncio.run(scenario())
        assert [(a, r.flight) for a, r, _ in fake_client.submissions] == [
            (account_for(1).address, "ND1310")
        ]
        totals = oracle.tracker.totals()
        assert totals["requests_seen"] == 2
        assert totals["responses_submitted"] == 1
        assert totals["responses_failed"] == 1

    def test_stop_during_provisioning(self, fake_client) -> None:
        """A stop request should not wait for the remaining registrations."""
        gate = threading.Event()
        fake_client.register_gate = gate
        oracle = _oracle(fake_client, pool_size=3)

        async def scenario():
            runner = asyncio.create_task(oracle.run())
            await _wait_for(lambda: len(fake_client.register_calls) == 1)
            loop = asyncio.get_running_loop()
            started = loop.time()
            oracle.stop()
            try:
                await runner
            finally:
                gate.set()
            return loop.time() - started

        assert asyncio.run(scenario()) < 1.0
        assert oracle.pool is None
        assert fake_client.register_calls == [account_for(0).address]

    def test_shutdown_within_grace(self, fake_client) -> None:
        """A stuck submission should not hold the shutdown past the grace period."""
        _assign(fake_client, [(1,)])
        gate = threading.Event()
        fake_client.submit_gates[account_for(0).address] = gate
        fake_client.block = 1
        fake_client.events = [make_event(1, block=1)]
        oracle = _oracle(fake_client, pool_size=1, from_block=1, shutdown_grace=0.1)

        async def scenario():
            runner = asyncio.create_task(oracle.run())
            await _wait_for(lambda: oracle.in_flight == 1)
            await asyncio.sleep(0.05)
            oracle.stop()
            await runner

        started = time.monotonic()
        try:
            asyncio.run(scenario())
            elapsed = time.monotonic() - started
        finally:
            gate.set()

        assert elapsed < 1.0
        status = oracle.tracker.get_identity_status(account_for(0).address)
        assert status.total_failures == 1
        assert status.last_error.startswith("abandoned")

    @patch("flight_oracle.src.RequestSubscriber.BACKOFF_BASE", 0.0)
    def test_stream_lost(self, fake_client) -> None:
        """A lost event stream should surface as StreamError."""
        _assign(fake_client, [(1,), (2,)])
        fake_client.block_errors = [ConnectionError("node down")] * 20
        oracle = _oracle(fake_client)

        with pytest.raises(StreamError, match="Event stream unavailable"):
            asyncio.run(oracle.run())


class TestStatus:
    """Test status snapshots."""

    def test_before_provisioning(self, fake_client) -> None:
        """Snapshot should report provisioning state without oracles."""
        snapshot = _oracle(fake_client).status()
        assert snapshot["state"] == "provisioning"
        assert snapshot["pool_size"] == 0
        assert "oracles" not in snapshot

    def test_after_provisioning(self, fake_client) -> None:
        """Snapshot should list every identity with its counters."""
        _assign(fake_client, [(1, 4, 7), (2, 3, 5)])
        oracle = _oracle(fake_client)
        asyncio.run(oracle.provision())

        snapshot = oracle.status()

        assert snapshot["state"] == "running"
        assert snapshot["pool_size"] == 2
        assert snapshot["contract"] == fake_client.contract.address
        assert [o["indexes"] for o in snapshot["oracles"]] == [[1, 4, 7], [2, 3, 5]]
        assert snapshot["totals"]["responses_submitted"] == 0


class TestStuckSubmissions:
    """Test that hung submissions stay isolated from the event stream."""

    def test_stream_not_blocked(self, fake_client) -> None:
        """Timed-out submissions should not delay event polling."""
        _assign(fake_client, [(1,)])
        gate = threading.Event()
        fake_client.submit_gates[account_for(0).address] = gate
        oracle = _oracle(fake_client, pool_size=1, submit_timeout=0.05)

        async def scenario():
            await oracle.provision()
            tasks = [
                oracle.handle_request(StatusRequest(1, AIRLINE, f"ND{n}", n)) for n in range(40)
            ]
            results = await asyncio.gather(*tasks)
            loop = asyncio.get_running_loop()
            started = loop.time()
            await oracle.subscriber.poll()
            return results, loop.time() - started

        try:
            results, elapsed = asyncio.run(scenario())
        finally:
            gate.set()
            oracle.dispatcher.shutdown()

        assert elapsed < 1.0
        assert all(responses[0].error.stage == "timeout" for responses in results)


class TestFromNetwork:
    """Test construction against a deployed contract."""

    def _artifact(self, tmp_path):
        (tmp_path / "FlightSuretyApp.json").write_text(json.dumps({"abi": []}))
        return tmp_path

    def test_receipt_timeout_capped(self, tmp_path, monkeypatch) -> None:
        """Receipt waits should not outlast the submission timeout."""
        monkeypatch.delenv("RPC_URL", raising=False)
        oracle = FlightOracle.from_network(
            "localhost",
            account_for(9).address,
            FixedStatusPolicy(),
            build_dir=self._artifact(tmp_path),
            submit_timeout=5.0,
        )
        assert oracle.client.receipt_timeout == 5.0

    def test_unknown_key_source(self, tmp_path, monkeypatch) -> None:
        """Unknown key sources should raise ValueError."""
        monkeypatch.delenv("RPC_URL", raising=False)
        with pytest.raises(ValueError, match="Unknown key source"):
            FlightOracle.from_network(
                "localhost",
                account_for(9).address,
                FixedStatusPolicy(),
                build_dir=self._artifact(tmp_path),
                key_source="vault",
            )
