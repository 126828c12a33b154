"""Shared fakes for the oracle unit tests."""

import threading
import time
from types import SimpleNamespace

import pytest
from eth_account import Account
from web3.exceptions import ContractLogicError

from flight_oracle.src.KeyProvider import KeyProvider
from flight_oracle.src.OracleIdentity import OracleIdentity
from flight_oracle.src.OraclePool import OraclePool


def account_for(slot: int):
    """Deterministic test account for a slot."""
    return Account.from_key(f"0x{slot + 1:064x}")


class StaticKeyProvider(KeyProvider):
    """Key provider returning deterministic keys, failing for chosen slots."""

    def __init__(self, failing_slots=()):
        self.failing_slots = set(failing_slots)

    def fetch_key(self, slot: int) -> str:
        if slot in self.failing_slots:
            raise RuntimeError("keystore offline")
        return f"0x{slot + 1:064x}"


class FakeFlightSuretyClient:
    """In-memory stand-in for FlightSuretyClient."""

    def __init__(self):
        self.contract = SimpleNamespace(address="0x000000000000000000000000000000000000f117")
        self.assigned_indexes: dict[str, tuple[int, ...]] = {}
        self.registered: dict[str, tuple[int, ...]] = {}
        self.register_failures: set[str] = set()
        self.register_calls: list[str] = []
        self.register_gate: threading.Event | None = None
        self.submit_failures: dict[str, Exception] = {}
        self.submit_gates: dict[str, threading.Event] = {}
        self.submit_barrier: threading.Barrier | None = None
        self.submit_delay: dict[str, float] = {}
        self.submissions: list[tuple[str, object, int]] = []
        self.events: list[dict] = []
        self.block = 0
        self.block_errors: list[Exception] = []
        self.event_queries: list[tuple[int, int]] = []
        self._lock = threading.Lock()

    def register_oracle(self, account, stake_wei):
        self.register_calls.append(account.address)
        if self.register_gate is not None:
            self.register_gate.wait(timeout=5)
        if account.address in self.register_failures:
            raise ContractLogicError("execution reverted: Registration fee is required")
        self.registered[account.address] = self.assigned_indexes.get(account.address, (0, 1, 2))
        return "0x" + "ab" * 32

    def get_my_indexes(self, account):
        if account.address not in self.registered:
            raise ContractLogicError("execution reverted: Not registered as an oracle")
        return self.registered[account.address]

    def submit_oracle_response(self, account, request, status_code):
        if self.submit_barrier is not None:
            self.submit_barrier.wait(timeout=5)
        gate = self.submit_gates.get(account.address)
        if gate is not None:
            gate.wait(timeout=5)
        delay = self.submit_delay.get(account.address)
        if delay:
            time.sleep(delay)
        if account.address in self.submit_failures:
            raise self.submit_failures[account.address]
        with self._lock:
            self.submissions.append((account.address, request, int(status_code)))
            return f"0x{len(self.submissions):064x}"

    def latest_block(self):
        if self.block_errors:
            raise self.block_errors.pop(0)
        return self.block

    def fetch_request_events(self, from_block, to_block):
        self.event_queries.append((from_block, to_block))
        return [e for e in self.events if from_block <= e["blockNumber"] <= to_block]


def make_event(index, flight="ND1309", block=1, log_index=0, timestamp=1700000000):
    """Build a decoded OracleRequest log entry."""
    return {
        "args": {
            "index": index,
            "airline": "0x00000000000000000000000000000000000A1A1A",
            "flight": flight,
            "timestamp": timestamp,
        },
        "blockNumber": block,
        "logIndex": log_index,
    }


@pytest.fixture
def fake_client():
    return FakeFlightSuretyClient()


@pytest.fixture
def make_pool():
    """Factory building a pool from a list of index tuples, one per slot."""

    def _make(index_sets):
        return OraclePool(
            [OracleIdentity(account_for(slot), slot, idx) for slot, idx in enumerate(index_sets)]
        )

    return _make
