"""FlightSuretyClient: Oracle-facing calls against the FlightSuretyApp contract.

Wraps the four contract interactions the oracle pool needs:

- ``registerOracle()`` (payable) to provision an identity
- ``getMyIndexes()`` to read an identity's assigned indexes
- ``OracleRequest`` event logs to receive status requests
- ``submitOracleResponse(...)`` to answer a request

All methods are blocking Web3 calls; callers on the event loop run them via
``asyncio.to_thread``. Transactions are signed locally with the identity's
key and sent raw, so the node never needs to hold oracle keys.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from web3 import Web3

from .errors import ContractCallError

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount
    from web3.contract import Contract

    from .FlightStatus import StatusCode, StatusRequest

logger = logging.getLogger(__name__)

# Seconds to wait for a receipt unless the caller sets a tighter bound
DEFAULT_RECEIPT_TIMEOUT = 120.0


class FlightSuretyClient:
    """Client for the oracle functions of FlightSuretyApp.

    Nonce lookup, signing and sending are serialized per account so that
    concurrent transactions from one identity never reuse a nonce. Receipts
    are awaited outside that section.

    :ivar w3: Web3 instance.
    :ivar contract: FlightSuretyApp contract instance.
    :ivar receipt_timeout: Seconds to wait for a transaction receipt.
    """

    def __init__(
        self,
        w3: Web3,
        contract: Contract,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        :param w3: Web3 instance connected to the network.
        :param contract: FlightSuretyApp contract instance.
        :param receipt_timeout: Seconds to wait for receipts (default: 120).
        """
        self.w3 = w3
        self.contract = contract
        self.receipt_timeout = receipt_timeout
        self._account_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_abi(cls, w3: Web3, address: str, abi: list, **kwargs: Any) -> FlightSuretyClient:
        """Create a client for a deployed contract.

        :param w3: Web3 instance.
        :param address: FlightSuretyApp address.
        :param abi: Contract ABI.
        :returns: New FlightSuretyClient.
        """
        contract = w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        return cls(w3, contract, **kwargs)

    def _account_lock(self, address: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._account_locks.get(address)
            if lock is None:
                lock = self._account_locks[address] = threading.Lock()
            return lock

    def _transact(self, account: LocalAccount, function: Any, value: int = 0) -> str:
        """Sign, send and wait for a contract transaction.

        :param account: Signing account.
        :param function: Bound contract function.
        :param value: Wei to send with the call.
        :returns: Transaction hash as hex string.
        :raises ContractCallError: If the transaction was mined but reverted.
        """
        with self._account_lock(account.address):
            tx_params = function.build_transaction(
                {
                    "from": account.address,
                    "value": value,
                    "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
                    "gasPrice": self.w3.eth.gas_price,
                }
            )
            signed = account.sign_transaction(tx_params)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.debug("Sent tx %s from %s", Web3.to_hex(tx_hash), account.address)

        tx_receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)

        tx_hex = Web3.to_hex(tx_hash)
        if tx_receipt["status"] != 1:
            raise ContractCallError(f"Transaction {tx_hex} reverted")
        return tx_hex

    def register_oracle(self, account: LocalAccount, stake_wei: int) -> str:
        """Register an account as an oracle.

        :param account: Oracle account paying the stake.
        :param stake_wei: Registration fee in wei.
        :returns: Transaction hash.
        """
        return self._transact(account, self.contract.functions.registerOracle(), value=stake_wei)

    def get_my_indexes(self, account: LocalAccount) -> tuple[int, ...]:
        """Read the indexes assigned to a registered oracle.

        :param account: Oracle account.
        :returns: Assigned indexes.
        :raises web3.exceptions.ContractLogicError: If the account is not registered.
        """
        indexes = self.contract.functions.getMyIndexes().call({"from": account.address})
        return tuple(int(i) for i in indexes)

    def submit_oracle_response(
        self,
        account: LocalAccount,
        request: StatusRequest,
        status_code: StatusCode,
    ) -> str:
        """Submit a status response for a request.

        :param account: Responding oracle account.
        :param request: Request being answered.
        :param status_code: Reported status code.
        :returns: Transaction hash.
        """
        function = self.contract.functions.submitOracleResponse(
            request.index,
            Web3.to_checksum_address(request.airline),
            request.flight,
            request.timestamp,
            int(status_code),
        )
        return self._transact(account, function)

    def latest_block(self) -> int:
        """Get the current chain head block number."""
        return self.w3.eth.block_number

    def fetch_request_events(self, from_block: int, to_block: int) -> list[Any]:
        """Fetch ``OracleRequest`` logs in an inclusive block range.

        :param from_block: First block to scan.
        :param to_block: Last block to scan.
        :returns: Decoded event logs ordered by block and log index.
        """
        events = self.contract.events.OracleRequest().get_logs(
            from_block=from_block, to_block=to_block
        )
        return sorted(events, key=lambda e: (e["blockNumber"], e["logIndex"]))
