"""OracleRegistrar: Provision the oracle pool against FlightSuretyApp.

Registers one identity per pool slot, sequentially. A slot that fails is
logged and skipped; the batch always runs to the end and the resulting pool
contains exactly the identities that registered successfully.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from web3.exceptions import ContractLogicError

from .errors import ProvisioningError
from .OracleIdentity import OracleIdentity
from .OraclePool import OraclePool, OraclePoolBuilder

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from .FlightSuretyClient import FlightSuretyClient
    from .KeyProvider import KeyProvider

logger = logging.getLogger(__name__)


class OracleRegistrar:
    """Registers a batch of oracle identities and builds the pool.

    :ivar client: FlightSuretyApp client.
    :ivar key_provider: Source of per-slot signing keys.
    :ivar stake_wei: Registration fee paid per identity.
    :ivar reuse_registered: Adopt identities that are already registered.
    """

    def __init__(
        self,
        client: FlightSuretyClient,
        key_provider: KeyProvider,
        stake_wei: int,
        reuse_registered: bool = True,
    ) -> None:
        """Initialize the registrar.

        :param client: FlightSuretyApp client.
        :param key_provider: Source of per-slot signing keys.
        :param stake_wei: Registration fee in wei.
        :param reuse_registered: Adopt the indexes of identities that are
            already registered instead of registering them again (default: True).
        :raises ValueError: If stake_wei is not positive.
        """
        if stake_wei <= 0:
            raise ValueError("stake_wei must be positive")
        self.client = client
        self.key_provider = key_provider
        self.stake_wei = stake_wei
        self.reuse_registered = reuse_registered

    async def provision(self, pool_size: int) -> OraclePool:
        """Register ``pool_size`` identities and freeze the pool.

        :param pool_size: Number of slots to provision.
        :returns: Frozen pool of successfully registered identities.
        :raises ValueError: If pool_size is negative.
        """
        if pool_size < 0:
            raise ValueError("pool_size must not be negative")

        builder = OraclePoolBuilder()
        failures = 0
        for slot in range(pool_size):
            try:
                identity = await self.register_slot(slot)
            except ProvisioningError as e:
                failures += 1
                logger.warning(f"Oracle registration failed for {e}")
                continue
            builder.add(identity)
            logger.info(
                f"Oracle slot {slot} ready: {identity.address} indexes={list(identity.indexes)}"
            )

        pool = builder.freeze()
        logger.info(
            f"Provisioned {len(pool)}/{pool_size} oracle identities ({failures} failed)"
        )
        return pool

    async def register_slot(self, slot: int) -> OracleIdentity:
        """Register the identity of a single slot.

        :param slot: Pool slot number.
        :returns: Registered identity with its assigned indexes.
        :raises ProvisioningError: If any registration step fails.
        """
        try:
            account = await asyncio.to_thread(self.key_provider.fetch_account, slot)
        except Exception as e:
            raise ProvisioningError(f"key unavailable: {e}", slot) from e

        indexes = None
        if self.reuse_registered:
            indexes = await self._existing_indexes(slot, account)
            if indexes is not None:
                logger.info(f"Oracle slot {slot} already registered as {account.address}")

        if indexes is None:
            try:
                tx_hash = await asyncio.to_thread(
                    self.client.register_oracle, account, self.stake_wei
                )
                logger.debug(f"Oracle slot {slot} registered in tx {tx_hash}")
                indexes = await asyncio.to_thread(self.client.get_my_indexes, account)
            except Exception as e:
                raise ProvisioningError(str(e), slot, account.address) from e

        try:
            return OracleIdentity(account, slot, indexes)
        except ValueError as e:
            raise ProvisioningError(str(e), slot, account.address) from e

    async def _existing_indexes(self, slot: int, account: LocalAccount) -> tuple[int, ...] | None:
        """Return the indexes of an already registered account, or None.

        :raises ProvisioningError: If the lookup failed for another reason.
        """
        try:
            indexes = await asyncio.to_thread(self.client.get_my_indexes, account)
        except ContractLogicError:
            # getMyIndexes reverts for unregistered oracles
            return None
        except Exception as e:
            raise ProvisioningError(f"registration lookup failed: {e}", slot, account.address) from e
        return indexes or None
