"""OraclePool: Write-once registry of provisioned oracle identities.

``OraclePoolBuilder`` is filled by the registrar during provisioning and then
frozen into an ``OraclePool``. The pool is read-only for the rest of the
process, so eligibility lookups need no locking.

.. code-block:: python

    >>> builder = OraclePoolBuilder()
    >>> builder.add(identity)
    >>> pool = builder.freeze()
    >>> len(pool)
    1
    >>> builder.add(other)
    Traceback (most recent call last):
    ...
    RuntimeError: Oracle pool already frozen
"""

from __future__ import annotations

from collections.abc import Iterator
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .OracleIdentity import OracleIdentity


class OraclePool:
    """Immutable view of the provisioned identities, in slot order."""

    def __init__(self, identities: list[OracleIdentity]) -> None:
        """Initialize the pool.

        :param identities: Identities to include.
        :raises ValueError: If two identities share an address.
        """
        ordered = sorted(identities, key=lambda i: i.slot)
        by_address: dict[str, OracleIdentity] = {}
        for identity in ordered:
            if identity.address in by_address:
                raise ValueError(f"Duplicate oracle address {identity.address}")
            by_address[identity.address] = identity
        self._identities: tuple[OracleIdentity, ...] = tuple(ordered)
        self._by_address = MappingProxyType(by_address)

    def __len__(self) -> int:
        return len(self._identities)

    def __iter__(self) -> Iterator[OracleIdentity]:
        return iter(self._identities)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address

    @property
    def identities(self) -> tuple[OracleIdentity, ...]:
        return self._identities

    def get(self, address: str) -> OracleIdentity | None:
        """Look up an identity by account address."""
        return self._by_address.get(address)

    def index_assignments(self) -> dict[str, tuple[int, ...]]:
        """Get the mapping from address to assigned indexes.

        :returns: New dict, safe to mutate.
        """
        return {address: i.indexes for address, i in self._by_address.items()}


class OraclePoolBuilder:
    """Collects identities during provisioning; frozen exactly once."""

    def __init__(self) -> None:
        self._identities: list[OracleIdentity] = []
        self._pool: OraclePool | None = None

    @property
    def frozen(self) -> bool:
        return self._pool is not None

    def add(self, identity: OracleIdentity) -> None:
        """Add a successfully registered identity.

        :raises RuntimeError: If the pool was already frozen.
        """
        if self._pool is not None:
            raise RuntimeError("Oracle pool already frozen")
        self._identities.append(identity)

    def freeze(self) -> OraclePool:
        """Freeze the collected identities into an OraclePool.

        Subsequent calls return the same pool.
        """
        if self._pool is None:
            self._pool = OraclePool(self._identities)
            self._identities = []
        return self._pool
