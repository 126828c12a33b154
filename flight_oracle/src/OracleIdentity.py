"""OracleIdentity: A registered oracle account and its assigned indexes.

The contract assigns three indexes (each in ``0..9``) when an oracle
registers. An identity may answer a request only if the request's selector
index is one of them.

.. code-block:: python

    >>> identity = OracleIdentity(account, slot=2, indexes=(1, 4, 7))
    >>> identity.holds(4)
    True
    >>> identity.holds(9)
    False
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount


@dataclass(frozen=True)
class OracleIdentity:
    """An oracle signing identity with its contract-assigned indexes.

    Identities compare and hash by account address.

    :ivar account: Local signing account.
    :ivar slot: Position of the identity in the provisioned pool.
    :ivar indexes: Indexes assigned by the contract.
    :ivar address: Checksummed account address.
    """

    account: LocalAccount = field(compare=False, repr=False)
    slot: int = field(compare=False)
    indexes: tuple[int, ...] = field(compare=False)
    address: str = field(init=False)

    def __post_init__(self) -> None:
        """Normalize indexes and validate.

        :raises ValueError: If no indexes are given.
        """
        indexes = tuple(int(i) for i in self.indexes)
        if not indexes:
            raise ValueError(f"Oracle in slot {self.slot} has no assigned indexes")
        object.__setattr__(self, "indexes", indexes)
        object.__setattr__(self, "address", self.account.address)

    def holds(self, index: int) -> bool:
        """Check whether the identity was assigned the given index."""
        return index in self.indexes
