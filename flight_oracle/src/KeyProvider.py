"""KeyProvider: Abstract base class for oracle signing key sources."""

from abc import abstractmethod

from eth_account import Account
from eth_account.signers.local import LocalAccount


class KeyProvider:
    """Abstract base class for key provider implementations.

    Each pool slot maps to exactly one signing key, and asking for the same
    slot again must return the same key, so a restarted oracle keeps its
    registered identities.
    """

    @abstractmethod
    def fetch_key(self, slot: int) -> str:
        """Fetch or generate the private key for a pool slot.

        :param slot: Pool slot number (0-based).
        :returns: Hex-encoded private key.
        """
        pass

    def fetch_account(self, slot: int) -> LocalAccount:
        """Build the signing account for a pool slot.

        :param slot: Pool slot number (0-based).
        :returns: Local signing account.
        """
        return Account.from_key(self.fetch_key(slot))
