"""KeyProviderLocalnet: Key provider for local development chains."""

from eth_account import Account

from .KeyProvider import KeyProvider

# Development mnemonic of the FlightSurety truffle project
DEFAULT_LOCALNET_MNEMONIC = (
    "robot boat soon reduce liquid food mobile sheriff core raw injury lift"
)

# The first accounts are used by the owner, airlines and passengers
DEFAULT_FIRST_ACCOUNT = 11


class KeyProviderLocalnet(KeyProvider):
    """Key provider deriving oracle keys from an HD-wallet mnemonic.

    Slot ``n`` maps to account ``first_account + n`` on the standard
    ``m/44'/60'/0'/0/i`` path, matching the funded accounts of a development
    node started with the same mnemonic.

    :ivar mnemonic: BIP-39 mnemonic.
    :ivar first_account: Derivation index of slot 0.
    """

    def __init__(
        self,
        mnemonic: str = DEFAULT_LOCALNET_MNEMONIC,
        first_account: int = DEFAULT_FIRST_ACCOUNT,
    ) -> None:
        """Initialize the localnet key provider.

        :param mnemonic: BIP-39 mnemonic of the development node.
        :param first_account: Derivation index used for slot 0.
        :raises ValueError: If first_account is negative.
        """
        if first_account < 0:
            raise ValueError("first_account must not be negative")
        self.mnemonic = mnemonic
        self.first_account = first_account
        Account.enable_unaudited_hdwallet_features()

    def derivation_path(self, slot: int) -> str:
        """Return the HD derivation path for a slot."""
        return f"m/44'/60'/0'/0/{self.first_account + slot}"

    def fetch_key(self, slot: int) -> str:
        """Derive the private key for a slot.

        :param slot: Pool slot number.
        :returns: Hex-encoded private key.
        """
        account = Account.from_mnemonic(self.mnemonic, account_path=self.derivation_path(slot))
        return account.key.to_0x_hex()
