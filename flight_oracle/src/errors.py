"""Error taxonomy for the oracle coordination subsystem.

``ProvisioningError`` and ``SubmissionError`` are recovered locally for the
affected identity. ``StreamError`` and a provisioning run that leaves no usable
identity are fatal and terminate the process.
"""


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class ContractCallError(OracleError):
    """Raised when a contract transaction is mined with a failed status."""

    pass


class ProvisioningError(OracleError):
    """Raised when oracle identities could not be registered.

    :ivar slot: Pool slot of the failed identity, None for pool-wide failures.
    :ivar address: Account address, if the key could be obtained.
    """

    def __init__(self, message: str, slot: int | None = None, address: str | None = None):
        """Initialize the provisioning error.

        :param message: Failure description.
        :param slot: Pool slot of the identity.
        :param address: Account address or None.
        """
        self.slot = slot
        self.address = address
        if slot is not None:
            message = f"slot {slot} ({address or 'no key'}): {message}"
        super().__init__(message)


class StreamError(OracleError):
    """Raised when the request event stream cannot be re-established."""

    pass


class SubmissionError(OracleError):
    """Raised when a single response submission failed.

    :ivar address: Address of the submitting identity.
    :ivar stage: Stage that failed ("policy", "submit", "timeout", "abandoned").
    """

    def __init__(self, address: str, stage: str, message: str):
        """Initialize the submission error.

        :param address: Address of the submitting identity.
        :param stage: Stage that failed.
        :param message: Failure description.
        """
        self.address = address
        self.stage = stage
        super().__init__(f"{stage}: {message}")
