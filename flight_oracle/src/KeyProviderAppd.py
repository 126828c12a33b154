"""KeyProviderAppd: Key provider backed by the ROFL appd daemon."""

import logging
import time

import httpx

from .KeyProvider import KeyProvider

logger = logging.getLogger(__name__)

# Retry configuration for key requests while appd starts up
MAX_RETRIES = 30
BACKOFF_BASE = 1.0
BACKOFF_MAX = 5.0

KEYS_GENERATE_PATH = "/rofl/v1/keys/generate"


class KeyProviderAppd(KeyProvider):
    """Key provider generating per-slot keys inside a ROFL TEE.

    The appd derives keys deterministically from the key ID, so slot ``n``
    always maps to the same oracle account across restarts.

    :cvar ROFL_SOCKET_PATH: Default Unix socket path for appd.
    :ivar url: Optional HTTP URL or socket path override.
    :ivar key_prefix: Prefix of the key ID requested for each slot.
    """

    ROFL_SOCKET_PATH = "/run/rofl-appd.sock"

    def __init__(self, url: str = "", key_prefix: str = "flight-oracle") -> None:
        """Initialize the appd key provider.

        :param url: Optional URL or socket path. Empty uses default socket.
        :param key_prefix: Key ID prefix (default: "flight-oracle").
        """
        self.url = url
        self.key_prefix = key_prefix

    def _build_transport(self) -> httpx.HTTPTransport | None:
        """Return a unix socket transport, or None when talking plain HTTP."""
        if self.url.startswith("http"):
            return None
        return httpx.HTTPTransport(uds=self.url or self.ROFL_SOCKET_PATH)

    def key_id(self, slot: int) -> str:
        """Return the appd key ID for a slot."""
        return f"{self.key_prefix}-{slot}"

    def fetch_key(self, slot: int) -> str:
        """Generate or fetch the secp256k1 key for a slot.

        Retries with backoff while appd is unavailable.

        :param slot: Pool slot number.
        :returns: Hex-encoded private key.
        :raises RuntimeError: If appd did not answer after MAX_RETRIES attempts.
        """
        payload = {"key_id": self.key_id(slot), "kind": "secp256k1"}
        base_url = self.url if self.url.startswith("http") else "http://localhost"

        with httpx.Client(transport=self._build_transport()) as client:
            for attempt in range(MAX_RETRIES):
                try:
                    response = client.post(base_url + KEYS_GENERATE_PATH, json=payload)
                    if response.is_success:
                        return response.json()["key"]
                    error = f"{response.status_code} {response.reason_phrase}"
                except httpx.RequestError as exc:
                    error = str(exc)
                logger.warning(
                    f"appd key request for slot {slot} failed: {error} "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                time.sleep(min(BACKOFF_BASE * (1.5**attempt), BACKOFF_MAX))

        raise RuntimeError(f"appd key request for slot {slot} failed after {MAX_RETRIES} attempts")
