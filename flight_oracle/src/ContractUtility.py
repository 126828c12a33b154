"""ContractUtility: Web3 initialization and contract ABI loading."""

import json
import os
from pathlib import Path

from web3 import Web3

# Default location of truffle build artifacts, relative to the working directory
DEFAULT_BUILD_DIR = Path("build") / "contracts"


class ContractUtility:
    """Utility for Web3 connection and contract ABI loading.

    :ivar network: Network RPC URL.
    :ivar w3: Configured Web3 instance.
    """

    def __init__(self, network_name: str, request_timeout: float = 30.0) -> None:
        """Initialize the contract utility.

        :param network_name: Name of the network to connect to, or an RPC URL.
        :param request_timeout: HTTP timeout for RPC requests in seconds.
        """
        networks = {
            "localhost": "http://127.0.0.1:8545",
            "development": "http://127.0.0.1:8545",
            "ganache": "http://127.0.0.1:7545",
        }
        # RPC_URL env var overrides the default for the network
        self.network = os.environ.get("RPC_URL") or networks.get(network_name, network_name)

        self.w3 = Web3(
            Web3.HTTPProvider(self.network, request_kwargs={"timeout": request_timeout})
        )

    @staticmethod
    def get_contract_abi(contract_name: str, build_dir: str | Path | None = None) -> list:
        """Fetch the ABI of a contract from the truffle build folder.

        :param contract_name: Name of the contract (e.g., "FlightSuretyApp").
        :param build_dir: Directory holding ``<contract_name>.json`` artifacts.
        :returns: Contract ABI.
        :raises FileNotFoundError: If the artifact does not exist.
        """
        output_path = (Path(build_dir or DEFAULT_BUILD_DIR) / f"{contract_name}.json").resolve()

        with open(output_path, "r") as file:
            contract_data = json.load(file)

        return contract_data["abi"]
