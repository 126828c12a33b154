"""
Flight Status Oracle - Oracle Coordination Module

This module provides the off-chain oracle pool for FlightSuretyApp:
- OracleRegistrar: Registers oracle identities and builds the pool
- OraclePool: Write-once, read-only registry of identities and indexes
- RequestSubscriber: Resumable stream of OracleRequest events
- select_eligible: Picks the identities allowed to answer a request
- ResponseDispatcher: Concurrent, failure-isolated response submission
- FlightOracle: Main orchestrator tying the pieces together
"""

from .EligibilityFilter import select_eligible
from .errors import ContractCallError, OracleError, ProvisioningError, StreamError, SubmissionError
from .FlightOracle import FlightOracle
from .FlightStatus import DispatchState, StatusCode, StatusRequest, StatusResponse
from .OracleIdentity import OracleIdentity
from .OraclePool import OraclePool, OraclePoolBuilder
from .OracleRegistrar import OracleRegistrar
from .RequestSubscriber import RequestSubscriber
from .ResponseDispatcher import ResponseDispatcher
from .ResponseTracker import IdentityStatus, ResponseTracker

__all__ = [
    "ContractCallError",
    "DispatchState",
    "FlightOracle",
    "IdentityStatus",
    "OracleError",
    "OracleIdentity",
    "OraclePool",
    "OraclePoolBuilder",
    "OracleRegistrar",
    "ProvisioningError",
    "RequestSubscriber",
    "ResponseDispatcher",
    "ResponseTracker",
    "StatusCode",
    "StatusRequest",
    "StatusResponse",
    "StreamError",
    "SubmissionError",
    "select_eligible",
]
