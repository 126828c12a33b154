"""EligibilityFilter: Select the identities allowed to answer a request."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .FlightStatus import StatusRequest
    from .OracleIdentity import OracleIdentity
    from .OraclePool import OraclePool


def select_eligible(request: StatusRequest, pool: OraclePool) -> list[OracleIdentity]:
    """Return the identities whose indexes contain the request's selector.

    Pure function of its inputs; the result follows pool slot order.

    :param request: Decoded status request.
    :param pool: Frozen oracle pool.
    :returns: Eligible identities, possibly empty.
    """
    return [identity for identity in pool if identity.holds(request.index)]
