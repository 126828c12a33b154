"""Status policies: how an oracle decides which status code to report.

A policy is any callable taking a ``StatusRequest`` and returning a
``StatusCode``. Named policies are kept in a registry so they can be selected
from the command line.

.. code-block:: python

    @register_policy("always-late")
    def always_late(status_code: StatusCode | None = None) -> StatusPolicy:
        return FixedStatusPolicy(StatusCode.LATE_AIRLINE)

    policy = get_policy("always-late")
    policy(request)  # StatusCode.LATE_AIRLINE
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence

from .FlightStatus import StatusCode, StatusRequest

StatusPolicy = Callable[[StatusRequest], StatusCode]


class FixedStatusPolicy:
    """Always report the same status code.

    :ivar status_code: Code reported for every request.
    """

    def __init__(self, status_code: StatusCode | int = StatusCode.ON_TIME) -> None:
        """Initialize the policy.

        :param status_code: Code to report (default: ON_TIME).
        :raises ValueError: If the code is not a known status code.
        """
        self.status_code = StatusCode(status_code)

    def __call__(self, request: StatusRequest) -> StatusCode:
        return self.status_code


class RandomStatusPolicy:
    """Report a status code sampled uniformly from a set of codes.

    :ivar codes: Candidate codes.
    """

    def __init__(
        self,
        codes: Sequence[StatusCode] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the policy.

        :param codes: Candidate codes (default: every StatusCode).
        :param rng: Optional random generator, seed it for reproducible runs.
        :raises ValueError: If codes is empty.
        """
        self.codes = tuple(codes) if codes is not None else tuple(StatusCode)
        if not self.codes:
            raise ValueError("RandomStatusPolicy needs at least one status code")
        self._rng = rng or random.Random()

    def __call__(self, request: StatusRequest) -> StatusCode:
        return self._rng.choice(self.codes)


class ScriptedStatusPolicy:
    """Report status codes from a per-flight script, falling back to a default.

    Useful for demos and tests where specific flights must come back late.

    :ivar script: Mapping of flight reference to code.
    :ivar default: Code for flights not in the script.
    """

    def __init__(
        self,
        script: dict[str, StatusCode],
        default: StatusCode = StatusCode.ON_TIME,
    ) -> None:
        self.script = dict(script)
        self.default = default

    def __call__(self, request: StatusRequest) -> StatusCode:
        return self.script.get(request.flight, self.default)


PolicyFactory = Callable[[StatusCode | None], StatusPolicy]

# Registry of named policies, keyed by CLI name
POLICY_REGISTRY: dict[str, PolicyFactory] = {}


def register_policy(name: str) -> Callable[[PolicyFactory], PolicyFactory]:
    """Decorator to register a policy factory under a name.

    :param name: Policy name used by ``--status-policy``.
    :returns: Decorator returning the factory unchanged.
    :raises ValueError: If name is empty.
    """
    if not name:
        raise ValueError("Status policy name must not be empty")

    def decorator(factory: PolicyFactory) -> PolicyFactory:
        POLICY_REGISTRY[name] = factory
        return factory

    return decorator


@register_policy("random")
def _random_policy(status_code: StatusCode | None = None) -> StatusPolicy:
    return RandomStatusPolicy()


@register_policy("fixed")
def _fixed_policy(status_code: StatusCode | None = None) -> StatusPolicy:
    return FixedStatusPolicy(status_code if status_code is not None else StatusCode.ON_TIME)


def get_policy(name: str, status_code: StatusCode | int | None = None) -> StatusPolicy:
    """Get a policy instance by name.

    :param name: Policy name (e.g., "random", "fixed").
    :param status_code: Code used by policies that report a fixed value.
    :returns: Policy callable.
    :raises ValueError: If the policy name or status code is unknown.
    """
    if name not in POLICY_REGISTRY:
        available = ", ".join(sorted(POLICY_REGISTRY.keys()))
        raise ValueError(f"Unknown status policy '{name}'. Available: {available}")
    code = StatusCode(status_code) if status_code is not None else None
    return POLICY_REGISTRY[name](code)


def get_available_policies() -> list[str]:
    """Get list of available policy names.

    :returns: Sorted list of registered policy names.
    """
    return sorted(POLICY_REGISTRY.keys())
