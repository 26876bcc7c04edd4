"""Error taxonomy for the fleet engine.

Protocol outcomes such as "No bids received" are not errors; they are
returned as ``StepOutcome`` values. Only the conditions below are raised.
"""


class FleetError(Exception):
    """Base class for all fleet engine errors."""


class StoreUnavailable(FleetError):
    """The backing record store could not be reached. Never retried by the engine."""


class InvalidInput(FleetError, ValueError):
    """Caller input rejected before any mutation."""


class RecordNotFound(FleetError, LookupError):
    """A service operation referenced an identifier the store does not hold."""
