class TripCostError(Exception):
    """Base for everything the trip cost engine raises on purpose."""


class NotFound(TripCostError):
    """The lookup input matched no record (user-input problem, not systemic)."""


class Unavailable(TripCostError):
    """Transport/format failure of an external source. Retryable."""


class IncompleteInput(TripCostError):
    """No distance -> no comparison can be produced."""


class TripCancelled(TripCostError):
    pass
