# services/providers/rideshare.py
"""
Rideshare price for a route.

LIVE    - Uber price estimates API (needs a server token)
FORMULA - base + per-mile * miles + booking fee

The strategy is picked once (LIVE only when a token is configured). A LIVE call that
fails for any reason falls back to FORMULA, so estimate() always returns a quote.
"""
import enum
import logging
import re
from typing import Any, Optional

from domain.trip import FORMULA, LIVE, RideshareQuote, RoutePoints
from ..costs import BASE_FARE, BOOKING_FEE, PER_MILE, rideshare_formula
from .http import Http, ProviderError

URL = "https://api.uber.com/v1.2/estimates/price"

logger = logging.getLogger(__name__)

_AMOUNT = re.compile(r"\d+(?:\.\d+)?")


class RideshareStrategy(enum.Enum):
    LIVE = LIVE
    FORMULA = FORMULA


class LivePriceError(Exception):
    pass


def _number(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    return None


def price_from_entry(entry: Any) -> float:
    """
    Midpoint of low/high when both exist, otherwise the "estimate" text:
    "$15-20" -> 17.5, "$18" -> 18.0
    """
    if not isinstance(entry, dict):
        raise LivePriceError("price entry is not an object")
    low, high = _number(entry.get("low_estimate")), _number(entry.get("high_estimate"))
    if low is not None and high is not None:
        return (low + high) / 2
    amounts = [float(x) for x in _AMOUNT.findall(str(entry.get("estimate") or "").replace(",", ""))]
    if not amounts:
        raise LivePriceError(f"unparseable estimate {entry.get('estimate')!r}")
    return sum(amounts[:2]) / len(amounts[:2])


class RideshareCostEstimator:
    def __init__(self, server_token: Optional[str] = None, http: Http | None = None,
                 base_fare: float = BASE_FARE, per_mile: float = PER_MILE, booking_fee: float = BOOKING_FEE):
        self.server_token = server_token
        self.http = http or Http()
        self.base_fare = base_fare
        self.per_mile = per_mile
        self.booking_fee = booking_fee
        self.strategy = RideshareStrategy.LIVE if server_token else RideshareStrategy.FORMULA

    def formula(self, miles: float) -> RideshareQuote:
        dollars = rideshare_formula(miles, self.base_fare, self.per_mile, self.booking_fee)
        return RideshareQuote(dollars=dollars, source=FORMULA)

    def live(self, route: RoutePoints) -> RideshareQuote:
        if not self.server_token:
            raise LivePriceError("no server token configured")
        o, d = route.origin_coordinate, route.destination_coordinate
        params = {
            "start_latitude": o.lat,
            "start_longitude": o.lng,
            "end_latitude": d.lat,
            "end_longitude": d.lng,
        }
        try:
            data = self.http.get_json(URL, params=params, headers={"Authorization": f"Token {self.server_token}"})
        except ProviderError as e:
            raise LivePriceError(str(e)) from e
        prices = data.get("prices") if isinstance(data, dict) else None
        if not isinstance(prices, list) or not prices:
            raise LivePriceError("empty price list")
        return RideshareQuote(dollars=price_from_entry(prices[0]), source=LIVE)

    def estimate(self, route: RoutePoints, distance_miles: float) -> RideshareQuote:
        if self.strategy is RideshareStrategy.LIVE:
            try:
                return self.live(route)
            except LivePriceError as e:
                logger.warning("live rideshare price failed (%s); using formula", e)
        return self.formula(distance_miles)
