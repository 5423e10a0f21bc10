# services/providers/fuel_price.py
"""
EIA weekly retail gasoline price (most recent observation).

The value is cached process-wide with a TTL; concurrent misses share one request.
Failures are not cached and never turned into a number here: the aggregator owns
the fallback price.
"""
import datetime as dt
import logging
import math
import threading
import time
from typing import Any, Callable, Dict, Optional

from domain.errors import Unavailable
from domain.trip import FuelPrice
from ..cache import TTLValue
from ..settings import Settings
from .http import Http, ProviderError

URL = "https://api.eia.gov/v2/petroleum/pri/gnd/data/"
DEFAULT_TTL_SECONDS = 6 * 3600

logger = logging.getLogger(__name__)


def _parse_period(period: Any) -> dt.datetime:
    try:
        return dt.datetime.strptime(str(period), "%Y-%m-%d").replace(tzinfo=dt.timezone.utc)
    except ValueError:
        return dt.datetime.now(dt.timezone.utc)


class EiaFuelPriceResolver:
    def __init__(self, api_key: Optional[str] = None, http: Http | None = None,
                 ttl_seconds: float = DEFAULT_TTL_SECONDS, area: Optional[str] = "NUS",
                 product: Optional[str] = "EPMR", clock: Callable[[], float] = time.monotonic):
        self.api_key = api_key
        self.http = http or Http()
        self.area = area
        self.product = product
        self._cache = TTLValue(self._fetch, ttl_seconds, clock=clock, name="fuel price")

    def params(self) -> Dict[str, Any]:
        p = {
            "api_key": self.api_key,
            "frequency": "weekly",
            "data[0]": "value",
            "sort[0][column]": "period",
            "sort[0][direction]": "desc",
            "size": 1,
        }
        if self.area:
            p["facets[duoarea][]"] = self.area
        if self.product:
            p["facets[product][]"] = self.product
        return p

    def _fetch(self) -> FuelPrice:
        if not self.api_key:
            raise Unavailable("EIA api key is not configured")
        try:
            data = self.http.get_json(URL, params=self.params())
        except ProviderError as e:
            raise Unavailable(f"EIA: {e}") from e

        rows = ((data or {}).get("response") or {}).get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise Unavailable("EIA: empty series")
        try:
            value = float(rows[0].get("value"))
        except (TypeError, ValueError):
            raise Unavailable(f"EIA: bad value {rows[0].get('value')!r}") from None
        if not math.isfinite(value) or value <= 0:
            raise Unavailable(f"EIA: bad price {value}")

        price = FuelPrice(dollars_per_gallon=value, as_of=_parse_period(rows[0].get("period")))
        logger.info("fuel price %.3f $/gal as of %s", price.dollars_per_gallon, price.as_of.date())
        return price

    def resolve(self) -> FuelPrice:
        return self._cache.get()


_shared: Dict[tuple, EiaFuelPriceResolver] = {}
_shared_lock = threading.Lock()


def shared_resolver(settings: Settings, http: Http | None = None) -> EiaFuelPriceResolver:
    """
    One resolver (and so one cache) per process for a given key/series and transport
    settings. The http of the first caller for that key is the one kept.
    """
    key = (settings.eia_api_key, settings.fuel_area, settings.fuel_product,
           settings.user_agent, settings.timeout, settings.max_retries)
    with _shared_lock:
        r = _shared.get(key)
        if r is None:
            r = EiaFuelPriceResolver(
                api_key=settings.eia_api_key,
                http=http or Http(user_agent=settings.user_agent, timeout=settings.timeout,
                                  max_retries=settings.max_retries),
                ttl_seconds=settings.fuel_price_ttl_seconds,
                area=settings.fuel_area,
                product=settings.fuel_product,
            )
            _shared[key] = r
        return r
