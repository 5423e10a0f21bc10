# services/providers/distance_matrix.py
"""
Google Distance Matrix: one origin, one destination -> miles.
No retries here (Http owns that); anything off in the payload is Unavailable.
"""
import logging
from typing import Any, Optional

from domain.errors import Unavailable
from domain.trip import Distance, RoutePoints
from .http import Http, ProviderError

URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

logger = logging.getLogger(__name__)


def _single(items: Any) -> Optional[dict]:
    if isinstance(items, list) and len(items) == 1 and isinstance(items[0], dict):
        return items[0]
    return None


class DistanceMatrixResolver:
    def __init__(self, api_key: Optional[str] = None, http: Http | None = None):
        self.api_key = api_key
        self.http = http or Http()

    def resolve(self, route: RoutePoints) -> Distance:
        if not self.api_key:
            raise Unavailable("Google Maps api key is not configured")
        params = {
            "origins": f"place_id:{route.origin_place_id}",
            "destinations": f"place_id:{route.destination_place_id}",
            "key": self.api_key,
        }
        try:
            data = self.http.get_json(URL, params=params)
        except ProviderError as e:
            raise Unavailable(f"distance matrix: {e}") from e

        if not isinstance(data, dict):
            raise Unavailable("distance matrix: malformed response")
        status = data.get("status", "OK")
        if status != "OK":
            raise Unavailable(f"distance matrix: status {status}")

        row = _single(data.get("rows"))
        element = _single(row.get("elements")) if row else None
        if element is None:
            raise Unavailable("distance matrix: expected exactly one row and one element")
        if element.get("status") != "OK":
            raise Unavailable(f"distance matrix: element status {element.get('status')}")

        meters = (element.get("distance") or {}).get("value")
        if not isinstance(meters, (int, float)) or isinstance(meters, bool) or meters < 0:
            raise Unavailable(f"distance matrix: bad distance {meters!r}")

        distance = Distance.from_meters(meters)
        logger.debug("%s -> %s: %.2f mi", route.origin_place_id, route.destination_place_id, distance.miles)
        return distance
