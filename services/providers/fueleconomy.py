# services/providers/fueleconomy.py
"""
fueleconomy.gov lookup: (year, make, model) -> combined MPG.

Flow: menu/make + menu/model (case-insensitive canonical names) -> menu/options
(first option = vehicle id) -> vehicle/{id} -> comb08.
No match anywhere along the way is NotFound; transport trouble is Unavailable.
This module never makes up an MPG number.
"""
import logging
from typing import Any, List, Optional

from domain.errors import NotFound, Unavailable
from domain.trip import FuelEfficiency, Vehicle
from .http import Http, ProviderError

BASE = "https://www.fueleconomy.gov"

logger = logging.getLogger(__name__)


def _menu_items(obj: Any) -> List[dict]:
    # fueleconomy.gov מחזיר dict בודד כשיש רק פריט אחד, ו-list כשיש כמה
    if not isinstance(obj, dict):
        return []
    root = obj.get("menuItems") or obj
    items = root.get("menuItem") if isinstance(root, dict) else None
    if isinstance(items, list):
        return [x for x in items if isinstance(x, dict)]
    return [items] if isinstance(items, dict) else []


def _match(name: str, choices: List[str]) -> Optional[str]:
    want = (name or "").strip().lower()
    for c in choices:
        if c.strip().lower() == want:
            return c
    return None


def _positive_float(v: Any) -> Optional[float]:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if f > 0 else None


class FuelEconomyResolver:
    def __init__(self, http: Http | None = None):
        self.http = http or Http()

    def _get(self, path: str, **params) -> Any:
        try:
            return self.http.get_json(f"{BASE}{path}", params={**params, "format": "json"})
        except ProviderError as e:
            raise Unavailable(f"fueleconomy.gov: {e}") from e

    def menu_makes(self, year: int) -> List[str]:
        return [x["text"] for x in _menu_items(self._get("/ws/rest/vehicle/menu/make", year=year)) if "text" in x]

    def menu_models(self, year: int, make: str) -> List[str]:
        data = self._get("/ws/rest/vehicle/menu/model", year=year, make=make)
        return [x["text"] for x in _menu_items(data) if "text" in x]

    def menu_options(self, year: int, make: str, model: str) -> List[dict]:
        return _menu_items(self._get("/ws/rest/vehicle/menu/options", year=year, make=make, model=model))

    def resolve(self, vehicle: Vehicle) -> FuelEfficiency:
        make = _match(vehicle.make, self.menu_makes(vehicle.year))
        if make is None:
            raise NotFound(f"no make {vehicle.make!r} for {vehicle.year}")
        model = _match(vehicle.model, self.menu_models(vehicle.year, make))
        if model is None:
            raise NotFound(f"no model {vehicle.model!r} for {vehicle.year} {make}")

        options = self.menu_options(vehicle.year, make, model)
        vehicle_id = None
        for opt in options:
            try:
                vehicle_id = int(opt.get("value"))
                break
            except (TypeError, ValueError):
                continue
        if vehicle_id is None:
            raise NotFound(f"no catalog entry for {vehicle}")

        detail = self._get(f"/ws/rest/vehicle/{vehicle_id}")
        mpg = _positive_float(detail.get("comb08")) if isinstance(detail, dict) else None
        if mpg is None:
            raise NotFound(f"no combined MPG for {vehicle} (id {vehicle_id})")

        logger.debug("%s -> id %s, %s MPG", vehicle, vehicle_id, mpg)
        return FuelEfficiency(combined_mpg=mpg, vehicle_id=vehicle_id)
