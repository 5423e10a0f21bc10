import datetime as dt
import math
from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass
from typing import Optional, Dict, Any

MIN_YEAR = 1980
METERS_TO_MILES = 0.000621371
DEFAULT_PARKING_FEE = 15.00
_CENT = Decimal("0.01")

LIVE = "live"
FALLBACK = "fallback"
FORMULA = "formula"


def _norm(s: str) -> str:
    return (s or "").strip().lower()


@dataclass(frozen=True)
class Vehicle:
    year: int
    make: str
    model: str

    def __post_init__(self):
        max_year = dt.date.today().year + 1
        if not isinstance(self.year, int) or not (MIN_YEAR <= self.year <= max_year):
            raise ValueError(f"year must be between {MIN_YEAR} and {max_year}, got {self.year!r}")
        if not _norm(self.make) or not _norm(self.model):
            raise ValueError("make and model are required")

    @property
    def key(self) -> tuple:
        # "toyota camry" == "Toyota Camry" לצורך קאש ומניעת כפילויות
        return (self.year, _norm(self.make), _norm(self.model))

    def __str__(self) -> str:
        return f"{self.year} {self.make.strip()} {self.model.strip()}"


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float


@dataclass(frozen=True)
class RoutePoints:
    origin_place_id: str
    origin_coordinate: Coordinate
    destination_place_id: str
    destination_coordinate: Coordinate


@dataclass(frozen=True)
class FuelEfficiency:
    combined_mpg: float
    vehicle_id: Optional[int] = None  # fueleconomy.gov id

    def __post_init__(self):
        if not self.combined_mpg or self.combined_mpg <= 0:
            raise ValueError(f"combined_mpg must be positive, got {self.combined_mpg!r}")


@dataclass(frozen=True)
class Distance:
    miles: float

    def __post_init__(self):
        if self.miles is None or self.miles < 0:
            raise ValueError(f"miles must be non-negative, got {self.miles!r}")

    @classmethod
    def from_meters(cls, meters: float) -> "Distance":
        return cls(miles=float(meters) * METERS_TO_MILES)


@dataclass(frozen=True)
class FuelPrice:
    dollars_per_gallon: float
    as_of: dt.datetime
    source: str = LIVE  # "live" / "fallback"

    def __post_init__(self):
        if not self.dollars_per_gallon or self.dollars_per_gallon <= 0:
            raise ValueError(f"dollars_per_gallon must be positive, got {self.dollars_per_gallon!r}")

    @property
    def is_fallback(self) -> bool:
        return self.source == FALLBACK


@dataclass(frozen=True)
class ParkingFee:
    dollars: float = DEFAULT_PARKING_FEE

    def __post_init__(self):
        if self.dollars is None or not math.isfinite(self.dollars) or self.dollars < 0:
            raise ValueError(f"parking fee must be non-negative, got {self.dollars!r}")
        # סכום שהמשתמש מקליד נשמר בסנטים
        cents = Decimal(repr(float(self.dollars))).quantize(_CENT, rounding=ROUND_HALF_UP)
        object.__setattr__(self, "dollars", float(cents))

    @classmethod
    def parse(cls, text: Any, default: float = DEFAULT_PARKING_FEE) -> "ParkingFee":
        """
        Accepts what a user types into the parking field: "15", "15.00", "$12.50", "1,200".
        Empty input means the default fee.
        """
        if text is None:
            return cls(default)
        if isinstance(text, (int, float)):
            return cls(float(text))
        s = str(text).strip().replace("$", "").replace(",", "")
        if not s:
            return cls(default)
        try:
            return cls(float(s))
        except ValueError:
            raise ValueError(f"not a parking fee: {text!r}") from None


@dataclass(frozen=True)
class RideshareQuote:
    dollars: float
    source: str  # "live" / "formula"


@dataclass(frozen=True)
class TripCostComparison:
    drive_cost: Optional[float]  # None = efficiency unknown, never 0
    rideshare_cost: float
    distance_miles: float
    combined_mpg: Optional[float]
    fuel_price: FuelPrice
    rideshare_source: str = FORMULA
    parking_fee: float = DEFAULT_PARKING_FEE

    @property
    def fuel_price_is_fallback(self) -> bool:
        return self.fuel_price.is_fallback

    @property
    def rideshare_is_fallback(self) -> bool:
        return self.rideshare_source != LIVE

    @property
    def cheaper_option(self) -> Optional[str]:
        if self.drive_cost is None:
            return None
        return "drive" if self.drive_cost <= self.rideshare_cost else "rideshare"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "drive_cost": self.drive_cost,
            "rideshare_cost": self.rideshare_cost,
            "distance_miles": round(self.distance_miles, 2),
            "combined_mpg": self.combined_mpg,
            "parking_fee": self.parking_fee,
            "fuel_price": {
                "dollars_per_gallon": self.fuel_price.dollars_per_gallon,
                "as_of": self.fuel_price.as_of.isoformat(),
                "source": self.fuel_price.source,
            },
            "rideshare_source": self.rideshare_source,
            "cheaper_option": self.cheaper_option,
        }
