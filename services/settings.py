# services/settings.py
"""
Runtime configuration for the trip cost engine.

Everything comes from the environment (a local .env is loaded first). Credentials are
opaque strings. Earlier versions of the app used different fallback prices and fares,
so those are settings too.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env(*names: str) -> Optional[str]:
    for name in names:
        v = os.getenv(name)
        if v is not None and v.strip():
            return v.strip()
    return None


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    eia_api_key: Optional[str] = None
    google_maps_api_key: Optional[str] = None
    uber_server_token: Optional[str] = None

    timeout: float = 10.0
    max_retries: int = 2
    user_agent: str = "WayWise/1.0"

    fuel_price_ttl_hours: float = 6.0
    fallback_fuel_price: float = 4.85
    fuel_area: str = "NUS"      # ממוצע ארצי
    fuel_product: str = "EPMR"  # בנזין רגיל

    # Base ($2.50) + Per Mile ($1.35) + Booking Fee ($3.00)
    rideshare_base_fare: float = 2.50
    rideshare_per_mile: float = 1.35
    rideshare_booking_fee: float = 3.00

    default_parking: float = 15.00
    efficiency_cache_size: int = 0  # 0 = ללא הגבלה (סשן)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path)
        return cls(
            eia_api_key=_env("EIA_API_KEY", "EXPO_PUBLIC_GAS_API_KEY"),
            google_maps_api_key=_env("GOOGLE_MAPS_API_KEY", "EXPO_PUBLIC_GOOGLE_MAPS_API_KEY"),
            uber_server_token=_env("UBER_SERVER_TOKEN"),
            timeout=_env_float("WAYWISE_HTTP_TIMEOUT", cls.timeout),
            max_retries=_env_int("WAYWISE_HTTP_RETRIES", cls.max_retries),
            fuel_price_ttl_hours=_env_float("WAYWISE_FUEL_PRICE_TTL_HOURS", cls.fuel_price_ttl_hours),
            fallback_fuel_price=_env_float("WAYWISE_FALLBACK_FUEL_PRICE", cls.fallback_fuel_price),
            fuel_area=_env("WAYWISE_FUEL_AREA") or cls.fuel_area,
            fuel_product=_env("WAYWISE_FUEL_PRODUCT") or cls.fuel_product,
            rideshare_base_fare=_env_float("WAYWISE_RIDESHARE_BASE_FARE", cls.rideshare_base_fare),
            rideshare_per_mile=_env_float("WAYWISE_RIDESHARE_PER_MILE", cls.rideshare_per_mile),
            rideshare_booking_fee=_env_float("WAYWISE_RIDESHARE_BOOKING_FEE", cls.rideshare_booking_fee),
            default_parking=_env_float("WAYWISE_DEFAULT_PARKING", cls.default_parking),
            efficiency_cache_size=_env_int("WAYWISE_EFFICIENCY_CACHE_SIZE", cls.efficiency_cache_size),
        )

    @property
    def fuel_price_ttl_seconds(self) -> float:
        return self.fuel_price_ttl_hours * 3600
