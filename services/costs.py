# services/costs.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

BASE_FARE = 2.50
PER_MILE = 1.35
BOOKING_FEE = 3.00

_CENT = Decimal("0.01")


def round2(amount: float) -> float:
    """Half-up rounding to cents. Only used when building the final result."""
    return float(Decimal(repr(amount)).quantize(_CENT, rounding=ROUND_HALF_UP))


def fuel_cost(miles: float, mpg: float, price_per_gallon: float) -> float:
    if mpg <= 0:
        raise ValueError("mpg must be positive")
    return (miles / mpg) * price_per_gallon


def drive_cost(miles: float, mpg: float, price_per_gallon: float, parking: float = 0.0) -> float:
    """
    Gas + parking, unrounded.
    drive_cost(10, 32, 4.85, 15) -> 16.515625  (round2 -> 16.52)
    """
    return fuel_cost(miles, mpg, price_per_gallon) + parking


def rideshare_formula(miles: float, base_fare: Optional[float] = None, per_mile: Optional[float] = None,
                      booking_fee: Optional[float] = None) -> float:
    """
    If the live price API is not available, use a standard base estimate for LA/major cities:
    base + per_mile * miles + booking fee.
    """
    base_fare = BASE_FARE if base_fare is None else base_fare
    per_mile = PER_MILE if per_mile is None else per_mile
    booking_fee = BOOKING_FEE if booking_fee is None else booking_fee
    return base_fare + per_mile * miles + booking_fee
