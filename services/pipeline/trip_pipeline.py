# services/pipeline/trip_pipeline.py
"""
Trip cost aggregation: drive vs rideshare for one (vehicle, route, parking fee).

Efficiency, distance and fuel price are looked up concurrently; rideshare runs after
distance settles (the formula needs the miles). Missing efficiency only drops the
drive cost, missing fuel price uses the configured fallback, missing distance fails
the whole request with IncompleteInput.

Requests in flight for the same (vehicle, route) share one aggregation. Parking is
added per request on top of the shared legs, so a different parking fee never
repeats an external call. Efficiency lookups are also single-flighted per vehicle
on top of the session cache.
"""
from __future__ import annotations

import datetime as dt
import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Dict, Optional

from domain.errors import IncompleteInput, NotFound, TripCancelled, Unavailable
from domain.trip import (
    FALLBACK, Distance, FuelEfficiency, FuelPrice, ParkingFee, RideshareQuote, RoutePoints,
    TripCostComparison, Vehicle,
)
from ..cache import KeyedCache
from ..costs import drive_cost, round2
from ..providers.distance_matrix import DistanceMatrixResolver
from ..providers.fuel_price import shared_resolver
from ..providers.fueleconomy import FuelEconomyResolver
from ..providers.http import Http
from ..providers.rideshare import RideshareCostEstimator
from ..settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TripLegs:
    """Everything about a trip that does not depend on the parking fee."""
    distance: Distance
    efficiency: Optional[FuelEfficiency]
    fuel_price: FuelPrice
    quote: RideshareQuote


class _Flight:
    def __init__(self, key: tuple, vehicle: Vehicle):
        self.key = key
        self.vehicle = vehicle
        self.cancel_event = threading.Event()
        self.subscribers = 0
        self.future: Optional[Future] = None


class TripRequest:
    """Handle for one caller's trip request. Several handles may share one flight."""

    def __init__(self, pipeline: "TripPipeline", flight: _Flight, parking: ParkingFee):
        self._pipeline = pipeline
        self._flight = flight
        self._parking = parking
        self._cancelled = False
        self._lock = threading.Lock()

    def result(self, timeout: Optional[float] = None) -> TripCostComparison:
        if self._cancelled:
            raise TripCancelled("trip request was cancelled")
        try:
            legs = self._flight.future.result(timeout)
        except CancelledError:
            raise TripCancelled("trip request was cancelled") from None
        # בוטל בזמן שחיכינו - לא מחזירים תוצאה
        if self._cancelled:
            raise TripCancelled("trip request was cancelled")
        return self._pipeline._compose(self._flight.vehicle, legs, self._parking)

    def cancel(self) -> bool:
        with self._lock:
            if self._cancelled:
                return True
            if self._flight.future.done():
                return False
            self._cancelled = True
        self._pipeline._release(self._flight)
        return True

    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._cancelled or self._flight.future.done()


class TripPipeline:
    poll_interval = 0.05

    def __init__(self, settings: Settings | None = None, http: Http | None = None,
                 efficiency: Any = None, fuel_price: Any = None, distance: Any = None, rideshare: Any = None,
                 max_workers: int = 8):
        self.settings = settings or Settings.from_env()
        s = self.settings
        self.http = http or Http(user_agent=s.user_agent, timeout=s.timeout, max_retries=s.max_retries)
        self.efficiency = efficiency or FuelEconomyResolver(self.http)
        self.fuel_price = fuel_price or shared_resolver(s, self.http)
        self.distance = distance or DistanceMatrixResolver(s.google_maps_api_key, self.http)
        self.rideshare = rideshare or RideshareCostEstimator(
            s.uber_server_token, self.http,
            base_fare=s.rideshare_base_fare, per_mile=s.rideshare_per_mile, booking_fee=s.rideshare_booking_fee,
        )
        self.efficiency_cache = KeyedCache(max_size=s.efficiency_cache_size, name="efficiency")

        self._lookups = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="waywise-lookup")
        self._trips = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="waywise-trip")
        self._lock = threading.Lock()
        self._flights: Dict[tuple, _Flight] = {}

    # ----- Public -----
    def lookup_efficiency(self, vehicle: Vehicle) -> FuelEfficiency:
        return self.efficiency_cache.get_or_fetch(vehicle.key, lambda: self.efficiency.resolve(vehicle))

    def submit(self, vehicle: Vehicle, route: RoutePoints, parking_fee: ParkingFee | None = None) -> TripRequest:
        parking = parking_fee or ParkingFee(self.settings.default_parking)
        key = (vehicle.key, route)
        with self._lock:
            flight = self._flights.get(key)
            if flight is None:
                flight = _Flight(key, vehicle)
                flight.future = self._trips.submit(self._run_flight, flight, route)
                self._flights[key] = flight
            else:
                logger.debug("joining in-flight trip for %s", vehicle)
            flight.subscribers += 1
        return TripRequest(self, flight, parking)

    def compute_trip(self, vehicle: Vehicle, route: RoutePoints,
                     parking_fee: ParkingFee | None = None) -> TripCostComparison:
        return self.submit(vehicle, route, parking_fee).result()

    def fallback_fuel_price(self) -> FuelPrice:
        return FuelPrice(
            dollars_per_gallon=self.settings.fallback_fuel_price,
            as_of=dt.datetime.now(dt.timezone.utc),
            source=FALLBACK,
        )

    def close(self) -> None:
        self._trips.shutdown(wait=False, cancel_futures=True)
        self._lookups.shutdown(wait=False, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ----- Internals -----
    def _release(self, flight: _Flight) -> None:
        with self._lock:
            flight.subscribers -= 1
            if flight.subscribers > 0:
                return
            flight.cancel_event.set()
            flight.future.cancel()
            if self._flights.get(flight.key) is flight:
                del self._flights[flight.key]
        logger.debug("trip %s abandoned by all callers", flight.key)

    def _run_flight(self, flight: _Flight, route: RoutePoints) -> _TripLegs:
        try:
            return self._aggregate(flight.vehicle, route, flight.cancel_event)
        finally:
            with self._lock:
                if self._flights.get(flight.key) is flight:
                    del self._flights[flight.key]

    def _await(self, fut: Future, cancel: threading.Event, pending: tuple) -> Any:
        while True:
            self._check(cancel, pending)
            try:
                return fut.result(timeout=self.poll_interval)
            except FutureTimeout:
                continue

    @staticmethod
    def _check(cancel: threading.Event, pending: tuple = ()) -> None:
        if cancel.is_set():
            for f in pending:
                f.cancel()
            raise TripCancelled("trip request was cancelled")

    def _aggregate(self, vehicle: Vehicle, route: RoutePoints, cancel: threading.Event) -> _TripLegs:
        self._check(cancel)
        eff_f = self._lookups.submit(self.lookup_efficiency, vehicle)
        dist_f = self._lookups.submit(self.distance.resolve, route)
        price_f = self._lookups.submit(self.fuel_price.resolve)
        pending = (eff_f, dist_f, price_f)

        # 1) מרחק - בלעדיו אין השוואה בכלל
        try:
            distance = self._await(dist_f, cancel, pending)
        except (NotFound, Unavailable) as e:
            eff_f.cancel()
            price_f.cancel()
            logger.warning("distance unavailable for %s -> %s: %s",
                           route.origin_place_id, route.destination_place_id, e)
            raise IncompleteInput(f"cannot compare without a distance: {e}") from e

        # 2) יעילות דלק - אם חסר, רק עלות הנסיעה ברכב נעלמת
        try:
            efficiency: Optional[FuelEfficiency] = self._await(eff_f, cancel, pending)
        except (NotFound, Unavailable) as e:
            logger.warning("no fuel efficiency for %s: %s", vehicle, e)
            efficiency = None

        # 3) מחיר דלק
        try:
            price: FuelPrice = self._await(price_f, cancel, pending)
        except Unavailable as e:
            price = self.fallback_fuel_price()
            logger.warning("fuel price unavailable (%s); using fallback %.2f", e, price.dollars_per_gallon)

        self._check(cancel)
        quote = self.rideshare.estimate(route, distance.miles)
        self._check(cancel)
        return _TripLegs(distance=distance, efficiency=efficiency, fuel_price=price, quote=quote)

    def _compose(self, vehicle: Vehicle, legs: _TripLegs, parking: ParkingFee) -> TripCostComparison:
        # 4) עיגול רק כאן, אחרי שהחניה נוספה
        drive = None
        if legs.efficiency is not None:
            drive = round2(drive_cost(legs.distance.miles, legs.efficiency.combined_mpg,
                                      legs.fuel_price.dollars_per_gallon, parking.dollars))

        result = TripCostComparison(
            drive_cost=drive,
            rideshare_cost=round2(legs.quote.dollars),
            distance_miles=legs.distance.miles,
            combined_mpg=legs.efficiency.combined_mpg if legs.efficiency else None,
            fuel_price=legs.fuel_price,
            rideshare_source=legs.quote.source,
            parking_fee=parking.dollars,
        )
        logger.info("trip %s: %.1f mi, drive=%s rideshare=%.2f (%s)",
                    vehicle, legs.distance.miles, drive, result.rideshare_cost, legs.quote.source)
        return result


class TripSession:
    """
    One screen's worth of requests: a new request abandons the previous one, and the
    vehicle's efficiency can be looked up as soon as year/make/model are filled in.
    """

    def __init__(self, pipeline: TripPipeline):
        self.pipeline = pipeline
        self._current: Optional[TripRequest] = None
        self._lock = threading.Lock()

    def prefetch_efficiency(self, vehicle: Vehicle) -> Optional[FuelEfficiency]:
        try:
            return self.pipeline.lookup_efficiency(vehicle)
        except (NotFound, Unavailable) as e:
            logger.info("efficiency prefetch for %s failed: %s", vehicle, e)
            return None

    def request(self, vehicle: Vehicle, route: RoutePoints, parking_fee: ParkingFee | None = None) -> TripRequest:
        req = self.pipeline.submit(vehicle, route, parking_fee)
        with self._lock:
            previous, self._current = self._current, req
        if previous is not None:
            previous.cancel()
        return req
