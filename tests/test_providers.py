import threading

import pytest

from domain.errors import NotFound, Unavailable
from domain.trip import Vehicle
from services.providers.distance_matrix import DistanceMatrixResolver
from services.providers.fuel_price import EiaFuelPriceResolver, shared_resolver
from services.providers.fueleconomy import FuelEconomyResolver
from services.providers.http import ProviderError
from services.providers.rideshare import RideshareCostEstimator, RideshareStrategy, price_from_entry
from services.settings import Settings

from fakes import CAMRY, FE_ROUTES, ROUTE, FakeHttp

# ---------- fueleconomy.gov ----------


def test_fueleconomy_resolves_first_option_comb08():
    http = FakeHttp(FE_ROUTES)
    eff = FuelEconomyResolver(http).resolve(CAMRY)
    assert eff.combined_mpg == 32.0
    assert eff.vehicle_id == 44444
    options_call = [c for c in http.calls if "menu/options" in c[0]][0]
    assert options_call[1]["make"] == "Toyota" and options_call[1]["model"] == "Camry"


def test_fueleconomy_matches_make_and_model_case_insensitively():
    http = FakeHttp(FE_ROUTES)
    eff = FuelEconomyResolver(http).resolve(Vehicle(2022, "toyota", "CAMRY"))
    assert eff.combined_mpg == 32.0
    options_call = [c for c in http.calls if "menu/options" in c[0]][0]
    assert options_call[1]["make"] == "Toyota"
    assert options_call[1]["model"] == "Camry"


def test_fueleconomy_handles_single_item_menu():
    routes = dict(FE_ROUTES)
    routes["/vehicle/menu/options"] = {"menuItem": {"text": "Auto", "value": "44444"}}
    assert FuelEconomyResolver(FakeHttp(routes)).resolve(CAMRY).combined_mpg == 32.0


@pytest.mark.parametrize("fragment,payload", [
    ("/vehicle/menu/make", {"menuItem": [{"text": "Honda", "value": "Honda"}]}),
    ("/vehicle/menu/model", {"menuItem": []}),
    ("/vehicle/menu/options", {}),
    ("/vehicle/44444", {"id": 44444, "comb08": "0"}),
    ("/vehicle/44444", {"id": 44444}),
])
def test_fueleconomy_missing_data_is_not_found(fragment, payload):
    routes = dict(FE_ROUTES)
    routes[fragment] = payload
    with pytest.raises(NotFound):
        FuelEconomyResolver(FakeHttp(routes)).resolve(CAMRY)


def test_fueleconomy_transport_error_is_unavailable():
    routes = dict(FE_ROUTES)
    routes["/vehicle/44444"] = ProviderError("timeout")
    with pytest.raises(Unavailable):
        FuelEconomyResolver(FakeHttp(routes)).resolve(CAMRY)


# ---------- EIA fuel price ----------

def _eia(value=3.652, period="2024-06-10"):
    return {"response": {"data": [{"period": period, "duoarea": "NUS", "value": value}]}}


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_fuel_price_query_and_parse():
    http = FakeHttp({"api.eia.gov": _eia("3.652")})
    price = EiaFuelPriceResolver(api_key="k", http=http).resolve()
    assert price.dollars_per_gallon == pytest.approx(3.652)
    assert price.as_of.year == 2024 and price.as_of.month == 6
    assert price.source == "live"

    params = http.calls[0][1]
    assert params["frequency"] == "weekly"
    assert params["sort[0][column]"] == "period"
    assert params["sort[0][direction]"] == "desc"
    assert params["size"] == 1
    assert params["facets[duoarea][]"] == "NUS"


def test_fuel_price_without_key_is_unavailable_and_makes_no_call():
    http = FakeHttp({"api.eia.gov": _eia()})
    with pytest.raises(Unavailable):
        EiaFuelPriceResolver(api_key=None, http=http).resolve()
    assert http.calls == []


@pytest.mark.parametrize("payload", [
    {"response": {"data": []}},
    {"response": {}},
    {"error": "bad api key"},
    _eia(value=None),
    _eia(value="n/a"),
    _eia(value=0),
    _eia(value=float("nan")),
    _eia(value="Infinity"),
    ProviderError("HTTP 503"),
])
def test_fuel_price_bad_payloads_are_unavailable(payload):
    with pytest.raises(Unavailable):
        EiaFuelPriceResolver(api_key="k", http=FakeHttp({"api.eia.gov": payload})).resolve()


def test_fuel_price_is_cached_within_ttl_and_refreshed_after():
    clock = Clock()
    values = iter([3.5, 3.9])
    http = FakeHttp({"api.eia.gov": lambda params: _eia(next(values))})
    r = EiaFuelPriceResolver(api_key="k", http=http, ttl_seconds=60, clock=clock)

    assert r.resolve().dollars_per_gallon == 3.5
    clock.now += 59
    assert r.resolve().dollars_per_gallon == 3.5
    assert len(http.calls) == 1

    clock.now += 2
    assert r.resolve().dollars_per_gallon == 3.9
    assert len(http.calls) == 2


def test_fuel_price_failures_are_not_cached():
    responses = [ProviderError("down"), _eia(4.1)]

    def answer(params):
        r = responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    http = FakeHttp({"api.eia.gov": answer})
    r = EiaFuelPriceResolver(api_key="k", http=http)
    with pytest.raises(Unavailable):
        r.resolve()
    assert r.resolve().dollars_per_gallon == 4.1


@pytest.mark.timeout(10)
def test_fuel_price_concurrent_misses_share_one_request():
    gate = threading.Event()

    def slow(params):
        gate.wait(5)
        return _eia(3.7)

    http = FakeHttp({"api.eia.gov": slow})
    r = EiaFuelPriceResolver(api_key="k", http=http)
    results = []
    threads = [threading.Thread(target=lambda: results.append(r.resolve())) for _ in range(8)]
    for t in threads:
        t.start()
    while not http.calls:
        gate.wait(0.01)
    gate.set()
    for t in threads:
        t.join(5)

    assert len(http.calls) == 1
    assert len(results) == 8
    assert {p.dollars_per_gallon for p in results} == {3.7}


def test_shared_resolver_is_process_wide_per_key():
    s = Settings(eia_api_key="shared-test-key")
    assert shared_resolver(s) is shared_resolver(s)
    assert shared_resolver(s) is not shared_resolver(Settings(eia_api_key="other-key"))


def test_shared_resolver_separates_transport_settings():
    fast = shared_resolver(Settings(eia_api_key="transport-key", timeout=2.0))
    slow = shared_resolver(Settings(eia_api_key="transport-key", timeout=30.0))
    retrying = shared_resolver(Settings(eia_api_key="transport-key", timeout=2.0, max_retries=5))
    assert fast is not slow and fast is not retrying
    assert fast.http.timeout == 2.0
    assert slow.http.timeout == 30.0
    assert retrying.http.max_retries == 5


# ---------- Distance matrix ----------

def _matrix(meters=16093.44, status="OK", element_status="OK"):
    return {
        "status": status,
        "rows": [{"elements": [{"status": element_status, "distance": {"value": meters, "text": "10.0 mi"}}]}],
    }


def test_distance_matrix_converts_meters_to_miles():
    http = FakeHttp({"distancematrix": _matrix(16093.44)})
    d = DistanceMatrixResolver(api_key="g", http=http).resolve(ROUTE)
    assert d.miles == pytest.approx(10.0, abs=1e-4)

    params = http.calls[0][1]
    assert params["origins"] == "place_id:ChIJ-origin"
    assert params["destinations"] == "place_id:ChIJ-destination"
    assert params["key"] == "g"


@pytest.mark.parametrize("payload", [
    _matrix(status="REQUEST_DENIED"),
    _matrix(element_status="ZERO_RESULTS"),
    _matrix(element_status="NOT_FOUND"),
    _matrix(meters=None),
    _matrix(meters=-5),
    {"status": "OK", "rows": []},
    {"status": "OK", "rows": [{"elements": []}]},
    {"status": "OK", "rows": [{"elements": [{}, {}]}]},
    [],
    ProviderError("timeout"),
])
def test_distance_matrix_bad_responses_are_unavailable(payload):
    with pytest.raises(Unavailable):
        DistanceMatrixResolver(api_key="g", http=FakeHttp({"distancematrix": payload})).resolve(ROUTE)


def test_distance_matrix_without_key_is_unavailable():
    with pytest.raises(Unavailable):
        DistanceMatrixResolver(api_key=None, http=FakeHttp()).resolve(ROUTE)


# ---------- Rideshare ----------

def test_rideshare_without_token_uses_formula():
    http = FakeHttp()
    est = RideshareCostEstimator(server_token=None, http=http)
    assert est.strategy is RideshareStrategy.FORMULA
    quote = est.estimate(ROUTE, 10)
    assert quote.source == "formula"
    assert quote.dollars == pytest.approx(19.00)
    assert http.calls == []


def test_rideshare_live_uses_first_price_midpoint():
    http = FakeHttp({"api.uber.com": {"prices": [
        {"display_name": "UberX", "estimate": "$21-27", "low_estimate": 21, "high_estimate": 27},
        {"display_name": "Black", "estimate": "$45-55", "low_estimate": 45, "high_estimate": 55},
    ]}})
    est = RideshareCostEstimator(server_token="t", http=http)
    quote = est.estimate(ROUTE, 10)
    assert quote.source == "live"
    assert quote.dollars == 24.0

    url, params, headers = http.calls[0]
    assert headers["Authorization"] == "Token t"
    assert params["start_latitude"] == ROUTE.origin_coordinate.lat
    assert params["end_longitude"] == ROUTE.destination_coordinate.lng


@pytest.mark.parametrize("entry,expected", [
    ({"estimate": "$15-20"}, 17.5),
    ({"estimate": "$18"}, 18.0),
    ({"estimate": "$1,020-1,100"}, 1060.0),
    ({"low_estimate": 9, "high_estimate": 11, "estimate": "ignored"}, 10.0),
])
def test_price_from_entry(entry, expected):
    assert price_from_entry(entry) == expected


@pytest.mark.parametrize("payload", [
    {"prices": []},
    {"prices": [{"estimate": "Metered"}]},
    {"message": "unauthorized"},
    ProviderError("HTTP 401"),
])
def test_rideshare_live_failures_fall_back_to_formula(payload):
    est = RideshareCostEstimator(server_token="t", http=FakeHttp({"api.uber.com": payload}))
    quote = est.estimate(ROUTE, 0)
    assert quote.source == "formula"
    assert quote.dollars == pytest.approx(5.50)
