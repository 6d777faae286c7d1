import httpx
import pytest

from netatmo_bridge.core.config import HOMECOACH_URL, WEATHER_URL
from netatmo_bridge.readers.common import DecodeError, TransportError
from netatmo_bridge.readers.homecoach import fetch_homecoach
from netatmo_bridge.readers.weather import fetch_weather

STATIONS = {
    "body": {
        "devices": [
            {
                "_id": "70:ee:50:00:00:01",
                "station_name": "Cottage",
                "home_name": "Cottage",
                "module_name": "Indoor",
                "wifi_status": 56,
                "dashboard_data": {
                    "time_utc": 1700000000,
                    "Temperature": 21.3,
                    "Humidity": 45,
                    "CO2": 612,
                    "Noise": 38,
                    "Pressure": 1013.2,
                },
                "modules": [
                    {
                        "_id": "02:00:00:00:00:01",
                        "module_name": "Outdoor",
                        "battery_percent": 64,
                        "rf_status": 71,
                        "dashboard_data": {"time_utc": 1699999990, "Temperature": 4.2, "Humidity": 88},
                    },
                    {
                        "_id": "05:00:00:00:00:01",
                        "module_name": "",
                        "battery_percent": 10,
                        "rf_status": 90,
                        "reachable": False,
                    },
                ],
            }
        ]
    },
    "status": "ok",
}

HOMECOACHES = {
    "body": {
        "devices": [
            {
                "_id": "70:ee:50:00:00:99",
                "station_name": "Bedroom",
                "wifi_status": 48,
                "dashboard_data": {
                    "time_utc": 1700000000,
                    "Temperature": 22.1,
                    "CO2": 980,
                    "Humidity": 51,
                    "Noise": 33,
                    "Pressure": 1012.0,
                    "health_idx": 2,
                },
            }
        ]
    }
}


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _json(payload, status=200):
    return lambda request: httpx.Response(status, json=payload)


@pytest.mark.asyncio
async def test_weather_station_and_modules(credential):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["url"] = str(request.url)
        return httpx.Response(200, json=STATIONS)

    async with _client(handler) as client:
        snap = await fetch_weather(credential, client)

    assert seen == {"auth": "Bearer access", "url": WEATHER_URL}
    indoor, outdoor, rain = snap.readings
    assert (indoor.module, indoor.station, indoor.home) == ("Indoor", "Cottage", "Cottage")
    assert indoor.measured_at == 1700000000
    assert dict(indoor.values) == {
        "temperature": 21.3, "humidity": 45, "co2": 612, "noise": 38, "pressure": 1013.2, "wifi": 56,
    }
    assert outdoor.station == "Cottage"
    assert dict(outdoor.values) == {"temperature": 4.2, "humidity": 88, "battery": 64, "rf": 71}
    assert rain.measured_at is None
    assert rain.display_name == "id-05:00:00:00:00:01"
    assert snap.raw == STATIONS["body"]["devices"]


@pytest.mark.asyncio
async def test_station_label_does_not_borrow_home_name(credential):
    payload = {"body": {"devices": [{
        "_id": "70:ee:50:00:00:02",
        "home_name": "Flat",
        "module_name": "Indoor",
        "dashboard_data": {"time_utc": 1700000000, "Temperature": 20.0},
        "modules": [{"_id": "02:00:00:00:00:02", "module_name": "Balcony"}],
    }]}}
    async with _client(_json(payload)) as client:
        readings = (await fetch_weather(credential, client)).readings
    assert [(r.station, r.home) for r in readings] == [("", "Flat"), ("", "Flat")]


@pytest.mark.asyncio
async def test_homecoach_devices(credential):
    async with _client(_json(HOMECOACHES)) as client:
        snap = await fetch_homecoach(credential, client)

    (coach,) = snap.readings
    assert coach.device_class == "homecoach"
    assert coach.display_name == "Bedroom"
    assert coach.measured_at == 1700000000
    assert dict(coach.values) == {
        "temperature": 22.1, "co2": 980, "humidity": 51, "noise": 33,
        "pressure": 1012.0, "health_index": 2, "wifi": 48,
    }


@pytest.mark.asyncio
async def test_homecoach_without_dashboard_reports_nothing(credential):
    payload = {"body": {"devices": [{"_id": "70:ee:50:00:00:98", "name": "Kitchen"}]}}
    async with _client(_json(payload)) as client:
        (coach,) = (await fetch_homecoach(credential, client)).readings
    assert coach.measured_at is None
    assert dict(coach.values) == {}
    assert coach.display_name == "Kitchen"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [403, 500, 503])
async def test_error_status_is_transport_error(credential, status):
    async with _client(_json({"error": {"code": 26}}, status)) as client:
        with pytest.raises(TransportError, match=str(status)):
            await fetch_weather(credential, client)


@pytest.mark.asyncio
async def test_network_failure_is_transport_error(credential):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(TransportError):
            await fetch_homecoach(credential, client)


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(200, text="<html>maintenance</html>"),
    httpx.Response(200, json={"status": "ok"}),
    httpx.Response(200, json={"body": {"devices": "none"}}),
    httpx.Response(200, json={"body": {"devices": [{"_id": "x", "dashboard_data": [1, 2]}]}}),
])
async def test_malformed_payload_is_decode_error(credential, response):
    async with _client(lambda request: response) as client:
        with pytest.raises(DecodeError):
            await fetch_weather(credential, client)


@pytest.mark.asyncio
async def test_homecoach_url(credential):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json=HOMECOACHES)

    async with _client(handler) as client:
        await fetch_homecoach(credential, client)
    assert seen == [HOMECOACH_URL]
