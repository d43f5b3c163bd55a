"""Weather → mood mapping against a local stand-in for OpenWeather.

Run:
    pytest Backend/test_weather.py
"""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from weather import WeatherUnavailable, mood_for_description, summarize, weather_by_city, weather_by_coords

PARIS = {
    "name": "Paris",
    "sys": {"country": "FR"},
    "coord": {"lat": 48.85, "lon": 2.35},
    "main": {"temp": 17.6, "humidity": 60},
    "wind": {"speed": 3.1},
    "weather": [{"description": "Clear sky", "icon": "01d"}],
}


def _serve(status: int, payload, seen: list):
    async def handler(request: web.Request) -> web.Response:
        seen.append(dict(request.query))
        if status != 200:
            return web.Response(status=status, text="nope")
        return web.json_response(payload)

    app = web.Application()
    app.router.add_get("/weather", handler)
    return TestServer(app)


def _call(status: int, payload, fn, *args):
    seen: list = []

    async def scenario():
        async with _serve(status, payload, seen) as server:
            return await fn(*args, url=str(server.make_url("/weather")), api_key="k")

    return asyncio.run(scenario()), seen


def test_unknown_description_maps_to_default_mood():
    assert mood_for_description("volcanic ash")["mood"] == "relaxed"
    assert mood_for_description("THUNDERSTORM")["mood"] == "intense"


def test_summarize_rounds_temperature_and_maps_mood():
    summary = summarize(PARIS)
    assert summary["mood"] == "happy"
    assert summary["recommendedGenres"][0] == "pop"
    assert summary["weather"]["temperature"] == 18
    assert summary["weather"]["windSpeed"] == 3.1
    assert "coordinates" not in summary["weather"]


def test_weather_by_city_queries_metric_units():
    result, seen = _call(200, PARIS, weather_by_city, "Paris")
    assert result["weather"]["city"] == "Paris"
    assert seen == [{"q": "Paris", "appid": "k", "units": "metric"}]


def test_weather_by_coords_includes_coordinates():
    result, _ = _call(200, PARIS, weather_by_coords, 48.85, 2.35)
    assert result["weather"]["coordinates"] == {"lat": 48.85, "lon": 2.35}


@pytest.mark.parametrize("status,payload", [(401, None), (200, {"name": "Nowhere"})])
def test_upstream_failures_raise(status, payload):
    with pytest.raises(WeatherUnavailable):
        _call(status, payload, weather_by_city, "Nowhere")


def test_missing_api_key_raises_without_calling_out():
    with pytest.raises(WeatherUnavailable, match="not configured"):
        asyncio.run(weather_by_city("Paris", api_key=""))
