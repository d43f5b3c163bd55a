"""Current weather from OpenWeather, mapped to a listening mood.

Public entry points: :func:`weather_by_city`, :func:`weather_by_coords`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

import config

logger = logging.getLogger(__name__)

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"

# OpenWeather description → mood and genres to try
WEATHER_MOOD_MAP: dict[str, dict[str, Any]] = {
    "clear sky": {"mood": "happy", "genres": ["pop", "dance", "funk", "disco"]},
    "few clouds": {"mood": "relaxed", "genres": ["indie", "alternative", "chill"]},
    "scattered clouds": {"mood": "contemplative", "genres": ["indie-rock", "alternative", "folk"]},
    "broken clouds": {"mood": "mellow", "genres": ["acoustic", "singer-songwriter", "indie"]},
    "shower rain": {"mood": "cozy", "genres": ["jazz", "blues", "soul"]},
    "rain": {"mood": "melancholic", "genres": ["indie", "alternative", "ambient"]},
    "thunderstorm": {"mood": "intense", "genres": ["rock", "metal", "electronic"]},
    "snow": {"mood": "peaceful", "genres": ["classical", "ambient", "folk"]},
    "mist": {"mood": "dreamy", "genres": ["ambient", "chillout", "downtempo"]},
}
DEFAULT_DESCRIPTION = "few clouds"


class WeatherUnavailable(RuntimeError):
    """Raised when no API key is configured or OpenWeather cannot be reached."""


def mood_for_description(description: str) -> dict[str, Any]:
    return WEATHER_MOOD_MAP.get(description.lower(), WEATHER_MOOD_MAP[DEFAULT_DESCRIPTION])


def summarize(weather: dict[str, Any], include_coords: bool = False) -> dict[str, Any]:
    """Shape an OpenWeather payload into ``{weather, mood, recommendedGenres}``."""
    description = weather["weather"][0]["description"]
    summary: dict[str, Any] = {
        "city": weather.get("name"),
        "country": (weather.get("sys") or {}).get("country"),
        "temperature": round(weather["main"]["temp"]),
        "description": description,
        "icon": weather["weather"][0].get("icon"),
        "humidity": weather["main"].get("humidity"),
        "windSpeed": (weather.get("wind") or {}).get("speed"),
    }
    if include_coords:
        coord = weather.get("coord") or {}
        summary["coordinates"] = {"lat": coord.get("lat"), "lon": coord.get("lon")}

    mood_data = mood_for_description(description)
    return {
        "weather": summary,
        "mood": mood_data["mood"],
        "recommendedGenres": list(mood_data["genres"]),
    }


async def _fetch(params: dict[str, Any], url: str, api_key: Optional[str]) -> dict[str, Any]:
    api_key = config.OPENWEATHER_API_KEY if api_key is None else api_key
    if not api_key:
        raise WeatherUnavailable("OpenWeather API key not configured")

    query = {**params, "appid": api_key, "units": "metric"}
    timeout = aiohttp.ClientTimeout(total=config.REQUEST_TIMEOUT_SECONDS)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, params=query) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    logger.warning(f"[weather] OpenWeather {resp.status}: {text[:200]}")
                    raise WeatherUnavailable(f"OpenWeather returned {resp.status}")
                return await resp.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning(f"[weather] OpenWeather request failed: {type(exc).__name__}: {exc}")
        raise WeatherUnavailable("Failed to fetch weather data") from exc


def _summarize_or_raise(weather: dict[str, Any], include_coords: bool = False) -> dict[str, Any]:
    try:
        return summarize(weather, include_coords)
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        logger.warning(f"[weather] Malformed OpenWeather payload: {type(exc).__name__}: {exc}")
        raise WeatherUnavailable("Failed to fetch weather data") from exc


async def weather_by_city(
    city: str, *, url: str = OPENWEATHER_URL, api_key: Optional[str] = None
) -> dict[str, Any]:
    weather = await _fetch({"q": city}, url, api_key)
    return _summarize_or_raise(weather)


async def weather_by_coords(
    lat: float, lon: float, *, url: str = OPENWEATHER_URL, api_key: Optional[str] = None
) -> dict[str, Any]:
    weather = await _fetch({"lat": lat, "lon": lon}, url, api_key)
    return _summarize_or_raise(weather, include_coords=True)
