"""
Weather Forecast Client (Open-Meteo)

Feeds the weather widget on the task board: current conditions plus a
7-day forecast for the farm, and a simple "good day for field work"
flag per day.

DESIGN DECISION: Weather is nice-to-have. fetch() returns None on any
failure (after retries) and logs a warning; the board renders without
the widget rather than showing an error.
"""

import math
from datetime import date
from typing import Optional

import requests
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from farmbook.config import WeatherSettings, get_settings
from farmbook.models.weather import (
    CurrentWeather,
    WeatherCondition,
    WeatherDay,
    WeatherReport,
)


logger = structlog.get_logger(__name__)


CURRENT_FIELDS = "temperature_2m,weather_code,wind_speed_10m"
DAILY_FIELDS = (
    "weather_code,temperature_2m_max,temperature_2m_min,"
    "precipitation_sum,wind_speed_10m_max"
)

# WMO weather interpretation codes
WEATHER_CODES: dict[int, WeatherCondition] = {
    0: WeatherCondition(label="晴れ", icon="☀️"),
    1: WeatherCondition(label="晴れ", icon="🌤️"),
    2: WeatherCondition(label="くもり", icon="⛅"),
    3: WeatherCondition(label="くもり", icon="☁️"),
    45: WeatherCondition(label="霧", icon="🌫️"),
    48: WeatherCondition(label="霧", icon="🌫️"),
    51: WeatherCondition(label="小雨", icon="🌧️"),
    53: WeatherCondition(label="雨", icon="🌧️"),
    55: WeatherCondition(label="雨", icon="🌧️"),
    61: WeatherCondition(label="雨", icon="🌧️"),
    63: WeatherCondition(label="雨", icon="🌧️"),
    65: WeatherCondition(label="大雨", icon="⛈️"),
    71: WeatherCondition(label="雪", icon="🌨️"),
    73: WeatherCondition(label="雪", icon="🌨️"),
    75: WeatherCondition(label="大雪", icon="❄️"),
    80: WeatherCondition(label="にわか雨", icon="🌦️"),
    81: WeatherCondition(label="にわか雨", icon="🌦️"),
    82: WeatherCondition(label="にわか雨", icon="🌦️"),
    95: WeatherCondition(label="雷雨", icon="⛈️"),
    96: WeatherCondition(label="雷雨", icon="⛈️"),
    99: WeatherCondition(label="雷雨", icon="⛈️"),
}

UNKNOWN_WEATHER = WeatherCondition(label="不明", icon="❓")

GOOD_WEATHER_CODES = {0, 1, 2}


def weather_info(code: int) -> WeatherCondition:
    """Label and icon for a weather code."""
    return WEATHER_CODES.get(code, UNKNOWN_WEATHER)


def is_good_farming_day(day: WeatherDay) -> bool:
    """No rain, not too windy, and clear to partly cloudy."""
    return (
        day.precipitation < 1
        and day.wind_speed < 30
        and day.weather_code in GOOD_WEATHER_CODES
    )


def _js_round(value: float) -> int:
    """Round halves up (2.5 -> 3, -2.5 -> -2) like the web widget does."""
    return math.floor(value + 0.5)


def parse_forecast(data: dict) -> WeatherReport:
    """Convert an Open-Meteo JSON response into a WeatherReport."""
    current = data["current"]
    daily = data["daily"]

    days = []
    for i, day in enumerate(daily["time"]):
        days.append(WeatherDay(
            day=date.fromisoformat(day),
            weather_code=daily["weather_code"][i],
            temp_max=_js_round(daily["temperature_2m_max"][i]),
            temp_min=_js_round(daily["temperature_2m_min"][i]),
            precipitation=daily["precipitation_sum"][i] or 0.0,
            wind_speed=_js_round(daily["wind_speed_10m_max"][i]),
        ))

    return WeatherReport(
        current=CurrentWeather(
            temperature=_js_round(current["temperature_2m"]),
            weather_code=current["weather_code"],
            wind_speed=_js_round(current["wind_speed_10m"]),
        ),
        daily=days,
    )


class OpenMeteoClient:
    """Forecast client for the farm's location."""

    def __init__(
        self,
        settings: Optional[WeatherSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().weather
        self._session = session or requests.Session()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(requests.RequestException),
        reraise=True,
    )
    def _get(self, params: dict) -> dict:
        response = self._session.get(
            self._settings.endpoint,
            params=params,
            timeout=self._settings.request_timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    def fetch(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Optional[WeatherReport]:
        """
        Fetch current weather and the daily forecast.

        Returns None if the forecast could not be fetched or parsed.
        """
        params = {
            "latitude": latitude if latitude is not None else self._settings.latitude,
            "longitude": longitude if longitude is not None else self._settings.longitude,
            "current": CURRENT_FIELDS,
            "daily": DAILY_FIELDS,
            "timezone": self._settings.timezone,
            "forecast_days": self._settings.forecast_days,
        }
        try:
            return parse_forecast(self._get(params))
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("weather_fetch_failed", error=str(e))
            return None
