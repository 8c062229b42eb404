"""Weather forecast services package."""

from farmbook.services.weather.open_meteo import (
    WEATHER_CODES,
    OpenMeteoClient,
    is_good_farming_day,
    parse_forecast,
    weather_info,
)

__all__ = [
    "WEATHER_CODES",
    "OpenMeteoClient",
    "is_good_farming_day",
    "parse_forecast",
    "weather_info",
]
