"""Weather forecast models."""

from datetime import date

from pydantic import BaseModel, Field


class WeatherCondition(BaseModel):
    """Label and icon for a WMO weather code."""

    label: str
    icon: str


class CurrentWeather(BaseModel):
    temperature: int
    weather_code: int
    wind_speed: int


class WeatherDay(BaseModel):
    """One day of the forecast. Temperatures in °C, wind in km/h."""

    day: date
    weather_code: int
    temp_max: int
    temp_min: int
    precipitation: float = Field(ge=0)
    wind_speed: int


class WeatherReport(BaseModel):
    current: CurrentWeather
    daily: list[WeatherDay] = Field(default_factory=list)
