"""Tests for the Open-Meteo forecast client."""

from datetime import date

import pytest

from farmbook.config import WeatherSettings
from farmbook.models.weather import WeatherDay
from farmbook.services.weather import OpenMeteoClient, is_good_farming_day, parse_forecast, weather_info


SAMPLE = {
    "current": {"temperature_2m": 18.5, "weather_code": 1, "wind_speed_10m": 7.4},
    "daily": {
        "time": ["2024-05-01", "2024-05-02"],
        "weather_code": [0, 61],
        "temperature_2m_max": [24.5, 20.2],
        "temperature_2m_min": [-2.5, 11.6],
        "precipitation_sum": [0.0, None],
        "wind_speed_10m_max": [12.5, 35.0],
    },
}


class FakeResponse:
    def __init__(self, data):
        self._data = data

    def raise_for_status(self):
        pass

    def json(self):
        return self._data


class FakeSession:
    def __init__(self, data):
        self.data = data
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        return FakeResponse(self.data)


def make_day(**overrides):
    values = dict(day=date(2024, 5, 1), weather_code=0, temp_max=20, temp_min=10, precipitation=0.0, wind_speed=10)
    values.update(overrides)
    return WeatherDay(**values)


class TestParseForecast:
    """Tests for response parsing."""

    def test_values_rounded_half_up(self):
        """Halves round up, including negatives."""
        report = parse_forecast(SAMPLE)
        assert report.current.temperature == 19
        assert report.current.wind_speed == 7
        assert report.daily[0].temp_max == 25
        assert report.daily[0].temp_min == -2
        assert report.daily[0].wind_speed == 13
        assert report.daily[0].day == date(2024, 5, 1)

    def test_missing_precipitation_is_zero(self):
        """Null rainfall counts as none."""
        assert parse_forecast(SAMPLE).daily[1].precipitation == 0.0


class TestWeatherHelpers:
    """Tests for labels and the field-work flag."""

    def test_weather_info(self):
        """Known and unknown codes."""
        assert weather_info(0).label == "晴れ"
        assert weather_info(1234).label == "不明"

    @pytest.mark.parametrize("overrides,expected", [
        ({}, True),
        ({"precipitation": 1.0}, False),
        ({"wind_speed": 30}, False),
        ({"weather_code": 3}, False),
    ])
    def test_good_farming_day(self, overrides, expected):
        """Dry, calm, and mostly clear."""
        assert is_good_farming_day(make_day(**overrides)) is expected


class TestOpenMeteoClient:
    """Tests for fetching."""

    def test_fetch_uses_settings(self):
        """Location and timezone come from settings."""
        settings = WeatherSettings(latitude=35.0, longitude=139.0, forecast_days=2)
        session = FakeSession(SAMPLE)
        report = OpenMeteoClient(settings, session=session).fetch()

        assert len(report.daily) == 2
        url, params, timeout = session.calls[0]
        assert url == settings.endpoint
        assert params["latitude"] == 35.0
        assert params["forecast_days"] == 2
        assert params["timezone"] == "Asia/Tokyo"
        assert timeout == settings.request_timeout_seconds

    def test_bad_response_returns_none(self):
        """A malformed forecast hides the widget instead of failing."""
        client = OpenMeteoClient(WeatherSettings(), session=FakeSession({"unexpected": True}))
        assert client.fetch() is None
