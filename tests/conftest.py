import numpy as np
import pandas as pd
import pytest

from bikeshare_panel.etl import clean_trips
from bikeshare_panel.features import add_calendar_features, add_lag_features

STATION_COORDS = {
    "A": (39.95, -75.16),
    "B": (39.96, -75.19),
    "C": (39.94, -75.15),
}


def make_trips(rows, coords=STATION_COORDS):
    """Trip table from (station_id, start_time) pairs; every trip ends at station B."""
    records = []
    for i, (station, start) in enumerate(rows):
        lat, lng = coords.get(station, (np.nan, np.nan))
        start = pd.Timestamp(start)
        records.append({
            "trip_id": i,
            "start_time": start,
            "end_time": start + pd.Timedelta(minutes=12),
            "start_station_id": station,
            "start_station_name": f"Station {station}",
            "start_lat": lat,
            "start_lng": lng,
            "end_station_id": "B",
            "end_station_name": "Station B",
            "end_lat": STATION_COORDS["B"][0],
            "end_lng": STATION_COORDS["B"][1],
        })
    return pd.DataFrame(records)


@pytest.fixture
def scenario_trips():
    # A: 3 trips at 10:00, none at 11:00. B: 1 trip at 10:00.
    # C has no coordinates; its 11:00 trip puts that hour in the panel.
    coords = {k: v for k, v in STATION_COORDS.items() if k != "C"}
    trips = make_trips([
        ("A", "2024-03-04 10:05"),
        ("A", "2024-03-04 10:20"),
        ("A", "2024-03-04 10:55"),
        ("B", "2024-03-04 10:40"),
        ("C", "2024-03-04 11:15"),
    ], coords=coords)
    trips["hour_bucket"] = trips["start_time"].dt.floor("h")
    return trips


@pytest.fixture
def synthetic_trips():
    """Four weeks of trips at three stations, starting Monday 2024-01-01."""
    rng = np.random.default_rng(7)
    hours = pd.date_range("2024-01-01", periods=24 * 28, freq="h")
    rows = []
    for station, scale in [("A", 3.0), ("B", 1.5), ("C", 0.8)]:
        peak = 1 + np.isin(hours.hour, [8, 9, 17, 18])
        for hour, n in zip(hours, rng.poisson(scale * peak)):
            for minute in rng.integers(0, 60, size=n):
                rows.append((station, hour + pd.Timedelta(minutes=int(minute))))
    return clean_trips(make_trips(rows), excluded=())


@pytest.fixture
def raw_weather():
    rng = np.random.default_rng(11)
    times = pd.date_range("2024-01-01", periods=3 * 24 * 28, freq="20min")
    return pd.DataFrame({
        "time": times,
        "temperature": rng.normal(40, 8, len(times)).round(1),
        "precipitation": rng.gamma(0.5, 0.02, len(times)).round(3),
        "wind_speed": rng.uniform(0, 20, len(times)).round(1),
    })


@pytest.fixture
def model_panel():
    """Three stations over three full ISO weeks with weather, calendar fields and lags."""
    rng = np.random.default_rng(3)
    hours = pd.date_range("2024-01-01", periods=24 * 21, freq="h")
    frames = []
    for station, base in [("A", 4.0), ("B", 2.0), ("C", 1.0)]:
        temperature = rng.normal(45, 10, len(hours))
        frames.append(pd.DataFrame({
            "start_station_id": station,
            "start_lat": STATION_COORDS[station][0],
            "start_lng": STATION_COORDS[station][1],
            "hour_bucket": hours,
            "trip_count": rng.poisson(base + 2 * np.isin(hours.hour, [8, 17]) + temperature / 50),
            "temperature": temperature,
            "precipitation": rng.gamma(0.5, 0.05, len(hours)),
            "wind_speed": rng.uniform(0, 20, len(hours)),
        }))
    panel = pd.concat(frames, ignore_index=True)
    return add_lag_features(add_calendar_features(panel))
