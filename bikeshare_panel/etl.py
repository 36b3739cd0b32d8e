import glob

import duckdb
import numpy as np
import pandas as pd
import requests

from bikeshare_panel.config import (
    DOTW_LABELS,
    EXCLUDED_STATIONS,
    TEMP_FALLBACK,
    TIME_OF_DAY_BOUNDS,
    TIME_OF_DAY_LABELS,
    TRIP_ALIASES,
    TRIP_COORDS,
    WEATHER_ALIASES,
    WEATHER_LAT,
    WEATHER_LON,
    WEATHER_TIMEZONE,
    WEATHER_URL,
    WEEK_COL,
)


# ----------------------------
# Helpers
# ----------------------------

def normalize_columns(df, aliases):
    df = df.copy()
    df.columns = [c.strip().lower() for c in df.columns]
    return df.rename(columns={k: v for k, v in aliases.items() if v not in df.columns})


def as_timestamp(values):
    """Naive nanosecond timestamps, whatever DuckDB or the CSV handed back."""
    return pd.to_datetime(values, errors="coerce").astype("datetime64[ns]")


def as_station_id(values):
    """String ids; whole-number floats (ids read next to NULLs) lose the '.0'."""
    if pd.api.types.is_float_dtype(values):
        values = values.astype("Int64")
    return values.astype(str).where(values.notna())


def time_of_day(hours):
    hours = np.asarray(hours)
    am, mid, pm, night = TIME_OF_DAY_BOUNDS
    overnight, am_rush, mid_day, pm_rush = TIME_OF_DAY_LABELS
    return np.select(
        [(hours >= am) & (hours < mid), (hours >= mid) & (hours < pm), (hours >= pm) & (hours < night)],
        [am_rush, mid_day, pm_rush],
        default=overnight,
    )


def add_calendar_fields(df, ts_col="hour_bucket"):
    df = df.copy()
    ts = df[ts_col]
    df["week"] = ts.dt.isocalendar().week.astype(int).to_numpy()
    df[WEEK_COL] = ts.dt.strftime("%G-W%V")
    df["dotw"] = [DOTW_LABELS[d] for d in ts.dt.dayofweek]
    df["hour"] = ts.dt.hour
    df["weekend"] = (ts.dt.dayofweek >= 5).astype(int)
    df["time_of_day"] = time_of_day(df["hour"])
    return df


# ----------------------------
# Trips
# ----------------------------

def load_trips(path_glob):
    files = sorted(glob.glob(path_glob))
    if not files:
        raise FileNotFoundError(f"No trip files match {path_glob}")

    print(f"Loading {len(files)} trip file(s)")
    file_list = ", ".join("'" + f.replace("'", "''") + "'" for f in files)
    with duckdb.connect(":memory:") as con:
        trips = con.execute(
            f"SELECT * FROM read_csv_auto([{file_list}], union_by_name=true, ignore_errors=true)"
        ).df()

    return normalize_columns(trips, TRIP_ALIASES)


def clean_trips(trips, excluded=EXCLUDED_STATIONS):
    df = normalize_columns(trips, TRIP_ALIASES)

    missing = [c for c in ["start_time", "start_station_id"] + TRIP_COORDS if c not in df.columns]
    if missing:
        raise ValueError(f"Trip data is missing columns: {missing}")

    df["start_time"] = as_timestamp(df["start_time"])
    if "end_time" in df.columns:
        df["end_time"] = as_timestamp(df["end_time"])

    n_raw = len(df)
    df = df.dropna(subset=["start_time", "start_station_id"])
    n_no_id = n_raw - len(df)

    n_before = len(df)
    df = df.dropna(subset=TRIP_COORDS)
    n_no_coords = n_before - len(df)

    df["start_station_id"] = as_station_id(df["start_station_id"])
    if "end_station_id" in df.columns:
        df["end_station_id"] = as_station_id(df["end_station_id"])

    n_before = len(df)
    df = df[~df["start_station_id"].isin([str(s) for s in excluded])]
    n_excluded = n_before - len(df)

    print(
        f"Trips: {n_raw} loaded, dropped {n_no_id} without start time/station, "
        f"{n_no_coords} without coordinates, {n_excluded} at excluded stations"
    )

    df["hour_bucket"] = df["start_time"].dt.floor("h")
    df["quarter_bucket"] = df["start_time"].dt.floor("15min")
    return add_calendar_fields(df).reset_index(drop=True)


# ----------------------------
# Weather
# ----------------------------

def fetch_weather_data(start_date, end_date):
    print(f"Fetching weather data for {start_date} to {end_date}")

    params = {
        "latitude": WEATHER_LAT,
        "longitude": WEATHER_LON,
        "start_date": start_date,
        "end_date": end_date,
        "hourly": "temperature_2m,precipitation,wind_speed_10m",
        "temperature_unit": "fahrenheit",
        "timezone": WEATHER_TIMEZONE,
    }

    r = requests.get(WEATHER_URL, params=params)
    r.raise_for_status()
    hourly = r.json()["hourly"]

    return pd.DataFrame({
        "time": pd.to_datetime(hourly["time"]),
        "temperature": hourly["temperature_2m"],
        "precipitation": hourly["precipitation"],
        "wind_speed": hourly["wind_speed_10m"],
    })


def load_weather(path):
    print(f"Loading weather from {path}")
    weather = normalize_columns(pd.read_csv(path), WEATHER_ALIASES)

    missing = [c for c in ["time", "temperature", "precipitation", "wind_speed"] if c not in weather.columns]
    if missing:
        raise ValueError(f"Weather data is missing columns: {missing}")

    weather["time"] = as_timestamp(weather["time"])
    for col in ["temperature", "precipitation", "wind_speed"]:
        weather[col] = pd.to_numeric(weather[col], errors="coerce")
    return weather


def aggregate_weather(weather):
    """One row per hour bucket: max temperature, summed precipitation, max wind.

    A max temperature of exactly zero is a sensor dropout and is replaced
    with TEMP_FALLBACK. Hours where every reading is missing stay missing.
    """
    with duckdb.connect(":memory:") as con:
        con.register("weather_raw", weather[["time", "temperature", "precipitation", "wind_speed"]])
        hours = con.execute(f"""
            WITH hourly AS (
                SELECT
                    date_trunc('hour', CAST(time AS TIMESTAMP)) AS hour_bucket,
                    MAX(temperature) AS temperature,
                    SUM(precipitation) AS precipitation,
                    MAX(wind_speed) AS wind_speed
                FROM weather_raw
                WHERE time IS NOT NULL
                GROUP BY 1
            )
            SELECT
                hour_bucket,
                CASE WHEN temperature = 0 THEN {TEMP_FALLBACK} ELSE temperature END AS temperature,
                precipitation,
                wind_speed
            FROM hourly
            ORDER BY hour_bucket
        """).df()

    hours["hour_bucket"] = as_timestamp(hours["hour_bucket"])
    for col in ["temperature", "precipitation", "wind_speed"]:
        hours[col] = hours[col].astype(float)
    return hours
