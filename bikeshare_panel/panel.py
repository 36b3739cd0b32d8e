import pandas as pd

from bikeshare_panel.config import STATION_COL, TARGET_COL, WEATHER_COLS
from bikeshare_panel.spatial import station_coordinates


def build_panel(trips, stations=None):
    """Complete station x hour grid with trip counts, zero where a station saw no trips.

    Hours are every distinct hour bucket in the trips, stations every distinct
    start station id. Station metadata comes from ``stations`` (see
    ``spatial.build_station_table``) or, without it, from the trips themselves.
    Stations lacking coordinates are left out of the grid.
    """
    if trips.empty:
        raise ValueError("Cannot build a panel from an empty trip table")

    meta = stations if stations is not None else station_coordinates(trips)
    meta = meta.drop_duplicates(STATION_COL)

    station_ids = pd.Index(trips[STATION_COL].dropna().unique())
    known = meta.dropna(subset=["start_lat", "start_lng"])[STATION_COL]
    excluded = station_ids.difference(known)
    if len(excluded):
        print(f"Excluded {len(excluded)} stations without coordinates: {list(excluded)[:10]}")
    station_ids = station_ids.intersection(known).sort_values()

    hours = pd.Index(trips["hour_bucket"].dropna().unique()).sort_values()

    grid = pd.MultiIndex.from_product([station_ids, hours], names=[STATION_COL, "hour_bucket"])
    counts = (
        trips.groupby([STATION_COL, "hour_bucket"])
        .size()
        .reindex(grid, fill_value=0)
        .rename(TARGET_COL)
    )

    panel = counts.reset_index().merge(meta, on=STATION_COL, how="left")
    print(f"Panel: {len(hours)} hours x {len(station_ids)} stations = {len(panel)} rows")
    return panel


def join_weather(panel, weather_hours):
    """Attach hourly weather by exact hour bucket; hours without weather keep NaN."""
    weather = weather_hours[["hour_bucket"] + WEATHER_COLS].drop_duplicates("hour_bucket")
    joined = panel.drop(columns=[c for c in WEATHER_COLS if c in panel.columns]).merge(
        weather, on="hour_bucket", how="left"
    )

    n_missing = joined["temperature"].isna().groupby(joined["hour_bucket"]).any().sum()
    if n_missing:
        print(f"{n_missing} panel hours have no weather record")
    return joined
