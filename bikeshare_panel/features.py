from bikeshare_panel.config import LAG_OFFSETS, STATION_COL, TARGET_COL
from bikeshare_panel.etl import add_calendar_fields


def add_calendar_features(df):
    return add_calendar_fields(df, ts_col="hour_bucket")


def add_lag_features(df, offsets=LAG_OFFSETS):
    """Trip count ``n`` rows earlier in the same station's hourly sequence.

    The first ``n`` rows of every station get NaN; shifts never cross stations.
    """
    df = df.sort_values([STATION_COL, "hour_bucket"]).reset_index(drop=True)
    grp = df.groupby(STATION_COL, sort=False)[TARGET_COL]

    for n in offsets:
        df[f"lag_{n}"] = grp.shift(n)
    return df
