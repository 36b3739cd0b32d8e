import os

import altair as alt
import numpy as np
import pydeck as pdk

from bikeshare_panel.config import STATION_COL, TARGET_COL, TIME_OF_DAY_LABELS, WEEK_COL

# Panels and 15-minute frames run well past the 5000-row default.
alt.data_transformers.disable_max_rows()


def plot_trip_series(panel):
    hourly = panel.groupby("hour_bucket", as_index=False)[TARGET_COL].sum()
    return alt.Chart(hourly).mark_line(strokeWidth=1.5).encode(
        x=alt.X("hour_bucket:T", title="Hour"),
        y=alt.Y(f"{TARGET_COL}:Q", title="Trips"),
        tooltip=[alt.Tooltip("hour_bucket:T", title="Hour"), alt.Tooltip(f"{TARGET_COL}:Q", title="Trips")],
    ).properties(height=300, width=800, title="Trips per hour")


def plot_trip_histogram(panel):
    counts = panel[TARGET_COL].value_counts().rename_axis(TARGET_COL).reset_index(name="station_hours")
    return alt.Chart(counts).mark_bar(color="#1f77b4").encode(
        x=alt.X(f"{TARGET_COL}:O", title="Trips per station-hour"),
        y=alt.Y("station_hours:Q", title="Station-hours"),
    ).properties(height=300, title="Distribution of station-hour trip counts")


def plot_time_of_day_maps(panel):
    """Station maps faceted by weekday/weekend and time of day, sized by trips."""
    volume = (
        panel.assign(day_type=np.where(panel["weekend"] == 1, "Weekend", "Weekday"))
        .groupby([STATION_COL, "start_lat", "start_lng", "day_type", "time_of_day"], as_index=False)[TARGET_COL]
        .sum()
    )
    return alt.Chart(volume).mark_circle(opacity=0.6).encode(
        longitude="start_lng:Q",
        latitude="start_lat:Q",
        size=alt.Size(f"{TARGET_COL}:Q", title="Trips"),
        color=alt.Color(f"{TARGET_COL}:Q", scale=alt.Scale(scheme="viridis"), legend=None),
        tooltip=[alt.Tooltip(f"{STATION_COL}:N", title="Station"), alt.Tooltip(f"{TARGET_COL}:Q", title="Trips")],
    ).properties(width=220, height=220).facet(
        row=alt.Row("day_type:N", title=None),
        column=alt.Column("time_of_day:N", sort=list(TIME_OF_DAY_LABELS), title=None),
    )


def plot_animated_map(trips, week=None):
    """Station departures per 15-minute bucket, stepped through with a slider.

    ``week`` is an ISO year-week such as ``"2024-W03"``; defaults to the week
    of the earliest trip.
    """
    if week is None:
        week = trips.loc[trips["start_time"].idxmin(), WEEK_COL]
    frames = (
        trips[trips[WEEK_COL] == week]
        .groupby(["quarter_bucket", STATION_COL], as_index=False)
        .agg(start_lat=("start_lat", "mean"), start_lng=("start_lng", "mean"), trips=("start_time", "size"))
        .sort_values("quarter_bucket")
    )
    frames["frame"] = frames["quarter_bucket"].rank(method="dense").astype(int) - 1
    frames["label"] = frames["quarter_bucket"].dt.strftime("%a %H:%M")

    step = alt.param(
        name="interval_step",
        value=0,
        bind=alt.binding_range(min=0, max=int(frames["frame"].max()), step=1, name="15-min interval "),
    )
    return alt.Chart(frames).mark_circle(color="#FF4B4B", opacity=0.7).encode(
        longitude="start_lng:Q",
        latitude="start_lat:Q",
        size=alt.Size("trips:Q", scale=alt.Scale(domain=[0, int(frames["trips"].max())]), title="Trips"),
        tooltip=["label:N", f"{STATION_COL}:N", "trips:Q"],
    ).add_params(step).transform_filter(
        alt.datum.frame == step
    ).properties(width=600, height=600, title=f"Departures by 15-minute interval, week {week}")


def plot_weekly_errors(errors):
    return alt.Chart(errors).mark_bar().encode(
        x=alt.X(f"{WEEK_COL}:O", title="Week"),
        xOffset="model:N",
        y=alt.Y("mae:Q", title="Mean absolute error"),
        color=alt.Color("model:N", legend=alt.Legend(title="Model", orient="top")),
        tooltip=["model:N", f"{WEEK_COL}:O", alt.Tooltip("mae:Q", format=",.3f"), alt.Tooltip("sd_ae:Q", format=",.3f")],
    ).properties(height=350, title="Test MAE by week")


def plot_observed_vs_predicted(predictions):
    totals = predictions.groupby(["model", "hour_bucket"], as_index=False)[["observed", "predicted"]].sum()
    long = totals.melt(id_vars=["model", "hour_bucket"], var_name="series", value_name="trips")
    return alt.Chart(long).mark_line(strokeWidth=1).encode(
        x=alt.X("hour_bucket:T", title="Hour"),
        y=alt.Y("trips:Q", title="Trips"),
        color=alt.Color(
            "series:N",
            scale=alt.Scale(domain=["observed", "predicted"], range=["#1f77b4", "#ff7f0e"]),
            legend=alt.Legend(title=None, orient="top"),
        ),
    ).properties(width=800, height=150).facet(row=alt.Row("model:N", title=None))


def plot_error_map(predictions, model=None):
    """Column map of station MAE for one model (the last one by default)."""
    if model is None:
        model = predictions["model"].iloc[-1]
    data = (
        predictions[predictions["model"] == model]
        .groupby(STATION_COL, as_index=False)
        .agg(start_lat=("start_lat", "mean"), start_lng=("start_lng", "mean"), mae=("abs_error", "mean"))
    )
    max_mae = data["mae"].max() or 1
    data["norm_height"] = (data["mae"] / max_mae) * 2000

    layer = pdk.Layer(
        "ColumnLayer",
        data,
        get_position=["start_lng", "start_lat"],
        elevation_scale=1,
        radius=60,
        get_fill_color="[255, 165 - (norm_height / 2000) * 165, 0, 140]",
        extruded=True,
        pickable=True,
        get_elevation="norm_height",
    )
    view = pdk.ViewState(
        latitude=float(data["start_lat"].mean()),
        longitude=float(data["start_lng"].mean()),
        zoom=12,
        pitch=50,
    )
    return pdk.Deck(
        layers=[layer],
        initial_view_state=view,
        tooltip={"html": f"<b>Station:</b> {{{STATION_COL}}}<br/><b>MAE:</b> {{mae}}"},
    )


def save_chart(chart, path):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    print(f"Saving {path}")
    if isinstance(chart, pdk.Deck):
        chart.to_html(path, open_browser=False, notebook_display=False)
    else:
        chart.save(path)
    return path
