import os
import sys

import pandas as pd

from bikeshare_panel import config
from bikeshare_panel.etl import aggregate_weather, clean_trips, load_trips, load_weather
from bikeshare_panel.features import add_calendar_features, add_lag_features
from bikeshare_panel.panel import build_panel, join_weather
from bikeshare_panel.plots import (
    plot_animated_map,
    plot_error_map,
    plot_observed_vs_predicted,
    plot_time_of_day_maps,
    plot_trip_histogram,
    plot_trip_series,
    plot_weekly_errors,
    save_chart,
)
from bikeshare_panel.spatial import attach_tracts, build_station_table, load_points, load_tracts
from bikeshare_panel.split import choose_windows, ordered_weeks, partition
from bikeshare_panel.train import (
    MODEL_SPECS,
    cross_validate,
    evaluate,
    fit_model_bank,
    summarize_cv,
    weekly_errors,
)


# ----------------------------
# Stages
# ----------------------------

def build_features(trips, weather_hours, stations=None):
    """Panel with weather, calendar fields and lags, ready for modelling."""
    panel = build_panel(trips, stations)
    panel = join_weather(panel, weather_hours)
    panel = add_calendar_features(panel)
    return add_lag_features(panel)


def run(trips, weather_hours, tracts=None, colleges=None, stations=None,
        n_train=config.TRAIN_WEEKS_COUNT, n_test=config.TEST_WEEKS_COUNT,
        folds=config.CV_FOLDS, specs=MODEL_SPECS):
    """Cleaned trips and hourly weather in, fitted models and error tables out."""
    if tracts is not None:
        trips = attach_tracts(trips, tracts)
    station_table = build_station_table(trips, stations, tracts, colleges)

    panel = build_features(trips, weather_hours, station_table)

    train_weeks, test_weeks, cv_weeks = choose_windows(ordered_weeks(panel), n_train, n_test)
    print(f"Train weeks {train_weeks}, test weeks {test_weeks}, CV weeks {cv_weeks}")
    train, test, removed = partition(panel, train_weeks, test_weeks)

    fits = fit_model_bank(train, specs)

    print("Evaluating on test weeks:")
    predictions = evaluate(fits, test, specs)
    baseline = (test[config.TARGET_COL] - train[config.TARGET_COL].mean()).abs().mean()
    print(f"  baseline (training mean): test MAE {baseline:.3f}")
    errors = weekly_errors(predictions)

    cv_panel = panel[panel[config.WEEK_COL].isin(cv_weeks)]
    cv_results = [cross_validate(cv_panel, spec, folds) for spec in specs]
    cv_folds = pd.concat(cv_results, ignore_index=True)
    cv_summary = summarize_cv(cv_folds)
    for row in cv_summary.itertuples():
        print(f"  {row.model}: CV MAE {row.mean_mae:.3f} (sd {row.sd_mae:.3f})")

    return {
        "trips": trips,
        "stations": station_table,
        "panel": panel,
        "train": train,
        "test": test,
        "removed_stations": removed,
        "fits": fits,
        "predictions": predictions,
        "weekly_errors": errors,
        "cv_folds": cv_folds,
        "cv_summary": cv_summary,
    }


def write_outputs(result, output_dir=config.OUTPUT_DIR):
    os.makedirs(output_dir, exist_ok=True)

    for name in ("weekly_errors", "cv_folds", "cv_summary"):
        path = os.path.join(output_dir, f"{name}.csv")
        print(f"Saving {path}")
        result[name].to_csv(path, index=False)

    panel, predictions = result["panel"], result["predictions"]
    charts = {
        "trips_per_hour.html": plot_trip_series(panel),
        "trip_count_histogram.html": plot_trip_histogram(panel),
        "time_of_day_maps.html": plot_time_of_day_maps(panel),
        "animated_map.html": plot_animated_map(result["trips"]),
        "weekly_mae.html": plot_weekly_errors(result["weekly_errors"]),
        "observed_vs_predicted.html": plot_observed_vs_predicted(predictions),
        "station_error_map.html": plot_error_map(predictions),
    }
    for filename, chart in charts.items():
        save_chart(chart, os.path.join(output_dir, filename))


# ----------------------------
# Main
# ----------------------------

def load_inputs():
    trips = clean_trips(load_trips(config.TRIPS_GLOB))
    weather_hours = aggregate_weather(load_weather(config.WEATHER_FILE))

    tracts = load_tracts(config.TRACTS_FILE) if os.path.exists(config.TRACTS_FILE) else None
    colleges = load_points(config.COLLEGES_FILE) if os.path.exists(config.COLLEGES_FILE) else None
    stations = load_points(config.STATIONS_FILE) if os.path.exists(config.STATIONS_FILE) else None
    return trips, weather_hours, tracts, colleges, stations


def main():
    try:
        trips, weather_hours, tracts, colleges, stations = load_inputs()
        result = run(trips, weather_hours, tracts, colleges, stations)
        write_outputs(result)
        print("Analysis complete")

    except FileNotFoundError as e:
        print(str(e))
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
