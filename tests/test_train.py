import numpy as np
import pytest

from bikeshare_panel.split import partition
from bikeshare_panel.train import (
    MODEL_SPECS,
    ModelFitError,
    ModelSpec,
    cross_validate,
    evaluate,
    fit_model,
    fit_model_bank,
    predict,
    summarize_cv,
    weekly_errors,
)


@pytest.fixture
def split(model_panel):
    train, test, _ = partition(model_panel, ["2024-W01", "2024-W02"], ["2024-W03"])
    return train, test


def test_model_bank_is_nested():
    names = [spec.name for spec in MODEL_SPECS]
    assert names == ["time", "space_weather", "space_time_weather", "space_time_weather_lags"]

    third, fourth = MODEL_SPECS[2], MODEL_SPECS[3]
    assert set(third.columns) < set(fourth.columns)
    assert set(MODEL_SPECS[0].columns) < set(third.columns)
    assert set(MODEL_SPECS[1].columns) < set(third.columns)
    assert fourth.formula.startswith("trip_count ~ C(start_station_id) + C(hour) + C(dotw)")
    assert "lag_24" in fourth.formula


def test_formula_without_terms():
    assert ModelSpec("intercept").formula == "trip_count ~ 1"


def test_fit_and_evaluate_every_model(split):
    train, test = split

    fits = fit_model_bank(train)
    predictions = evaluate(fits, test)

    assert list(fits) == [spec.name for spec in MODEL_SPECS]
    assert set(predictions["model"]) == set(fits)
    assert (predictions["abs_error"] >= 0).all()
    per_model = predictions.groupby("model").size()
    assert (per_model == len(test)).all()


def test_weekly_errors(split):
    train, test = split
    predictions = evaluate(fit_model_bank(train), test)

    errors = weekly_errors(predictions)

    assert list(errors.columns) == ["model", "year_week", "mae", "sd_ae"]
    assert len(errors) == len(MODEL_SPECS)
    lag_model = predictions[predictions["model"] == "space_time_weather_lags"]
    row = errors[errors["model"] == "space_time_weather_lags"].iloc[0]
    assert row["mae"] == pytest.approx(lag_model["abs_error"].mean())
    assert row["sd_ae"] == pytest.approx(lag_model["abs_error"].std())


def test_lag_model_drops_rows_without_lags(model_panel):
    spec = MODEL_SPECS[3]
    fit = fit_model(spec, model_panel)

    # first 24 hours of each of three stations have no lag_24
    assert fit.nobs == len(model_panel) - 3 * 24


def test_empty_partition_names_the_model(split):
    train, _ = split

    with pytest.raises(ModelFitError, match="space_weather"):
        fit_model(MODEL_SPECS[1], train.iloc[0:0])


def test_rank_deficient_design_is_fatal(split):
    train, _ = split
    dry = train.assign(precipitation=0.0)

    with pytest.raises(ModelFitError, match="'space_weather'.*rank deficient"):
        fit_model(MODEL_SPECS[1], dry)


def test_unseen_station_fails_prediction(split):
    train, test = split
    spec = MODEL_SPECS[1]
    fit = fit_model(spec, train[train["start_station_id"] != "C"])

    with pytest.raises(ModelFitError, match="space_weather"):
        predict(spec, fit, test)


def test_missing_column_is_reported(split):
    train, _ = split

    with pytest.raises(ModelFitError, match="capacity"):
        fit_model(ModelSpec("docks", numeric=("capacity",)), train)


def test_cross_validation(model_panel):
    week3 = model_panel[model_panel["week"] == 3]

    folds = cross_validate(week3, MODEL_SPECS[2], folds=4)

    assert list(folds["fold"]) == [1, 2, 3, 4]
    assert (folds["model"] == "space_time_weather").all()
    assert (folds["mae"] > 0).all()
    assert (folds["rmse"] >= folds["mae"]).all()

    summary = summarize_cv(folds)
    assert summary.loc[0, "mean_mae"] == pytest.approx(folds["mae"].mean())
    assert summary.loc[0, "sd_mae"] == pytest.approx(np.std(folds["mae"], ddof=1))


def test_cross_validation_needs_enough_rows(model_panel):
    with pytest.raises(ValueError, match="folds"):
        cross_validate(model_panel.head(3), MODEL_SPECS[0], folds=5)
