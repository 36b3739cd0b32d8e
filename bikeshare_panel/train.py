from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from patsy import PatsyError
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import KFold

from bikeshare_panel.config import CV_FOLDS, MODELS, RANDOM_STATE, STATION_COL, TARGET_COL, WEEK_COL


class ModelFitError(RuntimeError):
    """A model specification could not be fitted or applied."""


# ----------------------------
# Specifications
# ----------------------------

@dataclass(frozen=True)
class ModelSpec:
    name: str
    categorical: tuple = ()
    numeric: tuple = ()

    @property
    def columns(self):
        return list(self.categorical) + list(self.numeric)

    @property
    def formula(self):
        terms = [f"C({c})" for c in self.categorical] + list(self.numeric)
        return f"{TARGET_COL} ~ {' + '.join(terms) or '1'}"


MODEL_SPECS = [ModelSpec(name, tuple(cat), tuple(num)) for name, (cat, num) in MODELS.items()]


def complete_rows(spec, df):
    """Rows with a value for the target and every covariate of ``spec``."""
    missing = [c for c in [TARGET_COL] + spec.columns if c not in df.columns]
    if missing:
        raise ModelFitError(f"Model '{spec.name}': columns {missing} are not in the data")
    return df.dropna(subset=[TARGET_COL] + spec.columns)


# ----------------------------
# Fitting
# ----------------------------

def fit_model(spec, train):
    data = complete_rows(spec, train)
    if data.empty:
        raise ModelFitError(f"Model '{spec.name}': no complete training rows")

    try:
        fit = smf.ols(spec.formula, data=data).fit()
    except (PatsyError, ValueError, np.linalg.LinAlgError) as e:
        raise ModelFitError(f"Model '{spec.name}' failed to fit: {e}") from e

    exog = fit.model.exog
    rank = np.linalg.matrix_rank(exog)
    if rank < exog.shape[1]:
        raise ModelFitError(
            f"Model '{spec.name}': design matrix is rank deficient "
            f"({rank} of {exog.shape[1]} columns independent)"
        )
    return fit


def fit_model_bank(train, specs=MODEL_SPECS):
    fits = {}
    for spec in specs:
        print(f"Fitting {spec.name}: {spec.formula}")
        fits[spec.name] = fit_model(spec, train)
    return fits


# ----------------------------
# Evaluation
# ----------------------------

def predict(spec, fit, test):
    data = complete_rows(spec, test)
    if data.empty:
        raise ModelFitError(f"Model '{spec.name}': no complete test rows")

    try:
        preds = np.asarray(fit.predict(data))
    except (PatsyError, ValueError, KeyError) as e:
        raise ModelFitError(f"Model '{spec.name}' failed to predict: {e}") from e

    keep = [c for c in [STATION_COL, "start_station_name", "start_lat", "start_lng", "hour_bucket", WEEK_COL]
            if c in data.columns]
    out = data[keep].copy()
    out["model"] = spec.name
    out["observed"] = data[TARGET_COL].to_numpy()
    out["predicted"] = preds
    out["abs_error"] = (out["observed"] - out["predicted"]).abs()
    return out.reset_index(drop=True)


def evaluate(fits, test, specs=MODEL_SPECS):
    preds = []
    for spec in specs:
        p = predict(spec, fits[spec.name], test)
        print(f"  {spec.name}: test MAE {p['abs_error'].mean():.3f}")
        preds.append(p)
    return pd.concat(preds, ignore_index=True)


def weekly_errors(predictions):
    """Mean and standard deviation of absolute error per model and week."""
    return (
        predictions.groupby(["model", WEEK_COL], sort=False)["abs_error"]
        .agg(mae="mean", sd_ae="std")
        .reset_index()
    )


def cross_validate(data, spec, folds=CV_FOLDS, random_state=RANDOM_STATE):
    rows = complete_rows(spec, data).reset_index(drop=True)
    if len(rows) < folds:
        raise ValueError(f"Model '{spec.name}': {len(rows)} rows cannot fill {folds} folds")

    kf = KFold(n_splits=folds, shuffle=True, random_state=random_state)
    results = []
    for fold, (train_idx, test_idx) in enumerate(kf.split(rows), start=1):
        fit = fit_model(spec, rows.iloc[train_idx])
        p = predict(spec, fit, rows.iloc[test_idx])
        results.append({
            "model": spec.name,
            "fold": fold,
            "mae": mean_absolute_error(p["observed"], p["predicted"]),
            "rmse": np.sqrt(mean_squared_error(p["observed"], p["predicted"])),
            "r2": r2_score(p["observed"], p["predicted"]),
        })
    return pd.DataFrame(results)


def summarize_cv(cv_results):
    return (
        cv_results.groupby("model", sort=False)
        .agg(mean_mae=("mae", "mean"), sd_mae=("mae", "std"), mean_rmse=("rmse", "mean"))
        .reset_index()
    )
