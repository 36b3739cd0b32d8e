from bikeshare_panel.config import STATION_COL, TEST_WEEKS_COUNT, TRAIN_WEEKS_COUNT, WEEK_COL


def ordered_weeks(panel):
    """Distinct ISO year-weeks in the order they first occur in time."""
    first_seen = panel.groupby(WEEK_COL)["hour_bucket"].min().sort_values()
    return list(first_seen.index)


def choose_windows(weeks, n_train=TRAIN_WEEKS_COUNT, n_test=TEST_WEEKS_COUNT):
    """Split an ordered week list into train, test and cross-validation windows.

    The CV window is whatever follows the test window, or the test window
    itself when nothing does.
    """
    weeks = list(weeks)
    if n_train < 1 or n_test < 1:
        raise ValueError("Train and test windows need at least one week each")
    if len(weeks) < n_train + n_test:
        raise ValueError(
            f"Need {n_train + n_test} weeks for a {n_train}/{n_test} split, panel has {len(weeks)}"
        )

    train = weeks[:n_train]
    test = weeks[n_train:n_train + n_test]
    cv = weeks[n_train + n_test:] or test
    return train, test, cv


def partition(panel, train_weeks, test_weeks):
    """Train/test split by week with a station set shared by both sides.

    Stations found on only one side are dropped from both. Returns
    ``(train, test, removed_station_ids)``.
    """
    train_weeks, test_weeks = list(train_weeks), list(test_weeks)
    if not train_weeks or not test_weeks:
        raise ValueError("Train and test windows must each contain at least one week")
    overlap = set(train_weeks) & set(test_weeks)
    if overlap:
        raise ValueError(f"Train and test windows overlap in weeks {sorted(overlap)}")

    order = {w: i for i, w in enumerate(ordered_weeks(panel))}
    unknown = [w for w in train_weeks + test_weeks if w not in order]
    if unknown:
        raise ValueError(f"Weeks {unknown} are not in the panel")
    if max(order[w] for w in train_weeks) > min(order[w] for w in test_weeks):
        raise ValueError("Test window must come after the training window")

    train = panel[panel[WEEK_COL].isin(train_weeks)]
    test = panel[panel[WEEK_COL].isin(test_weeks)]

    train_ids = set(train[STATION_COL])
    test_ids = set(test[STATION_COL])
    removed = (train_ids - test_ids) | (test_ids - train_ids)
    if removed:
        print(f"Removing {len(removed)} stations not present in both train and test windows")

    train = train[~train[STATION_COL].isin(removed)].reset_index(drop=True)
    test = test[~test[STATION_COL].isin(removed)].reset_index(drop=True)
    return train, test, sorted(removed)
