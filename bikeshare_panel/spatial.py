import geopandas as gpd
import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from bikeshare_panel.config import GEOGRAPHIC_CRS, PROJECTED_CRS, TRACT_ID_COL


# ----------------------------
# Loading
# ----------------------------

def load_tracts(path):
    print(f"Loading census tracts from {path}")
    tracts = gpd.read_file(path)
    if TRACT_ID_COL not in tracts.columns:
        raise ValueError(f"Tract layer has no {TRACT_ID_COL} column")
    return tracts.to_crs(GEOGRAPHIC_CRS)


def load_points(path, lat_col="lat", lng_col="lng"):
    """Point layer from any geopandas-readable file, or a CSV with lat/lng columns."""
    print(f"Loading points from {path}")
    if str(path).lower().endswith(".csv"):
        return points_from_frame(pd.read_csv(path), lat_col, lng_col)
    return gpd.read_file(path).to_crs(GEOGRAPHIC_CRS)


def points_from_frame(df, lat_col, lng_col):
    return gpd.GeoDataFrame(
        df.copy(),
        geometry=gpd.points_from_xy(df[lng_col], df[lat_col]),
        crs=GEOGRAPHIC_CRS,
    )


# ----------------------------
# Joins
# ----------------------------

def tract_of(df, tracts, lat_col, lng_col):
    """Id of the tract containing each (lat, lng); missing outside every tract."""
    points = points_from_frame(df[[lat_col, lng_col]], lat_col, lng_col)
    joined = gpd.sjoin(
        points,
        tracts[[TRACT_ID_COL, "geometry"]].to_crs(points.crs),
        how="left",
        predicate="within",
    )
    # A point on a shared edge can match two tracts; keep the first.
    joined = joined[~joined.index.duplicated(keep="first")]
    return joined[TRACT_ID_COL].reindex(df.index)


def attach_tracts(trips, tracts):
    trips = trips.copy()
    trips["start_tract"] = tract_of(trips, tracts, "start_lat", "start_lng")
    trips["end_tract"] = tract_of(trips, tracts, "end_lat", "end_lng")

    n_outside = trips["start_tract"].isna().sum()
    if n_outside:
        print(f"{n_outside} trip origins fall outside every census tract")
    return trips


def nearest_distance(points, targets, k=1):
    """Mean distance from each point to its k nearest targets, in PROJECTED_CRS units.

    Equidistant targets are resolved by the KD-tree; the distance is the same
    whichever one it returns.
    """
    if len(targets) == 0:
        raise ValueError("No target points to measure distance to")
    k = min(k, len(targets))

    src = points.to_crs(PROJECTED_CRS).geometry
    dst = targets.to_crs(PROJECTED_CRS).geometry
    tree = cKDTree(np.column_stack([dst.x, dst.y]))
    dist, _ = tree.query(np.column_stack([src.x, src.y]), k=k)

    if k > 1:
        dist = dist.mean(axis=1)
    return pd.Series(dist, index=points.index)


# ----------------------------
# Station reference table
# ----------------------------

def station_coordinates(trips):
    """Name and mean origin coordinates per start station id."""
    aggs = {"start_lat": ("start_lat", "mean"), "start_lng": ("start_lng", "mean")}
    if "start_station_name" in trips.columns:
        aggs["start_station_name"] = ("start_station_name", "first")
    return trips.groupby("start_station_id").agg(**aggs).reset_index()


def build_station_table(trips, stations=None, tracts=None, colleges=None,
                        station_id_col="id", capacity_col="capacity"):
    """One row per station seen in trips, with capacity, college distance and tract attributes."""
    table = station_coordinates(trips)

    n_before = len(table)
    table = table.dropna(subset=["start_lat", "start_lng"]).reset_index(drop=True)
    if len(table) < n_before:
        print(f"Excluded {n_before - len(table)} stations without coordinates")

    if stations is not None:
        docks = pd.DataFrame({
            "start_station_id": stations[station_id_col].astype(str),
            "capacity": pd.to_numeric(stations[capacity_col], errors="coerce"),
        }).drop_duplicates("start_station_id")
        table = table.merge(docks, on="start_station_id", how="left")

    points = points_from_frame(table, "start_lat", "start_lng")

    if colleges is not None:
        table["college_dist"] = nearest_distance(points, colleges).to_numpy()

    if tracts is not None:
        table["tract"] = tract_of(table, tracts, "start_lat", "start_lng").to_numpy()
        attrs = pd.DataFrame(tracts.drop(columns="geometry")).rename(columns={TRACT_ID_COL: "tract"})
        attrs = attrs.drop_duplicates("tract")
        table = table.merge(attrs, on="tract", how="left")

    return table
