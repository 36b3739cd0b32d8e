import os

# Paths
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.path.join(BASE_DIR, "data")
RAW_DIR = os.path.join(DATA_DIR, "raw")
OUTPUT_DIR = os.path.join(BASE_DIR, "output")

TRIPS_GLOB = os.path.join(RAW_DIR, "trips", "*.csv")
WEATHER_FILE = os.path.join(RAW_DIR, "weather.csv")
TRACTS_FILE = os.path.join(RAW_DIR, "census_tracts.geojson")
COLLEGES_FILE = os.path.join(RAW_DIR, "colleges.geojson")
STATIONS_FILE = os.path.join(RAW_DIR, "stations.geojson")

# External APIs
WEATHER_URL = "https://archive-api.open-meteo.com/v1/archive"
WEATHER_LAT, WEATHER_LON = 39.87, -75.24
WEATHER_TIMEZONE = "America/New_York"

# Cleaning
TEMP_FALLBACK = 42
EXCLUDED_STATIONS = ("3000",)  # virtual dock
TRIP_COORDS = ["start_lat", "start_lng", "end_lat", "end_lng"]
TRIP_ALIASES = {
    "started_at": "start_time",
    "ended_at": "end_time",
    "start_station": "start_station_id",
    "end_station": "end_station_id",
    "start_lon": "start_lng",
    "end_lon": "end_lng",
    "ride_id": "trip_id",
}
WEATHER_ALIASES = {
    "valid": "time",
    "timestamp": "time",
    "tmpf": "temperature",
    "temperature_2m": "temperature",
    "p01i": "precipitation",
    "sknt": "wind_speed",
    "wind_speed_10m": "wind_speed",
}

# Calendar
TIME_OF_DAY_BOUNDS = (7, 10, 15, 19)
TIME_OF_DAY_LABELS = ("Overnight", "AM Rush", "Mid-Day", "PM Rush")
DOTW_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# Lags
LAG_OFFSETS = (1, 2, 3, 4, 12, 24)
LAG_COLS = [f"lag_{n}" for n in LAG_OFFSETS]

# Geometry
GEOGRAPHIC_CRS = "EPSG:4326"
PROJECTED_CRS = "EPSG:2272"  # PA South, feet
TRACT_ID_COL = "GEOID"

# Split / CV
TRAIN_WEEKS_COUNT = 3
TEST_WEEKS_COUNT = 2
CV_FOLDS = 10
RANDOM_STATE = 42

# Model Config
TARGET_COL = "trip_count"
STATION_COL = "start_station_id"
WEEK_COL = "year_week"  # ISO year and week, e.g. 2024-W03
WEATHER_COLS = ["temperature", "precipitation", "wind_speed"]

# Nested specifications: name -> (categorical terms, numeric terms)
MODELS = {
    "time": (["hour", "dotw"], []),
    "space_weather": ([STATION_COL], WEATHER_COLS),
    "space_time_weather": ([STATION_COL, "hour", "dotw"], WEATHER_COLS),
    "space_time_weather_lags": ([STATION_COL, "hour", "dotw"], WEATHER_COLS + LAG_COLS),
}
