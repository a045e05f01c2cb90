# config.py
"""Configuration constants for the predicate synthesizer."""
import os

# Convergence Settings
MARGIN_RATIO = 0.1              # Acceptable overshoot: [target, target + ceil(target * ratio)]
MAX_ATTEMPTS = 10               # Count queries allowed per synthesis run

# Strategy Settings
SAMPLE_SIZE = 2000              # Entities drawn for percentile windows
CONJUNCTIVE_MAX_FRACTION = 0.2  # Conjunctive refinement only below this target fraction
MAX_NESTING_DEPTH = 2           # AND/OR nesting allowed in generated predicates

# Relative weight of each strategy when ordering one attempt
STRATEGY_WEIGHTS = {
    'range_by_percentile': 0.30,
    'conjunctive_refinement': 0.25,
    'categorical_set_cover': 0.20,
    'timestamp_window': 0.10,
    'fallback_range': 0.15,
}
DIVERSITY_DECAY = 0.5           # Weight multiplier per earlier use of a strategy in the same run

# Calibration of range-shaped strategies from their previous observed count
CALIBRATION_MIN = 0.5
CALIBRATION_MAX = 2.0

# Profiling
PROFILER_WORKERS = 5            # Aggregate passes issued concurrently

# Collections and files
USERS_COLLECTION = "users"
DOCUMENTS_COLLECTION = "documents"
ID_FIELD = "_id"

DATA_DIR = "./data/"
FILTER_SET_FILENAME = "filter_set.json"
FILTER_SET_FILE = os.path.join(DATA_DIR, FILTER_SET_FILENAME)
SQLITE_FILENAME = "performance_test.db"
SQLITE_FILE = os.path.join(DATA_DIR, SQLITE_FILENAME)

MONGODB_URI = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "performance_test")

DEFAULT_TARGET_COUNTS = [
    10, 100, 500, 1_000, 2_500, 5_000, 10_000, 25_000, 50_000, 100_000,
    150_000, 200_000,
]
