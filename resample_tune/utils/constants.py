# utils/constants.py

# --- Top-Level Result Directories ---
# Sequentially numbered for proper sorting with clear, self-explanatory names

CONFIG_DIR = "01_RunConfiguration"          # Run config, metadata, seeds
FOLDS_DIR = "02_ResamplingFolds"            # Fold assignments
GRID_SEARCH_DIR = "03_GridSearch"           # Grid search progress
BAYES_SEARCH_DIR = "04_BayesianSearch"      # Sequential search progress
RESULTS_DIR = "05_TuningResults"            # Metric tables, best configuration

TOP_LEVEL_RESULT_DIRS = [
    CONFIG_DIR,
    FOLDS_DIR,
    GRID_SEARCH_DIR,
    BAYES_SEARCH_DIR,
    RESULTS_DIR,
]

# --- File Names ---
CONFIG_USED_FILE = "config_used.json"
CONFIG_HASH_FILE = "config_hash.txt"
RUN_METADATA_FILE = "run_metadata.json"
FOLD_ASSIGNMENTS_FILE = "fold_assignments.parquet"
PROGRESS_FILE = "progress.jsonl"
ALL_CONFIGURATIONS_FILE = "all_configurations.parquet"
FOLD_METRICS_FILE = "fold_metrics.parquet"
NOTES_FILE = "notes.parquet"
BEST_CONFIGURATION_FILE = "best_configuration.json"

# --- Result Status ---
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

# --- Directions ---
MAXIMIZE = "maximize"
MINIMIZE = "minimize"
DIRECTIONS = (MAXIMIZE, MINIMIZE)

# --- Defaults ---
DEFAULT_FOLDS = 5
DEFAULT_MAX_GRID_CONFIGS = 1000
STRATA_NUMERIC_UNIQUE_LIMIT = 10
STRATA_NUMERIC_BINS = 4
