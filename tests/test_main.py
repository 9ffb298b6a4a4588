import json
import logging
import numpy as np
import pandas as pd
import pytest

import main
from resample_tune.utils import constants

# --- Fixtures ---

@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)

@pytest.fixture
def run_config(tmp_path):
    rng = np.random.default_rng(0)
    X = rng.normal(size=(60, 2))
    df = pd.DataFrame({
        'row_id': range(60),
        'a': X[:, 0],
        'b': X[:, 1],
        'y': 3.0 * X[:, 0] - X[:, 1] + rng.normal(scale=0.2, size=60),
    })
    data_path = tmp_path / "data.csv"
    df.to_csv(data_path, index=False)

    config = {
        "data": {"file_path": str(data_path), "target": "y", "drop_columns": ["row_id"]},
        "resampling": {"folds": 3, "seed": 1},
        "model": {"name": "Ridge"},
        "search_space": {"alpha": {"type": "quantitative", "lower": 0.001, "upper": 100.0, "transform": "log10"}},
        "grid": {"type": "regular", "levels": 4},
        "search": {
            "strategy": "grid",
            "primary_metric": "rmse",
            "direction": "minimize",
            "bayes": {"n_initial": 3, "n_iter": 2, "no_improve": 5, "n_candidates": 50},
        },
        "execution": {"n_jobs": 1},
        "outputs": {"base_results_dir": str(tmp_path / "results")},
        "logging": {"log_to_console": False, "log_to_file": True, "log_dir": str(tmp_path / "logs")},
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config))
    return path

# --- Tests ---

def test_parse_arguments_defaults():
    args = main.parse_arguments([])
    assert args.config == "config/config.json"
    assert args.strategy is None
    assert not args.dry_run

def test_dry_run(run_config, tmp_path):
    assert main.main(["--config", str(run_config), "--dry-run"]) == 0

    config_dir = tmp_path / "results" / constants.CONFIG_DIR
    assert (config_dir / constants.CONFIG_USED_FILE).exists()
    assert not (tmp_path / "results" / constants.RESULTS_DIR).exists()

def test_grid_run_end_to_end(run_config, tmp_path):
    assert main.main(["--config", str(run_config)]) == 0

    results = tmp_path / "results"
    best = json.loads((results / constants.RESULTS_DIR / constants.BEST_CONFIGURATION_FILE).read_text())
    assert best['metric'] == 'rmse'
    assert best['search_state'] == 'completed'
    assert best['n_configurations'] == 4
    assert best['n'] == 3
    assert best['params']['alpha'] < 100.0

    assert len(pd.read_parquet(results / constants.FOLDS_DIR / constants.FOLD_ASSIGNMENTS_FILE)) == 60
    progress = (results / constants.GRID_SEARCH_DIR / constants.PROGRESS_FILE).read_text().splitlines()
    assert len(progress) == 12
    assert "TUNING COMPLETED SUCCESSFULLY" in (tmp_path / "logs" / "tuning.log").read_text()

def test_bayes_strategy_override(run_config, tmp_path):
    assert main.main(["--config", str(run_config), "--strategy", "bayes", "--run-id", "b1"]) == 0

    results = tmp_path / "results_b1"
    best = json.loads((results / constants.RESULTS_DIR / constants.BEST_CONFIGURATION_FILE).read_text())
    assert best['search_state'] == 'budget_exhausted'
    assert best['iterations'] == 2
    assert best['n_configurations'] == 5

def test_invalid_config_returns_error(tmp_path):
    assert main.main(["--config", str(tmp_path / "missing.json")]) == 1

def test_missing_data_file_returns_error(run_config, tmp_path):
    config = json.loads(run_config.read_text())
    config['data']['file_path'] = str(tmp_path / "nope.csv")
    run_config.write_text(json.dumps(config))
    assert main.main(["--config", str(run_config)]) == 1
