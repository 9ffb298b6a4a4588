import copy
import json
import pytest
from unittest.mock import patch

from resample_tune.config_manager import ConfigurationManager
from resample_tune.utils import constants
from resample_tune.utils.exceptions import ConfigurationError

BASE_CONFIG = {
    "data": {"file_path": "data/dataset.csv", "target": "label"},
    "resampling": {"folds": 5, "seed": 7},
    "model": {"name": "RandomForestClassifier"},
    "search_space": {
        "n_estimators": {"type": "quantitative", "lower": 10, "upper": 200, "integer": True},
        "criterion": {"type": "qualitative", "values": ["gini", "entropy"]},
    },
    "grid": {"type": "regular", "levels": 3},
    "search": {"strategy": "grid", "primary_metric": "accuracy", "direction": "maximize"},
    "execution": {"n_jobs": 1},
}

# --- Fixtures ---

@pytest.fixture
def write_config(tmp_path):
    """Writes a (possibly modified) copy of the base configuration and returns a manager for it."""
    def _write(**overrides):
        config = copy.deepcopy(BASE_CONFIG)
        for section, value in overrides.items():
            if value is None:
                config.pop(section, None)
            else:
                config[section] = value
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config))
        return ConfigurationManager(str(path))
    return _write

# --- Tests ---

class TestLoadAndValidate:

    def test_valid_config(self, write_config):
        config = write_config().load_and_validate()
        assert config['model']['name'] == 'RandomForestClassifier'

    def test_seed_propagation(self, write_config):
        config = write_config().load_and_validate()
        assert config['_internal_seeds'] == {'folds': 7, 'search': 1007, 'model': 2007}

    def test_default_seed(self, write_config):
        config = write_config(resampling={"folds": 5}).load_and_validate()
        assert config['resampling']['seed'] == ConfigurationManager.DEFAULT_SEED
        assert config['_internal_seeds']['search'] == ConfigurationManager.DEFAULT_SEED + 1000

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="File not found"):
            ConfigurationManager(str(tmp_path / "missing.json")).load_and_validate()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            ConfigurationManager(str(path)).load_and_validate()


class TestSchemaValidation:

    def test_missing_required_section(self, write_config):
        with pytest.raises(ConfigurationError, match="Schema validation failed"):
            write_config(search_space=None).load_and_validate()

    def test_folds_below_two(self, write_config):
        with pytest.raises(ConfigurationError, match="Schema validation failed"):
            write_config(resampling={"folds": 1}).load_and_validate()

    def test_unknown_direction(self, write_config):
        with pytest.raises(ConfigurationError, match="Schema validation failed"):
            write_config(search={"direction": "sideways"}).load_and_validate()


class TestLogicValidation:

    def test_unknown_model(self, write_config):
        with pytest.raises(ConfigurationError, match="Unknown model"):
            write_config(model={"name": "DeepForest9000"}).load_and_validate()

    def test_task_mismatch(self, write_config):
        with pytest.raises(ConfigurationError, match="does not match"):
            write_config(model={"name": "Ridge", "task": "classification"}).load_and_validate()

    def test_target_required_for_supervised(self, write_config):
        with pytest.raises(ConfigurationError, match="data.target"):
            write_config(data={"file_path": "x.csv"}).load_and_validate()

    def test_clustering_without_target(self, write_config):
        manager = write_config(
            data={"file_path": "x.csv"},
            model={"name": "KMeans"},
            search_space={"n_clusters": {"type": "quantitative", "lower": 2, "upper": 8, "integer": True}},
        )
        assert manager.load_and_validate()['model']['name'] == 'KMeans'

    def test_invalid_bounds(self, write_config):
        space = {"alpha": {"type": "quantitative", "lower": 5.0, "upper": 1.0}}
        with pytest.raises(ConfigurationError):
            write_config(search_space=space).load_and_validate()

    def test_log_transform_needs_positive_bounds(self, write_config):
        space = {"alpha": {"type": "quantitative", "lower": 0.0, "upper": 1.0, "transform": "log10"}}
        with pytest.raises(ConfigurationError):
            write_config(search_space=space).load_and_validate()

    def test_unknown_acquisition(self, write_config):
        search = {"strategy": "bayes", "bayes": {"acquisition": "thompson"}}
        with pytest.raises(ConfigurationError, match="acquisition"):
            write_config(search=search).load_and_validate()

    def test_trade_off_start_below_limit(self, write_config):
        search = {"strategy": "bayes", "bayes": {"trade_off": {"start": 0.0, "limit": 0.5}}}
        with pytest.raises(ConfigurationError, match="trade_off"):
            write_config(search=search).load_and_validate()

    def test_explicit_grid_requires_values(self, write_config):
        with pytest.raises(ConfigurationError, match="grid.values"):
            write_config(grid={"type": "explicit"}).load_and_validate()

    @pytest.mark.parametrize("n_jobs", [0, -2])
    def test_invalid_n_jobs(self, write_config, n_jobs):
        with pytest.raises(ConfigurationError, match="n_jobs"):
            write_config(execution={"n_jobs": n_jobs}).load_and_validate()

    def test_invalid_timeout(self, write_config):
        with pytest.raises(ConfigurationError, match="timeout_seconds"):
            write_config(execution={"timeout_seconds": 0}).load_and_validate()


class TestResourceValidation:

    def test_grid_explosion(self, write_config):
        manager = write_config(grid={"type": "regular", "levels": 10}, resources={"max_grid_configs": 15})
        with pytest.raises(ConfigurationError, match="Grid Explosion"):
            manager.load_and_validate()

    def test_per_parameter_levels(self, write_config):
        manager = write_config(grid={"type": "regular", "levels": {"n_estimators": 4}})
        manager.load_and_validate()
        # 4 levels x 2 qualitative values
        assert manager._estimate_grid_size() == 8

    def test_explicit_grid_size(self, write_config):
        grid = {"type": "explicit", "values": {"n_estimators": [10, 50, 100], "criterion": ["gini"]}}
        manager = write_config(grid=grid)
        manager.load_and_validate()
        assert manager._estimate_grid_size() == 3

    def test_bayes_skips_grid_check(self, write_config):
        manager = write_config(
            grid={"type": "regular", "levels": 10},
            resources={"max_grid_configs": 2},
            search={"strategy": "bayes"},
        )
        assert manager.load_and_validate()['search']['strategy'] == 'bayes'


class TestArtifacts:

    def test_generate_run_id_is_stable(self, write_config):
        manager = write_config()
        assert manager.generate_run_id() == manager.generate_run_id()

    def test_save_artifacts(self, write_config, tmp_path):
        manager = write_config()
        manager.load_and_validate()
        manager.generate_run_id()
        manager.save_artifacts(str(tmp_path / "run"))

        config_dir = tmp_path / "run" / constants.CONFIG_DIR
        saved = json.loads((config_dir / constants.CONFIG_USED_FILE).read_text())
        assert saved['_internal_seeds']['folds'] == 7
        assert len((config_dir / constants.CONFIG_HASH_FILE).read_text()) == 32
        metadata = json.loads((config_dir / constants.RUN_METADATA_FILE).read_text())
        assert metadata['run_id'] == manager.run_id

    def test_hash_is_deterministic(self, write_config, tmp_path):
        manager = write_config()
        manager.load_and_validate()
        with patch('resample_tune.config_manager.config_manager.datetime') as mock_dt:
            mock_dt.now.return_value.strftime.return_value = "20240101_000000"
            mock_dt.now.return_value.isoformat.return_value = "2024-01-01T00:00:00"
            manager.generate_run_id()
            manager.save_artifacts(str(tmp_path / "a"))
            manager.save_artifacts(str(tmp_path / "b"))

        a = (tmp_path / "a" / constants.CONFIG_DIR / constants.CONFIG_HASH_FILE).read_text()
        b = (tmp_path / "b" / constants.CONFIG_DIR / constants.CONFIG_HASH_FILE).read_text()
        assert a == b
