import json
import os
import hashlib
import sys
import logging
import math
import jsonschema
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from resample_tune.bayes_search_engine.acquisition import ACQUISITION_FUNCTIONS
from resample_tune.model_factory.model_factory import CLUSTERING, ModelFactory
from resample_tune.search_space.space import HyperparameterSpace
from resample_tune.utils import constants
from resample_tune.utils.exceptions import ConfigurationError
from resample_tune.utils.file_io import NumpyEncoder

DEFAULT_SCHEMA_PATH = Path(__file__).parent / "schema.json"


class ConfigurationManager:
    """
    Manages run configuration loading, validation, and access.
    Acts as the single source of truth and safety guard for a tuning run.
    """

    DEFAULT_SEED = 42

    def __init__(self, config_path: str = "config/config.json",
                 schema_path: Optional[str] = None):
        """
        Initialize the ConfigurationManager.

        Args:
            config_path (str): Path to the user configuration JSON.
            schema_path (str): Path to the JSON schema definition. Defaults
                to the schema bundled with the package.
        """
        self.config_path = config_path
        self.schema_path = schema_path or str(DEFAULT_SCHEMA_PATH)
        self.config: Dict[str, Any] = {}
        self.schema: Dict[str, Any] = {}
        self.run_id: Optional[str] = None
        self.logger = logging.getLogger("config_manager")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Main entry point. Loads config, validates schema/logic/resources,
        and propagates seeds.

        Returns:
            Dict[str, Any]: The fully validated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        # 1. Load Files
        self.config = self._load_json(self.config_path)
        self.schema = self._load_json(self.schema_path)

        # 2. Structural Validation (Schema)
        self._validate_schema()

        # 3. Logical Validation (Business Rules & Bounds)
        self._validate_logic()

        # 4. Resource Validation (Grid size)
        self._validate_resources()

        # 5. Internal Seed Propagation (Reproducibility)
        self._propagate_seeds()

        return self.config

    def generate_run_id(self) -> str:
        """
        Generate or retrieve a unique run identifier based on timestamp.
        """
        if not self.run_id:
            # Format: YYYYMMDD_HHMMSS
            self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.run_id

    def save_artifacts(self, output_dir: str) -> None:
        """
        Save configuration artifacts to the run directory.

        Saves:
        1. config_used.json: The exact config object in memory.
        2. config_hash.txt: MD5 hash of the sorted config.
        3. run_metadata.json: Environment details.
        """
        config_dir = Path(output_dir) / constants.CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(config_dir / constants.CONFIG_USED_FILE, 'w') as f:
            json.dump(self.config, f, indent=2, cls=NumpyEncoder)

        config_str = json.dumps(self.config, sort_keys=True, cls=NumpyEncoder)
        config_hash = hashlib.md5(config_str.encode()).hexdigest()

        with open(config_dir / constants.CONFIG_HASH_FILE, 'w') as f:
            f.write(config_hash)

        metadata = {
            'run_id': self.run_id,
            'start_time': datetime.now().isoformat(),
            'python_version': sys.version,
            'platform': sys.platform,
            'config_hash': config_hash,
            'working_directory': os.getcwd()
        }

        with open(config_dir / constants.RUN_METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2)

    def _load_json(self, path: str) -> Dict[str, Any]:
        """Safely load a JSON file."""
        if not os.path.exists(path):
            raise ConfigurationError(f"File not found: {path}")
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {str(e)}")

    def _validate_schema(self) -> None:
        """Validate config structure against JSON schema."""
        try:
            jsonschema.validate(instance=self.config, schema=self.schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Schema validation failed: {e.message}")

    def _validate_logic(self) -> None:
        """Comprehensive logical validation."""
        # --- Model Section ---
        model = self.config.get('model', {})
        model_name = model.get('name')
        if model_name not in ModelFactory.get_available_models():
            raise ConfigurationError(
                f"Unknown model '{model_name}'. Available: {ModelFactory.get_available_models()}"
            )
        task = model.get('task') or ModelFactory.task_of(model_name)
        if task != ModelFactory.task_of(model_name):
            raise ConfigurationError(f"model.task '{task}' does not match {model_name}.")

        # --- Data Section ---
        data = self.config.get('data', {})
        if task != CLUSTERING and not data.get('target'):
            raise ConfigurationError(f"data.target must be specified for {task} models.")

        # --- Resampling Section ---
        resampling = self.config.get('resampling', {})
        if resampling.get('folds', constants.DEFAULT_FOLDS) < 2:
            raise ConfigurationError(f"resampling.folds must be >= 2, got {resampling.get('folds')}.")
        if resampling.get('repeats', 1) < 1:
            raise ConfigurationError(f"resampling.repeats must be >= 1, got {resampling.get('repeats')}.")

        # --- Search Space (bounds, transforms, duplicates) ---
        HyperparameterSpace.from_config(self.config['search_space'])

        # --- Search Section ---
        search = self.config.get('search', {})
        if search.get('direction', constants.MAXIMIZE) not in constants.DIRECTIONS:
            raise ConfigurationError(f"search.direction must be one of {constants.DIRECTIONS}.")

        bayes = search.get('bayes', {})
        acquisition = bayes.get('acquisition', 'expected_improvement')
        if acquisition not in ACQUISITION_FUNCTIONS:
            raise ConfigurationError(
                f"Unknown acquisition function '{acquisition}'. Available: {list(ACQUISITION_FUNCTIONS)}"
            )
        trade_off = bayes.get('trade_off', {})
        if trade_off.get('start', 0.0) < trade_off.get('limit', 0.0):
            raise ConfigurationError("search.bayes.trade_off.start must be >= trade_off.limit.")

        if search.get('strategy', 'grid') == 'grid':
            grid_type = self.config.get('grid', {}).get('type', 'regular')
            if grid_type == 'explicit' and not self.config.get('grid', {}).get('values'):
                raise ConfigurationError("grid.values must be provided for an explicit grid.")

        # --- Execution Section ---
        execution = self.config.get('execution', {})
        if 'n_jobs' in execution:
            n_jobs = execution['n_jobs']
            if n_jobs == 0 or n_jobs < -1:
                raise ConfigurationError(f"execution.n_jobs must be -1 (all cores) or a positive integer, got {n_jobs}")
        timeout = execution.get('timeout_seconds')
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"execution.timeout_seconds must be > 0, got {timeout}")

    def _validate_resources(self) -> None:
        """
        Estimate the grid size before any grid is built and keep it within
        ``resources.max_grid_configs``.
        """
        if self.config.get('search', {}).get('strategy', 'grid') != 'grid':
            return

        max_configs = self.config.get('resources', {}).get('max_grid_configs', constants.DEFAULT_MAX_GRID_CONFIGS)
        total_configs = self._estimate_grid_size()

        if total_configs > max_configs:
            raise ConfigurationError(
                f"Grid Explosion Detected! Total configurations ({total_configs}) exceeds "
                f"safety limit ({max_configs}). Reduce the grid or increase 'resources.max_grid_configs'."
            )

        self.logger.info(f"Grid size validated: up to {total_configs} configurations (Limit: {max_configs})")

    def _estimate_grid_size(self) -> int:
        grid = self.config.get('grid', {})
        grid_type = grid.get('type', 'regular')
        space = self.config['search_space']

        if grid_type in ('random', 'latin_hypercube'):
            return grid.get('size', 10)
        if grid_type == 'explicit':
            values = grid.get('values', {})
            return math.prod(len(values.get(name, [None])) for name in space)

        levels = grid.get('levels', 3)
        counts = []
        for name, entry in space.items():
            if entry.get('type', 'quantitative') == 'qualitative':
                counts.append(len(entry.get('values', [])))
            else:
                counts.append(levels.get(name, 3) if isinstance(levels, dict) else levels)
        return math.prod(counts)

    def _propagate_seeds(self) -> None:
        """
        Propagate master seed to internal components to ensure full run reproducibility.
        Uses large, non-overlapping offsets to avoid correlation between components.
        """
        resampling = self.config.setdefault('resampling', {})
        master_seed = resampling.setdefault('seed', self.DEFAULT_SEED)

        self.config['_internal_seeds'] = {
            'folds': master_seed,
            'search': master_seed + 1000,
            'model': master_seed + 2000,
        }
        self.logger.debug(f"Seeds propagated from master ({master_seed}): {self.config['_internal_seeds']}")
