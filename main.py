#!/usr/bin/env python
"""
Resampled Hyperparameter Tuning - Main Entry Point
Loads a table, builds resampling folds, runs a grid or Bayesian search and
writes the tuning results.
"""
import sys
import logging
import argparse
import traceback
from pathlib import Path
from typing import Any, Dict

import pandas as pd

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from resample_tune.bayes_search_engine import BayesSearchEngine
from resample_tune.config_manager import ConfigurationManager
from resample_tune.fold_engine import FoldEngine
from resample_tune.grid_search_engine import GridSearchEngine
from resample_tune.logging_config import LoggingConfigurator
from resample_tune.model_factory import SklearnModel
from resample_tune.results_engine import ResultsEngine
from resample_tune.search_space import HyperparameterSpace, grid_from_config
from resample_tune.utils.exceptions import AllFailedError, TuneException
from resample_tune.utils.file_io import read_dataframe


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Resampled Hyperparameter Tuning - Grid & Bayesian Search",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config/config.json",
        help="Path to the configuration JSON file"
    )

    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Optional run identifier appended to the results directory"
    )

    parser.add_argument(
        "--strategy",
        choices=["grid", "bayes"],
        default=None,
        help="Override search.strategy from the configuration"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and setup without running the search"
    )

    return parser.parse_args(argv)


def setup_run_directory(config: dict, run_id: str = None, logger: logging.Logger = None) -> Path:
    """
    Create the run directory; a run id is appended to the configured base directory.
    """
    base_results_dir = config.get('outputs', {}).get('base_results_dir', 'results')
    run_dir = Path(f"{base_results_dir}_{run_id}" if run_id else base_results_dir).absolute()
    run_dir.mkdir(parents=True, exist_ok=True)
    if logger:
        logger.info(f"Run directory: {run_dir}")
    return run_dir


def load_dataset(config: dict, logger: logging.Logger) -> pd.DataFrame:
    """Read the configured table and drop ignored columns."""
    data = config['data']
    dataset = read_dataframe(Path(data['file_path']))
    drop_columns = [c for c in data.get('drop_columns', []) if c in dataset.columns]
    if drop_columns:
        dataset = dataset.drop(columns=drop_columns)
    logger.info(f"Data loaded: {len(dataset)} rows x {dataset.shape[1]} columns from {data['file_path']}")
    return dataset.reset_index(drop=True)


def build_model(config: dict) -> SklearnModel:
    data = config['data']
    model = config['model']
    return SklearnModel(
        model_name=model['name'],
        target=data.get('target'),
        task=model.get('task'),
        fixed_params=model.get('params', {}),
        feature_columns=data.get('feature_columns'),
        seed=config.get('_internal_seeds', {}).get('model'),
    )


def run_tuning(config: dict, dataset: pd.DataFrame, logger: logging.Logger) -> Dict[str, Any]:
    """
    Folds -> search -> results.

    Returns:
        Dict describing the best configuration.
    """
    space = HyperparameterSpace.from_config(config['search_space'])
    model = build_model(config)
    callbacks = model.callbacks(
        extract=config['model'].get('extract', False),
        use_submodels=config['model'].get('use_submodels', True),
    )
    logger.info(f"Search space: {[p['name'] for p in space.describe()]}; model: {model.model_name} ({model.task})")

    folds = FoldEngine(config, logger).execute(dataset)

    strategy = config.get('search', {}).get('strategy', 'grid')
    if strategy == 'bayes':
        history = BayesSearchEngine(config, logger).execute(dataset, folds, space, callbacks)
    else:
        grid = grid_from_config(space, config.get('grid', {}), seed=config.get('_internal_seeds', {}).get('search'))
        history = GridSearchEngine(config, logger).execute(dataset, folds, space, callbacks, grid)

    return ResultsEngine(config, logger).execute(history)


def main(argv=None):
    """
    Main orchestration function.

    Returns:
        int: Exit code (0 for success, 1 for errors)
    """
    logger = None

    try:
        args = parse_arguments(argv)

        print("\n" + "=" * 80)
        print("    RESAMPLED HYPERPARAMETER TUNING")
        print("=" * 80 + "\n")

        # 1. Load and validate configuration
        config_manager = ConfigurationManager(config_path=args.config)
        config = config_manager.load_and_validate()

        # Override config settings from CLI if provided
        if args.verbose:
            config.setdefault('logging', {})['level'] = 'DEBUG'
        if args.strategy:
            config['search']['strategy'] = args.strategy

        # 2. Setup logging
        logging_configurator = LoggingConfigurator(config)
        logging_configurator.setup()
        logger = logging_configurator.get_logger('tuning')

        logger.info(f"Configuration loaded from: {args.config}")

        # 3. Setup run directory
        run_dir = setup_run_directory(config, run_id=args.run_id, logger=logger)
        config_manager.run_id = args.run_id or config_manager.generate_run_id()
        config.setdefault('outputs', {})['base_results_dir'] = str(run_dir)

        # 4. Save configuration artifacts
        config_manager.save_artifacts(str(run_dir))

        if args.dry_run:
            logger.info("Dry run mode: validation complete. Exiting without running the search.")
            print("\n[SUCCESS] Configuration validated successfully.")
            return 0

        # 5. Tune
        dataset = load_dataset(config, logger)
        best = run_tuning(config, dataset, logger)

        logger.info("-" * 60)
        logger.info("TUNING COMPLETED SUCCESSFULLY")
        logger.info(f"Best parameters: {best['params']}")
        logger.info(f"Output Directory: {run_dir}")
        logger.info("-" * 60)

        print(f"\n[SUCCESS] Tuning completed. Results saved to: {run_dir}")
        return 0

    except AllFailedError as e:
        msg = f"No usable configuration: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg)
        return 1

    except TuneException as e:
        # Known tuning errors
        msg = f"Tuning Error: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1

    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Tuning interrupted by user.")
        if logger:
            logger.warning("Tuning interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        # Unexpected errors
        msg = f"Unexpected Error: {str(e)}"
        print(f"\n[CRITICAL] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
