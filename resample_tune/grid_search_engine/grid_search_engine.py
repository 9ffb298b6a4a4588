"""
GridSearchEngine for exhaustive resampled search.

Evaluates every configuration of a fixed grid on every fold and records
each cell in a SearchHistory.
"""
import datetime
import logging
import math
import threading
import pandas as pd
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from joblib import Parallel, delayed

from resample_tune.base.base_engine import BaseEngine
from resample_tune.evaluation_engine.candidate_evaluator import CandidateEvaluator, Cell, ModelCallbacks, plan_cells
from resample_tune.fold_engine.fold_engine import Fold
from resample_tune.search_history.search_history import EvaluationResult, SearchHistory, SearchState
from resample_tune.search_space.space import Configuration, HyperparameterSpace
from resample_tune.utils import constants
from resample_tune.utils.error_handling import handle_engine_errors
from resample_tune.utils.exceptions import AllFailedError, ConfigurationError
from resample_tune.utils.file_io import append_jsonl


def dispatch_cells(evaluator: CandidateEvaluator, cells: Sequence[Cell], history: SearchHistory,
                   n_jobs: int = 1, backend: Optional[str] = None,
                   cancel_event: Optional[threading.Event] = None, iteration: Optional[int] = None,
                   progress_file: Optional[Path] = None) -> bool:
    """
    Run cells on a joblib worker pool and append their results to ``history``.

    Workers only return results; the history is written from this single
    aggregation point. Cancellation is honoured between cells.

    Returns:
        True when the run was cancelled before every cell finished.
    """
    if cancel_event is not None and cancel_event.is_set():
        return True

    parallel = Parallel(n_jobs=n_jobs, backend=backend, return_as="generator")
    outputs = parallel(delayed(evaluator.run_cell)(cell, iteration) for cell in cells)
    try:
        for results in outputs:
            for stamped in history.extend(results):
                if progress_file is not None:
                    append_jsonl(progress_file, _progress_entry(stamped))
            if cancel_event is not None and cancel_event.is_set():
                return True
    finally:
        outputs.close()
    return False


def _progress_entry(result: EvaluationResult) -> Dict[str, Any]:
    return {
        'sequence': result.sequence,
        'config_index': result.config_index,
        'config_id': result.config_id,
        'fold_id': result.fold_id,
        'iteration': result.iteration,
        'status': result.status,
        'params': result.configuration.as_dict(),
        'metrics': result.metrics,
        'note': result.note,
        'timestamp': datetime.datetime.now().isoformat(),
    }


def resolve_primary_metric(history: SearchHistory, requested: Optional[str] = None) -> Optional[str]:
    """Requested metric, else the first metric any successful cell reported."""
    if requested:
        return requested
    for result in history.canonical():
        if result.succeeded and result.metrics:
            return next(iter(result.metrics))
    return None


def validate_grid(space: HyperparameterSpace, grid: Iterable[Configuration], max_configs: int,
                  logger: logging.Logger) -> List[Configuration]:
    grid = list(grid)
    if not grid:
        raise ConfigurationError("Grid must contain at least one configuration.")
    grid = [space.configuration(**config.as_dict()) for config in grid]
    unique = list(dict.fromkeys(grid))
    if len(unique) < len(grid):
        logger.warning(f"Dropped {len(grid) - len(unique)} duplicate configurations from the grid.")
    if len(unique) > max_configs:
        raise ConfigurationError(
            f"Grid size ({len(unique)}) exceeds safety limit ({max_configs}). "
            "Reduce the grid or increase 'resources.max_grid_configs'."
        )
    return unique


class GridSearchEngine(BaseEngine):
    """
    Exhaustive cross-validated search over an explicit grid.

    Every (configuration, fold) cell is independent, so cells are fanned out
    to a joblib worker pool. Results are summarised per configuration once
    all cells have reported.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        search = config.get('search', {})
        execution = config.get('execution', {})
        self.primary_metric = search.get('primary_metric')
        self.direction = search.get('direction', constants.MAXIMIZE)
        self.n_jobs = execution.get('n_jobs', 1)
        self.backend = execution.get('backend')
        self.timeout = execution.get('timeout_seconds')
        self.max_configs = config.get('resources', {}).get('max_grid_configs', constants.DEFAULT_MAX_GRID_CONFIGS)

        save_progress = config.get('outputs', {}).get('save_progress', True)
        self.progress_file = self.output_dir / constants.PROGRESS_FILE if (self.writes_outputs and save_progress) else None

        if self.direction not in constants.DIRECTIONS:
            raise ConfigurationError(f"direction must be one of {constants.DIRECTIONS}, got '{self.direction}'.")

    def _get_engine_directory_name(self) -> str:
        return constants.GRID_SEARCH_DIR

    @handle_engine_errors("Grid Search")
    def execute(self, dataset: pd.DataFrame, folds: Sequence[Fold], space: HyperparameterSpace,
                callbacks: ModelCallbacks, grid: Iterable[Configuration],
                cancel_event: Optional[threading.Event] = None) -> SearchHistory:
        """
        Evaluate every grid configuration on every fold.

        Returns:
            The SearchHistory; partial when cancelled.

        Raises:
            ConfigurationError: Invalid grid or folds.
            AllFailedError: The grid finished and no configuration had a
                single successful fold.
        """
        if not folds:
            raise ConfigurationError("At least one fold is required.")
        grid = validate_grid(space, grid, self.max_configs, self.logger)

        history = SearchHistory(self.primary_metric, self.direction)
        evaluator = CandidateEvaluator(dataset, callbacks, timeout=self.timeout, logger=self.logger)
        cells = plan_cells(list(enumerate(grid)), folds, callbacks)

        self.logger.info(
            f"Starting grid search: {len(grid)} configurations x {len(folds)} folds "
            f"({len(cells)} fits, n_jobs={self.n_jobs})..."
        )
        history.state = SearchState.EVALUATING
        cancelled = dispatch_cells(evaluator, cells, history, n_jobs=self.n_jobs, backend=self.backend,
                                   cancel_event=cancel_event, progress_file=self.progress_file)

        history.state = SearchState.CANCELLED if cancelled else SearchState.COMPLETED
        history.stop_reason = "cancelled" if cancelled else "grid exhausted"
        history.primary_metric = resolve_primary_metric(history, self.primary_metric)
        self._log_summary(history)

        if not cancelled and not any(history.is_usable(i) for i, _ in history.configurations()):
            raise AllFailedError(f"All {len(history)} grid evaluations failed.", history=history)
        return history

    def _log_summary(self, history: SearchHistory) -> None:
        metric = history.primary_metric
        for index, config in history.configurations():
            value = history.mean_metric(index, metric) if metric else math.nan
            n_ok = sum(1 for r in history.results_for(index) if r.succeeded)
            self.logger.debug(f"Config {index} [{config}]: {metric}={value:.4f} ({n_ok} successful folds)")

        best_index, best_value = history.best(metric)
        if history.n_failed:
            self.logger.warning(f"{history.n_failed} of {len(history)} evaluations failed. See collect_notes().")
        if best_index is not None:
            self.logger.info(f"Grid search {history.state.value}: best {metric}={best_value:.4f} (config {best_index}).")
        else:
            self.logger.info(f"Grid search {history.state.value}: no usable configuration.")


def grid_search(dataset: pd.DataFrame, folds: Sequence[Fold], space: HyperparameterSpace,
                callbacks: ModelCallbacks, grid: Iterable[Configuration], primary_metric: Optional[str] = None,
                direction: str = constants.MAXIMIZE, n_jobs: int = 1, timeout: Optional[float] = None,
                cancel_event: Optional[threading.Event] = None,
                logger: Optional[logging.Logger] = None) -> SearchHistory:
    """Functional entry point that runs a GridSearchEngine without writing outputs."""
    config = {
        'search': {'primary_metric': primary_metric, 'direction': direction},
        'execution': {'n_jobs': n_jobs, 'timeout_seconds': timeout},
        'outputs': {'skip_dir_creation': True},
    }
    engine = GridSearchEngine(config, logger or logging.getLogger(__name__))
    return engine.execute(dataset, folds, space, callbacks, grid, cancel_event=cancel_event)
