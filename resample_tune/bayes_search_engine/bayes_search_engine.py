"""
BayesSearchEngine for sequential model-based search.

A Gaussian process surrogate proposes one configuration per iteration
until the budget or the patience runs out.
"""
import logging
import math
import threading
import warnings
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Sequence, Union

from resample_tune.base.base_engine import BaseEngine
from resample_tune.bayes_search_engine.acquisition import ACQUISITION_FUNCTIONS, acquisition_scores, exp_decay
from resample_tune.bayes_search_engine.stopping_criteria import StoppingCriteria
from resample_tune.bayes_search_engine.surrogate import GaussianProcessSurrogate
from resample_tune.evaluation_engine.candidate_evaluator import CandidateEvaluator, ModelCallbacks, plan_cells
from resample_tune.fold_engine.fold_engine import Fold
from resample_tune.grid_search_engine.grid_search_engine import dispatch_cells, resolve_primary_metric
from resample_tune.search_history.search_history import SearchHistory, SearchState
from resample_tune.search_space.grids import latin_hypercube, latin_hypercube_points
from resample_tune.search_space.space import Configuration, HyperparameterSpace
from resample_tune.utils import constants
from resample_tune.utils.error_handling import handle_engine_errors
from resample_tune.utils.exceptions import AllFailedError, ConfigurationError, ConvergenceWarning
from resample_tune.utils.rng import derive_seed, make_rng

InitialDesign = Union[None, int, Sequence[Configuration]]


class BayesSearchEngine(BaseEngine):
    """
    Sequential model-based search.

    States: INITIALIZING -> PROPOSING <-> EVALUATING -> CONVERGED | BUDGET_EXHAUSTED.

    A Gaussian process surrogate is refitted on every configuration's mean
    metric after each batch. The next configuration maximises an acquisition
    function over a Latin hypercube candidate pool. Batches are strictly
    serialized; the folds of one batch may run in parallel.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        search = config.get('search', {})
        bayes = search.get('bayes', {})
        execution = config.get('execution', {})

        self.primary_metric = search.get('primary_metric')
        self.direction = search.get('direction', constants.MAXIMIZE)
        self.n_initial = bayes.get('n_initial', 5)
        self.n_candidates = bayes.get('n_candidates', 5000)
        self.uncertain = bayes.get('uncertain')
        self.acquisition = bayes.get('acquisition', 'expected_improvement')
        self.kappa = bayes.get('kappa', 0.1)
        trade_off = bayes.get('trade_off', {})
        self.trade_off_start = trade_off.get('start', 0.0)
        self.trade_off_limit = trade_off.get('limit', 0.0)
        self.trade_off_decay = trade_off.get('decay', 0.2)

        self.n_jobs = execution.get('n_jobs', 1)
        self.backend = execution.get('backend')
        self.timeout = execution.get('timeout_seconds')
        self.seed = config.get('_internal_seeds', {}).get('search', config.get('resampling', {}).get('seed'))

        save_progress = config.get('outputs', {}).get('save_progress', True)
        self.progress_file = self.output_dir / constants.PROGRESS_FILE if (self.writes_outputs and save_progress) else None

        self.stopping = StoppingCriteria(config, logger)
        self._validate()

    def _validate(self):
        if self.direction not in constants.DIRECTIONS:
            raise ConfigurationError(f"direction must be one of {constants.DIRECTIONS}, got '{self.direction}'.")
        if self.acquisition not in ACQUISITION_FUNCTIONS:
            raise ConfigurationError(
                f"Unknown acquisition function '{self.acquisition}'. Available: {list(ACQUISITION_FUNCTIONS)}"
            )
        if self.n_initial < 1:
            raise ConfigurationError(f"n_initial must be >= 1, got {self.n_initial}.")
        if self.n_candidates < 1:
            raise ConfigurationError(f"n_candidates must be >= 1, got {self.n_candidates}.")
        if self.uncertain is not None and self.uncertain < 1:
            raise ConfigurationError(f"uncertain must be >= 1 when set, got {self.uncertain}.")

    def _get_engine_directory_name(self) -> str:
        return constants.BAYES_SEARCH_DIR

    @handle_engine_errors("Bayesian Search")
    def execute(self, dataset: pd.DataFrame, folds: Sequence[Fold], space: HyperparameterSpace,
                callbacks: ModelCallbacks, initial: InitialDesign = None,
                cancel_event: Optional[threading.Event] = None) -> SearchHistory:
        """
        Run the sequential search.

        Args:
            initial: Number of space-filling starting points, or explicit
                starting configurations. Defaults to ``n_initial``.
            cancel_event: Checked between batches.

        Returns:
            SearchHistory whose ``state`` is the terminal state. Early
            stopping is not an error.

        Raises:
            AllFailedError: No configuration of the initial design produced
                a usable metric.
        """
        if not folds:
            raise ConfigurationError("At least one fold is required.")

        rng = make_rng(self.seed)
        history = SearchHistory(self.primary_metric, self.direction)
        evaluator = CandidateEvaluator(dataset, callbacks, timeout=self.timeout, logger=self.logger)

        # --- INITIALIZING ---
        design = self._initial_design(space, initial, rng)
        self.logger.info(f"Evaluating initial design: {len(design)} configurations x {len(folds)} folds...")
        history.state = SearchState.EVALUATING
        self._evaluate_batch(evaluator, design, folds, history, iteration=0)

        history.primary_metric = resolve_primary_metric(history, self.primary_metric)
        best_index, best_value = history.best()
        if best_index is None:
            history.state = SearchState.INITIALIZING
            raise AllFailedError("No configuration in the initial design produced a usable metric.", history=history)
        self.logger.info(f"Initial design best {history.primary_metric}={best_value:.4f} (config {best_index}).")

        records: List[Dict[str, Any]] = []
        iteration = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                history.state = SearchState.CANCELLED
                history.stop_reason = "cancelled"
                self.logger.info(f"Bayesian search cancelled after {history.iterations} iterations.")
                break

            iteration += 1

            # --- PROPOSING ---
            history.state = SearchState.PROPOSING
            stale = StoppingCriteria.iterations_without_improvement(records)
            candidate = self._propose(space, history, iteration, rng, stale)
            if candidate is None:
                history.state = SearchState.CONVERGED
                history.stop_reason = "Search space exhausted"
                break

            # --- EVALUATING ---
            history.state = SearchState.EVALUATING
            index = self._evaluate_batch(evaluator, [candidate], folds, history, iteration)[0]
            history.iterations = iteration

            new_best_index, new_best_value = history.best()
            improved = new_best_index is not None and new_best_index != best_index
            self._log_iteration(history, iteration, index, candidate, new_best_value, improved)
            best_index, best_value = new_best_index, new_best_value
            records.append({'iteration': iteration, 'config_index': index, 'improved': improved})

            state, reason = self.stopping.should_stop(records)
            if state is not None:
                history.state = state
                history.stop_reason = reason
                break

        best_index, best_value = history.best()
        if history.state == SearchState.CONVERGED:
            message = f"Bayesian search converged after {history.iterations} iterations: {history.stop_reason}."
            self.logger.info(message)
            warnings.warn(message, ConvergenceWarning)
        elif history.state == SearchState.BUDGET_EXHAUSTED:
            self.logger.info(f"Bayesian search used its full budget of {history.iterations} iterations.")
        self.logger.info(
            f"Best {history.primary_metric}={best_value:.4f} (config {best_index}) "
            f"from {len(history.configurations())} configurations."
        )
        return history

    def _initial_design(self, space: HyperparameterSpace, initial: InitialDesign,
                        rng: np.random.Generator) -> List[Configuration]:
        if initial is None or isinstance(initial, (int, np.integer)):
            size = self.n_initial if initial is None else int(initial)
            if size < 1:
                raise ConfigurationError(f"Initial design size must be >= 1, got {size}.")
            return latin_hypercube(space, size, seed=rng)

        design = list(dict.fromkeys(space.configuration(**config.as_dict()) for config in initial))
        if not design:
            raise ConfigurationError("Initial design must contain at least one configuration.")
        return design

    def _evaluate_batch(self, evaluator: CandidateEvaluator, configs: List[Configuration], folds: Sequence[Fold],
                        history: SearchHistory, iteration: int) -> List[int]:
        start = len(history.configurations())
        indexed = [(start + i, config) for i, config in enumerate(configs)]
        cells = plan_cells(indexed, folds, evaluator.callbacks)
        dispatch_cells(evaluator, cells, history, n_jobs=self.n_jobs, backend=self.backend,
                       iteration=iteration, progress_file=self.progress_file)

        failed = [index for index, _ in indexed if not history.is_usable(index)]
        if len(failed) == len(indexed):
            self.logger.warning(f"Iteration {iteration}: every evaluation in the batch failed.")
        return [index for index, _ in indexed]

    def _propose(self, space: HyperparameterSpace, history: SearchHistory, iteration: int,
                 rng: np.random.Generator, stale: int) -> Optional[Configuration]:
        metric = history.primary_metric
        observed = [
            (config, history.mean_metric(index, metric))
            for index, config in history.configurations()
        ]
        observed = [(config, value) for config, value in observed if not math.isnan(value)]
        evaluated = {config for _, config in history.configurations()}

        candidates = self._candidate_pool(space, evaluated, rng)
        if not candidates:
            self.logger.info(f"Iteration {iteration}: no unevaluated candidates remain.")
            return None

        surrogate = GaussianProcessSurrogate(seed=derive_seed(rng)).fit(
            space.encode([config for config, _ in observed]),
            np.array([value for _, value in observed]),
        )
        mean, std = surrogate.predict(space.encode(candidates))

        if self.uncertain is not None and stale >= self.uncertain:
            self.logger.info(f"Iteration {iteration}: uncertainty sample after {stale} iterations without improvement.")
            return candidates[int(np.argmax(std))]

        _, best_value = history.best()
        trade_off = exp_decay(iteration, self.trade_off_start, self.trade_off_limit, self.trade_off_decay)
        scores = acquisition_scores(self.acquisition, mean, std, best_value, self.direction,
                                    trade_off=trade_off, kappa=self.kappa)
        choice = int(np.argmax(scores))
        self.logger.debug(
            f"Iteration {iteration}: {self.acquisition}={scores[choice]:.4g} "
            f"(trade_off={trade_off:.4g}, predicted {mean[choice]:.4f} +/- {std[choice]:.4f})"
        )
        return candidates[choice]

    def _candidate_pool(self, space: HyperparameterSpace, evaluated: set,
                        rng: np.random.Generator) -> List[Configuration]:
        points = latin_hypercube_points(self.n_candidates, len(space), rng)
        pool = dict.fromkeys(space.from_unit_vector(row) for row in points)
        return [config for config in pool if config not in evaluated]

    def _log_iteration(self, history: SearchHistory, iteration: int, index: int, config: Configuration,
                       best_value: float, improved: bool):
        metric = history.primary_metric
        if not history.is_usable(index):
            self.logger.warning(f"Iteration {iteration}: [{config}] failed on every fold.")
            return
        value = history.mean_metric(index, metric)
        marker = " (new best)" if improved else ""
        self.logger.info(
            f"Iteration {iteration}: [{config}] {metric}={value:.4f}; best {best_value:.4f}{marker}"
        )


def bayes_search(dataset: pd.DataFrame, folds: Sequence[Fold], space: HyperparameterSpace,
                 callbacks: ModelCallbacks, primary_metric: Optional[str] = None,
                 direction: str = constants.MAXIMIZE, initial: InitialDesign = None, n_initial: int = 5,
                 n_iter: int = 10, no_improve: int = 10, seed=None, n_jobs: int = 1,
                 timeout: Optional[float] = None, cancel_event: Optional[threading.Event] = None,
                 logger: Optional[logging.Logger] = None, **bayes_options) -> SearchHistory:
    """
    Functional entry point that runs a BayesSearchEngine without writing outputs.

    Extra keyword arguments (``acquisition``, ``trade_off``, ``kappa``,
    ``uncertain``, ``n_candidates``) go to the ``search.bayes`` section.
    """
    config = {
        'search': {
            'primary_metric': primary_metric,
            'direction': direction,
            'bayes': {'n_initial': n_initial, 'n_iter': n_iter, 'no_improve': no_improve, **bayes_options},
        },
        'execution': {'n_jobs': n_jobs, 'timeout_seconds': timeout},
        'outputs': {'skip_dir_creation': True},
        '_internal_seeds': {'search': seed},
    }
    engine = BayesSearchEngine(config, logger or logging.getLogger(__name__))
    return engine.execute(dataset, folds, space, callbacks, initial=initial, cancel_event=cancel_event)
