"""
Candidate evaluation for one (configuration, fold) cell.

Fits on the analysis rows, scores on the assessment rows and captures any
failure as a failed result instead of raising.
"""
import logging
import pandas as pd
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from resample_tune.fold_engine.fold_engine import Fold
from resample_tune.search_history.search_history import EvaluationResult
from resample_tune.search_space.space import Configuration
from resample_tune.utils import constants
from resample_tune.utils.exceptions import EvaluationFailure

IndexedConfiguration = Tuple[int, Configuration]


@dataclass
class ModelCallbacks:
    """
    Capability interface supplied by the host application.

    fit(analysis_df, params) -> fitted
    score(fitted, assessment_df) -> {metric: value}
    extract(fitted) -> any artifact (optional)

    When ``submodel_param`` names a parameter that can be varied after
    fitting, ``score_submodels(fitted, assessment_df, values)`` must return
    ``{value: {metric: value}}`` for every requested value, identical to what
    separate fits would have produced.

    With extraction enabled, ``submodel(fitted, value)`` must also return the
    fitted sub-model for ``value`` so each configuration is extracted from
    its own model. Without it, extraction disables the shared fit.
    """
    fit: Callable[[pd.DataFrame, Dict[str, Any]], Any]
    score: Callable[[Any, pd.DataFrame], Mapping[str, float]]
    extract: Optional[Callable[[Any], Any]] = None
    submodel_param: Optional[str] = None
    score_submodels: Optional[Callable[[Any, pd.DataFrame, List[Any]], Mapping[Any, Mapping[str, float]]]] = None
    submodel: Optional[Callable[[Any, Any], Any]] = None

    @property
    def supports_submodels(self) -> bool:
        if self.submodel_param is None or self.score_submodels is None:
            return False
        return self.extract is None or self.submodel is not None


@dataclass
class Cell:
    """Unit of work: one fit per fold, shared by one or more configurations."""
    configurations: List[IndexedConfiguration]
    fold: Fold

    @property
    def sort_key(self):
        return (self.configurations[0][0], self.fold.index)


def plan_cells(configurations: Sequence[IndexedConfiguration], folds: Sequence[Fold],
               callbacks: ModelCallbacks) -> List[Cell]:
    """
    Group configurations into fit cells.

    Without sub-model support every (configuration, fold) pair is its own
    cell. With it, configurations that agree on everything except the
    sub-model parameter share one fit per fold.
    """
    param = callbacks.submodel_param if callbacks.supports_submodels else None
    groups: Dict[Any, List[IndexedConfiguration]] = {}
    for index, config in configurations:
        if param is not None and param in config.names:
            key = tuple((n, v) for n, v in config.assignments if n != param)
        else:
            key = ('__single__', index)
        groups.setdefault(key, []).append((index, config))

    cells = [Cell(list(members), fold) for members in groups.values() for fold in folds]
    return sorted(cells, key=lambda c: c.sort_key)


def _coerce_metrics(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, Mapping):
        raise EvaluationFailure(f"Score function must return a mapping of metric values, got {type(raw).__name__}")
    return {str(name): float(value) for name, value in raw.items()}


def _describe_error(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class CandidateEvaluator:
    """
    Fits and scores configurations on folds of a shared dataset.

    Any exception raised by the host callbacks (or a timeout) is recorded as
    a failed EvaluationResult instead of propagating, so a single bad cell
    never aborts a search.
    """

    def __init__(self, dataset: pd.DataFrame, callbacks: ModelCallbacks, timeout: Optional[float] = None,
                 logger: Optional[logging.Logger] = None):
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.dataset = dataset
        self.callbacks = callbacks
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def evaluate(self, configuration: Configuration, fold: Fold, config_index: int = 0,
                 iteration: Optional[int] = None) -> EvaluationResult:
        """Fit on the analysis rows, score on the assessment rows."""
        try:
            metrics, artifact, note = self._timed(self._fit_and_score, configuration, fold)
        except Exception as e:
            return self._failed(configuration, config_index, fold, iteration, e)

        return EvaluationResult(
            configuration=configuration,
            config_index=config_index,
            fold_id=fold.fold_id,
            fold_index=fold.index,
            metrics=metrics,
            note=note,
            artifact=artifact,
            iteration=iteration,
        )

    def evaluate_group(self, configurations: Sequence[IndexedConfiguration], fold: Fold,
                       iteration: Optional[int] = None) -> List[EvaluationResult]:
        """
        Score several configurations from a single fit (sub-model trick).

        The fit uses the largest requested sub-model value; every value is
        then scored, and extracted when requested, from that one fitted model.
        """
        configurations = list(configurations)
        if len(configurations) == 1 or not self.callbacks.supports_submodels:
            return [self.evaluate(config, fold, index, iteration) for index, config in configurations]

        param = self.callbacks.submodel_param
        values = [config[param] for _, config in configurations]
        fit_config = configurations[values.index(max(values))][1]

        try:
            per_value, extracted = self._timed(self._fit_and_score_submodels, fit_config, values, fold)
        except Exception as e:
            return [self._failed(config, index, fold, iteration, e) for index, config in configurations]

        results = []
        for (index, config), value in zip(configurations, values):
            if value not in per_value:
                error = EvaluationFailure(f"No sub-model score returned for {param}={value}")
                results.append(self._failed(config, index, fold, iteration, error))
                continue
            artifact, note = extracted.get(value, (None, None))
            results.append(EvaluationResult(
                configuration=config,
                config_index=index,
                fold_id=fold.fold_id,
                fold_index=fold.index,
                metrics=per_value[value],
                note=note,
                artifact=artifact,
                iteration=iteration,
            ))
        return results

    def run_cell(self, cell: Cell, iteration: Optional[int] = None) -> List[EvaluationResult]:
        return self.evaluate_group(cell.configurations, cell.fold, iteration)

    def _fit_and_score(self, configuration: Configuration, fold: Fold):
        fitted = self.callbacks.fit(fold.analysis(self.dataset), configuration.as_dict())
        metrics = _coerce_metrics(self.callbacks.score(fitted, fold.assessment(self.dataset)))
        artifact, note = self._extract(fitted)
        return metrics, artifact, note

    def _fit_and_score_submodels(self, fit_config: Configuration, values: List[Any], fold: Fold):
        fitted = self.callbacks.fit(fold.analysis(self.dataset), fit_config.as_dict())
        raw = self.callbacks.score_submodels(fitted, fold.assessment(self.dataset), list(values))
        if not isinstance(raw, Mapping):
            raise EvaluationFailure("score_submodels must return a mapping keyed by sub-model value")
        per_value = {value: _coerce_metrics(metrics) for value, metrics in raw.items()}
        extracted = {value: self._extract(fitted, value) for value in per_value}
        return per_value, extracted

    def _extract(self, fitted: Any, submodel_value: Any = None):
        """Extraction problems are annotated but never fail the cell."""
        if self.callbacks.extract is None:
            return None, None
        try:
            if submodel_value is not None:
                fitted = self.callbacks.submodel(fitted, submodel_value)
            return self.callbacks.extract(fitted), None
        except Exception as e:
            self.logger.warning(f"Extraction failed: {_describe_error(e)}")
            return None, f"extract: {_describe_error(e)}"

    def _timed(self, func, *args):
        if self.timeout is None:
            return func(*args)
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(func, *args)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeout:
            # The worker thread cannot be killed; it is abandoned and its result ignored
            raise EvaluationFailure(f"Evaluation timed out after {self.timeout}s") from None
        finally:
            executor.shutdown(wait=False)

    def _failed(self, configuration: Configuration, config_index: int, fold: Fold,
                iteration: Optional[int], error: BaseException) -> EvaluationResult:
        note = _describe_error(error)
        self.logger.warning(f"Evaluation failed for [{configuration}] on {fold.fold_id}: {note}")
        return EvaluationResult(
            configuration=configuration,
            config_index=config_index,
            fold_id=fold.fold_id,
            fold_index=fold.index,
            metrics={},
            status=constants.STATUS_FAILED,
            note=note,
            iteration=iteration,
        )
