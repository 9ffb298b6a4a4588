"""
Append-only record of every (configuration, fold) evaluation.

Results are stored as a flat log of typed records rather than nested tables.
Appends are serialized through a lock and stamped with a monotonic sequence
number, so concurrent workers never lose updates and the history can always
be replayed in either arrival or canonical (configuration, fold) order.
"""
import enum
import itertools
import math
import threading
import pandas as pd
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from resample_tune.search_space.space import Configuration
from resample_tune.utils import constants


class SearchState(str, enum.Enum):
    """States of the search drivers."""
    INITIALIZING = "initializing"
    PROPOSING = "proposing"
    EVALUATING = "evaluating"
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {
    SearchState.CONVERGED,
    SearchState.BUDGET_EXHAUSTED,
    SearchState.COMPLETED,
    SearchState.CANCELLED,
}


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of scoring one configuration on one fold."""
    configuration: Configuration
    config_index: int
    fold_id: str
    fold_index: int
    metrics: Dict[str, float] = field(default_factory=dict)
    status: str = constants.STATUS_SUCCESS
    note: Optional[str] = None
    artifact: Any = None
    iteration: Optional[int] = None
    sequence: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == constants.STATUS_SUCCESS

    @property
    def config_id(self) -> str:
        return self.configuration.config_id


class SearchHistory:
    """
    Ordered, append-only sequence of EvaluationResults.

    Owned by the active search driver; everything else reads it through
    ``results``, ``canonical()`` or ``to_frame()``.
    """

    def __init__(self, primary_metric: Optional[str] = None, direction: str = constants.MAXIMIZE):
        self.primary_metric = primary_metric
        self.direction = direction
        self.state = SearchState.INITIALIZING
        self.stop_reason = ""
        self.iterations = 0
        self._results: List[EvaluationResult] = []
        self._lock = threading.Lock()
        self._counter = itertools.count()

    def append(self, result: EvaluationResult) -> EvaluationResult:
        """Stamp ``result`` with the next sequence number and store it."""
        with self._lock:
            stamped = replace(result, sequence=next(self._counter))
            self._results.append(stamped)
        return stamped

    def extend(self, results: Iterable[EvaluationResult]) -> List[EvaluationResult]:
        return [self.append(r) for r in results]

    def __len__(self) -> int:
        return len(self._results)

    @property
    def results(self) -> Tuple[EvaluationResult, ...]:
        with self._lock:
            return tuple(self._results)

    def canonical(self) -> List[EvaluationResult]:
        """Results ordered by configuration index, then fold index."""
        return sorted(self.results, key=lambda r: (r.config_index, r.fold_index))

    def configurations(self) -> List[Tuple[int, Configuration]]:
        """Unique (config_index, configuration) pairs in index order."""
        seen: Dict[int, Configuration] = {}
        for r in self.canonical():
            seen.setdefault(r.config_index, r.configuration)
        return sorted(seen.items())

    def results_for(self, config_index: int) -> List[EvaluationResult]:
        return [r for r in self.canonical() if r.config_index == config_index]

    def is_usable(self, config_index: int) -> bool:
        """A configuration is usable when at least one of its folds succeeded."""
        return any(r.succeeded for r in self.results_for(config_index))

    def mean_metric(self, config_index: int, metric: str) -> float:
        """Mean of ``metric`` over non-failed folds (NaN when none)."""
        values = [
            r.metrics.get(metric, math.nan)
            for r in self.results_for(config_index) if r.succeeded
        ]
        values = [v for v in values if not math.isnan(v)]
        if not values:
            return math.nan
        return sum(values) / len(values)

    def best(self, metric: Optional[str] = None) -> Tuple[Optional[int], float]:
        """
        (config_index, mean) of the best usable configuration.

        Ties keep the lowest configuration index. Returns ``(None, nan)``
        when no configuration has a finite mean for ``metric``.
        """
        metric = metric or self.primary_metric
        best_index, best_value = None, math.nan
        if metric is None:
            return best_index, best_value
        for index, _ in self.configurations():
            value = self.mean_metric(index, metric)
            if math.isnan(value):
                continue
            if best_index is None or self._better(value, best_value):
                best_index, best_value = index, value
        return best_index, best_value

    def _better(self, candidate: float, incumbent: float) -> bool:
        if self.direction == constants.MAXIMIZE:
            return candidate > incumbent
        return candidate < incumbent

    @property
    def n_failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_frame(self) -> pd.DataFrame:
        """
        Flat long table: one row per (configuration, fold, metric).

        Failed cells contribute a single row with ``metric`` and ``value``
        set to None so they remain visible for diagnostics.
        """
        rows = []
        for r in self.canonical():
            base = {
                'config_index': r.config_index,
                'config_id': r.config_id,
                **r.configuration.as_dict(),
                'fold_id': r.fold_id,
                'iteration': r.iteration,
                'status': r.status,
                'note': r.note,
                'sequence': r.sequence,
            }
            if r.succeeded and r.metrics:
                for metric, value in r.metrics.items():
                    rows.append({**base, 'metric': metric, 'value': value})
            else:
                rows.append({**base, 'metric': None, 'value': None})
        return pd.DataFrame(rows)

    def __repr__(self) -> str:
        return (f"SearchHistory(results={len(self)}, configurations={len(self.configurations())}, "
                f"state={self.state.value}, iterations={self.iterations})")
