import json
import logging
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional

from resample_tune.base.base_engine import BaseEngine
from resample_tune.search_history.search_history import SearchHistory
from resample_tune.search_space.space import Configuration
from resample_tune.utils import constants
from resample_tune.utils.error_handling import handle_engine_errors
from resample_tune.utils.exceptions import AllFailedError, ConfigurationError
from resample_tune.utils.file_io import NumpyEncoder, save_dataframe


def _param_names(history: SearchHistory) -> List[str]:
    configurations = history.configurations()
    return configurations[0][1].names if configurations else []


def collect_metrics(history: SearchHistory, summarize: bool = True) -> pd.DataFrame:
    """
    Metric table for every configuration.

    Args:
        history: Search history to read.
        summarize: When True, one row per (configuration, metric) with the
            mean over folds, the number of folds ``n`` and the standard error.
            When False, one raw row per (configuration, fold, metric).

    Failed cells are excluded in both forms; NaN metric values are kept in
    the raw table but ignored by the summary.
    """
    params = _param_names(history)
    raw_columns = ['config_index', 'config_id'] + params + ['fold_id', 'metric', 'value']

    rows = []
    for r in history.canonical():
        if not r.succeeded:
            continue
        for metric, value in r.metrics.items():
            rows.append({
                'config_index': r.config_index,
                'config_id': r.config_id,
                **r.configuration.as_dict(),
                'fold_id': r.fold_id,
                'metric': metric,
                'value': value,
            })
    raw = pd.DataFrame(rows, columns=raw_columns)
    if not summarize:
        return raw

    summary_columns = ['config_index', 'config_id'] + params + ['metric', 'mean', 'n', 'std_err']
    finite = raw.dropna(subset=['value'])
    if finite.empty:
        return pd.DataFrame(columns=summary_columns)

    stats = (
        finite.groupby(['config_index', 'metric'], sort=True)['value']
        .agg(mean='mean', n='count', std='std')
        .reset_index()
    )
    stats['std_err'] = stats['std'] / np.sqrt(stats['n'])
    meta = raw[['config_index', 'config_id'] + params].drop_duplicates('config_index')
    summary = stats.merge(meta, on='config_index', how='left')
    return summary[summary_columns].reset_index(drop=True)


def _ranked(history: SearchHistory, metric: Optional[str], direction: Optional[str]) -> pd.DataFrame:
    metric = metric or history.primary_metric
    direction = direction or history.direction
    if direction not in constants.DIRECTIONS:
        raise ConfigurationError(f"direction must be one of {constants.DIRECTIONS}, got '{direction}'.")

    if not any(history.is_usable(index) for index, _ in history.configurations()):
        raise AllFailedError("No usable configuration: every evaluation failed.", history=history)

    known = {name for r in history.results if r.succeeded for name in r.metrics}
    if metric is None or metric not in known:
        raise ConfigurationError(f"Unknown metric '{metric}'. Available: {sorted(known)}")

    summary = collect_metrics(history, summarize=True)
    summary = summary[summary['metric'] == metric]
    if summary.empty:
        raise AllFailedError(f"No configuration produced a finite '{metric}'.", history=history)

    ascending = direction == constants.MINIMIZE
    return summary.sort_values(['mean', 'config_index'], ascending=[ascending, True]).reset_index(drop=True)


def select_best(history: SearchHistory, metric: Optional[str] = None,
                direction: Optional[str] = None) -> Configuration:
    """
    Configuration with the best mean ``metric`` over its successful folds.

    Ties go to the configuration evaluated first (lowest index). ``metric``
    and ``direction`` default to those recorded on the history.

    Raises:
        AllFailedError: No usable configuration exists.
        ConfigurationError: ``metric`` was never reported.
    """
    best_index = int(_ranked(history, metric, direction).iloc[0]['config_index'])
    return dict(history.configurations())[best_index]


def show_best(history: SearchHistory, metric: Optional[str] = None, direction: Optional[str] = None,
              n: int = 5) -> pd.DataFrame:
    """Top ``n`` summary rows for ``metric``, best first."""
    return _ranked(history, metric, direction).head(n)


def collect_extracts(history: SearchHistory) -> pd.DataFrame:
    """Extraction artifacts joined to their configuration and fold. Artifacts are passed through untouched."""
    params = _param_names(history)
    columns = ['config_index', 'config_id'] + params + ['fold_id', 'artifact']
    rows = [
        {
            'config_index': r.config_index,
            'config_id': r.config_id,
            **r.configuration.as_dict(),
            'fold_id': r.fold_id,
            'artifact': r.artifact,
        }
        for r in history.canonical() if r.succeeded
    ]
    return pd.DataFrame(rows, columns=columns)


def collect_notes(history: SearchHistory) -> pd.DataFrame:
    """Diagnostics: every failed cell and every cell carrying a note."""
    columns = ['config_index', 'config_id', 'fold_id', 'iteration', 'status', 'note']
    rows = [
        {
            'config_index': r.config_index,
            'config_id': r.config_id,
            'fold_id': r.fold_id,
            'iteration': r.iteration,
            'status': r.status,
            'note': r.note,
        }
        for r in history.canonical() if not r.succeeded or r.note
    ]
    return pd.DataFrame(rows, columns=columns)


def _parquet_safe(table: pd.DataFrame, params: List[str]) -> pd.DataFrame:
    """JSON-encode parameter columns that mix value types, which Parquet cannot store."""
    table = table.copy()
    for name in params:
        if table[name].dtype != object:
            continue
        kinds = {type(value) for value in table[name] if value is not None}
        if len(kinds) > 1:
            table[name] = [json.dumps(value, cls=NumpyEncoder) for value in table[name]]
    return table


class ResultsEngine(BaseEngine):
    """
    Summarises a finished search and persists the result tables.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.excel_copy = config.get('outputs', {}).get('save_excel_copy', False)

    def _get_engine_directory_name(self) -> str:
        return constants.RESULTS_DIR

    @handle_engine_errors("Results Aggregation")
    def execute(self, history: SearchHistory, metric: Optional[str] = None,
                direction: Optional[str] = None) -> Dict[str, Any]:
        """
        Select the best configuration and write the summary, raw and notes tables.

        Returns:
            Dict describing the best configuration and how the search ended.
        """
        metric = metric or history.primary_metric
        direction = direction or history.direction
        self.logger.info(f"Aggregating results: {history!r}")

        ranked = _ranked(history, metric, direction)
        top = ranked.iloc[0]
        best_index = int(top['config_index'])
        best_config = dict(history.configurations())[best_index]

        best = {
            'config_index': best_index,
            'config_id': best_config.config_id,
            'params': best_config.as_dict(),
            'metric': metric,
            'direction': direction,
            'mean': float(top['mean']),
            'n': int(top['n']),
            'std_err': None if pd.isna(top['std_err']) else float(top['std_err']),
            'search_state': history.state.value,
            'stop_reason': history.stop_reason,
            'iterations': history.iterations,
            'n_configurations': len(history.configurations()),
            'n_failed_evaluations': history.n_failed,
        }

        if self.writes_outputs:
            params = _param_names(history)
            save_dataframe(_parquet_safe(collect_metrics(history, summarize=True), params),
                           self.output_dir / constants.ALL_CONFIGURATIONS_FILE, excel_copy=self.excel_copy)
            save_dataframe(_parquet_safe(collect_metrics(history, summarize=False), params),
                           self.output_dir / constants.FOLD_METRICS_FILE, excel_copy=self.excel_copy)
            save_dataframe(collect_notes(history), self.output_dir / constants.NOTES_FILE,
                           excel_copy=self.excel_copy)
            with open(self.output_dir / constants.BEST_CONFIGURATION_FILE, 'w') as f:
                json.dump(best, f, indent=2, cls=NumpyEncoder)

        std_err = f" +/- {best['std_err']:.4f}" if best['std_err'] is not None else ""
        self.logger.info(f"Best configuration: [{best_config}] ({metric}: {best['mean']:.4f}{std_err})")
        return best
