"""
FoldEngine for resampled model evaluation.

Partitions a dataset into k analysis/assessment splits. Every row lands in
exactly one assessment set per repeat; stratified folds keep each class's
share of every assessment set within one row of ``class_count / k``.
"""
import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import List, Optional

from sklearn.model_selection import KFold, StratifiedKFold

from resample_tune.base.base_engine import BaseEngine
from resample_tune.utils import constants
from resample_tune.utils.error_handling import handle_engine_errors
from resample_tune.utils.exceptions import ConfigurationError
from resample_tune.utils.file_io import save_dataframe
from resample_tune.utils.rng import SeedLike, derive_seed, make_rng


@dataclass(frozen=True, eq=False)
class Fold:
    """One analysis/assessment split, stored as positional row indices."""
    fold_id: str
    index: int
    analysis_idx: np.ndarray
    assessment_idx: np.ndarray

    def analysis(self, dataset: pd.DataFrame) -> pd.DataFrame:
        return dataset.iloc[self.analysis_idx]

    def assessment(self, dataset: pd.DataFrame) -> pd.DataFrame:
        return dataset.iloc[self.assessment_idx]

    def __repr__(self) -> str:
        return f"Fold({self.fold_id}, analysis={len(self.analysis_idx)}, assessment={len(self.assessment_idx)})"


def _strata_labels(dataset: pd.DataFrame, stratify_by: str) -> pd.Series:
    """
    Categorical labels used for stratification.

    Numeric columns with many distinct values are cut into quartiles so that
    a continuous outcome can still be stratified.
    """
    if stratify_by not in dataset.columns:
        raise ConfigurationError(f"Stratification column '{stratify_by}' not found in dataset.")
    column = dataset[stratify_by]
    if column.isna().any():
        raise ConfigurationError(f"Stratification column '{stratify_by}' contains missing values.")
    if pd.api.types.is_numeric_dtype(column) and column.nunique() > constants.STRATA_NUMERIC_UNIQUE_LIMIT:
        return pd.qcut(column, q=constants.STRATA_NUMERIC_BINS, labels=False, duplicates='drop').astype(str)
    return column.astype(str)


def _fold_id(repeat: int, fold: int, repeats: int) -> str:
    if repeats == 1:
        return f"Fold{fold}"
    return f"Repeat{repeat}_Fold{fold}"


def generate_folds(dataset: pd.DataFrame, k: int = constants.DEFAULT_FOLDS, stratify_by: Optional[str] = None,
                   seed: SeedLike = None, repeats: int = 1) -> List[Fold]:
    """
    Split ``dataset`` into ``k`` folds (``repeats * k`` when repeated).

    Args:
        dataset: The full dataset; it is only indexed, never modified.
        k: Number of folds, 2 <= k <= number of rows.
        stratify_by: Optional column to stratify on.
        seed: Integer seed or ``numpy.random.Generator``.
        repeats: Number of independent V-fold partitions.

    Returns:
        Folds ordered by repeat, then fold number.

    Raises:
        ConfigurationError: If k or repeats are out of range, or k exceeds
            the row count of the smallest stratum.
    """
    n_rows = len(dataset)
    if k < 2:
        raise ConfigurationError(f"Number of folds must be >= 2, got {k}.")
    if k > n_rows:
        raise ConfigurationError(f"Number of folds ({k}) exceeds number of rows ({n_rows}).")
    if repeats < 1:
        raise ConfigurationError(f"repeats must be >= 1, got {repeats}.")

    labels = None
    if stratify_by is not None:
        labels = _strata_labels(dataset, stratify_by)
        smallest = int(labels.value_counts().min())
        if k > smallest:
            raise ConfigurationError(
                f"Number of folds ({k}) exceeds the size of the smallest '{stratify_by}' stratum ({smallest})."
            )

    rng = make_rng(seed)
    positions = np.arange(n_rows)
    folds: List[Fold] = []
    for repeat in range(1, repeats + 1):
        random_state = derive_seed(rng)
        if labels is not None:
            splitter = StratifiedKFold(n_splits=k, shuffle=True, random_state=random_state)
            splits = splitter.split(positions, labels.to_numpy())
        else:
            splitter = KFold(n_splits=k, shuffle=True, random_state=random_state)
            splits = splitter.split(positions)

        for i, (analysis_idx, assessment_idx) in enumerate(splits, start=1):
            folds.append(Fold(
                fold_id=_fold_id(repeat, i, repeats),
                index=len(folds),
                analysis_idx=np.sort(analysis_idx),
                assessment_idx=np.sort(assessment_idx),
            ))
    return folds


def fold_assignments(folds: List[Fold]) -> pd.DataFrame:
    """Long table of (row, fold_id) for every assessment membership."""
    frames = [
        pd.DataFrame({'row': fold.assessment_idx, 'fold_id': fold.fold_id})
        for fold in folds
    ]
    return pd.concat(frames, ignore_index=True)


class FoldEngine(BaseEngine):
    """
    Builds the fold set for a tuning run from the ``resampling`` section.

    The fold set is generated once and shared, read-only, by every
    configuration evaluated in the run.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.resampling = config.get('resampling', {})

    def _get_engine_directory_name(self) -> str:
        return constants.FOLDS_DIR

    @handle_engine_errors("Fold Generation")
    def execute(self, dataset: pd.DataFrame) -> List[Fold]:
        k = self.resampling.get('folds', constants.DEFAULT_FOLDS)
        strata = self.resampling.get('strata')
        repeats = self.resampling.get('repeats', 1)
        seed = self.config.get('_internal_seeds', {}).get('folds', self.resampling.get('seed'))

        self.logger.info(f"Generating {k}-fold resamples (repeats={repeats}, strata={strata})...")
        folds = generate_folds(dataset, k=k, stratify_by=strata, seed=seed, repeats=repeats)

        if self.writes_outputs:
            excel_copy = self.config.get('outputs', {}).get('save_excel_copy', False)
            save_dataframe(fold_assignments(folds), self.output_dir / constants.FOLD_ASSIGNMENTS_FILE,
                           excel_copy=excel_copy)

        sizes = [len(f.assessment_idx) for f in folds]
        self.logger.info(f"Generated {len(folds)} folds (assessment sizes {min(sizes)}-{max(sizes)}).")
        return folds
