"""
Host callbacks for scikit-learn estimators.

SklearnModel turns a named estimator into the fit/score/extract callbacks
consumed by the candidate evaluator, so a tuning run can be driven entirely
from configuration.
"""
import copy
import math
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Sequence

from sklearn.metrics import (
    accuracy_score,
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    r2_score,
    roc_auc_score,
    silhouette_score,
)

from resample_tune.evaluation_engine.candidate_evaluator import ModelCallbacks
from resample_tune.model_factory.model_factory import CLASSIFICATION, CLUSTERING, REGRESSION, ModelFactory
from resample_tune.utils.exceptions import ConfigurationError

SUBMODEL_PARAM = 'n_estimators'


class SklearnModel:
    """
    Fit/score adapter around a ModelFactory estimator.

    Args:
        model_name: Estimator name known to ModelFactory.
        target: Outcome column (not used for clustering).
        task: 'classification', 'regression' or 'clustering'; inferred
            from the estimator when omitted.
        fixed_params: Constructor arguments that are not tuned.
        feature_columns: Predictor columns; defaults to every column except
            the target.
        seed: Integer ``random_state`` passed to estimators that accept one.
    """

    def __init__(self, model_name: str, target: Optional[str] = None, task: Optional[str] = None,
                 fixed_params: Optional[Dict[str, Any]] = None, feature_columns: Optional[Sequence[str]] = None,
                 seed: Optional[int] = None):
        inferred = ModelFactory.task_of(model_name)
        self.model_name = model_name
        self.task = task or inferred
        if self.task != inferred:
            raise ConfigurationError(f"{model_name} is a {inferred} model, not {self.task}.")
        if self.task != CLUSTERING and not target:
            raise ConfigurationError(f"A target column is required for {self.task}.")
        self.target = target
        self.fixed_params = dict(fixed_params or {})
        self.feature_columns = list(feature_columns) if feature_columns is not None else None
        self.seed = seed

    # --- Data ---

    def _features(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.feature_columns is not None:
            return df[self.feature_columns]
        if self.target is not None:
            return df.drop(columns=[self.target])
        return df

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**self.fixed_params, **params}
        if self.seed is not None and 'random_state' not in merged and ModelFactory.accepts(self.model_name, 'random_state'):
            merged['random_state'] = self.seed
        return merged

    # --- Callbacks ---

    def fit(self, analysis: pd.DataFrame, params: Dict[str, Any]) -> Any:
        model = ModelFactory.create(self.model_name, self._params(params))
        X = self._features(analysis)
        if self.task == CLUSTERING:
            return model.fit(X)
        return model.fit(X, analysis[self.target])

    def score(self, fitted: Any, assessment: pd.DataFrame) -> Dict[str, float]:
        X = self._features(assessment)
        if self.task == CLASSIFICATION:
            return self._classification_metrics(fitted, X, assessment[self.target])
        if self.task == REGRESSION:
            return self._regression_metrics(fitted, X, assessment[self.target])
        return self._clustering_metrics(fitted, X)

    @staticmethod
    def submodel(fitted: Any, n: int) -> Any:
        """Shallow copy of a fitted forest keeping only its first ``n`` trees."""
        n = int(n)
        if n > len(fitted.estimators_):
            raise ValueError(f"Forest has {len(fitted.estimators_)} trees, cannot take {n}.")
        sub = copy.copy(fitted)
        sub.estimators_ = fitted.estimators_[:n]
        sub.n_estimators = n
        return sub

    def score_submodels(self, fitted: Any, assessment: pd.DataFrame, values: List[int]) -> Dict[int, Dict[str, float]]:
        """Score forests truncated to their first ``n`` trees, one fit for all values."""
        return {
            int(n): self.score(self.submodel(fitted, n), assessment)
            for n in values if int(n) <= len(fitted.estimators_)
        }

    @staticmethod
    def extract_feature_importances(fitted: Any) -> Optional[Dict[str, float]]:
        importances = getattr(fitted, 'feature_importances_', None)
        if importances is None:
            return None
        names = getattr(fitted, 'feature_names_in_', None)
        if names is None:
            names = [f"x{i}" for i in range(len(importances))]
        return {str(name): float(value) for name, value in zip(names, importances)}

    @property
    def supports_submodels(self) -> bool:
        # Tree seeds are drawn sequentially, so truncation only matches a fresh fit with a fixed seed
        seeded = self.seed is not None or isinstance(self.fixed_params.get('random_state'), int)
        return self.model_name in ModelFactory.FOREST_MODELS and seeded

    def callbacks(self, extract: bool = False, use_submodels: bool = True) -> ModelCallbacks:
        submodels = use_submodels and self.supports_submodels
        return ModelCallbacks(
            fit=self.fit,
            score=self.score,
            extract=self.extract_feature_importances if extract else None,
            submodel_param=SUBMODEL_PARAM if submodels else None,
            score_submodels=self.score_submodels if submodels else None,
            submodel=self.submodel if submodels else None,
        )

    # --- Metrics ---

    @staticmethod
    def _classification_metrics(fitted: Any, X: pd.DataFrame, y: pd.Series) -> Dict[str, float]:
        metrics = {'accuracy': float(accuracy_score(y, fitted.predict(X)))}
        if not hasattr(fitted, 'predict_proba'):
            return metrics

        proba = fitted.predict_proba(X)
        classes = fitted.classes_
        metrics['log_loss'] = float(log_loss(y, proba, labels=classes))
        if y.nunique() < 2:
            metrics['roc_auc'] = math.nan
        elif len(classes) == 2:
            metrics['roc_auc'] = float(roc_auc_score(y == classes[1], proba[:, 1]))
        else:
            metrics['roc_auc'] = float(roc_auc_score(y, proba, multi_class='ovr', labels=classes))
        return metrics

    @staticmethod
    def _regression_metrics(fitted: Any, X: pd.DataFrame, y: pd.Series) -> Dict[str, float]:
        preds = fitted.predict(X)
        return {
            'rmse': float(np.sqrt(mean_squared_error(y, preds))),
            'mae': float(mean_absolute_error(y, preds)),
            'rsq': float(r2_score(y, preds)),
        }

    @staticmethod
    def _clustering_metrics(fitted: Any, X: pd.DataFrame) -> Dict[str, float]:
        labels = fitted.predict(X)
        n_labels = len(np.unique(labels))
        silhouette = silhouette_score(X, labels) if 2 <= n_labels < len(X) else math.nan
        return {
            # KMeans.score is the negative within-cluster sum of squares
            'sse_within': float(-fitted.score(X)),
            'silhouette': float(silhouette),
        }
