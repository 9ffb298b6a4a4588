import inspect
from typing import Dict, Any, List
from sklearn.cluster import KMeans, MiniBatchKMeans
from sklearn.ensemble import (
    ExtraTreesClassifier,
    ExtraTreesRegressor,
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    HistGradientBoostingClassifier,
    HistGradientBoostingRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from sklearn.linear_model import ElasticNet, Lasso, LogisticRegression, Ridge
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.svm import SVC, SVR
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from resample_tune.utils.exceptions import ConfigurationError

CLASSIFICATION = 'classification'
REGRESSION = 'regression'
CLUSTERING = 'clustering'


class ModelFactory:
    """
    Factory for creating scikit-learn estimators by name with a unified interface.
    Estimators are grouped by the task they solve.
    """

    CLASSIFIERS = {
        'RandomForestClassifier': RandomForestClassifier,
        'ExtraTreesClassifier': ExtraTreesClassifier,
        'GradientBoostingClassifier': GradientBoostingClassifier,
        'HistGradientBoostingClassifier': HistGradientBoostingClassifier,
        'DecisionTreeClassifier': DecisionTreeClassifier,
        'LogisticRegression': LogisticRegression,
        'KNeighborsClassifier': KNeighborsClassifier,
        'SVC': SVC,
    }

    REGRESSORS = {
        'RandomForestRegressor': RandomForestRegressor,
        'ExtraTreesRegressor': ExtraTreesRegressor,
        'GradientBoostingRegressor': GradientBoostingRegressor,
        'HistGradientBoostingRegressor': HistGradientBoostingRegressor,
        'DecisionTreeRegressor': DecisionTreeRegressor,
        'Ridge': Ridge,
        'Lasso': Lasso,
        'ElasticNet': ElasticNet,
        'KNeighborsRegressor': KNeighborsRegressor,
        'SVR': SVR,
    }

    CLUSTERERS = {
        'KMeans': KMeans,
        'MiniBatchKMeans': MiniBatchKMeans,
    }

    # Ensembles whose first n fitted trees equal an n-tree fit with the same integer seed
    FOREST_MODELS = {
        'RandomForestClassifier',
        'ExtraTreesClassifier',
        'RandomForestRegressor',
        'ExtraTreesRegressor',
    }

    @classmethod
    def _registry(cls) -> Dict[str, Dict[str, Any]]:
        return {
            CLASSIFICATION: cls.CLASSIFIERS,
            REGRESSION: cls.REGRESSORS,
            CLUSTERING: cls.CLUSTERERS,
        }

    @classmethod
    def create(cls, model_name: str, params: Dict[str, Any] = None) -> Any:
        """
        Create and return an instantiated estimator.
        """
        if params is None:
            params = {}

        for models in cls._registry().values():
            if model_name in models:
                model_class = models[model_name]
                valid_params = cls._filter_params(model_class, params)
                return model_class(**valid_params)

        raise ConfigurationError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")

    @classmethod
    def task_of(cls, model_name: str) -> str:
        for task, models in cls._registry().items():
            if model_name in models:
                return task
        raise ConfigurationError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")

    @classmethod
    def accepts(cls, model_name: str, param: str) -> bool:
        """True when the estimator's constructor takes ``param``."""
        model_class = cls._registry()[cls.task_of(model_name)][model_name]
        return param in cls._filter_params(model_class, {param: None})

    @classmethod
    def get_available_models(cls) -> List[str]:
        """Return list of all supported model names."""
        return [name for models in cls._registry().values() for name in models]

    @staticmethod
    def _filter_params(model_class, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove parameters from `params` that are not accepted by `model_class` constructor.
        """
        sig = inspect.signature(model_class.__init__)

        valid_keys = [
            p.name for p in sig.parameters.values()
            if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
        ]

        # Always allow **kwargs if the model supports it
        has_kwargs = any(p.kind == p.VAR_KEYWORD for p in sig.parameters.values())

        if has_kwargs:
            return params

        return {k: v for k, v in params.items() if k in valid_keys}
