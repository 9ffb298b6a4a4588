from resample_tune.model_factory.model_factory import CLASSIFICATION, CLUSTERING, REGRESSION, ModelFactory
from resample_tune.model_factory.sklearn_model import SklearnModel

__all__ = ['CLASSIFICATION', 'CLUSTERING', 'REGRESSION', 'ModelFactory', 'SklearnModel']
