"""
Bayesian Search Engine Package.

Responsibility:
- Space-filling initial design over the (transformed) search space
- Gaussian process surrogate refitted after every batch
- Acquisition-driven proposals with a decaying exploration trade-off
- Budget and patience based termination
"""
from resample_tune.bayes_search_engine.acquisition import (
    ACQUISITION_FUNCTIONS,
    acquisition_scores,
    confidence_bound,
    exp_decay,
    expected_improvement,
    probability_improvement,
)
from resample_tune.bayes_search_engine.bayes_search_engine import BayesSearchEngine, bayes_search
from resample_tune.bayes_search_engine.stopping_criteria import StoppingCriteria
from resample_tune.bayes_search_engine.surrogate import GaussianProcessSurrogate

__all__ = [
    'ACQUISITION_FUNCTIONS',
    'BayesSearchEngine',
    'GaussianProcessSurrogate',
    'StoppingCriteria',
    'acquisition_scores',
    'bayes_search',
    'confidence_bound',
    'exp_decay',
    'expected_improvement',
    'probability_improvement',
]
