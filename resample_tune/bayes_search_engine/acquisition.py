"""
Acquisition functions.

All functions return scores where larger is better, whatever the metric
direction, so the proposal step is always an argmax.
"""
import numpy as np
from scipy.stats import norm

from resample_tune.utils import constants
from resample_tune.utils.exceptions import ConfigurationError


def exp_decay(iteration: int, start: float, limit: float, decay: float) -> float:
    """Exploration trade-off: ``start`` at iteration 1, decaying toward ``limit``."""
    return (start - limit) * np.exp(-decay * (iteration - 1)) + limit


def _gain(mean: np.ndarray, best: float, direction: str) -> np.ndarray:
    if direction == constants.MAXIMIZE:
        return mean - best
    return best - mean


def expected_improvement(mean, std, best: float, direction: str = constants.MAXIMIZE,
                         trade_off: float = 0.0) -> np.ndarray:
    mean = np.asarray(mean, dtype=float)
    std = np.asarray(std, dtype=float)
    delta = _gain(mean, best, direction) - trade_off
    with np.errstate(divide='ignore', invalid='ignore'):
        z = np.where(std > 0, delta / std, 0.0)
        ei = delta * norm.cdf(z) + std * norm.pdf(z)
    return np.where(std > 0, ei, np.maximum(delta, 0.0))


def probability_improvement(mean, std, best: float, direction: str = constants.MAXIMIZE,
                            trade_off: float = 0.0) -> np.ndarray:
    mean = np.asarray(mean, dtype=float)
    std = np.asarray(std, dtype=float)
    delta = _gain(mean, best, direction) - trade_off
    with np.errstate(divide='ignore', invalid='ignore'):
        z = np.where(std > 0, delta / std, 0.0)
    return np.where(std > 0, norm.cdf(z), (delta > 0).astype(float))


def confidence_bound(mean, std, best: float = None, direction: str = constants.MAXIMIZE,
                     kappa: float = 0.1) -> np.ndarray:
    """Optimistic bound; ``best`` is unused but accepted for a uniform call."""
    mean = np.asarray(mean, dtype=float)
    std = np.asarray(std, dtype=float)
    if direction == constants.MAXIMIZE:
        return mean + kappa * std
    return -(mean - kappa * std)


ACQUISITION_FUNCTIONS = {
    'expected_improvement': expected_improvement,
    'probability_improvement': probability_improvement,
    'confidence_bound': confidence_bound,
}


def acquisition_scores(name: str, mean, std, best: float, direction: str,
                       trade_off: float = 0.0, kappa: float = 0.1) -> np.ndarray:
    if name not in ACQUISITION_FUNCTIONS:
        raise ConfigurationError(f"Unknown acquisition function '{name}'. Available: {list(ACQUISITION_FUNCTIONS)}")
    if name == 'confidence_bound':
        return confidence_bound(mean, std, best, direction, kappa=kappa)
    return ACQUISITION_FUNCTIONS[name](mean, std, best, direction, trade_off=trade_off)
