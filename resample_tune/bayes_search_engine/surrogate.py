import warnings
import numpy as np
from typing import Optional, Tuple

from sklearn.exceptions import ConvergenceWarning as SklearnConvergenceWarning
from sklearn.gaussian_process import GaussianProcessRegressor
from sklearn.gaussian_process.kernels import ConstantKernel, Matern, WhiteKernel


class GaussianProcessSurrogate:
    """
    Gaussian process belief over the (encoded configuration -> mean metric) surface.

    A new instance is fitted for every proposal round; fitted surrogates are
    never updated in place.
    """

    def __init__(self, seed: Optional[int] = None, nu: float = 2.5, n_restarts: int = 2):
        self.seed = seed
        self.nu = nu
        self.n_restarts = n_restarts
        self.model: Optional[GaussianProcessRegressor] = None

    def _kernel(self, n_dims: int):
        return (
            ConstantKernel(1.0, constant_value_bounds=(1e-3, 1e3))
            * Matern(length_scale=np.ones(n_dims), length_scale_bounds=(1e-2, 1e2), nu=self.nu)
            + WhiteKernel(noise_level=1e-3, noise_level_bounds=(1e-8, 1e0))
        )

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'GaussianProcessSurrogate':
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        if X.ndim != 2 or len(X) != len(y) or len(y) == 0:
            raise ValueError(f"Surrogate needs matching non-empty X {X.shape} and y {y.shape}.")

        self.model = GaussianProcessRegressor(
            kernel=self._kernel(X.shape[1]),
            normalize_y=True,
            n_restarts_optimizer=self.n_restarts,
            random_state=self.seed,
        )
        # Hyperparameter optimisation often hits bounds on tiny samples
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=SklearnConvergenceWarning)
            self.model.fit(X, y)
        return self

    def predict(self, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Posterior mean and standard deviation at ``X``."""
        if self.model is None:
            raise RuntimeError("Surrogate must be fitted before predicting.")
        mean, std = self.model.predict(np.asarray(X, dtype=float), return_std=True)
        return mean, np.maximum(std, 0.0)
