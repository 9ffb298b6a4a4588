import numpy as np
import pytest

from resample_tune.bayes_search_engine import GaussianProcessSurrogate

# --- Fixtures ---

@pytest.fixture
def training_data():
    X = np.linspace(0.0, 1.0, 8).reshape(-1, 1)
    y = np.sin(6 * X).ravel()
    return X, y

# --- Tests ---

class TestGaussianProcessSurrogate:

    def test_interpolates_training_points(self, training_data):
        X, y = training_data
        surrogate = GaussianProcessSurrogate(seed=0).fit(X, y)
        mean, std = surrogate.predict(X)
        np.testing.assert_allclose(mean, y, atol=0.25)
        assert np.all(std >= 0)

    def test_uncertainty_grows_away_from_data(self):
        X = np.array([[0.0], [0.1], [0.2]])
        y = np.array([0.0, 0.5, 0.3])
        surrogate = GaussianProcessSurrogate(seed=0).fit(X, y)
        _, std = surrogate.predict(np.array([[0.1], [1.0]]))
        assert std[1] > std[0]

    def test_same_seed_same_predictions(self, training_data):
        X, y = training_data
        grid = np.linspace(0.0, 1.0, 25).reshape(-1, 1)
        a = GaussianProcessSurrogate(seed=3).fit(X, y).predict(grid)
        b = GaussianProcessSurrogate(seed=3).fit(X, y).predict(grid)
        np.testing.assert_allclose(a[0], b[0])
        np.testing.assert_allclose(a[1], b[1])

    def test_multiple_dimensions(self):
        rng = np.random.default_rng(0)
        X = rng.random((10, 3))
        y = X.sum(axis=1)
        mean, std = GaussianProcessSurrogate(seed=1).fit(X, y).predict(rng.random((4, 3)))
        assert mean.shape == (4,)
        assert std.shape == (4,)

    def test_predict_before_fit(self):
        with pytest.raises(RuntimeError, match="fitted"):
            GaussianProcessSurrogate().predict(np.zeros((1, 1)))

    def test_mismatched_shapes(self):
        with pytest.raises(ValueError):
            GaussianProcessSurrogate().fit(np.zeros((3, 1)), np.zeros(2))
        with pytest.raises(ValueError):
            GaussianProcessSurrogate().fit(np.zeros((0, 1)), np.zeros(0))
