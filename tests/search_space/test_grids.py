import numpy as np
import pytest

from resample_tune.search_space import (
    HyperparameterSpace,
    QualitativeParameter,
    QuantitativeParameter,
    expand_grid,
    grid_from_config,
    latin_hypercube,
    random_grid,
    regular_grid,
)
from resample_tune.utils.exceptions import ConfigurationError


@pytest.fixture
def space():
    return HyperparameterSpace([
        QuantitativeParameter('alpha', 0.0, 1.0),
        QuantitativeParameter('depth', 1, 10, integer=True),
        QualitativeParameter('kernel', ['linear', 'rbf']),
    ])


class TestRegularGrid:

    def test_cartesian_product(self, space):
        grid = regular_grid(space, levels=3)
        assert len(grid) == 3 * 3 * 2
        assert len(set(grid)) == len(grid)
        assert all(space.contains(c) for c in grid)

    def test_per_parameter_levels(self, space):
        grid = regular_grid(space, levels={'alpha': 2, 'depth': 4})
        assert len(grid) == 2 * 4 * 2
        assert sorted({c['alpha'] for c in grid}) == [0.0, 1.0]

    def test_order_follows_space(self, space):
        grid = regular_grid(space, levels=2)
        assert grid[0].names == ['alpha', 'depth', 'kernel']
        assert grid[0].as_dict() == {'alpha': 0.0, 'depth': 1, 'kernel': 'linear'}


class TestRandomDesigns:

    def test_random_grid_is_reproducible(self, space):
        assert random_grid(space, 8, seed=3) == random_grid(space, 8, seed=3)
        assert all(space.contains(c) for c in random_grid(space, 8, seed=3))

    def test_latin_hypercube_hits_every_stratum(self):
        """Each of the n equal-width strata of a continuous parameter is sampled exactly once."""
        space = HyperparameterSpace([
            QuantitativeParameter('a', 0.0, 1.0),
            QuantitativeParameter('b', 0.0, 1.0),
        ])
        design = latin_hypercube(space, 10, seed=11)
        assert len(design) == 10
        for name in ('a', 'b'):
            strata = sorted(int(c[name] * 10) for c in design)
            assert strata == list(range(10))

    def test_latin_hypercube_accepts_generator(self, space):
        rng = np.random.default_rng(5)
        design = latin_hypercube(space, 6, seed=rng)
        assert all(space.contains(c) for c in design)

    def test_size_must_be_positive(self, space):
        with pytest.raises(ConfigurationError):
            random_grid(space, 0)
        with pytest.raises(ConfigurationError):
            latin_hypercube(space, 0)


class TestExpandGrid:

    def test_missing_parameters_use_default(self, space):
        grid = expand_grid(space, {'alpha': [0.1, 0.2], 'kernel': ['rbf']})
        assert len(grid) == 2
        assert {c['depth'] for c in grid} == {space['depth'].default_value()}
        assert all(c.names == space.names for c in grid)

    def test_unknown_parameter_rejected(self, space):
        with pytest.raises(ConfigurationError, match="unknown parameters"):
            expand_grid(space, {'gamma': [1.0]})

    def test_out_of_domain_value_rejected(self, space):
        with pytest.raises(ConfigurationError):
            expand_grid(space, {'alpha': [2.0]})

    def test_empty_values_rejected(self, space):
        with pytest.raises(ConfigurationError, match="empty"):
            expand_grid(space, {'alpha': []})


def test_grid_from_config_dispatch(space):
    assert len(grid_from_config(space, {'type': 'regular', 'levels': 2})) == 8
    assert len(grid_from_config(space, {'type': 'random', 'size': 4}, seed=1)) <= 4
    assert len(grid_from_config(space, {'type': 'explicit', 'values': {'alpha': [0.5]}})) == 1
    with pytest.raises(ConfigurationError, match="Unknown grid type"):
        grid_from_config(space, {'type': 'sobol'})
