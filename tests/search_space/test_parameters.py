import math
import pytest

from resample_tune.search_space.parameters import (
    TRANSFORMS,
    QualitativeParameter,
    QuantitativeParameter,
    parameter_from_config,
    resolve_transform,
)
from resample_tune.utils.exceptions import ConfigurationError


class TestQuantitativeParameter:

    def test_lower_must_be_below_upper(self):
        """A range with lower >= upper is a configuration error."""
        with pytest.raises(ConfigurationError, match="lower bound"):
            QuantitativeParameter('alpha', 1.0, 1.0)
        with pytest.raises(ConfigurationError):
            QuantitativeParameter('alpha', 2.0, 1.0)

    def test_log_transform_requires_positive_lower(self):
        with pytest.raises(ConfigurationError, match="needs lower > 0"):
            QuantitativeParameter('penalty', 0.0, 1.0, transform=TRANSFORMS['log10'])

    def test_transform_resolved_from_name(self):
        p = QuantitativeParameter('penalty', 1e-3, 1.0, transform='log10')
        assert p.transform.name == 'log10'
        assert p.transformed_bounds == pytest.approx((-3.0, 0.0))

    def test_log10_grid_is_even_in_transformed_units(self):
        """Five log10 levels between 1e-4 and 1 are the powers of ten."""
        p = QuantitativeParameter('penalty', 1e-4, 1.0, transform=TRANSFORMS['log10'])
        assert p.grid_values(5) == pytest.approx([1e-4, 1e-3, 1e-2, 1e-1, 1.0])

    def test_integer_grid_is_deduplicated(self):
        p = QuantitativeParameter('depth', 1, 3, integer=True)
        assert p.grid_values(10) == [1, 2, 3]

    def test_single_level_uses_default(self):
        p = QuantitativeParameter('alpha', 0.0, 10.0, default=2.5)
        assert p.grid_values(1) == [2.5]
        assert QuantitativeParameter('alpha', 0.0, 10.0).grid_values(1) == [5.0]

    def test_from_unit_clips_to_bounds(self):
        p = QuantitativeParameter('alpha', -1.0, 1.0)
        assert p.from_unit(1.7) == 1.0
        assert p.from_unit(-0.3) == -1.0

    def test_integer_from_unit_returns_int_inside_bounds(self):
        p = QuantitativeParameter('trees', 10, 500, integer=True, transform=TRANSFORMS['log2'])
        for u in (0.0, 0.13, 0.5, 0.99, 1.0):
            value = p.from_unit(u)
            assert isinstance(value, int)
            assert 10 <= value <= 500

    def test_to_unit_inverts_from_unit(self):
        p = QuantitativeParameter('rate', 1e-3, 1e-1, transform=TRANSFORMS['log'])
        assert p.to_unit(p.from_unit(0.25)) == pytest.approx(0.25)

    def test_contains(self):
        p = QuantitativeParameter('depth', 1, 10, integer=True)
        assert p.contains(5)
        assert p.contains(5.0)
        assert not p.contains(5.5)
        assert not p.contains(11)
        assert not p.contains("5")
        assert not p.contains(True)

    def test_default_outside_bounds_rejected(self):
        with pytest.raises(ConfigurationError, match="outside its bounds"):
            QuantitativeParameter('alpha', 0.0, 1.0, default=3.0)

    def test_integer_range_without_integers_rejected(self):
        with pytest.raises(ConfigurationError, match="no integer"):
            QuantitativeParameter('k', 1.2, 1.8, integer=True)

    def test_non_finite_bounds_rejected(self):
        with pytest.raises(ConfigurationError, match="finite"):
            QuantitativeParameter('alpha', 0.0, math.inf)


class TestQualitativeParameter:

    def test_default_is_first_value(self):
        p = QualitativeParameter('criterion', ['gini', 'entropy'])
        assert p.default_value() == 'gini'

    def test_invalid_default_rejected(self):
        with pytest.raises(ConfigurationError, match="not one of"):
            QualitativeParameter('criterion', ['gini', 'entropy'], default='log_loss')

    def test_empty_and_duplicate_values_rejected(self):
        with pytest.raises(ConfigurationError):
            QualitativeParameter('criterion', [])
        with pytest.raises(ConfigurationError, match="duplicate"):
            QualitativeParameter('criterion', ['gini', 'gini'])

    def test_unit_mapping_hits_every_value(self):
        p = QualitativeParameter('kernel', ['linear', 'rbf', 'poly'])
        assert [p.from_unit(p.to_unit(v)) for v in p.values] == ['linear', 'rbf', 'poly']
        assert p.from_unit(1.0) == 'poly'
        assert p.from_unit(0.0) == 'linear'

    def test_grid_uses_every_value(self):
        p = QualitativeParameter('kernel', ['linear', 'rbf'])
        assert p.grid_values(7) == ['linear', 'rbf']

    def test_one_hot(self):
        p = QualitativeParameter('kernel', ['linear', 'rbf', 'poly'])
        assert p.one_hot('rbf') == [0.0, 1.0, 0.0]


def test_resolve_transform_unknown_name():
    with pytest.raises(ConfigurationError, match="Unknown transform"):
        resolve_transform('sqrt')
    assert resolve_transform(None).name == 'identity'


def test_parameter_from_config():
    """Tagged descriptors are built from their JSON description."""
    quant = parameter_from_config('penalty', {'lower': 1e-4, 'upper': 1.0, 'transform': 'log10'})
    qual = parameter_from_config('kernel', {'type': 'qualitative', 'values': ['rbf', 'linear']})

    assert isinstance(quant, QuantitativeParameter)
    assert quant.transform.name == 'log10'
    assert isinstance(qual, QualitativeParameter)
    assert qual.default == 'rbf'

    with pytest.raises(ConfigurationError, match="requires 'upper'"):
        parameter_from_config('penalty', {'lower': 0.0})
    with pytest.raises(ConfigurationError, match="Unknown parameter type"):
        parameter_from_config('penalty', {'type': 'ordinal'})
