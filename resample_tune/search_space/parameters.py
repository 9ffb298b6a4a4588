"""
Tunable parameter domains.

A parameter is either quantitative (a bounded numeric range, optionally
sampled on a transformed scale) or qualitative (a finite set of values with
a default). Transforms are resolved by name when the parameter is built, so
search code only ever deals with the ``to_unit``/``from_unit`` mapping.
"""
import math
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from resample_tune.utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class Transform:
    """Monotonic transform applied before sampling and inverted before use."""
    name: str
    forward: Callable[[float], float]
    inverse: Callable[[float], float]
    requires_positive: bool = False


def _identity(x: float) -> float:
    return x


def _pow10(x: float) -> float:
    return 10.0 ** x


def _pow2(x: float) -> float:
    return 2.0 ** x


TRANSFORMS: Dict[str, Transform] = {
    'identity': Transform('identity', _identity, _identity),
    'log10': Transform('log10', math.log10, _pow10, requires_positive=True),
    'log2': Transform('log2', math.log2, _pow2, requires_positive=True),
    'log': Transform('log', math.log, math.exp, requires_positive=True),
}


def resolve_transform(name: Optional[str]) -> Transform:
    if name is None:
        return TRANSFORMS['identity']
    if name not in TRANSFORMS:
        raise ConfigurationError(f"Unknown transform '{name}'. Available: {sorted(TRANSFORMS)}")
    return TRANSFORMS[name]


@dataclass(frozen=True)
class QuantitativeParameter:
    """
    Bounded numeric parameter.

    Bounds are inclusive and given in natural units. With a transform such as
    ``log10``, grids and sequential search work on ``log10(lower)..log10(upper)``
    and values are mapped back before they reach the model.
    """
    name: str
    lower: float
    upper: float
    transform: Transform = field(default_factory=lambda: TRANSFORMS['identity'])
    integer: bool = False
    default: Optional[float] = None

    kind = 'quantitative'

    def __post_init__(self):
        if isinstance(self.transform, str) or self.transform is None:
            object.__setattr__(self, 'transform', resolve_transform(self.transform))
        if not (np.isfinite(self.lower) and np.isfinite(self.upper)):
            raise ConfigurationError(f"Parameter '{self.name}' bounds must be finite.")
        if self.lower >= self.upper:
            raise ConfigurationError(
                f"Parameter '{self.name}' lower bound ({self.lower}) must be < upper bound ({self.upper})."
            )
        if self.transform.requires_positive and self.lower <= 0:
            raise ConfigurationError(
                f"Parameter '{self.name}' uses a {self.transform.name} transform and needs lower > 0."
            )
        if self.integer and math.ceil(self.lower) > math.floor(self.upper):
            raise ConfigurationError(f"Integer parameter '{self.name}' has no integer inside its bounds.")
        if self.default is not None and not self.contains(self.default):
            raise ConfigurationError(f"Default {self.default} of '{self.name}' lies outside its bounds.")

    @property
    def transformed_bounds(self):
        return self.transform.forward(self.lower), self.transform.forward(self.upper)

    def contains(self, value: Any) -> bool:
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.integer, np.floating)):
            return False
        if self.integer and float(value) != int(value):
            return False
        return self.lower <= value <= self.upper

    def to_unit(self, value: float) -> float:
        """Map a natural value onto [0, 1] over the transformed range."""
        t_low, t_high = self.transformed_bounds
        return (self.transform.forward(float(value)) - t_low) / (t_high - t_low)

    def from_unit(self, u: float):
        """Map a [0, 1] coordinate back to a natural value inside the bounds."""
        t_low, t_high = self.transformed_bounds
        u = min(max(float(u), 0.0), 1.0)
        value = self.transform.inverse(t_low + u * (t_high - t_low))
        return self._snap(value)

    def _snap(self, value: float):
        # Inverse transforms can land a hair outside the bounds
        value = min(max(value, self.lower), self.upper)
        if self.integer:
            value = int(round(value))
            value = min(max(value, math.ceil(self.lower)), math.floor(self.upper))
            return int(value)
        return float(value)

    def grid_values(self, levels: int) -> List[Any]:
        """Evenly spaced values in transformed units, returned in natural units."""
        if levels < 1:
            raise ConfigurationError(f"Grid levels for '{self.name}' must be >= 1, got {levels}.")
        if levels == 1:
            return [self.default if self.default is not None else self.from_unit(0.5)]
        values = [self.from_unit(u) for u in np.linspace(0.0, 1.0, levels)]
        return list(dict.fromkeys(values))

    def default_value(self):
        return self.default if self.default is not None else self.from_unit(0.5)

    def describe(self) -> Dict[str, Any]:
        return {
            'name': self.name, 'type': self.kind, 'lower': self.lower, 'upper': self.upper,
            'transform': self.transform.name, 'integer': self.integer,
        }


@dataclass(frozen=True)
class QualitativeParameter:
    """Finite set of values with a designated default (first value when omitted)."""
    name: str
    values: Sequence[Any]
    default: Any = None

    kind = 'qualitative'

    def __post_init__(self):
        values = tuple(self.values)
        if not values:
            raise ConfigurationError(f"Qualitative parameter '{self.name}' needs at least one value.")
        if len(set(values)) != len(values):
            raise ConfigurationError(f"Qualitative parameter '{self.name}' has duplicate values.")
        object.__setattr__(self, 'values', values)
        if self.default is None:
            object.__setattr__(self, 'default', values[0])
        elif self.default not in values:
            raise ConfigurationError(f"Default '{self.default}' of '{self.name}' is not one of {list(values)}.")

    def contains(self, value: Any) -> bool:
        return value in self.values

    def to_unit(self, value: Any) -> float:
        n = len(self.values)
        return (self.values.index(value) + 0.5) / n

    def from_unit(self, u: float):
        idx = int(min(max(float(u), 0.0), 1.0) * len(self.values))
        return self.values[min(idx, len(self.values) - 1)]

    def grid_values(self, levels: Optional[int] = None) -> List[Any]:
        # Qualitative grids always use every value
        return list(self.values)

    def default_value(self):
        return self.default

    def one_hot(self, value: Any) -> List[float]:
        return [1.0 if v == value else 0.0 for v in self.values]

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name, 'type': self.kind, 'values': list(self.values), 'default': self.default}


def parameter_from_config(name: str, spec: Dict[str, Any]):
    """Build a tagged parameter domain from its JSON description."""
    kind = spec.get('type', 'quantitative')
    if kind == 'quantitative':
        for key in ('lower', 'upper'):
            if key not in spec:
                raise ConfigurationError(f"Quantitative parameter '{name}' requires '{key}'.")
        return QuantitativeParameter(
            name=name,
            lower=spec['lower'],
            upper=spec['upper'],
            transform=resolve_transform(spec.get('transform')),
            integer=spec.get('integer', False),
            default=spec.get('default'),
        )
    if kind == 'qualitative':
        return QualitativeParameter(name=name, values=spec.get('values', ()), default=spec.get('default'))
    raise ConfigurationError(f"Unknown parameter type '{kind}' for '{name}'.")
