import hashlib
import json
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Tuple

from resample_tune.search_space.parameters import (
    QualitativeParameter,
    QuantitativeParameter,
    parameter_from_config,
)
from resample_tune.utils.exceptions import ConfigurationError
from resample_tune.utils.file_io import NumpyEncoder


def _to_python(value: Any) -> Any:
    """Unwrap NumPy scalars so configurations hash and compare like plain values."""
    if isinstance(value, np.generic):
        return value.item()
    return value


@dataclass(frozen=True)
class Configuration:
    """
    One concrete assignment of a value to every tunable parameter.

    Identity is the assignment tuple itself, so two configurations built from
    the same values compare and hash equal regardless of how they were made.
    """
    assignments: Tuple[Tuple[str, Any], ...]

    @classmethod
    def from_dict(cls, values: Mapping[str, Any], order: Sequence[str] = None) -> 'Configuration':
        names = list(order) if order is not None else list(values)
        return cls(tuple((name, _to_python(values[name])) for name in names))

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.assignments)

    def __getitem__(self, name: str) -> Any:
        for key, value in self.assignments:
            if key == name:
                return value
        raise KeyError(name)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.assignments]

    @property
    def config_id(self) -> str:
        # Deterministic hash, stable across processes
        signature = json.dumps(self.as_dict(), sort_keys=True, cls=NumpyEncoder)
        return hashlib.md5(signature.encode()).hexdigest()

    def replace(self, **values) -> 'Configuration':
        return Configuration(tuple(
            (name, _to_python(values[name]) if name in values else value)
            for name, value in self.assignments
        ))

    def __str__(self) -> str:
        return ", ".join(f"{name}={value}" for name, value in self.assignments)


class HyperparameterSpace:
    """Ordered mapping from parameter name to its domain."""

    def __init__(self, parameters: Sequence):
        parameters = list(parameters)
        if not parameters:
            raise ConfigurationError("Hyperparameter space must declare at least one parameter.")
        names = [p.name for p in parameters]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate parameter names in search space: {duplicates}")
        for p in parameters:
            if not isinstance(p, (QuantitativeParameter, QualitativeParameter)):
                raise ConfigurationError(f"Unsupported parameter domain: {p!r}")
        self._parameters = parameters
        self._by_name = {p.name: p for p in parameters}

    @classmethod
    def from_config(cls, spec: Mapping[str, Mapping[str, Any]]) -> 'HyperparameterSpace':
        """Build from the ``search_space`` section of a run configuration."""
        return cls([parameter_from_config(name, entry) for name, entry in spec.items()])

    def __iter__(self) -> Iterator:
        return iter(self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    def __getitem__(self, name: str):
        return self._by_name[name]

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._parameters]

    def configuration(self, **values) -> Configuration:
        self.validate(Configuration.from_dict(values))
        return Configuration.from_dict(values, order=self.names)

    def default_configuration(self) -> Configuration:
        return Configuration.from_dict({p.name: p.default_value() for p in self._parameters}, order=self.names)

    def contains(self, config: Configuration) -> bool:
        values = config.as_dict()
        if set(values) != set(self.names):
            return False
        return all(p.contains(values[p.name]) for p in self._parameters)

    def validate(self, config: Configuration) -> None:
        values = config.as_dict()
        missing = [n for n in self.names if n not in values]
        extra = [n for n in values if n not in self._by_name]
        if missing or extra:
            raise ConfigurationError(f"Configuration ({config}) does not match the space: missing={missing}, unknown={extra}")
        for p in self._parameters:
            if not p.contains(values[p.name]):
                raise ConfigurationError(f"Value {values[p.name]!r} of '{p.name}' is outside its domain.")

    # --- Unit cube mapping (used by designs and the surrogate) ---

    def from_unit_vector(self, u: Sequence[float]) -> Configuration:
        """Decode one point of the unit hypercube (one coordinate per parameter)."""
        return Configuration(tuple((p.name, p.from_unit(x)) for p, x in zip(self._parameters, u)))

    def encode(self, configs: Sequence[Configuration]) -> np.ndarray:
        """
        Numeric feature matrix for surrogate fitting.

        Quantitative parameters become their [0, 1] position in transformed
        units; qualitative parameters are one-hot encoded.
        """
        rows = []
        for config in configs:
            values = config.as_dict()
            row: List[float] = []
            for p in self._parameters:
                if isinstance(p, QualitativeParameter):
                    row.extend(p.one_hot(values[p.name]))
                else:
                    row.append(p.to_unit(values[p.name]))
            rows.append(row)
        return np.asarray(rows, dtype=float)

    def describe(self) -> List[Dict[str, Any]]:
        return [p.describe() for p in self._parameters]
