"""
Grid and design builders.

Each builder returns an ordered, de-duplicated list of Configurations; the
position in that list is the configuration index used for canonical ordering
and tie-breaking downstream.
"""
import itertools
import numpy as np
from typing import Any, Dict, List, Mapping, Sequence, Union

from sklearn.model_selection import ParameterGrid

from resample_tune.search_space.space import Configuration, HyperparameterSpace
from resample_tune.utils.exceptions import ConfigurationError
from resample_tune.utils.rng import SeedLike, make_rng


def _dedupe(configs: List[Configuration]) -> List[Configuration]:
    return list(dict.fromkeys(configs))


def _require_non_empty(configs: List[Configuration], builder: str) -> List[Configuration]:
    if not configs:
        raise ConfigurationError(f"{builder} produced an empty grid.")
    return configs


def regular_grid(space: HyperparameterSpace, levels: Union[int, Mapping[str, int]] = 3) -> List[Configuration]:
    """
    Cartesian product of evenly spaced values per parameter.

    Quantitative values are spaced evenly in transformed units, so a log10
    parameter from 1e-4 to 1 with 5 levels gives 1e-4, 1e-3, ..., 1.
    Qualitative parameters contribute every value.
    """
    per_param = []
    for p in space:
        n = levels.get(p.name, 3) if isinstance(levels, Mapping) else levels
        per_param.append(p.grid_values(n))

    configs = [
        Configuration(tuple(zip(space.names, combo)))
        for combo in itertools.product(*per_param)
    ]
    return _require_non_empty(_dedupe(configs), "regular_grid")


def random_grid(space: HyperparameterSpace, size: int, seed: SeedLike = None) -> List[Configuration]:
    """Independent uniform draws in transformed units."""
    if size < 1:
        raise ConfigurationError(f"random_grid size must be >= 1, got {size}.")
    rng = make_rng(seed)
    points = rng.random((size, len(space)))
    configs = [space.from_unit_vector(row) for row in points]
    return _require_non_empty(_dedupe(configs), "random_grid")


def latin_hypercube(space: HyperparameterSpace, size: int, seed: SeedLike = None) -> List[Configuration]:
    """
    Space-filling design: each parameter's range is cut into ``size`` strata
    and every stratum is hit exactly once, in a random pairing across
    parameters.
    """
    if size < 1:
        raise ConfigurationError(f"latin_hypercube size must be >= 1, got {size}.")
    rng = make_rng(seed)
    points = latin_hypercube_points(size, len(space), rng)
    configs = [space.from_unit_vector(row) for row in points]
    return _require_non_empty(_dedupe(configs), "latin_hypercube")


def latin_hypercube_points(size: int, dims: int, rng: np.random.Generator) -> np.ndarray:
    """Raw ``(size, dims)`` Latin hypercube sample on the unit cube."""
    points = np.empty((size, dims))
    for d in range(dims):
        points[:, d] = (rng.permutation(size) + rng.random(size)) / size
    return points


def expand_grid(space: HyperparameterSpace, values: Mapping[str, Sequence[Any]]) -> List[Configuration]:
    """
    Explicit Cartesian product of user supplied values.

    Parameters missing from ``values`` are held at their default. Every
    resulting configuration is checked against the space.
    """
    unknown = [name for name in values if name not in space.names]
    if unknown:
        raise ConfigurationError(f"Grid values given for unknown parameters: {unknown}")
    full: Dict[str, List[Any]] = {}
    for p in space:
        options = list(values.get(p.name, [p.default_value()]))
        if not options:
            raise ConfigurationError(f"Grid values for '{p.name}' are empty.")
        full[p.name] = options

    configs = []
    for params in ParameterGrid(full):
        config = Configuration.from_dict(params, order=space.names)
        space.validate(config)
        configs.append(config)
    return _require_non_empty(_dedupe(configs), "expand_grid")


def grid_from_config(space: HyperparameterSpace, grid_config: Mapping[str, Any], seed: SeedLike = None) -> List[Configuration]:
    """Dispatch on the ``grid`` section of a run configuration."""
    grid_type = grid_config.get('type', 'regular')
    if grid_type == 'regular':
        return regular_grid(space, grid_config.get('levels', 3))
    if grid_type == 'random':
        return random_grid(space, grid_config.get('size', 10), seed=seed)
    if grid_type == 'latin_hypercube':
        return latin_hypercube(space, grid_config.get('size', 10), seed=seed)
    if grid_type == 'explicit':
        return expand_grid(space, grid_config.get('values', {}))
    raise ConfigurationError(f"Unknown grid type '{grid_type}'.")
