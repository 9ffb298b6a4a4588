"""
Search Space Module
===================

Responsibility:
- Tagged parameter domains (quantitative with transform, qualitative with values).
- Configurations identified by their assignment tuple.
- Regular, random, Latin hypercube and explicit grids.
"""

from .parameters import QualitativeParameter, QuantitativeParameter, TRANSFORMS, parameter_from_config
from .space import Configuration, HyperparameterSpace
from .grids import expand_grid, grid_from_config, latin_hypercube, random_grid, regular_grid

__all__ = [
    'Configuration',
    'HyperparameterSpace',
    'QualitativeParameter',
    'QuantitativeParameter',
    'TRANSFORMS',
    'expand_grid',
    'grid_from_config',
    'latin_hypercube',
    'parameter_from_config',
    'random_grid',
    'regular_grid',
]
