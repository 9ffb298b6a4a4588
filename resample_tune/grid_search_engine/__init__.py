"""
Grid Search Engine Package.

Responsibility:
- Evaluate an explicit grid of configurations on every fold
- Fan (configuration, fold) cells out to a joblib worker pool
- Record every result in a single SearchHistory
"""
from resample_tune.grid_search_engine.grid_search_engine import (
    GridSearchEngine,
    dispatch_cells,
    grid_search,
    resolve_primary_metric,
    validate_grid,
)

__all__ = ['GridSearchEngine', 'dispatch_cells', 'grid_search', 'resolve_primary_metric', 'validate_grid']
