"""
Results Engine Package.

Responsibility:
- Summarise per-fold metrics per configuration (mean, n, standard error)
- Select and rank the best configurations
- Expose extraction artifacts and failure diagnostics
"""
from resample_tune.results_engine.results_engine import (
    ResultsEngine,
    collect_extracts,
    collect_metrics,
    collect_notes,
    select_best,
    show_best,
)

__all__ = ['ResultsEngine', 'collect_extracts', 'collect_metrics', 'collect_notes', 'select_best', 'show_best']
