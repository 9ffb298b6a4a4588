"""
Fold Engine
===========

Responsibility:
- k-fold (optionally repeated) partitioning of the dataset.
- Stratified allocation that preserves class proportions in every fold.
- Deterministic folds from an explicit seed or generator.
"""

from .fold_engine import Fold, FoldEngine, fold_assignments, generate_folds

__all__ = ['Fold', 'FoldEngine', 'fold_assignments', 'generate_folds']
