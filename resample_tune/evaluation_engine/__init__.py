"""
Evaluation Engine
=================

Responsibility:
- Host capability interface (fit / score / extract / sub-model scoring).
- Per-cell fit and score with failure capture and optional timeout.
- Grouping of configurations into shared fits (sub-model trick).
"""

from .candidate_evaluator import CandidateEvaluator, Cell, ModelCallbacks, plan_cells

__all__ = ['CandidateEvaluator', 'Cell', 'ModelCallbacks', 'plan_cells']
