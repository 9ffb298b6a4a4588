"""
Search History
==============

Responsibility:
- Immutable per-cell evaluation records.
- Thread-safe, append-only log with monotonic sequence numbers.
- Search driver states.
"""

from .search_history import EvaluationResult, SearchHistory, SearchState, TERMINAL_STATES

__all__ = ['EvaluationResult', 'SearchHistory', 'SearchState', 'TERMINAL_STATES']
