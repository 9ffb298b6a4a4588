import logging
from typing import Dict, List, Optional, Tuple

from resample_tune.search_history.search_history import SearchState
from resample_tune.utils.exceptions import ConfigurationError


class StoppingCriteria:
    """
    Evaluates whether the sequential search loop should terminate.

    Strategies:
    - budget: Stop when the iteration count reaches ``n_iter``.
    - patience: Stop when the best mean metric has not improved for
      ``no_improve`` consecutive iterations.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        self.config = config
        self.logger = logger

        bayes_config = config.get('search', {}).get('bayes', {})
        self.n_iter = bayes_config.get('n_iter', 10)
        self.no_improve = bayes_config.get('no_improve', 10)

        if self.n_iter < 1:
            raise ConfigurationError(f"n_iter must be >= 1, got {self.n_iter}.")
        if self.no_improve < 1:
            raise ConfigurationError(f"no_improve must be >= 1, got {self.no_improve}.")

    def should_stop(self, iterations_history: List[Dict]) -> Tuple[Optional[SearchState], str]:
        """
        Determines if the search should stop based on per-iteration summaries.

        Args:
            iterations_history: One dict per completed iteration with keys
                'iteration' and 'improved'. The initial design is excluded.

        Returns:
            (terminal state or None, reason_string)
        """
        if not iterations_history:
            return None, ""

        current = iterations_history[-1]

        # 1. Hard Limit: Iteration budget
        if current['iteration'] >= self.n_iter:
            return SearchState.BUDGET_EXHAUSTED, f"Iteration budget reached ({self.n_iter})"

        # 2. Plateau
        stale = self.iterations_without_improvement(iterations_history)
        if stale >= self.no_improve:
            return SearchState.CONVERGED, f"No improvement for {stale} iterations"

        return None, ""

    @staticmethod
    def iterations_without_improvement(iterations_history: List[Dict]) -> int:
        """Length of the trailing run of iterations that did not improve."""
        count = 0
        for record in reversed(iterations_history):
            if record['improved']:
                break
            count += 1
        return count
