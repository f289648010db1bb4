"""
Custom decision rules. A rule is registered with the DecisionEngine at
construction and runs after the built-in evaluation steps of every cycle.
"""

from typing import List


class Rule:
    """Base class for custom rules."""
    name = "rule"

    def evaluate(self, state, config, queue) -> List:
        """
        Returns the tasks this rule wants queued for the cycle.

        Args:
            state (GameState): Snapshot of the village.
            config (EngineConfig): Normalized engine configuration.
            queue: Caller's task queue, offering `has_task_of_type(kind, village_id)`.
        """
        raise NotImplementedError

    def __repr__(self):
        return f"<Rule: {self.name}>"
