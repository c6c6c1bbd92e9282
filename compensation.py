"""
Ordered (action, undo) steps with reverse-order undo on failure.

The store offers no transaction across separate calls, so multi-write flows
(signup, purchase order creation, transfer creation) register an undo for every
write. When a step raises, the undos of all completed steps run newest first and
the original exception is re-raised. An undo that itself fails is logged and the
remaining undos still run.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class CompensationStep:
    def __init__(self, name: str, action: Callable[[Dict[str, Any]], Any],
                 undo: Optional[Callable[[Any], None]] = None):
        self.name = name
        self.action = action
        self.undo = undo

    def __repr__(self):
        return f"CompensationStep({self.name!r})"


class CompensationPlan:
    """
    Usage:
        plan = CompensationPlan('signup')
        plan.add_step('identity', create_identity, undo=delete_identity)
        plan.add_step('profile', insert_profile, undo=delete_profile)
        results = plan.execute()

    Each action receives the results of the steps before it, keyed by step name.
    Each undo receives the result of its own action.
    """

    def __init__(self, name: str):
        self.name = name
        self.steps: List[CompensationStep] = []
        self.completed: List[Tuple[CompensationStep, Any]] = []
        self.failed_step: Optional[str] = None
        self.undo_failures: List[str] = []

    def add_step(self, name: str, action: Callable[[Dict[str, Any]], Any],
                 undo: Optional[Callable[[Any], None]] = None) -> 'CompensationPlan':
        self.steps.append(CompensationStep(name, action, undo))
        return self

    def execute(self) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        for step in self.steps:
            try:
                results[step.name] = step.action(results)
            except Exception as e:
                self.failed_step = step.name
                logger.warning(f"{self.name}: step '{step.name}' failed ({e}); "
                               f"undoing {len(self.completed)} completed step(s)")
                self.compensate()
                raise
            self.completed.append((step, results[step.name]))
        return results

    def compensate(self) -> None:
        while self.completed:
            step, result = self.completed.pop()
            if step.undo is None:
                continue
            try:
                step.undo(result)
                logger.info(f"{self.name}: undid step '{step.name}'")
            except Exception as e:
                # Best effort: never escalated to the caller
                self.undo_failures.append(step.name)
                logger.error(f"{self.name}: undo of step '{step.name}' failed: {e}")
