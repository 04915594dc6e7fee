"""Minimal saga runner: ordered steps, reverse-order compensation."""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from booking.errors import SagaFailed
from booking.retry import RetryPolicy

logger = logging.getLogger(__name__)
orphan_logger = logging.getLogger("booking.orphans")

Results = Dict[str, Any]


@dataclass
class SagaStep:
    """One unit of work plus the action that undoes it.

    ``action`` receives the results of earlier steps keyed by step name.
    ``compensation`` receives this step's own result. Steps without a
    compensation (usually the last one) are simply not undone.
    """

    name: str
    action: Callable[[Results], Awaitable[Any]]
    compensation: Optional[Callable[[Any], Awaitable[Any]]] = None


class SagaRunner:
    def __init__(self, retry_policy: RetryPolicy, name: str, context: Optional[dict] = None):
        self.retry_policy = retry_policy
        self.name = name
        self.context = context or {}

    def _ctx(self) -> str:
        return " ".join(f"{k}={v}" for k, v in self.context.items())

    async def run(self, steps: List[SagaStep]) -> Results:
        """Run every step in order.

        If a step still fails after retries, compensate the completed steps
        newest first and raise SagaFailed.
        """
        results: Results = {}
        completed: List[SagaStep] = []
        for step in steps:
            try:
                result = await self.retry_policy.run(
                    lambda step=step: step.action(results),
                    name=f"{self.name}.{step.name}",
                )
            except Exception as exc:
                logger.error(
                    "Saga %s failed at step %s %s: %s", self.name, step.name, self._ctx(), exc
                )
                orphaned = await self.compensate(completed, results)
                raise SagaFailed(step.name, exc, orphaned) from exc
            results[step.name] = result
            completed.append(step)
        return results

    async def compensate(self, completed: List[SagaStep], results: Results) -> List[str]:
        """Undo completed steps in reverse order. Returns the steps left orphaned."""
        orphaned = []
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await self.retry_policy.run(
                    lambda step=step: step.compensation(results[step.name]),
                    name=f"{self.name}.{step.name}.compensate",
                )
                logger.info("Compensated %s.%s %s", self.name, step.name, self._ctx())
            except Exception as exc:
                orphaned.append(step.name)
                orphan_logger.critical(
                    "ORPHANED RESOURCE: compensation of %s.%s failed, manual cleanup required %s result=%r: %s",
                    self.name,
                    step.name,
                    self._ctx(),
                    results.get(step.name),
                    exc,
                    exc_info=True,
                )
        return orphaned
