"""Executor registry: maps each job kind to its analysis callable."""

from collections.abc import Callable
from typing import Any, Optional

from analysis_jobs.models import JobKind


class ExecutorRegistry:
    """Registry for kind-specific executors."""

    def __init__(self):
        self._executors: dict[str, Callable] = {}

    def handler(self, kind: Any):
        """
        Decorator to register an executor for a job kind.

        Usage:
            @registry.handler("clarity_check")
            async def clarity_check(ctx, payload):
                ...
                return ExecutionResult(summary="3 issues")
        """
        name = JobKind(kind).value

        def decorator(func: Callable):
            self._executors[name] = func
            return func

        return decorator

    def get_handler(self, kind: Any) -> Optional[Callable]:
        """Get the executor for a kind, or None when nothing is registered."""
        name = kind.value if isinstance(kind, JobKind) else kind
        return self._executors.get(name)

    def all_handlers(self) -> dict[str, Callable]:
        """Get all registered executors."""
        return self._executors.copy()


# Global registry instance
executor_registry = ExecutorRegistry()
