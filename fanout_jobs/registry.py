"""Domain operation registry."""

from collections.abc import Callable
from typing import Optional

from fanout_jobs.errors import OperationNotFoundError


class OperationRegistry:
    """Registry for domain operations, looked up by job name."""

    def __init__(self):
        self._operations: dict[str, Callable] = {}

    def operation(self, name: str):
        """
        Decorator to register a domain operation.

        Usage:
            @registry.operation("weekly_brief")
            async def build_weekly_brief(ctx, tenant_id, job_key):
                ...
                return {"success": True}
        """

        def decorator(func: Callable):
            self._operations[name] = func
            return func

        return decorator

    def register(self, name: str, func: Callable) -> None:
        """Register an operation without the decorator."""
        self._operations[name] = func

    def get_operation(self, name: str) -> Optional[Callable]:
        """Get an operation by name."""
        return self._operations.get(name)

    def require(self, name: str) -> Callable:
        """Get an operation by name or raise OperationNotFoundError."""
        operation = self._operations.get(name)
        if operation is None:
            raise OperationNotFoundError(name)
        return operation

    def all_operations(self) -> dict[str, Callable]:
        """Get all registered operations."""
        return self._operations.copy()


# Global registry instance
operation_registry = OperationRegistry()
