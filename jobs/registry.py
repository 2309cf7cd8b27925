"""
Job handler registry — maps job type strings to handler callables.

When the processor leases a job, it knows the job's type ("cleanup_sessions",
"send_welcome_email", ...) but needs the callable to run. This registry does
that lookup.

Registration is a setup phase. The processor freezes the registry when it
starts, and any register() after that raises, so the poll thread never reads
a dict another thread is mutating.
"""

from datetime import timedelta
from typing import Callable, Optional, Union

from jobs.base import AbstractJobHandler
from jobs.cleanup import CleanupSessionsJob, CleanupUsageEventsJob

Handler = Union[AbstractJobHandler, Callable[[str], None]]


class RegistryFrozenError(RuntimeError):
    """Raised when registering a handler after the processor has started."""


class HandlerRegistry:

    def __init__(self):
        self._handlers: dict[str, Handler] = {}
        self._frozen = False

    def register(self, job_type: str, handler: Handler) -> None:
        """Associate job_type with handler. Re-registering a type replaces the old handler."""
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register '{job_type}': registry is frozen once the processor starts"
            )
        self._handlers[job_type] = handler

    def register_handler(self, handler: AbstractJobHandler) -> None:
        """Register a class-based handler under its own job_type."""
        self.register(handler.job_type, handler)

    def get(self, job_type: str) -> Optional[Handler]:
        return self._handlers.get(job_type)

    def job_types(self) -> list[str]:
        return sorted(self._handlers)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def create_default_registry(session_factory, clock, retention_days: int = 90) -> HandlerRegistry:
    """Registry with the built-in maintenance handlers already registered."""
    registry = HandlerRegistry()
    registry.register_handler(CleanupSessionsJob(session_factory, clock))
    registry.register_handler(
        CleanupUsageEventsJob(session_factory, clock, retention=timedelta(days=retention_days))
    )
    return registry
