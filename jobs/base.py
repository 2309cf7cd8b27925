"""
Abstract base class for job handlers.

A handler is anything callable as handler(payload) where payload is the JSON
string stored on the job. Returning normally means success; raising means
failure (retried with backoff until max_attempts is reached).

Plain functions are fine for simple handlers. Handlers that need
collaborators (a session factory, a clock) subclass AbstractJobHandler:
- AbstractJobHandler = interface
- CleanupSessionsJob, CleanupUsageEventsJob = implementations
- registry.py = lookup by job_type

To add a new job type:
1. Create a class that inherits AbstractJobHandler (or write a function)
2. Implement run() and job_type
3. Register it before the processor starts
"""

from abc import ABC, abstractmethod


class AbstractJobHandler(ABC):

    @abstractmethod
    def run(self, payload: str) -> None:
        """
        Execute the job.

        Args:
            payload: the job's JSON payload, exactly as stored. The handler
                     decides how (and whether) to decode it.

        Raises:
            Any exception → triggers retry logic in the worker.
        """
        ...

    @property
    @abstractmethod
    def job_type(self) -> str:
        """Unique identifier the job is enqueued under (e.g., 'cleanup_sessions')."""
        ...

    def __call__(self, payload: str) -> None:
        self.run(payload)
