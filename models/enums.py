"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("pending", not "JobStatus.PENDING")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
- Typos become immediate errors instead of silent bugs

JobStatus also owns the job state machine. Every status write in the store
is checked against _TRANSITIONS, so an illegal move (say completed → pending)
fails loudly instead of silently corrupting a row.

    pending ──lease──> running ──ok──────> completed
       ^                  │
       └──────retry───────┤
                          └──exhausted───> failed
"""

import enum


class IllegalTransitionError(Exception):
    """Raised when a status change is not in the transition table."""

    def __init__(self, current: "JobStatus", target: "JobStatus"):
        super().__init__(f"Illegal job transition: {current.value} → {target.value}")
        self.current = current
        self.target = target


class JobStatus(str, enum.Enum):
    PENDING = "pending"        # waiting for scheduled_at, eligible for lease
    RUNNING = "running"        # leased by a processor, handler executing
    COMPLETED = "completed"    # handler succeeded (terminal)
    FAILED = "failed"          # attempts exhausted or no handler (terminal)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def validate_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise IllegalTransitionError unless current → target is allowed."""
    if not current.can_transition_to(target):
        raise IllegalTransitionError(current, target)


class MaintenanceJobType(str, enum.Enum):
    CLEANUP_SESSIONS = "cleanup_sessions"          # delete expired login sessions
    CLEANUP_USAGE_EVENTS = "cleanup_usage_events"  # delete analytics events past retention
