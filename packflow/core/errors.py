"""Error taxonomy of the orchestration core"""

from __future__ import annotations

from typing import Iterable, Optional


class PackflowError(Exception):
    """Base class for orchestration errors"""


class InvalidCategory(PackflowError, ValueError):
    """Unknown task category - caller error, never retried"""

    def __init__(self, category: str, valid: Iterable[str] = ()):
        self.category = category
        self.valid = sorted(valid)
        msg = f"Invalid task category {category!r}"
        if self.valid:
            msg += f". Must be one of: {', '.join(self.valid)}"
        super().__init__(msg)


class ResponseTimeout(PackflowError, TimeoutError):
    """send_and_wait exceeded its deadline - recoverable, the caller decides"""

    def __init__(self, message_id: str, timeout_ms: int):
        self.message_id = message_id
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout waiting for response to message {message_id} after {timeout_ms}ms")


class TaskAlreadyProcessed(PackflowError):
    """Idempotency short-circuit - a no-op signal, not a failure"""

    def __init__(self, task_id: str, status: str):
        self.task_id = task_id
        self.status = status
        super().__init__(f"Task {task_id} already processed or in progress (status: {status})")


class JobRetryExhausted(PackflowError):
    """Job reached max attempts and is now dead"""

    def __init__(self, job_id: str, attempts: int, last_error: Optional[str] = None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Job {job_id} exhausted {attempts} attempts: {last_error}")


class CollaboratorUnavailable(PackflowError):
    """An external data source failed - degrade, do not propagate"""

    def __init__(self, source: str, cause: Optional[BaseException] = None):
        self.source = source
        self.cause = cause
        super().__init__(f"Collaborator {source!r} unavailable: {cause}")


class TransportError(PackflowError):
    """Queue primitive failed - the executor cannot make progress"""
