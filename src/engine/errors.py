# src/engine/errors.py
"""
Error types raised by the scan supervisor.

Everything inherits from SupervisorError so the HTTP layer can map the whole
family in one place.
"""


class SupervisorError(Exception):
    """Base exception for all supervisor failures."""
    pass


class ValidationError(SupervisorError):
    """Raised when a request parameter is rejected before any state changes."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(reason)


class NotFoundError(SupervisorError):
    pass


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Scan ID not found")


class ReportNotFoundError(NotFoundError):
    def __init__(self, name: str):
        self.name = name
        super().__init__("Report not found")


class InvalidStateError(SupervisorError):
    """Raised when a command does not match the job's current status."""

    def __init__(self, job_id: str, status: str, command: str, message: str = None):
        self.job_id = job_id
        self.status = status
        self.command = command
        super().__init__(message or f"Cannot {command} scan in state {status}")


class SignalDeliveryError(SupervisorError):
    """Raised when the OS refused to deliver a control signal."""

    def __init__(self, job_id: str, command: str):
        self.job_id = job_id
        self.command = command
        super().__init__(f"Unable to {command} scan")


class UnsupportedOperationError(SupervisorError):
    """Raised when the platform cannot deliver the requested signal kind."""
    pass
