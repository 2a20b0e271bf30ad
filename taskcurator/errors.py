# taskcurator/errors.py

from __future__ import annotations


class TaskCuratorError(Exception):
    pass


class ValidationError(TaskCuratorError):
    """Malformed or missing input, always scoped to one request field."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class DomainRuleViolation(TaskCuratorError):
    """A business rule refused the operation; shown to the user as-is."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class AuthenticationError(TaskCuratorError):
    pass


class AuthorizationError(TaskCuratorError):
    pass


class NotFoundError(TaskCuratorError):
    def __init__(self, resource: str, resource_id=None):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.resource_id = resource_id
