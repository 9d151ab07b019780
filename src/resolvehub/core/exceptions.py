"""
Core Exceptions
================

Custom exceptions for the complaint engine.

Most of these describe non-fatal conditions: the engine logs them and
carries on, and only the service boundary turns them into HTTP errors.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class UnknownCategoryException(DomainException):
    """Raised when a category has no department mapping."""

    def __init__(self, category: Any, details: Optional[dict] = None):
        self.category = category
        super().__init__(
            f"No department mapping for category {category!r}",
            details or {"category": category}
        )


class NoEligibleStaffException(DomainException):
    """Raised when no staff member matches an assignment scope."""

    def __init__(
        self,
        city: Optional[str],
        department: Optional[str],
        role: str = "staff",
        details: Optional[dict] = None
    ):
        self.city = city
        self.department = department
        self.role = role
        super().__init__(
            f"No eligible {role} for department {department!r} in city {city!r}",
            details or {"city": city, "department": department, "role": role}
        )


class InvalidStatusTransitionException(DomainException):
    """Raised when a complaint status would move backwards."""

    def __init__(self, complaint_id: str, current: str, requested: str):
        self.complaint_id = complaint_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Complaint {complaint_id} cannot move from {current} to {requested}",
            {"complaint_id": complaint_id, "current": current, "requested": requested}
        )


class ConcurrentWriteConflict(RepositoryException):
    """A conditional write was rejected because the record changed since it was read."""

    def __init__(self, entity_id: str, details: Optional[dict] = None):
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_id}",
            details or {"entity_id": entity_id}
        )


class ResourceConflictException(RepositoryException):
    """A record with the same identity already exists."""


class PersistenceUnavailableException(RepositoryException):
    """The persistence store cannot be reached."""


class NotificationFailureException(ExternalServiceException):
    """Exception for notification delivery failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Dispatcher", message, details)
