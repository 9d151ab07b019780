"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from resolvehub.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    UnknownCategoryException,
    NoEligibleStaffException,
    InvalidStatusTransitionException,
    ConcurrentWriteConflict,
    ResourceConflictException,
    PersistenceUnavailableException,
    NotificationFailureException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "UnknownCategoryException",
    "NoEligibleStaffException",
    "InvalidStatusTransitionException",
    "ConcurrentWriteConflict",
    "ResourceConflictException",
    "PersistenceUnavailableException",
    "NotificationFailureException",
]
