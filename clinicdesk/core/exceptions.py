"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. None of them is fatal to the
process: each one rejects a single operation on a single ticket.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class ValidationException(DomainException):
    """
    Exception for validation errors.

    Raised for missing or contradictory resolution fields and for unknown
    status, priority or resolution code values. The ticket is left unchanged.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.field = field
        if field and details is None:
            details = {"field": field}
        super().__init__(message, details)


class ForbiddenException(DomainException):
    """Exception when the actor lacks the authority for a transition."""

    def __init__(
        self,
        message: str,
        role: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.role = role
        super().__init__(message, details or ({"role": role} if role else None))


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


class AlreadyExistsException(ApplicationException):
    """Exception when creating a resource whose identity is already taken."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} with id '{resource_id}' already exists",
            details
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""
