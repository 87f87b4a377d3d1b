"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from clinicdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    ValidationException,
    ForbiddenException,
    ResourceNotFoundException,
    AlreadyExistsException,
    ConfigurationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "ValidationException",
    "ForbiddenException",
    "ResourceNotFoundException",
    "AlreadyExistsException",
    "ConfigurationException",
]
