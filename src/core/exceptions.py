"""
Core Exceptions
================

Exception hierarchy shared by the knowledge and solutions modules.

Services raise these; the HTTP layer maps them to status codes in
src.shared.api.middleware.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain rule violations."""


class RepositoryException(ApplicationException):
    """Persistence layer failure. Callers may retry."""


class ValidationException(ApplicationException):
    """Input rejected at the boundary (empty question, bad rating, ...)."""


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


class EmbeddingException(ExternalServiceException):
    """Embedding provider error, timeout or unusable response."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Embedding Provider", message, details)
