# backend/tanker/core/exceptions.py
"""
Domain-specific exceptions for the tanker booking platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Default conversion to HTTPException (override in subclasses)."""
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when malformed or missing fields are caught before any write."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = (
            f"{resource} with id '{identifier}' not found"
            if identifier
            else f"{resource} not found"
        )
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={**(details or {}), "resource": resource, "identifier": identifier},
        )
        self.resource = resource
        self.identifier = identifier

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ConflictException(DomainException):
    """Raised when a write violates a unique constraint in the store."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


# Specific business exceptions


class InvalidStatusTransitionException(ValidationException):
    """Raised when a booking status change skips or reverses the lifecycle."""

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            message=f"Cannot move booking from '{current_status}' to '{requested_status}'",
            code="INVALID_STATUS_TRANSITION",
            details={
                "current_status": current_status,
                "requested_status": requested_status,
            },
        )


class RepositoryException(DomainException):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    unreadable collections or query failures.
    """


class TransientStorageException(RepositoryException):
    """I/O failure in a storage backend with no further classification."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            code="TRANSIENT_STORAGE_ERROR",
            details={**(details or {}), "operation": operation},
        )
        self.operation = operation

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
            headers={"Retry-After": "2"},
        )
