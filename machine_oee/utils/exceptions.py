"""
Machine OEE - Custom Exception Classes

This module defines the exception classes raised by the OEE analysis service.
Each exception carries an error code and an HTTP status code so the API layer
can render a structured error response.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError


class OEEServiceException(Exception):
    """Base exception class for the OEE analysis service."""

    def __init__(
        self,
        message: str,
        error_code: str = "OEE_SERVICE_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(OEEServiceException):
    """Exception raised for invalid analysis requests or parameter updates."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class NotFoundError(OEEServiceException):
    """Exception raised when a resource is not found."""

    def __init__(self, resource: str = "Resource", resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message += f" with ID: {resource_id}"

        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id}
        )


class BusinessLogicError(OEEServiceException):
    """Exception raised for business logic violations."""

    def __init__(self, message: str = "Business logic violation", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="BUSINESS_LOGIC_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class DataAccessError(OEEServiceException):
    """
    Exception raised when the event/production/configuration store cannot be read.

    Never converted into a zeroed analysis: an empty result would read as
    "no events occurred".
    """

    def __init__(self, operation: str, message: str = "Data store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"{operation}: {message}",
            error_code="DATA_ACCESS_ERROR",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation, **(details or {})}
        )


# Utility functions for exception handling
DATA_ACCESS_FAILURES = (SQLAlchemyError, OSError, asyncio.TimeoutError, RuntimeError)


def handle_database_exception(operation: str, e: Exception) -> DataAccessError:
    """Convert a store failure into a DataAccessError."""
    if isinstance(e, asyncio.TimeoutError) or "timeout" in str(e).lower():
        return DataAccessError(operation, "Data store timed out", {"original_error": str(e)})
    return DataAccessError(operation, "Data store operation failed", {"original_error": str(e)})


def handle_validation_exception(e: Exception) -> ValidationError:
    """Convert validation exceptions to ValidationError."""
    return ValidationError("Input validation failed", {"original_error": str(e)})
