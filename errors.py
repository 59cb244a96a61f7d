"""
Error types raised by storage operations and mapped to HTTP responses in main.py.
"""
from typing import List, Optional


class ServiceError(Exception):
    """Base class for errors reported to API clients."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Malformed or missing input."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class Conflict(ServiceError):
    """Uniqueness violation or a booking that overlaps an existing one."""
    status_code = 400


class NotFound(ServiceError):
    status_code = 404


class StorageFailure(ServiceError):
    """Unclassified persistence error. The client only sees a generic message."""
    status_code = 500
