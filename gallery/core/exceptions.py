"""
Exception classes for the application.
Every error kind maps onto an HTTP status so routers can let them propagate.
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=message
        )


class NotFoundError(HTTPException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource_type} not found: {resource_id}",
        )


class DatabaseError(HTTPException):
    """Raised when database operations fail."""

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message
        )


class StorageError(HTTPException):
    """Raised when the object store rejects a write, delete or signing call."""

    def __init__(self, operation: str, key: str, message: str):
        self.operation = operation
        self.key = key
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Object store {operation} failed for '{key}': {message}",
        )


class InvariantViolationError(HTTPException):
    """
    Raised when a product's image collection breaks the single-main or
    contiguous-index invariant. Never expected in practice; signals a bug.
    """

    def __init__(self, product_id: int, invariant: str):
        self.product_id = product_id
        self.invariant = invariant
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Image invariant '{invariant}' violated for product {product_id}",
        )


class UnauthorizedError(HTTPException):
    """Raised when a user is not authorized to access a resource."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)


class ForbiddenError(HTTPException):
    """Raised when an authenticated user lacks the required role."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=message)
