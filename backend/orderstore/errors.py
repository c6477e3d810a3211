"""Error taxonomy raised by the store's service operations."""


class StoreError(Exception):
    """Base exception for all store errors."""

    pass


class ValidationError(StoreError):
    """Raised for malformed or out-of-range input (negative price, empty cart...)."""

    pass


class ConflictError(StoreError):
    """Raised when the current state forbids the operation.

    Insufficient stock, illegal status transitions, consumed carts and
    exhausted or expired coupons all end up here.
    """

    pass


class NotFoundError(StoreError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, key=None):
        self.entity = entity
        self.key = key
        msg = f"{entity} not found"
        if key is not None:
            msg = f"{entity} not found: {key}"
        super().__init__(msg)


class IntegrityError(StoreError):
    """Raised when the storage engine rejects a write on a constraint.

    Wraps ``sqlalchemy.exc.IntegrityError`` so callers never see raw driver
    errors, e.g. deleting a role that is still assigned to users.
    """

    def __init__(self, message: str, original: Exception = None):
        self.original = original
        super().__init__(message)
