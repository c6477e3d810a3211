from fastapi import HTTPException

from orderstore.errors import (
    ConflictError,
    IntegrityError,
    NotFoundError,
    StoreError,
    ValidationError,
)

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    IntegrityError: 409,
}


def to_http(e: StoreError) -> HTTPException:
    for cls, code in STATUS_CODES.items():
        if isinstance(e, cls):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=500, detail="Internal error")
