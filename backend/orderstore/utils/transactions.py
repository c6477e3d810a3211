from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session, SessionTransactionOrigin

from orderstore.errors import IntegrityError


@contextmanager
def smart_transaction(session: Session) -> Iterator:
    """
    Context manager that runs the block as one transaction on the given Session.

    If the caller began a transaction explicitly (session.begin(), or an
    enclosing smart_transaction), start a nested SAVEPOINT (begin_nested)
    and leave the commit to the caller.
    Otherwise the block gets its own transaction, committed on exit. A
    transaction the session only autobegan for earlier reads is committed
    first, so the block starts from a fresh BEGIN.
    Any exception rolls back everything done inside the block.
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    tx = session.get_transaction()
    if tx is not None and tx.origin is not SessionTransactionOrigin.AUTOBEGIN:
        with session.begin_nested():
            yield
        return
    if tx is not None:
        session.commit()
    with session.begin():
        yield


@contextmanager
def integrity_guard(action: str) -> Iterator:
    """
    Translate storage-engine constraint failures into the store's IntegrityError.

    Place it outside smart_transaction so the rollback has already happened
    when the translated error reaches the caller.
    """
    try:
        yield
    except sa_exc.IntegrityError as e:
        raise IntegrityError(f"{action} violates a constraint: {e.orig}", original=e) from e
