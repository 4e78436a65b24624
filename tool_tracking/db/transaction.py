from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit everything written inside the block, or nothing.

    Any exception rolls back the writes already flushed in the block before
    it propagates, so callers never observe a half-applied operation.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
