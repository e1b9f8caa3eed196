import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from todos.errors import TodoEngineError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one transaction: commit on success, roll back on any error.

    Engine errors are expected outcomes and are logged at info; anything else
    (datastore failures) is logged as an error and re-raised.
    """
    try:
        yield db
        db.commit()
    except TodoEngineError as e:
        db.rollback()
        logger.info(f"Operation rejected: {e.message}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Transaction failed: {str(e)}")
        raise
