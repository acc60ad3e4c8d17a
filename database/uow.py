import contextlib
import logging

from database.database import SessionLocal
from database.repository import AlertRepository

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def alert_uow(session_factory=SessionLocal):
    """Per-unit-of-work transaction scope.

    Yields an AlertRepository bound to a fresh Session. Commits on success,
    rolls back on exception, always closes.

    Usage:
        with alert_uow() as repo:
            post = repo.topics.get_post(post_id)
            PostAlerter(repo, config=config).post_created(post)
        # commit happens automatically on successful exit
    """
    session = session_factory()
    try:
        repo = AlertRepository(session)
        yield repo
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
