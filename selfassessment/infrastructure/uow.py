from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from .repositories_progress import ProgressCacheRepo


class UnitOfWork:
    """Commit-or-rollback scope around one session of the cache database."""

    def __init__(self, SessionLocal: sessionmaker):
        self.SessionLocal = SessionLocal

    @contextmanager
    def begin(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    @contextmanager
    def progress_cache(self) -> Iterator[ProgressCacheRepo]:
        with self.begin() as s:
            yield ProgressCacheRepo(s)
