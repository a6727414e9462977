# selfassessment/infrastructure/repositories_progress.py
from __future__ import annotations

from sqlalchemy.orm import Session

from .logging import log_store_operation
from .models import ProgressCacheEntryORM
from .repositories_base import BaseRepository


class ProgressCacheRepo(BaseRepository[ProgressCacheEntryORM]):
    model = ProgressCacheEntryORM

    def __init__(self, session: Session):
        super().__init__(session)

    def _entry(self, namespace: str, key: str) -> ProgressCacheEntryORM | None:
        return self.first(
            ProgressCacheEntryORM.namespace == namespace, ProgressCacheEntryORM.key == key
        )

    @log_store_operation("progress_cache.get")
    def get_value(self, namespace: str, key: str) -> str | None:
        entry = self._entry(namespace, key)
        return entry.value if entry else None

    @log_store_operation("progress_cache.set")
    def set_value(self, namespace: str, key: str, value: str) -> ProgressCacheEntryORM:
        entry = self._entry(namespace, key)
        if entry is None:
            return self.create(namespace=namespace, key=key, value=value)
        return self.update(entry, value=value)

    @log_store_operation("progress_cache.delete")
    def delete_key(self, namespace: str, key: str | None = None) -> int:
        """Delete one key, or every key of the namespace when ``key`` is None."""
        filters = [ProgressCacheEntryORM.namespace == namespace]
        if key is not None:
            filters.append(ProgressCacheEntryORM.key == key)
        entries = self.list(*filters)
        for entry in entries:
            self.delete(entry)
        return len(entries)
