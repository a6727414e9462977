"""
In-progress answer state: session store, persisted cache and remote sync.

``AssessmentStore`` holds the state of one assessment session explicitly and
notifies subscribers on every change. ``ProgressCache`` mirrors the answer map
into a ``KeyValueStore`` so a reload resumes where the user left off, and
``AnswerSync`` pushes that map to the record store on a best-effort basis.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol

from ..infrastructure.logging import get_logger
from ..infrastructure.uow import UnitOfWork

logger = get_logger(__name__)

ANSWERS_KEY = "assessment_answers"
RESPONSE_KEY = "assessment_response_id"
SYNC_STATUS_KEY = "assessment_sync_status"


# ---------- Key-value stores ----------


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, key: str | None = None) -> None: ...


class MemoryStore:
    """Process-local store, used in tests and single-process setups."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)


class SqlKeyValueStore:
    """``progress_cache`` rows of one browser session."""

    def __init__(self, uow: UnitOfWork, namespace: str):
        self.uow = uow
        self.namespace = namespace

    def get(self, key: str) -> str | None:
        with self.uow.progress_cache() as repo:
            return repo.get_value(self.namespace, key)

    def set(self, key: str, value: str) -> None:
        with self.uow.progress_cache() as repo:
            repo.set_value(self.namespace, key, value)

    def clear(self, key: str | None = None) -> None:
        with self.uow.progress_cache() as repo:
            repo.delete_key(self.namespace, key)


# ---------- Session state ----------


@dataclass(frozen=True)
class AssessmentState:
    form_data: dict[str, Any] = field(default_factory=dict)
    answers: dict[str, str] = field(default_factory=dict)
    response_id: str | None = None


Listener = Callable[[AssessmentState], None]


class AssessmentStore:
    """
    Shared state of one assessment session.

    Every update replaces the ``AssessmentState`` snapshot, so a snapshot held
    by a caller never changes underneath it.
    """

    def __init__(self, state: AssessmentState | None = None):
        self._state = state or AssessmentState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AssessmentState:
        return self._state

    def _replace(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    def set_answer(self, question_id: str, answer_id: str) -> None:
        self._replace(answers={**self._state.answers, question_id: answer_id})

    def set_answers(self, answers: Mapping[str, str]) -> None:
        self._replace(answers=dict(answers))

    def set_form_data(self, **form_data: Any) -> None:
        self._replace(form_data={**self._state.form_data, **form_data})

    def set_response_id(self, response_id: str | None) -> None:
        self._replace(response_id=response_id)

    def reset(self) -> None:
        self._replace(form_data={}, answers={}, response_id=None)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every change; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


# ---------- Persisted answers ----------


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    OFFLINE = "offline"


class ProgressCache:
    def __init__(self, kv: KeyValueStore, store: AssessmentStore | None = None):
        self.kv = kv
        self.store = store or AssessmentStore()
        self._answers: dict[str, str] = {}

    @property
    def answers(self) -> dict[str, str]:
        return dict(self._answers)

    def _read(self) -> dict[str, str]:
        raw = self.kv.get(ANSWERS_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cached answers")
            return {}
        if not isinstance(data, dict):
            logger.warning("Discarding cached answers that are not a map")
            return {}
        return {str(k): str(v) for k, v in data.items() if k and v}

    def _write(self, answers: dict[str, str]) -> None:
        self.kv.set(ANSWERS_KEY, json.dumps(answers))
        self._answers = answers
        self.store.set_answers(answers)

    def load(self) -> dict[str, str]:
        """Read the persisted map and replay it into the session store."""
        self._answers = self._read()
        self.store.set_answers(self._answers)
        return self.answers

    def bind(self, response_id: str, remote_answers: Mapping[str, str] | None = None) -> dict[str, str]:
        """
        Attach the cache to ``response_id``.

        A cache left over from another response is discarded and seeded from
        ``remote_answers``; for the same response, cached choices win over the
        remote ones.
        """
        remote = dict(remote_answers or {})
        if self.kv.get(RESPONSE_KEY) != response_id:
            self.clear()
            self.kv.set(RESPONSE_KEY, response_id)
            self._write(remote)
        else:
            self._write({**remote, **self._read()})
        self.store.set_response_id(response_id)
        return self.answers

    def select_answer(self, question_id: str, answer_id: str) -> dict[str, str]:
        """Record one choice and persist the new map immediately."""
        updated = {**self._read(), question_id: answer_id}
        self._write(updated)
        return self.answers

    def clear(self) -> None:
        for key in (ANSWERS_KEY, RESPONSE_KEY, SYNC_STATUS_KEY):
            self.kv.clear(key)
        self._answers = {}
        self.store.reset()

    def sync_status(self) -> SyncStatus:
        raw = self.kv.get(SYNC_STATUS_KEY)
        try:
            return SyncStatus(raw) if raw else SyncStatus.IDLE
        except ValueError:
            return SyncStatus.IDLE

    def record_sync_status(self, status: SyncStatus) -> None:
        self.kv.set(SYNC_STATUS_KEY, status.value)


# ---------- Remote sync ----------


class AnswerSync:
    """
    Best-effort push of the answer map through ``on_sync``.

    A failed push leaves the status ``offline`` and the answers in place; it is
    logged and never raised. Pushing the same map twice is harmless.
    """

    def __init__(
        self,
        get_answers: Callable[[], Mapping[str, str]],
        on_sync: Callable[[dict[str, str]], Awaitable[Any]],
        online: bool = True,
    ):
        self.get_answers = get_answers
        self.on_sync = on_sync
        self.online = online
        self.status = SyncStatus.IDLE
        self._last_synced: dict[str, str] | None = None

    @property
    def has_unsynced_changes(self) -> bool:
        answers = dict(self.get_answers())
        if self._last_synced is None:
            return bool(answers)
        return answers != self._last_synced

    async def sync(self) -> bool:
        if not self.online:
            self.status = SyncStatus.OFFLINE
            return False

        answers = dict(self.get_answers())
        self.status = SyncStatus.SYNCING
        try:
            await self.on_sync(answers)
        except Exception as e:
            logger.warning(f"Answer sync failed, keeping local answers: {str(e)}")
            self.status = SyncStatus.OFFLINE
            return False

        self._last_synced = answers
        self.status = SyncStatus.SYNCED
        return True

    async def set_online(self, online: bool) -> None:
        self.online = online
        if not online:
            self.status = SyncStatus.OFFLINE
        elif self.has_unsynced_changes:
            await self.sync()
