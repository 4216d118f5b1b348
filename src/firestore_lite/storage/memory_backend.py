from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
import logging
from typing import Any, Callable, Sequence

from firestore_lite.errors import AlreadyExistsError, BackendUnavailableError, NotFoundError
from firestore_lite.paths import ResourcePath
from firestore_lite.storage.backend import (
    CommitResult,
    DocumentRecord,
    Write,
    WriteKind,
    delete_field,
    get_field,
    set_field,
)
from firestore_lite.values import NANOS_PER_SECOND, Timestamp


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _StoredDocument:
    fields: dict[str, Any]
    create_time: Timestamp
    update_time: Timestamp


class InMemoryBackend:
    """Process-local backend used for tests and local development."""

    def __init__(self, *, clock: Callable[[], Timestamp] = Timestamp.now) -> None:
        self._clock = clock
        self._documents: dict[ResourcePath, _StoredDocument] = {}
        self._lock = asyncio.Lock()
        self._last_commit_time: Timestamp | None = None
        self._closed = False
        self.logger = LOGGER

    async def get_documents(self, paths: Sequence[ResourcePath]) -> list[DocumentRecord]:
        async with self._lock:
            self._ensure_open()
            read_time = self._clock()
            records = []
            for path in paths:
                stored = self._documents.get(path)
                if stored is None:
                    records.append(DocumentRecord(path=path, exists=False, fields=None, read_time=read_time))
                    continue
                records.append(
                    DocumentRecord(
                        path=path,
                        exists=True,
                        fields=copy.deepcopy(stored.fields),
                        read_time=read_time,
                        create_time=stored.create_time,
                        update_time=stored.update_time,
                    )
                )
            return records

    async def commit(self, writes: Sequence[Write]) -> CommitResult:
        async with self._lock:
            self._ensure_open()
            commit_time = self._next_commit_time()
            staged = dict(self._documents)
            for write in writes:
                current = staged.get(write.path)
                if write.kind is WriteKind.CREATE and current is not None:
                    raise AlreadyExistsError(f"Document already exists: {write.path}")
                if write.kind is WriteKind.UPDATE and current is None:
                    raise NotFoundError(f"No document to update: {write.path}")
                if write.kind is WriteKind.DELETE:
                    staged.pop(write.path, None)
                    continue
                staged[write.path] = _apply_write(current, write, commit_time)

            # All preconditions passed; publish the batch as a whole.
            self._documents = staged
            self.logger.debug("in-memory commit applied: writes=%s commit_time=%s", len(writes), commit_time)
            return CommitResult(commit_time=commit_time, write_times=[commit_time] * len(writes))

    async def close(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise BackendUnavailableError("In-memory backend is closed.")

    def _next_commit_time(self) -> Timestamp:
        now = self._clock()
        last = self._last_commit_time
        if last is not None and now <= last:
            seconds, nanoseconds = divmod(last.seconds * NANOS_PER_SECOND + last.nanoseconds + 1, NANOS_PER_SECOND)
            now = Timestamp(seconds, nanoseconds)
        self._last_commit_time = now
        return now


def _apply_write(current: _StoredDocument | None, write: Write, commit_time: Timestamp) -> _StoredDocument:
    if write.field_mask is None:
        fields = copy.deepcopy(write.fields)
    else:
        fields = copy.deepcopy(current.fields) if current is not None else {}
        for path in write.field_mask:
            found, value = get_field(write.fields, path)
            if found:
                set_field(fields, path, copy.deepcopy(value))
            else:
                delete_field(fields, path)

    for path in write.transforms:
        set_field(fields, path, commit_time)

    return _StoredDocument(
        fields=fields,
        create_time=current.create_time if current is not None else commit_time,
        update_time=commit_time,
    )
