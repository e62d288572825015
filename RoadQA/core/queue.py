"""Durable queue of pending record edits.

The queue is stored as a single JSON array under :data:`QUEUE_KEY` in the
:class:`~RoadQA.core.store.DurableStore`. It holds at most one entry per
``(file_id, record_key)`` pair: a newer edit of the same record replaces the older one.

Read errors are never papered over. An unreadable queue raises
:class:`~RoadQA.status.status.StorageException` instead of being reset, so pending edits
are not lost.
"""
import datetime
import json
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from .store import DurableStore
from ..status import status

QUEUE_KEY: str = 'roadqa_sync_queue'


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass(frozen=True)
class PendingMutation:
    """A record edit waiting to be uploaded."""
    file_id: str
    record_key: str
    payload: Dict[str, str]
    created_at: str = field(default_factory=now_iso)

    @property
    def identity(self) -> Tuple[str, str]:
        return self.file_id, self.record_key

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_id': self.file_id,
            'record_key': self.record_key,
            'payload': dict(self.payload),
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingMutation':
        """Build a mutation from its stored form.

        Raises:
            status.StorageException: If the entry is malformed.
        """
        if not isinstance(data, dict):
            raise status.StorageException(f'Queue entry must be an object, got {type(data).__name__}.')
        for k in ('file_id', 'record_key', 'created_at'):
            if not isinstance(data.get(k), str):
                raise status.StorageException(f'Queue entry is missing a valid "{k}".')
        payload = data.get('payload')
        if not isinstance(payload, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in payload.items()):
            raise status.StorageException('Queue entry payload must map column names to strings.')

        return cls(
            file_id=data['file_id'],
            record_key=data['record_key'],
            payload=dict(payload),
            created_at=data['created_at'],
        )


class MutationQueue:
    """Ordered, deduplicated, persisted list of :class:`PendingMutation` entries."""

    def __init__(self, store: DurableStore, key: str = QUEUE_KEY) -> None:
        self.store = store
        self.key = key

    def _read_raw(self) -> List[Any]:
        raw = self.store.get(self.key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as ex:
            raise status.StorageException(f'The sync queue is corrupt: {ex}') from ex
        if not isinstance(data, list):
            raise status.StorageException('The sync queue is corrupt: expected a list.')
        return data

    def _emit_changed(self, size: int) -> None:
        from ..ui.actions import signals
        signals.queueChanged.emit(size)

    def _write(self, entries: List[PendingMutation]) -> None:
        if not entries:
            self.store.remove(self.key)
        else:
            self.store.set(self.key, json.dumps([m.to_dict() for m in entries]))

    def enqueue(self, mutation: PendingMutation) -> None:
        """Add ``mutation``, replacing any queued edit of the same record.

        Raises:
            status.StorageException: If the queue can't be read or written.
        """
        with self.store.lock():
            entries = self.dequeue_all()
            for i, entry in enumerate(entries):
                if entry.identity == mutation.identity:
                    entries[i] = mutation
                    logging.debug(f'Replaced queued edit for {mutation.identity}.')
                    break
            else:
                entries.append(mutation)
                logging.debug(f'Queued edit for {mutation.identity}.')
            self._write(entries)
            size = len(entries)
        self._emit_changed(size)

    def dequeue_all(self) -> List[PendingMutation]:
        """Return a snapshot of all queued entries, oldest first. Nothing is removed."""
        return [PendingMutation.from_dict(d) for d in self._read_raw()]

    def replace_with(self, entries: Iterable[PendingMutation]) -> None:
        """Persist ``entries`` as the whole queue. An empty list deletes the queue key."""
        entries = list(entries)
        with self.store.lock():
            self._write(entries)
        self._emit_changed(len(entries))

    def remove_completed(self, completed: Iterable[PendingMutation]) -> int:
        """Drop uploaded entries, keeping anything enqueued since they were read.

        An entry is only removed if both its identity and its creation time match, so an
        edit replaced during the flush stays queued.

        Returns:
            int: The number of entries left.
        """
        done = {(m.identity, m.created_at) for m in completed}
        with self.store.lock():
            remaining = [m for m in self.dequeue_all() if (m.identity, m.created_at) not in done]
            self.replace_with(remaining)
        return len(remaining)

    def retarget(self, file_ids: Iterable[str], new_file_id: str) -> List[PendingMutation]:
        """Point queued edits of any of ``file_ids`` at ``new_file_id``.

        Edits of the same record that end up on the same file are combined, the newer
        values winning.

        Returns:
            list: The queued edits of ``new_file_id``, oldest first.
        """
        sources = {str(pathlib.Path(f)) for f in file_ids}
        target = str(pathlib.Path(new_file_id))

        with self.store.lock():
            entries: List[PendingMutation] = []
            moved = 0
            for m in self.dequeue_all():
                if str(pathlib.Path(m.file_id)) in sources and m.file_id != target:
                    moved += 1
                    m = PendingMutation(target, m.record_key, dict(m.payload), m.created_at)
                for i, entry in enumerate(entries):
                    if entry.identity == m.identity:
                        older, newer = sorted((entry, m), key=lambda e: e.created_at)
                        entries[i] = PendingMutation(
                            target, m.record_key, {**older.payload, **newer.payload}, newer.created_at)
                        break
                else:
                    entries.append(m)
            if moved:
                self._write(entries)
                logging.info(f'Moved {moved} queued edit(s) to "{target}".')
            size = len(entries)

        if moved:
            self._emit_changed(size)
        return [m for m in entries if m.file_id == target]

    def size(self) -> int:
        """Number of queued entries."""
        return len(self._read_raw())

    def clear(self) -> None:
        self.replace_with([])
