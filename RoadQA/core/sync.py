"""Sync orchestrator: flushes queued record edits to the remote project files.

A flush moves through ``Idle -> Flushing -> (Success | PartialFailure | HardFailure) -> Idle``.
The persisted flushing flag is the mutual exclusion primitive. It is checked and set
before any queue access and cleared on every exit path of :meth:`SyncOrchestrator.attempt_sync`.

Each queued edit is reconciled against the current remote file: the remote content is
downloaded, the edit is merged into the row with the same key and the result is uploaded.
One item failing does not stop the others; only the uploaded entries are dropped from the
queue.

Non-forced attempts are rate limited by a cooldown measured from the last attempt.
"""
import datetime
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from PySide6 import QtCore

from .projects import ProjectRegistry
from .queue import MutationQueue, PendingMutation
from .records import merge_text
from .service import AsyncWorker, RemoteTransport
from .store import DurableStore
from ..status import status

PROCESSING_KEY: str = 'roadqa_sync_processing'
LAST_ATTEMPT_KEY: str = 'roadqa_sync_last_attempt'
HISTORY_KEY: str = 'roadqa_sync_results'

NOT_AUTHENTICATED_ERROR: str = 'Not authenticated with Google Drive'


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class ItemResult:
    """Result of uploading one queued edit."""
    mutation: PendingMutation
    success: bool
    error: str = ''


@dataclass(frozen=True)
class SyncOutcome:
    """Immutable summary of one flush attempt."""
    timestamp: str
    success: bool
    items_processed: int
    items_succeeded: int
    items_failed: int
    errors: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_results(cls, results: List[ItemResult], timestamp: datetime.datetime) -> 'SyncOutcome':
        failed = [r for r in results if not r.success]
        return cls(
            timestamp=timestamp.isoformat(),
            success=not failed,
            items_processed=len(results),
            items_succeeded=len(results) - len(failed),
            items_failed=len(failed),
            errors=tuple(f'{r.mutation.record_key}: {r.error}' for r in failed),
        )

    @classmethod
    def not_authenticated(cls, pending: int, timestamp: datetime.datetime) -> 'SyncOutcome':
        """Outcome of an attempt made without credentials: every queued item counts as failed."""
        return cls(
            timestamp=timestamp.isoformat(),
            success=False,
            items_processed=0,
            items_succeeded=0,
            items_failed=pending,
            errors=(NOT_AUTHENTICATED_ERROR,),
        )

    @classmethod
    def hard_failure(cls, error: str, timestamp: datetime.datetime) -> 'SyncOutcome':
        return cls(
            timestamp=timestamp.isoformat(),
            success=False,
            items_processed=0,
            items_succeeded=0,
            items_failed=0,
            errors=(error,),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'success': self.success,
            'items_processed': self.items_processed,
            'items_succeeded': self.items_succeeded,
            'items_failed': self.items_failed,
            'errors': list(self.errors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncOutcome':
        try:
            return cls(
                timestamp=str(data['timestamp']),
                success=bool(data['success']),
                items_processed=int(data['items_processed']),
                items_succeeded=int(data['items_succeeded']),
                items_failed=int(data['items_failed']),
                errors=tuple(str(e) for e in data.get('errors', [])),
            )
        except (KeyError, TypeError, ValueError) as ex:
            raise status.StorageException(f'Invalid sync history entry: {ex}') from ex


class SyncState:
    """Persisted flushing flag, last attempt time and bounded outcome history.

    Args:
        store: The durable store.
        history_limit: Number of outcomes to keep, newest first.
    """

    def __init__(self, store: DurableStore, history_limit: int = 10) -> None:
        self.store = store
        self.history_limit = history_limit

    def is_processing(self) -> bool:
        return self.store.get(PROCESSING_KEY) == 'true'

    def set_processing(self, value: bool) -> None:
        self.store.set(PROCESSING_KEY, 'true' if value else 'false')

    def last_attempt(self) -> Optional[datetime.datetime]:
        raw = self.store.get(LAST_ATTEMPT_KEY)
        if not raw:
            return None
        try:
            return datetime.datetime.fromisoformat(raw)
        except ValueError:
            logging.warning(f'Ignoring invalid last sync attempt time "{raw}".')
            return None

    def set_last_attempt(self, value: datetime.datetime) -> None:
        self.store.set(LAST_ATTEMPT_KEY, value.isoformat())

    def history(self) -> List[SyncOutcome]:
        """Recorded outcomes, most recent first.

        Raises:
            status.StorageException: If the stored history is corrupt.
        """
        raw = self.store.get(HISTORY_KEY)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as ex:
            raise status.StorageException(f'The sync history is corrupt: {ex}') from ex
        if not isinstance(data, list):
            raise status.StorageException('The sync history is corrupt: expected a list.')
        return [SyncOutcome.from_dict(d) for d in data]

    def record_outcome(self, outcome: SyncOutcome) -> None:
        with self.store.lock():
            history = [outcome] + self.history()
            history = history[:self.history_limit]
            self.store.set(HISTORY_KEY, json.dumps([o.to_dict() for o in history]))

    def reconcile(self) -> bool:
        """Clear a flushing flag left behind by a process that died mid-flush.

        Returns:
            bool: True if a stale flag was cleared.
        """
        if not self.is_processing():
            return False
        logging.warning('Found a stale sync-in-progress flag from a previous run; clearing it.')
        self.set_processing(False)
        return True


class SyncOrchestrator(QtCore.QObject):
    """Decides when to flush the mutation queue and runs the flush.

    The orchestrator owns the :class:`MutationQueue` and the :class:`SyncState`.
    :meth:`attempt_sync` blocks; :meth:`request_sync` runs it on a worker thread and is the
    slot the connectivity watcher triggers.

    Args:
        store: Durable store backing the queue and the sync state.
        transport: The remote transport.
        registry: Resolves local project files to remote files.
        reachability: Returns whether the network is reachable. Defaults to always reachable.
        clock: Returns the current aware datetime.
        cooldown_seconds: Minimum seconds between non-forced attempts. Defaults to the ``sync`` config.
        history_limit: Outcomes to keep. Defaults to the ``sync`` config.
    """

    def __init__(
            self,
            store: DurableStore,
            transport: RemoteTransport,
            registry: ProjectRegistry,
            reachability: Optional[Callable[[], bool]] = None,
            clock: Optional[Callable[[], datetime.datetime]] = None,
            cooldown_seconds: Optional[int] = None,
            history_limit: Optional[int] = None,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent)
        from ..settings import lib
        config = lib.settings.get_section('sync')

        self.transport = transport
        self.registry = registry
        self.queue = MutationQueue(store)
        self.state = SyncState(
            store,
            history_limit=history_limit if history_limit is not None else config['history_limit'],
        )
        self.cooldown_seconds: int = cooldown_seconds if cooldown_seconds is not None else config['cooldown_seconds']
        self.key_column: str = lib.settings.get_section('table')['key_column']

        self._reachability = reachability or (lambda: True)
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._remote_lock = threading.Lock()
        self._worker: Optional[AsyncWorker] = None
        self._initialized = False

    def init(self) -> None:
        """Prepare the orchestrator for use. No flush can be running before this is called."""
        if self._initialized:
            return
        self.state.reconcile()
        self._initialized = True
        logging.debug(f'Sync orchestrator ready, {self.queue.size()} edit(s) pending.')

    def teardown(self, timeout_ms: int = 30000) -> None:
        """Wait for a running background flush to finish."""
        if not self.wait_for_sync(timeout_ms):
            # The worker thread must outlive its QThread object
            logging.warning(f'Background sync still running after {timeout_ms} ms, waiting for it to finish.')
            self._worker.wait()
            QtCore.QCoreApplication.processEvents()
        self._worker = None
        self._initialized = False

    def set_reachability(self, func: Callable[[], bool]) -> None:
        self._reachability = func

    def enqueue(self, mutation: PendingMutation) -> None:
        self.queue.enqueue(mutation)

    def pending_count(self) -> int:
        return self.queue.size()

    def is_processing(self) -> bool:
        return self.state.is_processing()

    def get_sync_history(self) -> List[SyncOutcome]:
        """Recorded flush outcomes, most recent first."""
        return self.state.history()

    def force_sync(self) -> Optional[SyncOutcome]:
        """Attempt a flush ignoring the cooldown."""
        return self.attempt_sync(force=True)

    def attempt_sync(self, force: bool = False) -> Optional[SyncOutcome]:
        """Flush the mutation queue if a flush is due.

        Returns None without side effects when a flush is already running, the network is
        unreachable, the cooldown hasn't elapsed (unless ``force``) or the queue is empty.

        Args:
            force: Skip the cooldown check.

        Returns:
            The outcome of the flush, or None if no flush was started.

        Raises:
            status.StorageException: If the sync state can't be read before the flush starts.
        """
        now = self._clock()
        with self._lock:
            if self.state.is_processing():
                logging.debug('Sync skipped: a flush is already in progress.')
                return None
            if not self._reachability():
                logging.debug('Sync skipped: the network is unreachable.')
                return None
            if not force:
                last = self.state.last_attempt()
                if last is not None and (now - last).total_seconds() < self.cooldown_seconds:
                    logging.debug(f'Sync skipped: last attempt at {last.isoformat()} is within the cooldown.')
                    return None
            pending = self.queue.size()
            if pending == 0:
                logging.debug('Sync skipped: nothing to sync.')
                return None
            self.state.set_processing(True)

        from ..ui.actions import signals

        outcome: Optional[SyncOutcome] = None
        try:
            self.state.set_last_attempt(now)
            logging.info(f'Starting sync of {pending} queued edit(s).')
            signals.syncStarted.emit(pending)
            outcome = self._flush(now)
        except Exception as ex:
            logging.error(f'Sync failed: {ex}')
            outcome = SyncOutcome.hard_failure(str(ex), now)
            try:
                self.state.record_outcome(outcome)
            except status.StorageException as history_ex:
                logging.error(f'Could not record the failed sync outcome: {history_ex}')
        finally:
            try:
                self.state.set_processing(False)
            except status.StorageException as flag_ex:
                # Recovered by SyncState.reconcile() on the next start
                logging.critical(f'Could not clear the sync-in-progress flag: {flag_ex}')

        logging.info(
            f'Sync finished: {outcome.items_succeeded}/{outcome.items_processed} uploaded, '
            f'{outcome.items_failed} failed.'
        )
        signals.syncFinished.emit(outcome)
        return outcome

    def _flush(self, now: datetime.datetime) -> SyncOutcome:
        entries = self.queue.dequeue_all()

        if not self.transport.is_authenticated():
            logging.warning('Sync aborted: not authenticated.')
            outcome = SyncOutcome.not_authenticated(len(entries), now)
            self.state.record_outcome(outcome)
            from ..ui.actions import signals
            signals.authenticationRequested.emit()
            return outcome

        results = [self.upload_mutation(m) for m in entries]

        uploaded = [r.mutation for r in results if r.success]
        if uploaded:
            self.queue.remove_completed(uploaded)

        outcome = SyncOutcome.from_results(results, now)
        self.state.record_outcome(outcome)
        return outcome

    def upload_mutation(self, mutation: PendingMutation) -> ItemResult:
        """Merge one edit into its remote file and upload the result.

        The download-merge-upload cycle holds the remote lock, so no two cycles overlap.
        Errors are returned as a failed :class:`ItemResult` and never raised.
        """
        with self._remote_lock:
            return self._upload(mutation)

    def try_upload(self, mutation: PendingMutation) -> Optional[ItemResult]:
        """Upload one edit right away unless a flush owns the remote files.

        Returns:
            The result of the upload, or None if a flush is in progress and the edit
            should be queued instead.
        """
        if self.is_processing():
            logging.debug(f'Immediate upload of "{mutation.record_key}" deferred: a flush is in progress.')
            return None
        if not self._remote_lock.acquire(blocking=False):
            logging.debug(f'Immediate upload of "{mutation.record_key}" deferred: the remote is busy.')
            return None
        try:
            return self._upload(mutation)
        finally:
            self._remote_lock.release()

    def _upload(self, mutation: PendingMutation) -> ItemResult:
        try:
            remote_id = self.registry.resolve_remote_id(mutation.file_id)
            remote_text = self.transport.download(remote_id)
            merged = merge_text(remote_text, self.key_column, mutation.record_key, mutation.payload,
                                source=remote_id)
            self.transport.upload(remote_id, merged)
        except status.BaseStatusException as ex:
            return ItemResult(mutation, False, str(ex))
        except Exception as ex:
            logging.error(f'Unexpected error uploading "{mutation.record_key}": {ex}')
            return ItemResult(mutation, False, str(ex))

        logging.debug(f'Uploaded "{mutation.record_key}" of "{mutation.file_id}".')
        return ItemResult(mutation, True)

    @QtCore.Slot()
    def request_sync(self, force: bool = False) -> None:
        """Run :meth:`attempt_sync` on a worker thread unless one is already running."""
        if self._worker is not None and self._worker.isRunning():
            logging.debug('Sync request ignored: a sync worker is already running.')
            return

        worker = AsyncWorker(self.attempt_sync, force)
        worker.errorOccurred.connect(self._on_worker_error)
        self._worker = worker
        worker.start()

    @QtCore.Slot(object)
    def _on_worker_error(self, ex: Exception) -> None:
        logging.error(f'Background sync failed: {ex}')

    def wait_for_sync(self, timeout_ms: int = 30000) -> bool:
        """Block until the background flush finishes, then deliver its queued signals.

        Returns:
            bool: False if the worker is still running after ``timeout_ms``.
        """
        finished = True
        if self._worker is not None:
            finished = self._worker.wait(timeout_ms)
        QtCore.QCoreApplication.processEvents()
        return finished
