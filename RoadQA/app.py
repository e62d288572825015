"""Application facade wiring the sync engine together.

The field form and status panel talk to :class:`FieldApp` only::

    app = FieldApp()
    app.init()
    result = app.submit_edit(path, 'TP-7', {'roadWidthTotal': '6.2'}, online=False)
    app.get_sync_status().pending_count
    app.teardown()

"""
import datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from PySide6 import QtCore

from .core.connectivity import ConnectivityWatcher
from .core.projects import ProjectInfo, ProjectRegistry
from .core.records import Record, RecordStore
from .core.reporter import StatusReporter, SyncStatus
from .core.service import DriveTransport, RemoteTransport
from .core.store import DurableStore
from .core.submission import SubmissionResult, submit_edit
from .core.sync import SyncOrchestrator, SyncOutcome


class FieldApp(QtCore.QObject):
    """Owns the sync engine components and exposes the operations used by the UI.

    Args:
        transport: Remote transport. Defaults to :class:`DriveTransport`.
        network_source: Reachability source for the connectivity watcher. Defaults to the Qt backend.
        store: Durable store. Defaults to the configured state file.
        clock: Returns the current aware datetime.
    """

    def __init__(
            self,
            transport: Optional[RemoteTransport] = None,
            network_source: Optional[QtCore.QObject] = None,
            store: Optional[DurableStore] = None,
            clock: Optional[Callable[[], datetime.datetime]] = None,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent)
        self.store = store or DurableStore()
        self.transport = transport or DriveTransport()
        self.records = RecordStore()
        self.registry = ProjectRegistry(self.store, self.transport)
        self.orchestrator = SyncOrchestrator(self.store, self.transport, self.registry, clock=clock, parent=self)
        self.watcher = ConnectivityWatcher(source=network_source, parent=self)
        self.reporter = StatusReporter(self.orchestrator, parent=self)

    def init(self, poll: bool = False) -> None:
        """Reconcile persisted sync state and start watching the network.

        Args:
            poll: Also start polling the sync status.
        """
        self.orchestrator.init()
        self.watcher.initialize(self.orchestrator)
        if poll:
            self.reporter.start()
        logging.info('RoadQA sync engine initialized.')

    def teardown(self) -> None:
        self.reporter.stop()
        self.watcher.teardown()
        self.orchestrator.teardown()
        logging.info('RoadQA sync engine stopped.')

    def is_online(self) -> bool:
        return self.watcher.is_reachable()

    def submit_edit(self, file_id: str, record_key: str, payload: Dict[str, Any],
                    online: Optional[bool] = None) -> SubmissionResult:
        """Save an edit locally, then upload or queue it.

        Args:
            online: Whether to try an immediate upload. Defaults to the current reachability.
        """
        if online is None:
            online = self.is_online()
        return submit_edit(self.records, self.orchestrator, file_id, record_key, payload, online)

    def read_record(self, file_id: str, record_key: str) -> Record:
        return self.records.read_record(file_id, record_key)

    def list_records(self, file_id: str) -> List[Record]:
        return self.records.list_records(file_id)

    def download_project(self, remote_id: str, name: str) -> ProjectInfo:
        return self.registry.download_project(remote_id, name)

    def get_local_projects(self) -> List[ProjectInfo]:
        return self.registry.get_local_projects()

    def list_remote_projects(self) -> List[Dict[str, str]]:
        return self.transport.list_files()

    def get_sync_status(self) -> SyncStatus:
        return self.reporter.get_sync_status()

    def get_sync_history(self) -> List[SyncOutcome]:
        return self.orchestrator.get_sync_history()

    def force_sync(self) -> Optional[SyncOutcome]:
        return self.orchestrator.force_sync()

    def request_sync(self, force: bool = False) -> None:
        """Start a background sync. See :meth:`SyncOrchestrator.request_sync`."""
        self.orchestrator.request_sync(force)
