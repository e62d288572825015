"""Sync status for the UI: pending edit count and whether a flush is running."""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from PySide6 import QtCore


@dataclass(frozen=True)
class SyncStatus:
    pending_count: int
    is_processing: bool

    def to_dict(self) -> Dict[str, object]:
        return {'pending_count': self.pending_count, 'is_processing': self.is_processing}


class StatusReporter(QtCore.QObject):
    """Reads the sync status and optionally polls it.

    Args:
        orchestrator: The :class:`~RoadQA.core.sync.SyncOrchestrator` to report on.

    Signals:
        statusChanged (object): Emitted with the new :class:`SyncStatus` when polling sees a change.
    """
    statusChanged = QtCore.Signal(object)

    def __init__(self, orchestrator, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.orchestrator = orchestrator
        self._last: Optional[SyncStatus] = None

        self.timer = QtCore.QTimer(self)
        self.timer.timeout.connect(self.refresh)

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            pending_count=self.orchestrator.pending_count(),
            is_processing=self.orchestrator.is_processing(),
        )

    def start(self, interval: Optional[int] = None) -> None:
        """Poll every ``interval`` seconds. Defaults to the ``sync`` config."""
        if interval is None:
            from ..settings import lib
            interval = lib.settings.get_section('sync')['status_poll_interval']
        self.timer.setInterval(interval * 1000)
        self.timer.start()
        logging.debug(f'Polling sync status every {interval}s.')
        self.refresh()

    def stop(self) -> None:
        self.timer.stop()

    @QtCore.Slot()
    def refresh(self) -> None:
        current = self.get_sync_status()
        if current == self._last:
            return
        self._last = current
        self.statusChanged.emit(current)

        from ..ui.actions import signals
        signals.statusChanged.emit(current)
