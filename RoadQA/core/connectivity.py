"""Network reachability watcher.

:class:`QtNetworkSource` adapts :class:`QtNetwork.QNetworkInformation` to a single
``reachabilityChanged(bool)`` signal. :class:`ConnectivityWatcher` tracks the transitions
and emits ``connectionRestored`` when the network comes back. The signal is connected to
:meth:`SyncOrchestrator.request_sync <RoadQA.core.sync.SyncOrchestrator.request_sync>` with
a queued connection so the flush is scheduled on the orchestrator's event loop.
"""
import logging
from typing import Optional

from PySide6 import QtCore, QtNetwork


class QtNetworkSource(QtCore.QObject):
    """Reachability reported by the platform's network information backend.

    When no backend is available the network is assumed to be reachable.
    """
    reachabilityChanged = QtCore.Signal(bool)

    REACHABLE = (
        QtNetwork.QNetworkInformation.Reachability.Online,
        QtNetwork.QNetworkInformation.Reachability.Site,
    )

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._info: Optional[QtNetwork.QNetworkInformation] = None

        if QtNetwork.QNetworkInformation.loadDefaultBackend():
            self._info = QtNetwork.QNetworkInformation.instance()
        if self._info is None:
            logging.warning('No network information backend available; assuming the network is reachable.')
            return

        logging.debug(f'Using network information backend "{self._info.backendName()}".')
        self._info.reachabilityChanged.connect(self._on_reachability_changed)

    def is_reachable(self) -> bool:
        if self._info is None:
            return True
        return self._info.reachability() in self.REACHABLE

    def _on_reachability_changed(self, reachability) -> None:
        self.reachabilityChanged.emit(reachability in self.REACHABLE)


class ConnectivityWatcher(QtCore.QObject):
    """Triggers a sync when the network goes from unreachable to reachable.

    Args:
        source: An object with an ``is_reachable()`` method and a ``reachabilityChanged(bool)``
            signal. Defaults to :class:`QtNetworkSource`.

    Signals:
        connectionRestored (): Emitted on an unreachable to reachable transition.
    """
    connectionRestored = QtCore.Signal()

    def __init__(self, source: Optional[QtCore.QObject] = None, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.source = source
        self._reachable: Optional[bool] = None
        self._orchestrator = None
        self._initialized = False

    def initialize(self, orchestrator) -> None:
        """Subscribe to reachability changes and route restorations to ``orchestrator``.

        Calling this more than once has no effect.
        """
        if self._initialized:
            logging.debug('Connectivity watcher already initialized.')
            return

        if self.source is None:
            self.source = QtNetworkSource(parent=self)

        self._reachable = self.source.is_reachable()
        self.source.reachabilityChanged.connect(self.on_reachability_changed)

        self._orchestrator = orchestrator
        self.connectionRestored.connect(orchestrator.request_sync, QtCore.Qt.QueuedConnection)
        orchestrator.set_reachability(self.is_reachable)

        self._initialized = True
        logging.debug(f'Connectivity watcher initialized, network reachable: {self._reachable}')

    def is_reachable(self) -> bool:
        if self.source is None:
            return True
        return self.source.is_reachable()

    @QtCore.Slot(bool)
    def on_reachability_changed(self, reachable: bool) -> None:
        previous = self._reachable
        self._reachable = reachable
        if previous == reachable:
            return

        logging.info(f'Network is now {"reachable" if reachable else "unreachable"}.')
        from ..ui.actions import signals
        signals.connectivityChanged.emit(reachable)

        if reachable and previous is False:
            from ..settings import lib
            if not lib.settings.get_section('sync')['sync_on_reconnect']:
                logging.debug('Sync on reconnect is disabled.')
                return
            self.connectionRestored.emit()

    def teardown(self) -> None:
        if not self._initialized:
            return
        self.source.reachabilityChanged.disconnect(self.on_reachability_changed)
        self.connectionRestored.disconnect(self._orchestrator.request_sync)
        self._orchestrator = None
        self._initialized = False
