"""Application-wide Qt signals for RoadQA.

This module provides:
    - Signals: custom Qt signals for configuration changes, the edit queue, flush lifecycle,
      connectivity transitions, status polling and error reporting.

The UI layer lives outside this package and only ever talks to the sync engine through
these signals and the :class:`RoadQA.app.FieldApp` facade.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for config, queue, sync and connectivity events."""
    error = QtCore.Signal(str)
    logRecorded = QtCore.Signal(int, str)  # Level, formatted message

    configSectionChanged = QtCore.Signal(str)  # Section
    authenticationRequested = QtCore.Signal()

    recordUpdated = QtCore.Signal(str, str)  # File id, record key
    projectDownloaded = QtCore.Signal(object)  # ProjectInfo

    queueChanged = QtCore.Signal(int)  # Pending mutation count
    syncStarted = QtCore.Signal(int)  # Items about to be flushed
    syncFinished = QtCore.Signal(object)  # SyncOutcome

    connectivityChanged = QtCore.Signal(bool)
    statusChanged = QtCore.Signal(object)  # SyncStatus

    def __init__(self):
        super().__init__()


signals = Signals()
