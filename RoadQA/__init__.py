"""
RoadQA: offline-first sync engine for road quality assessment field data.

This package provides:

- :mod:`RoadQA.core` – Record store, mutation queue, sync orchestrator, connectivity watcher and the Google Drive transport.
- :mod:`RoadQA.settings` – Settings management and schema validation.
- :mod:`RoadQA.status` – Status codes and exceptions.
- :mod:`RoadQA.log` – Logging setup and the in-memory log tank.
- :mod:`RoadQA.ui` – Signals shared with the user interface.
- :mod:`RoadQA.app` – The :class:`~RoadQA.app.FieldApp` facade.

Use :func:`RoadQA.exec_` to run the sync engine headless.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('RoadQA requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'RoadQA: offline-first sync engine for road quality assessment field data.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Run the sync engine without a UI and enter the Qt event loop.

    Pending edits are flushed on start and whenever the network comes back.
    """
    app = QtCore.QCoreApplication(sys.argv)

    from .app import FieldApp
    field_app = FieldApp()
    field_app.init(poll=True)
    app.aboutToQuit.connect(field_app.teardown)

    QtCore.QTimer.singleShot(100, field_app.request_sync)

    sys.exit(app.exec())


if __name__ == '__main__':
    exec_()
