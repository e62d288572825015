"""Logging for the sync engine.

Everything logs through the root logger. :func:`setup_logging` formats it to stdout and to a
bounded in-memory :class:`TankHandler`, whose recent history a status panel can show next
to the sync outcomes. Qt's own warnings, e.g. from the network reachability backend, are
routed through the same handlers.
"""
import collections
import logging
import os
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..ui.actions import signals

LOG_LEVEL = logging.DEBUG
LOG_LEVEL_ENV = 'ROADQA_LOG_LEVEL'
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
TANK_SIZE = 5000

LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def _to_level(level):
    if isinstance(level, str) and level.upper() in LEVELS:
        return LEVELS[level.upper()]
    if isinstance(level, int) and not isinstance(level, bool) and level in LEVELS.values():
        return level
    raise ValueError(f'Invalid logging level "{level}". Use one of {", ".join(LEVELS)}.')


def set_logging_level(level):
    """
    Sets the level of the root logger and its handlers.

    Args:
        level (int or str): A standard logging level, e.g. ``logging.INFO`` or ``'INFO'``.
    """
    level = _to_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    level = QT_LEVELS.get(mode, logging.WARNING)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=None):
    """
    Configures the root logger.

    Args:
        enable_stream_handler (bool): Log to stdout.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int or str): Level for the root logger and its handlers. Defaults to the
            ``ROADQA_LOG_LEVEL`` environment variable, or DEBUG.
    """
    if log_level is None:
        log_level = os.environ.get(LOG_LEVEL_ENV, LOG_LEVEL)
    log_level = _to_level(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    root_logger.addHandler(tank_handler)

    set_logging_level(log_level)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank_handler():
    """Returns the installed :class:`TankHandler`, or None if logging isn't set up."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps the most recent formatted log messages in memory.

    Records at ERROR or above are also announced through ``signals.logRecorded``, so failed
    uploads and storage errors reach the status panel without polling.

    Attributes:
        tank (collections.deque[tuple[int, str]]): Log level and formatted message pairs.
    """

    def __init__(self, maxlen=TANK_SIZE):
        super().__init__()
        self.tank = collections.deque(maxlen=maxlen)

    def emit(self, record):
        try:
            message = self.format(record)
            self.tank.append((record.levelno, message))
            if record.levelno >= logging.ERROR:
                signals.logRecorded.emit(record.levelno, message)
        except Exception:
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET):
        """Stored messages at or above ``level``, oldest first."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
