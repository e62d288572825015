"""Durable string-keyed store.

Backs the mutation queue, the persisted sync state and the project registry with an
INI-format :class:`QtCore.QSettings` file. Every write is flushed to disk immediately so
state survives a killed process.
"""
import logging
import pathlib
import threading
from typing import Optional, Union

from PySide6 import QtCore

from ..status import status


class DurableStore:
    """Thread-safe key-value store persisted to an INI file.

    Args:
        path: The path of the backing file. Defaults to the configured ``store_path``.

    Raises:
        status.StorageException: When the backing file can't be read or written.
    """

    def __init__(self, path: Optional[Union[str, pathlib.Path]] = None) -> None:
        if path is None:
            from ..settings import lib
            path = lib.settings.store_path

        self.path: pathlib.Path = pathlib.Path(path)
        self._lock = threading.RLock()
        self._settings = QtCore.QSettings(str(self.path), QtCore.QSettings.IniFormat)
        self._check('open')

    def _check(self, operation: str) -> None:
        self._settings.sync()
        stat = self._settings.status()
        if stat == QtCore.QSettings.AccessError:
            raise status.StorageException(f'Could not {operation} "{self.path}": access denied.')
        if stat == QtCore.QSettings.FormatError:
            raise status.StorageException(f'Could not {operation} "{self.path}": the file is malformed.')

    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or None if it is not set."""
        with self._lock:
            self._check('read')
            if not self._settings.contains(key):
                return None
            return self._settings.value(key, type=str)

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` and flush to disk."""
        if not isinstance(value, str):
            raise TypeError(f'Expected a str value for "{key}", got {type(value)}.')

        with self._lock:
            self._settings.setValue(key, value)
            self._check('write')
        logging.debug(f'Stored "{key}" ({len(value)} chars).')

    def remove(self, key: str) -> None:
        """Delete ``key``. Missing keys are ignored."""
        with self._lock:
            self._settings.remove(key)
            self._check('write')
        logging.debug(f'Removed "{key}".')

    def keys(self):
        with self._lock:
            return list(self._settings.allKeys())

    def lock(self) -> threading.RLock:
        """The lock guarding this store, for callers needing a read-modify-write section."""
        return self._lock
