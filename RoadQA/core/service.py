"""Remote transport for project files stored on Google Drive.

Defines the :class:`RemoteTransport` interface the sync engine consumes and its Google
Drive implementation, :class:`DriveTransport`. Blocking calls can be run off the main
thread with :class:`AsyncWorker`.
"""

import abc
import io
import logging
import socket
import ssl
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import httplib2
from PySide6 import QtCore
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from .auth import auth_manager, AuthExpiredError
from ..status import status

# Cached Drive API client to avoid repeated discovery/auth costs
_cached_service: Any = None
_service_lock = threading.Lock()

MAX_RETRIES: int = 6
PAGE_SIZE: int = 100


class RemoteTransport(abc.ABC):
    """Uploads and downloads whole project files to and from remote storage."""

    @abc.abstractmethod
    def is_authenticated(self) -> bool:
        """Whether credentials are available without user interaction."""

    @abc.abstractmethod
    def download(self, remote_id: str) -> str:
        """Return the text content of a remote file.

        Raises:
            status.AuthenticationException, status.NotFoundException, status.NetworkException
        """

    @abc.abstractmethod
    def upload(self, remote_id: str, content: str) -> Dict[str, str]:
        """Replace the content of a remote file.

        Returns:
            dict: ``{'remote_id': ..., 'status': ...}``.

        Raises:
            status.AuthenticationException, status.NotFoundException, status.NetworkException
        """

    @abc.abstractmethod
    def list_files(self) -> List[Dict[str, str]]:
        """List the remote project files as dicts with ``id``, ``name`` and ``modifiedTime``."""


class AsyncWorker(QtCore.QThread):
    """
    Generic worker thread with retry logic for blocking functions.

    Authentication and configuration errors are not retried.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args

        self.max_attempts = kwargs.pop('max_attempts', 1)
        self.wait_seconds = kwargs.pop('wait_seconds', 2.0)
        self.kwargs = kwargs

    def run(self) -> None:
        attempts = 0
        last_exception = None
        while attempts < self.max_attempts:
            attempts += 1
            try:
                result = self.func(*self.args, **self.kwargs)
                self.resultReady.emit(result)
                return
            except AuthExpiredError as ex:
                from ..ui.actions import signals
                signals.authenticationRequested.emit()
                self.errorOccurred.emit(ex)
                return
            except (
                    status.AuthenticationException,
                    status.CredsInvalidException,
                    status.ClientSecretNotFoundException,
                    status.ClientSecretInvalidException,
                    status.ConfigInvalidException,
                    status.NotFoundException,
                    status.ProjectNotFoundException,
            ) as ex:
                self.errorOccurred.emit(ex)
                return
            except Exception as ex:
                logging.warning(f'Attempt {attempts}/{self.max_attempts} of {self.func.__name__} failed: {ex}')
                last_exception = ex
                if attempts < self.max_attempts:
                    time.sleep(self.wait_seconds)
        self.errorOccurred.emit(last_exception)


def clear_service() -> None:
    """
    Clears the cached Drive API client.
    """
    global _cached_service

    with _service_lock:
        try:
            if _cached_service:
                _cached_service.close()
        except Exception as ex:
            logging.debug(f'Failed closing cached Drive service client: {ex}')

        _cached_service = None


def get_service() -> Any:
    """
    Builds (or returns cached) Google Drive service client.

    Raises:
        AuthExpiredError: If interactive sign-in is required.
        status.NetworkException: If the client can't be built.
    """
    global _cached_service
    creds: Any = auth_manager.get_valid_credentials()

    with _service_lock:
        if _cached_service is not None:
            return _cached_service
        try:
            service: Any = build('drive', 'v3', credentials=creds, cache_discovery=False)
        except (HttpError, httplib2.HttpLib2Error, OSError) as ex:
            raise status.NetworkException(f'Could not create the Drive client: {ex}') from ex
        logging.debug('Google Drive service client created successfully.')
        _cached_service = service
        return service


def _call(description: str, func: Callable[[], Any]) -> Any:
    """Run a Drive request, mapping failures onto status exceptions."""
    try:
        return func()
    except AuthExpiredError as ex:
        raise status.AuthenticationException(str(ex)) from ex
    except HttpError as ex:
        stat: Optional[int] = ex.resp.status if ex.resp else None
        if stat in (401, 403):
            raise status.AuthenticationException(f'{description}: access denied (HTTP {stat}).') from ex
        if stat == 404:
            raise status.NotFoundException(f'{description}: remote file not found (HTTP 404).') from ex
        raise status.NetworkException(f'{description}: {ex}') from ex
    except socket.timeout as ex:
        raise status.NetworkException(f'{description}: timed out: {ex}') from ex
    except ssl.SSLError as ex:
        raise status.NetworkException(f'{description}: SSL error: {ex}') from ex
    except (httplib2.HttpLib2Error, OSError) as ex:
        raise status.NetworkException(f'{description}: {ex}') from ex


class DriveTransport(RemoteTransport):
    """:class:`RemoteTransport` backed by the Google Drive v3 API."""

    @property
    def mime_type(self) -> str:
        from ..settings import lib
        return lib.settings.get_section('remote')['mime_type']

    def is_authenticated(self) -> bool:
        return auth_manager.is_authenticated()

    def download(self, remote_id: str) -> str:
        def _download() -> bytes:
            request = get_service().files().get_media(fileId=remote_id)
            buffer = io.BytesIO()
            downloader = MediaIoBaseDownload(buffer, request)
            done = False
            while not done:
                _, done = downloader.next_chunk(num_retries=MAX_RETRIES)
            return buffer.getvalue()

        logging.debug(f'Downloading "{remote_id}"...')
        data = _call(f'Downloading "{remote_id}"', _download)
        # Spreadsheet exports may carry a byte order mark
        return data.decode('utf-8-sig')

    def upload(self, remote_id: str, content: str) -> Dict[str, str]:
        def _upload() -> Dict[str, Any]:
            media = MediaIoBaseUpload(
                io.BytesIO(content.encode('utf-8')),
                mimetype=self.mime_type,
                resumable=False,
            )
            return get_service().files().update(
                fileId=remote_id,
                media_body=media,
                fields='id, modifiedTime',
            ).execute(num_retries=MAX_RETRIES)

        logging.debug(f'Uploading {len(content)} chars to "{remote_id}"...')
        result = _call(f'Uploading "{remote_id}"', _upload)
        return {'remote_id': result.get('id', remote_id), 'status': 'uploaded'}

    def list_files(self) -> List[Dict[str, str]]:
        query = f"mimeType='{self.mime_type}' and trashed=false"

        def _list() -> List[Dict[str, str]]:
            files: List[Dict[str, str]] = []
            page_token = None
            while True:
                result = get_service().files().list(
                    q=query,
                    pageSize=PAGE_SIZE,
                    pageToken=page_token,
                    orderBy='name',
                    fields='nextPageToken, files(id, name, modifiedTime)',
                ).execute(num_retries=MAX_RETRIES)
                files.extend(result.get('files', []))
                page_token = result.get('nextPageToken')
                if not page_token:
                    return files

        files = _call('Listing project files', _list)
        logging.debug(f'Found {len(files)} remote project files.')
        return files


# Reset cached Drive API client when credentials/config change
try:
    from ..ui.actions import signals


    @QtCore.Slot(str)
    def _reset_cached_service(section: str) -> None:
        """Clear the cached Drive client when the client secret or remote config changes."""
        if section in ('client_secret', 'remote'):
            logging.debug(f'Clearing cached Drive service client due to "{section}" change')
            clear_service()


    signals.configSectionChanged.connect(_reset_cached_service)
except ImportError:
    # Signals hub not available
    pass
