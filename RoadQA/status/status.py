"""Status definitions and exceptions for RoadQA.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., NotFoundException) raised by the record store, the
      mutation queue, the durable store and the remote transport
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()

    # Authentication status
    ClientSecretNotFound = enum.auto()
    ClientSecretInvalid = enum.auto()
    CredsInvalid = enum.auto()
    NotAuthenticated = enum.auto()

    # Local data status
    NotFound = enum.auto()
    FileUnavailable = enum.auto()
    StorageError = enum.auto()
    ProjectNotFound = enum.auto()

    # Remote status
    NetworkError = enum.auto()

    # Submission status
    ValidationError = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown error.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the app config.',
    Status.ConfigInvalid: 'The app config seems to be incomplete, or contains invalid values.',

    Status.ClientSecretNotFound: 'Could not find the google client secret. Have you set up a valid Google client secret?',
    Status.ClientSecretInvalid: 'Could not verify the client secret. Have you set up a valid Google client secret?',
    Status.CredsInvalid: 'Could not verify the credentials. Please sign in again to your Google account.',
    Status.NotAuthenticated: 'Not authenticated with Google Drive.',

    Status.NotFound: 'Record not found.',
    Status.FileUnavailable: 'The project file is missing or could not be read.',
    Status.StorageError: 'Could not access the local app storage.',
    Status.ProjectNotFound: 'This project is no longer available offline. Please download it again.',

    Status.NetworkError: 'Google Drive is unavailable. Please check your connection.',

    Status.ValidationError: 'The submitted values are invalid.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in RoadQA.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when the app configuration file cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the app configuration is invalid or malformed."""
    status = Status.ConfigInvalid


class ClientSecretNotFoundException(BaseStatusException):
    """Exception raised when the Google OAuth client secret file cannot be found."""
    status = Status.ClientSecretNotFound


class ClientSecretInvalidException(BaseStatusException):
    """Exception raised when the Google OAuth client secret is invalid or malformed."""
    status = Status.ClientSecretInvalid


class CredsInvalidException(BaseStatusException):
    """Exception raised when stored Google credentials are invalid or expired."""
    status = Status.CredsInvalid


class AuthenticationException(BaseStatusException):
    """Exception raised when remote credentials are missing or rejected."""
    status = Status.NotAuthenticated


class NotFoundException(BaseStatusException):
    """Exception raised when no row matches the requested record key."""
    status = Status.NotFound


class FileUnavailableException(BaseStatusException):
    """Exception raised when a local project file is missing or cannot be parsed."""
    status = Status.FileUnavailable


class StorageException(BaseStatusException):
    """Exception raised when the durable store cannot be read or written."""
    status = Status.StorageError


class ProjectNotFoundException(BaseStatusException):
    """Exception raised when a local file has no registered remote counterpart."""
    status = Status.ProjectNotFound


class NetworkException(BaseStatusException):
    """Exception raised on transport-level failures talking to Google Drive."""
    status = Status.NetworkError


class ValidationException(BaseStatusException):
    """Exception raised when a submitted payload fails required or numeric checks."""
    status = Status.ValidationError
