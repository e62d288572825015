"""
Google OAuth2 authentication and credential management.

Provides the thread-safe :class:`AuthManager` used by the Drive transport to obtain
credentials without user interaction, plus the interactive sign-in flow and sign-out.
"""

import json
import logging
import threading
from typing import Dict, List, Optional, Union

import google.auth.exceptions
import google.auth.transport.requests
import google.oauth2.credentials
import google_auth_oauthlib.flow

from ..status import status


class AuthExpiredError(Exception):
    """Raised when credentials are missing or expired and require interactive sign-in."""
    pass


def get_scopes() -> List[str]:
    from ..settings import lib
    return list(lib.settings.get_section('remote')['scopes'])


class AuthManager:
    """Manages OAuth2 credentials with thread-safe refresh."""

    def __init__(self):
        self._lock = threading.Lock()
        self._creds: Optional[google.oauth2.credentials.Credentials] = None

    def get_valid_credentials(self) -> google.oauth2.credentials.Credentials:
        """
        Return valid credentials without any user interaction.

        Raises:
            AuthExpiredError: if no credentials exist or a full interactive flow is required.
            status.AuthenticationException: if an auto-refresh fails.
            status.CredsInvalidException: if stored credentials are corrupt.
        """
        from ..settings import lib
        with self._lock:
            if self._creds is None:
                if not lib.settings.creds_path.exists():
                    raise AuthExpiredError('No credentials found; interactive authentication required')
                try:
                    self._creds = google.oauth2.credentials.Credentials.from_authorized_user_file(
                        str(lib.settings.creds_path))
                except (ValueError, json.JSONDecodeError) as ex:
                    # Corrupt credentials can't be recovered, the user has to sign in again
                    lib.settings.creds_path.unlink(missing_ok=True)
                    raise status.CredsInvalidException('Failed to load credentials') from ex

            if self._creds.expired or not self._creds.valid:
                if self._creds.refresh_token:
                    try:
                        self._creds.refresh(google.auth.transport.requests.Request())
                        save_creds(self._creds)
                    except google.auth.exceptions.GoogleAuthError as ex:
                        raise status.AuthenticationException('Failed to auto-refresh credentials') from ex
                else:
                    raise AuthExpiredError('Credentials expired; interactive authentication required')

            return self._creds

    def is_authenticated(self) -> bool:
        """Whether usable credentials are available without user interaction."""
        try:
            self.get_valid_credentials()
        except (AuthExpiredError, status.BaseStatusException) as ex:
            logging.debug(f'Not authenticated: {ex}')
            return False
        return True

    def sign_in(self) -> google.oauth2.credentials.Credentials:
        """Run the interactive OAuth flow and cache the resulting credentials."""
        with self._lock:
            creds = authenticate()
            self._creds = creds
        from . import service
        service.clear_service()
        return creds

    def reset(self) -> None:
        """Forget the cached credentials."""
        with self._lock:
            self._creds = None


auth_manager = AuthManager()


def save_creds(creds: Union[google.oauth2.credentials.Credentials, Dict]) -> None:
    """
    Save OAuth2 credentials to the configured token file.

    Args:
        creds (Union[google.oauth2.credentials.Credentials, Dict]): Credentials or dict to save.
    """
    from ..settings import lib
    data = json.dumps(creds) if isinstance(creds, dict) else creds.to_json()
    with open(lib.settings.creds_path, 'w', encoding='utf-8') as token_file:
        token_file.write(data)

    logging.debug(f'Credentials saved to {lib.settings.creds_path}.')


def authenticate() -> google.oauth2.credentials.Credentials:
    """
    Run the OAuth flow in a local browser to obtain credentials.

    Returns:
        google.oauth2.credentials.Credentials: The authenticated credentials.

    Raises:
        status.ClientSecretNotFoundException: If the client secret file is not found.
        status.AuthenticationException: If authentication fails or is cancelled.
        status.CredsInvalidException: If the credentials returned are invalid.
    """
    from ..settings import lib

    scopes = get_scopes()

    if not lib.settings.client_secret_path.exists():
        raise status.ClientSecretNotFoundException
    lib.settings.validate_client_secret()
    client_config = lib.settings.get_section('client_secret')

    logging.debug('Starting OAuth flow...')
    flow = google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(client_config, scopes=scopes)
    try:
        creds = flow.run_local_server(port=0)
    except Exception as ex:
        raise status.AuthenticationException(f'OAuth flow failed: {ex}') from ex

    if not creds:
        raise status.AuthenticationException('Authentication was cancelled or no credentials obtained.')
    if not creds.valid:
        raise status.CredsInvalidException('Invalid credentials returned from OAuth flow.')

    logging.debug('Saving credentials...')
    save_creds(creds)
    return creds


def sign_out() -> None:
    """
    Delete stored credentials to sign out the user.
    """
    from ..settings import lib
    auth_manager.reset()
    if lib.settings.creds_path.exists():
        logging.debug(f'Deleting {lib.settings.creds_path}...')
        lib.settings.creds_path.unlink()
        logging.debug('Successfully signed out.')
    else:
        logging.debug('No credentials file found. No action taken.')

    from . import service
    service.clear_service()
