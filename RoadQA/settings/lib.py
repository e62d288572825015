"""Settings library for the sync engine and authentication configurations.

Provides:
    - Schema validation and enforcement for config.json structure.
    - Loading, saving, reverting, and managing application settings.
    - Application paths: config, credentials, downloaded projects and the durable state file.
"""

import json
import logging
import os
import pathlib
import shutil
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'RoadQA'

CONFIG_DIR_ENV_KEY: str = 'ROADQA_CONFIG_DIR'

CONFIG_SCHEMA: Dict[str, Any] = {
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'cooldown_seconds': {'type': int, 'required': True, 'min': 0},
            'history_limit': {'type': int, 'required': True, 'min': 1},
            'status_poll_interval': {'type': int, 'required': True, 'min': 1},
            'sync_on_reconnect': {'type': bool, 'required': True},
        }
    },
    'table': {
        'type': dict,
        'required': True,
        'item_schema': {
            'key_column': {'type': str, 'required': True},
            'read_only_columns': {'type': list, 'required': True, 'item_type': str},
            'numeric_columns': {'type': list, 'required': True, 'item_type': str},
            'required_columns': {'type': list, 'required': True, 'item_type': str},
        }
    },
    'remote': {
        'type': dict,
        'required': True,
        'item_schema': {
            'mime_type': {'type': str, 'required': True},
            'scopes': {'type': list, 'required': True, 'item_type': str},
        }
    },
}


def _validate_section(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate one section of the app configuration against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section data.
        item_schema: Dict describing required fields, types and constraints.

    Raises:
        TypeError: If the section or one of its fields has the wrong type.
        ValueError: If a required field is missing or a constraint fails.
    """
    logging.debug(f'Validating "{section_name}" section.')
    if not isinstance(section, dict):
        msg: str = f'"{section_name}" must be a dict.'
        logging.error(msg)
        raise TypeError(msg)

    for field, specs in item_schema.items():
        if field not in section:
            if specs['required']:
                msg = f'"{section_name}" is missing "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section[field]
        # bool is an int subclass, don't let it pass as a number
        if specs['type'] is int and isinstance(value, bool):
            msg = f'"{section_name}.{field}" must be an int, got bool.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, specs['type']):
            msg = f'"{section_name}.{field}" must be {specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)
        if 'min' in specs and value < specs['min']:
            msg = f'"{section_name}.{field}" must be >= {specs["min"]}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)
        if 'item_type' in specs:
            for item in value:
                if not isinstance(item, specs['item_type']):
                    msg = f'"{section_name}.{field}" items must be {specs["item_type"]}, got {type(item)}.'
                    logging.error(msg)
                    raise TypeError(msg)


class ConfigPaths:
    """Manage application file paths and ensure default templates and directories exist.

    The root directory is, in order of preference, the explicit ``root`` argument, the
    ``ROADQA_CONFIG_DIR`` environment variable, or Qt's writable app data location.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        if root is None:
            root = os.environ.get(CONFIG_DIR_ENV_KEY) or QtCore.QStandardPaths.writableLocation(
                QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(root)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.client_secret_template: pathlib.Path = self.template_dir / 'client_secret.json.template'
        self.config_template: pathlib.Path = self.template_dir / 'config.json.template'

        self.app_data_dir: pathlib.Path = app_data_dir
        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'
        self.projects_dir: pathlib.Path = app_data_dir / 'projects'

        # Config files
        self.client_secret_path: pathlib.Path = self.config_dir / 'client_secret.json'
        self.config_path: pathlib.Path = self.config_dir / 'config.json'
        self.creds_path: pathlib.Path = self.auth_dir / 'creds.json'

        # Durable key-value state: queue, flush flag, last attempt, history, project metadata
        self.store_path: pathlib.Path = self.config_dir / 'state.ini'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify templates exist and prepare configuration directories and files.

        Raises:
            FileNotFoundError: If required template directory or file is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.client_secret_template.exists():
            msg = f'Missing client_secret template: {self.client_secret_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.config_template.exists():
            msg = f'Missing config template: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        for _dir in (self.config_dir, self.auth_dir, self.projects_dir):
            if not _dir.exists():
                logging.debug(f'Creating directory: {_dir}')
                _dir.mkdir(parents=True, exist_ok=True)

        # Ensure valid configs exists even if we haven't yet set them up
        if not self.client_secret_path.exists():
            logging.debug(f'Copying default client_secret from template to {self.client_secret_path}')
            shutil.copy(self.client_secret_template, self.client_secret_path)
        if not self.config_path.exists():
            logging.debug(f'Copying default config from template to {self.config_path}')
            shutil.copy(self.config_template, self.config_path)

    def revert_config_to_template(self) -> None:
        """Restore config.json from the default template file.

        Raises:
            FileNotFoundError: If the config template file is missing.
        """
        logging.debug(f'Reverting config to template: {self.config_template}')
        if not self.config_template.exists():
            msg: str = f'Config template not found: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.config_template, self.config_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save config.json sections and client_secret.json.
    """
    required_client_secret_keys: List[str] = ['client_id', 'project_id', 'client_secret', 'auth_uri', 'token_uri']

    def __init__(self, root: Optional[str] = None) -> None:
        super().__init__(root=root)

        self._signals_blocked: bool = False

        self.config_data: Dict[str, Any] = {k: {} for k in CONFIG_SCHEMA}
        self.client_secret_data: Dict[str, Any] = {}

        self.init_data()

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of configuration change signals."""
        self._signals_blocked = v

    def _emit_section_changed(self, section_name: str) -> None:
        if self._signals_blocked:
            return
        from ..ui.actions import signals
        signals.configSectionChanged.emit(section_name)

    def init_data(self) -> None:
        """Reload config and client_secret data from disk."""
        self.load_config()
        self.load_client_secret()

    def load_config(self) -> Dict[str, Any]:
        """Load config.json from disk and validate against schema.

        Returns:
            The loaded config data dictionary.

        Raises:
            status.ConfigNotFoundException: If config.json file is missing.
            status.ConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading config from "{self.config_path}"')
        if not self.config_path.exists():
            raise status.ConfigNotFoundException

        try:
            with self.config_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_config_data(data)
        except status.ConfigInvalidException:
            raise
        except Exception as ex:
            raise status.ConfigInvalidException(str(ex)) from ex

        self.config_data = data
        return self.config_data

    def load_client_secret(self) -> Dict[str, Any]:
        """Load client_secret.json from disk and validate required OAuth fields.

        Raises:
            status.ClientSecretNotFoundException: If client_secret.json file is missing.
            status.ClientSecretInvalidException: If JSON parsing or required fields are missing.
        """
        logging.debug(f'Loading client_secret from "{self.client_secret_path}"')
        if not self.client_secret_path.exists():
            raise status.ClientSecretNotFoundException
        try:
            with self.client_secret_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (ValueError, json.JSONDecodeError) as ex:
            raise status.ClientSecretInvalidException from ex

        self.validate_client_secret(data)
        self.client_secret_data = data
        return self.client_secret_data

    def validate_client_secret(self, data=None) -> str:
        """Validate that the client configuration contains required OAuth credentials.

        Args:
            data (dict, optional): Client secret data to validate. Defaults to loaded client_secret_data.

        Returns:
            str: Section key used ('installed' or 'web').

        Raises:
            status.ClientSecretInvalidException: If no valid client_secret section exists or required fields are missing.
        """
        if data is None:
            data = self.client_secret_data

        key = next((k for k in ('installed', 'web') if k in data), None)
        if not key:
            raise status.ClientSecretInvalidException('Missing "installed" or "web" section in client_secret.')

        logging.debug(f'Found "{key}" section in client_secret.')

        config_section: Dict[str, Any] = data[key]
        missing: List[str] = [k for k in self.required_client_secret_keys if k not in config_section]
        if missing:
            raise status.ClientSecretInvalidException(
                f'Missing required fields in the \'{key}\' section: {missing}.'
            )
        return key

    def validate_config_data(self, data: Dict[str, Any] = None) -> None:
        """Validate config data against the defined CONFIG_SCHEMA.

        Args:
            data (dict, optional): Config data to validate. Defaults to self.config_data.

        Raises:
            status.ConfigInvalidException: If a required section is missing or validation fails.
        """
        if data is None:
            data = self.config_data
        if not data:
            raise status.ConfigInvalidException('Config data is empty.')

        logging.debug('Validating config data against schema.')
        for section_name, specs in CONFIG_SCHEMA.items():
            if specs.get('required') and section_name not in data:
                raise status.ConfigInvalidException(f'Missing required section: {section_name}')
            if section_name not in data:
                continue
            try:
                _validate_section(section_name, data[section_name], specs['item_schema'])
            except (TypeError, ValueError) as ex:
                raise status.ConfigInvalidException(str(ex)) from ex

        table = data['table']
        if table['key_column'] not in table['read_only_columns']:
            raise status.ConfigInvalidException(
                f'The key column "{table["key_column"]}" must be listed in read_only_columns.'
            )

        logging.debug('Config data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of configuration data for a config or client_secret section.

        Raises:
            KeyError: If section_name is unknown.
        """
        if section_name == 'client_secret':
            return self.client_secret_data.copy()

        return self.config_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a configuration section.

        The previous section data is restored when validation fails.

        Raises:
            ValueError: If section_name is unrecognized.
            status.ConfigInvalidException: If the new data does not validate.
        """
        if section_name == 'client_secret':
            logging.debug('Setting entire client_secret data.')
            self.validate_client_secret(new_data)
            self.client_secret_data = new_data
            self.save_section('client_secret')
            self._emit_section_changed(section_name)
            return

        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.config_data[section_name].copy()

        self.config_data[section_name] = new_data
        try:
            self.validate_config_data()
        except status.ConfigInvalidException:
            logging.error(f'Validation error on set_section("{section_name}"), rolling back.')
            self.config_data[section_name] = current_section_data
            raise

        self.save_section(section_name)
        self._emit_section_changed(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Raises:
            ValueError: If section_name is invalid.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.config_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        self.config_data[section_name] = template_data[section_name]
        self.save_section(section_name)
        self._emit_section_changed(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to its corresponding file.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name == 'client_secret':
            logging.debug(f'Saving client_secret to "{self.client_secret_path}"')
            self.validate_client_secret(self.client_secret_data)
            with self.client_secret_path.open('w', encoding='utf-8') as f:
                json.dump(self.client_secret_data, f, indent=4, ensure_ascii=False)
            return

        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.config_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.config_data[section_name]

        with self.config_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)


settings: SettingsAPI = SettingsAPI()
