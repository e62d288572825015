"""Record store for the delimited project files.

A project file is a CSV table; each row is a :class:`Record` identified by the value of
the configured key column (e.g. ``TEST POINT``). Cells are always handled as text so
values are written back exactly as they were submitted.

Updates use fallback-merge semantics: a payload value that is ``None`` or empty never
overwrites an existing cell. The whole file is re-serialized and replaced atomically on
every update.
"""
import io
import logging
import os
import pathlib
import re
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..status import status


@dataclass(frozen=True)
class Record:
    """One row of a project file."""
    key: str
    fields: Dict[str, str]
    read_only_columns: Tuple[str, ...] = field(default_factory=tuple)

    def get(self, column: str, default: str = '') -> str:
        return self.fields.get(column, default)

    @property
    def read_only_fields(self) -> Dict[str, str]:
        return {k: v for k, v in self.fields.items() if k in self.read_only_columns}

    @property
    def mutable_fields(self) -> Dict[str, str]:
        return {k: v for k, v in self.fields.items() if k not in self.read_only_columns}

    def to_dict(self) -> Dict[str, str]:
        return dict(self.fields)


def _is_empty(value: Optional[str]) -> bool:
    return value is None or str(value) == ''


def parse_table(text: str, key_column: str, source: str = '') -> pd.DataFrame:
    """Parse CSV text into a DataFrame of strings.

    Args:
        text: The CSV content.
        key_column: The column identifying records.
        source: Name of the origin, used in error messages.

    Returns:
        pd.DataFrame: The parsed table, every cell a ``str``.

    Raises:
        status.FileUnavailableException: If the text can't be parsed or lacks the key column.
    """
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            skipinitialspace=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as ex:
        raise status.FileUnavailableException(f'Could not parse "{source}": {ex}') from ex

    if key_column not in df.columns:
        raise status.FileUnavailableException(f'"{source}" has no "{key_column}" column.')
    return df


def serialize_table(df: pd.DataFrame) -> str:
    """Serialize a DataFrame back to CSV text."""
    return df.to_csv(index=False, lineterminator='\n')


def _find_row(df: pd.DataFrame, key_column: str, key: str, source: str = '') -> int:
    matches = df.index[df[key_column] == key].tolist()
    if not matches:
        raise status.NotFoundException(f'No record "{key}" in "{source}".')
    if len(matches) > 1:
        logging.warning(f'Found {len(matches)} rows with key "{key}" in "{source}"; using the first one.')
    return matches[0]


def merge_payload(df: pd.DataFrame, key_column: str, key: str, payload: Dict[str, Optional[str]],
                  source: str = '') -> int:
    """Merge ``payload`` into the row identified by ``key``, in place.

    Columns missing from the table are appended. The key column is never modified.

    Returns:
        int: The index of the updated row.

    Raises:
        status.NotFoundException: If no row has the given key.
    """
    idx = _find_row(df, key_column, key, source=source)

    for column, value in payload.items():
        if column == key_column:
            logging.warning(f'Ignoring an update to the key column "{key_column}" of "{key}".')
            continue
        if _is_empty(value):
            continue
        if column not in df.columns:
            logging.debug(f'Adding column "{column}" to "{source}".')
            df[column] = ''
        df.at[idx, column] = str(value)
    return idx


def merge_text(text: str, key_column: str, key: str, payload: Dict[str, Optional[str]],
               source: str = '') -> str:
    """Merge ``payload`` into CSV ``text`` and return the new text."""
    df = parse_table(text, key_column, source=source)
    merge_payload(df, key_column, key, payload, source=source)
    return serialize_table(df)


def write_atomic(path: pathlib.Path, text: str) -> None:
    """Replace ``path`` with ``text`` via a temporary file in the same directory."""
    path = pathlib.Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _natural_key(value: str) -> List:
    return [int(s) if s.isdigit() else s.lower() for s in re.split(r'(\d+)', value)]


class RecordStore:
    """Reads and updates single rows of project files.

    Args:
        key_column: The column identifying a record. Defaults to the ``table`` config.
        read_only_columns: Columns set at import time. Defaults to the ``table`` config.
    """

    def __init__(self, key_column: Optional[str] = None, read_only_columns: Optional[List[str]] = None) -> None:
        from ..settings import lib
        config = lib.settings.get_section('table')

        self.key_column: str = key_column or config['key_column']
        columns = read_only_columns if read_only_columns is not None else config['read_only_columns']
        self.read_only_columns: Tuple[str, ...] = tuple(columns)
        self._lock = threading.Lock()

    def _load(self, file_id: str) -> pd.DataFrame:
        path = pathlib.Path(file_id)
        if not path.is_file():
            raise status.FileUnavailableException(f'"{file_id}" does not exist.')
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as ex:
            raise status.FileUnavailableException(f'Could not read "{file_id}": {ex}') from ex
        return parse_table(text, self.key_column, source=file_id)

    def _to_record(self, df: pd.DataFrame, idx: int) -> Record:
        row = {str(k): str(v) for k, v in df.loc[idx].items()}
        return Record(key=row[self.key_column], fields=row, read_only_columns=self.read_only_columns)

    def read_record(self, file_id: str, key: str) -> Record:
        """Return the record with the given key.

        Raises:
            status.FileUnavailableException: If the file is missing or unreadable.
            status.NotFoundException: If no row has the given key.
        """
        df = self._load(file_id)
        idx = _find_row(df, self.key_column, key, source=file_id)
        return self._to_record(df, idx)

    def update_record(self, file_id: str, key: str, payload: Dict[str, Optional[str]]) -> Record:
        """Merge ``payload`` into a record and rewrite the file.

        Fields absent from the payload, or given as ``None`` or an empty string, keep their
        current value.

        Returns:
            Record: The updated record.

        Raises:
            status.FileUnavailableException: If the file is missing, unreadable or can't be written.
            status.NotFoundException: If no row has the given key.
        """
        with self._lock:
            df = self._load(file_id)
            idx = merge_payload(df, self.key_column, key, payload, source=file_id)
            try:
                write_atomic(pathlib.Path(file_id), serialize_table(df))
            except OSError as ex:
                raise status.FileUnavailableException(f'Could not write "{file_id}": {ex}') from ex
            record = self._to_record(df, idx)

        logging.debug(f'Updated record "{key}" in "{file_id}".')
        from ..ui.actions import signals
        signals.recordUpdated.emit(str(file_id), key)
        return record

    def list_records(self, file_id: str) -> List[Record]:
        """Return all records of a file ordered by key, numbers compared numerically."""
        df = self._load(file_id)
        records = [self._to_record(df, idx) for idx in df.index]
        return sorted(records, key=lambda r: _natural_key(r.key))
