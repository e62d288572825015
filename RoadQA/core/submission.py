"""Submission of a record edit from the field form.

The local project file is always updated first. The edit is then uploaded right away when
online, or queued for the next sync when offline or when the upload fails.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .queue import PendingMutation
from .records import RecordStore
from ..status import status

SAVED_AND_SYNCED: str = 'Saved and synced'
SAVED_WILL_SYNC: str = 'Saved locally, will sync later'
SAVED_SYNC_FAILED: str = 'Saved locally, cloud sync failed, will retry'
SAVED_NOT_QUEUED: str = 'Saved locally, but the edit could not be queued for sync'


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.success, 'message': self.message}


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def normalize_payload(payload: Dict[str, Any]) -> Dict[str, str]:
    """Flatten a form payload to column name and text pairs.

    Booleans become ``true``/``false``. Nested dicts, such as photo pairs, are flattened to
    ``<field>_<slot>`` columns. ``None`` values are dropped.
    """
    flat: Dict[str, str] = {}
    for column, value in payload.items():
        if isinstance(value, dict):
            for slot, item in value.items():
                text = _to_text(item)
                if text is not None:
                    flat[f'{column}_{slot}'] = text
            continue
        text = _to_text(value)
        if text is not None:
            flat[column] = text
    return flat


def validate_payload(payload: Dict[str, str], table: Optional[Dict[str, Any]] = None) -> None:
    """Check a normalized payload against the ``table`` config.

    Raises:
        status.ValidationException: If the payload sets the key or a read-only column, misses a
            required column or has a non-numeric value in a numeric column.
    """
    if table is None:
        from ..settings import lib
        table = lib.settings.get_section('table')

    read_only = set(table['read_only_columns']) | {table['key_column']}
    touched = sorted(read_only.intersection(payload))
    if touched:
        raise status.ValidationException(f'Read-only columns can\'t be edited: {", ".join(touched)}.')

    missing = [c for c in table['required_columns'] if not payload.get(c)]
    if missing:
        raise status.ValidationException(f'Missing required values: {", ".join(missing)}.')

    for column in table['numeric_columns']:
        value = payload.get(column, '')
        if value == '':
            continue
        try:
            float(value)
        except ValueError:
            raise status.ValidationException(f'"{column}" must be a number, got "{value}".')


def submit_edit(
        record_store: RecordStore,
        orchestrator,
        file_id: str,
        record_key: str,
        payload: Dict[str, Any],
        online: bool
) -> SubmissionResult:
    """Save an edit locally, then upload it or queue it.

    Args:
        record_store: The local record store.
        orchestrator: The :class:`~RoadQA.core.sync.SyncOrchestrator` owning the queue.
        file_id: Path of the local project file.
        record_key: Key of the edited record.
        payload: Edited fields as submitted by the form.
        online: Whether to try an immediate upload.

    Returns:
        SubmissionResult: ``success`` is True once the local write succeeded.
    """
    try:
        flat = normalize_payload(payload)
        validate_payload(flat)
        record_store.update_record(file_id, record_key, flat)
    except (status.ValidationException, status.NotFoundException, status.FileUnavailableException) as ex:
        return SubmissionResult(False, str(ex))

    mutation = PendingMutation(file_id=str(file_id), record_key=record_key, payload=flat)

    message = SAVED_WILL_SYNC
    if online:
        # None while a flush owns the remote files; the edit joins the queue instead
        result = orchestrator.try_upload(mutation)
        if result is not None and result.success:
            logging.info(f'Saved and synced "{record_key}".')
            return SubmissionResult(True, SAVED_AND_SYNCED)
        if result is not None:
            logging.warning(f'Immediate upload of "{record_key}" failed, queueing: {result.error}')
            message = SAVED_SYNC_FAILED

    try:
        orchestrator.enqueue(mutation)
    except status.StorageException as ex:
        logging.error(f'Could not queue "{record_key}": {ex}')
        return SubmissionResult(True, SAVED_NOT_QUEUED)

    return SubmissionResult(True, message)
