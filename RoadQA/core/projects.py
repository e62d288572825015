"""Registry of project files downloaded for offline use.

Each local project file is linked to the remote file it was downloaded from. The sync
engine resolves the remote target of a queued edit through this registry.
"""
import datetime
import json
import logging
import pathlib
import re
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from .queue import MutationQueue
from .records import merge_text, parse_table, write_atomic
from .service import RemoteTransport
from .store import DurableStore
from ..status import status

PROJECTS_KEY: str = 'project_files_metadata'


@dataclass(frozen=True)
class ProjectInfo:
    remote_id: str
    name: str
    local_path: str
    downloaded_at: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def local_file_name(name: str, date: Optional[datetime.date] = None) -> str:
    """Return the local file name for a project, e.g. ``Main_Road_2025-01-31.csv``."""
    date = date or datetime.date.today()
    stem = re.sub(r'\.csv$', '', name.strip(), flags=re.IGNORECASE)
    stem = re.sub(r'\s+', '_', stem)
    stem = re.sub(r'[\\/:*?"<>|]', '', stem)
    return f'{stem}_{date.isoformat()}.csv'


class ProjectRegistry:
    """Downloads remote project files and keeps track of where they live locally.

    Args:
        store: The durable store holding the registry.
        transport: The remote transport used for downloads.
        projects_dir: Where project files are written. Defaults to the configured directory.
    """

    def __init__(self, store: DurableStore, transport: RemoteTransport,
                 projects_dir: Optional[pathlib.Path] = None) -> None:
        if projects_dir is None:
            from ..settings import lib
            projects_dir = lib.settings.projects_dir

        self.store = store
        self.transport = transport
        self.projects_dir = pathlib.Path(projects_dir)
        self.queue = MutationQueue(store)

    def _load(self) -> List[ProjectInfo]:
        raw = self.store.get(PROJECTS_KEY)
        if raw is None:
            return []
        try:
            return [ProjectInfo(**d) for d in json.loads(raw)]
        except (json.JSONDecodeError, TypeError) as ex:
            raise status.StorageException(f'The project registry is corrupt: {ex}') from ex

    def _save(self, projects: List[ProjectInfo]) -> None:
        self.store.set(PROJECTS_KEY, json.dumps([p.to_dict() for p in projects]))

    def download_project(self, remote_id: str, name: str) -> ProjectInfo:
        """Download a remote project file and register the local copy.

        An existing registration of the same remote file is replaced. Edits still queued
        against an earlier copy are moved to the new one and applied on top of the
        downloaded content, so unsynced work survives a re-download.

        Raises:
            status.AuthenticationException, status.NotFoundException, status.NetworkException:
                If the download fails.
            status.FileUnavailableException: If the content isn't a valid project table.
        """
        from ..settings import lib

        text = self.transport.download(remote_id)
        key_column = lib.settings.get_section('table')['key_column']
        parse_table(text, key_column, source=name)

        self.projects_dir.mkdir(parents=True, exist_ok=True)
        path = self.projects_dir / local_file_name(name)
        info = ProjectInfo(
            remote_id=remote_id,
            name=name,
            local_path=str(path),
            downloaded_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        )

        with self.store.lock():
            projects = self._load()
            copies = {pathlib.Path(p.local_path) for p in projects if p.remote_id == remote_id} | {path}
            pending = sorted(
                (m for m in self.queue.dequeue_all() if pathlib.Path(m.file_id) in copies),
                key=lambda m: m.created_at,
            )
            for m in pending:
                try:
                    text = merge_text(text, key_column, m.record_key, m.payload, source=name)
                except status.NotFoundException:
                    logging.warning(f'Queued edit of "{m.record_key}" has no row in the new copy of "{name}".')

            try:
                write_atomic(path, text)
            except OSError as ex:
                raise status.FileUnavailableException(f'Could not write "{path}": {ex}') from ex

            if pending:
                self.queue.retarget([str(c) for c in copies], info.local_path)
                logging.info(f'Reapplied {len(pending)} queued edit(s) to "{path}".')

            projects = [p for p in projects if p.remote_id != remote_id and p.local_path != info.local_path]
            projects.append(info)
            self._save(projects)

        logging.info(f'Downloaded "{name}" to "{path}".')
        from ..ui.actions import signals
        signals.projectDownloaded.emit(info)
        return info

    def get_local_projects(self) -> List[ProjectInfo]:
        """Registered projects whose local file still exists."""
        return [p for p in self._load() if pathlib.Path(p.local_path).is_file()]

    def resolve_remote_id(self, file_id: str) -> str:
        """Return the remote id registered for a local file.

        Raises:
            status.ProjectNotFoundException: If the file isn't registered.
        """
        target = pathlib.Path(file_id)
        for p in self._load():
            if pathlib.Path(p.local_path) == target:
                return p.remote_id
        raise status.ProjectNotFoundException(f'"{file_id}" has no remote counterpart.')

    def remove_project(self, file_id: str, delete_file: bool = False) -> None:
        """Unregister a local project file, optionally deleting it."""
        target = pathlib.Path(file_id)
        with self.store.lock():
            projects = self._load()
            remaining = [p for p in projects if pathlib.Path(p.local_path) != target]
            if len(remaining) == len(projects):
                logging.debug(f'"{file_id}" is not registered. No action taken.')
            self._save(remaining)
        if delete_file and target.exists():
            target.unlink()
            logging.debug(f'Deleted "{target}".')
