"""
Core package for RoadQA providing the offline-first sync engine.

This package includes:

- :mod:`RoadQA.core.store` – Durable key-value store backed by an INI file.
- :mod:`RoadQA.core.records` – Reading and fallback-merge updates of rows in project CSV files.
- :mod:`RoadQA.core.queue` – Durable, deduplicated queue of pending record edits.
- :mod:`RoadQA.core.auth` – Google OAuth2 authentication and credential management.
- :mod:`RoadQA.core.service` – Remote transport interface and its Google Drive implementation.
- :mod:`RoadQA.core.projects` – Registry of downloaded project files.
- :mod:`RoadQA.core.sync` – Sync orchestrator, sync state and outcome history.
- :mod:`RoadQA.core.connectivity` – Network reachability watcher.
- :mod:`RoadQA.core.reporter` – Sync status reporting.
- :mod:`RoadQA.core.submission` – Form submission: local save, then upload or queue.
"""
