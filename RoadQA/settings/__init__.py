"""
Settings management for the sync engine.

Modules:

- :mod:`RoadQA.settings.lib` – Config schema, application paths and the :data:`~RoadQA.settings.lib.settings` API.
"""
