"""
Logging subsystem.

Modules:

- :mod:`RoadQA.log.log` – Root logger setup, the in-memory tank handler and the Qt message bridge.
"""
