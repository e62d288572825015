"""
Status codes, user-facing messages and the exception taxonomy.

Modules:

- :mod:`RoadQA.status.status` – :class:`~RoadQA.status.status.Status` and the status exceptions.
"""
