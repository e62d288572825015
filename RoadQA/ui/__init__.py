"""
Signal hub shared with the field app's screens.

Modules:

- :mod:`RoadQA.ui.actions` – The process-wide :data:`~RoadQA.ui.actions.signals` instance.
"""
