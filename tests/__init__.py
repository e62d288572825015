"""Test suite for RoadQA.

The app data directory and the Qt platform are redirected before any RoadQA module is
imported, so the module-level settings never touch the real user config.
"""
import os
import tempfile

os.environ.setdefault('ROADQA_CONFIG_DIR', tempfile.mkdtemp(prefix='roadqa_tests_'))
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
