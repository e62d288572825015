"""Tests for RoadQA.core.reporter."""
from RoadQA.core.queue import PendingMutation
from RoadQA.core.reporter import StatusReporter, SyncStatus
from RoadQA.core.sync import PROCESSING_KEY
from tests.base import EngineTestCase, mute_ui_signals


class StatusReporterTest(EngineTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.reporter = StatusReporter(self.orchestrator)

    def tearDown(self) -> None:
        self.reporter.stop()
        super().tearDown()

    def enqueue(self, key):
        with mute_ui_signals():
            self.orchestrator.enqueue(PendingMutation(self.file_id, key, {'comments': 'ok'}))

    def test_status(self):
        self.assertEqual(self.reporter.get_sync_status(), SyncStatus(0, False))
        self.enqueue('TP-1')
        self.enqueue('TP-2')
        self.enqueue('TP-1')
        self.store.set(PROCESSING_KEY, 'true')
        self.assertEqual(self.reporter.get_sync_status(), SyncStatus(2, True))
        self.assertEqual(self.reporter.get_sync_status().to_dict(), {'pending_count': 2, 'is_processing': True})

    def test_status_is_read_only(self):
        self.enqueue('TP-1')
        before = self.store.get('roadqa_sync_queue')
        self.reporter.get_sync_status()
        self.assertEqual(self.store.get('roadqa_sync_queue'), before)
        self.assertEqual(self.orchestrator.get_sync_history(), [])

    def test_refresh_emits_on_change_only(self):
        received = []
        self.reporter.statusChanged.connect(received.append)
        with mute_ui_signals():
            self.reporter.refresh()
            self.reporter.refresh()
            self.enqueue('TP-1')
            self.reporter.refresh()
        self.assertEqual(received, [SyncStatus(0, False), SyncStatus(1, False)])

    def test_start_polls(self):
        with mute_ui_signals():
            self.reporter.start(interval=1)
        self.assertTrue(self.reporter.timer.isActive())
        self.assertEqual(self.reporter.timer.interval(), 1000)
        self.reporter.stop()
        self.assertFalse(self.reporter.timer.isActive())

    def test_start_uses_config_interval(self):
        with mute_ui_signals():
            self.reporter.start()
        self.assertEqual(self.reporter.timer.interval(), 60000)
