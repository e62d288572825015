"""Tests for RoadQA.core.store."""
import json

from RoadQA.core.store import DurableStore
from RoadQA.status import status
from tests.base import BaseTestCase


class DurableStoreTest(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.path = self.root / 'state.ini'
        self.store = DurableStore(self.path)

    def test_missing_key(self):
        self.assertIsNone(self.store.get('nothing'))

    def test_set_get_remove(self):
        self.store.set('roadqa_sync_processing', 'true')
        self.assertEqual(self.store.get('roadqa_sync_processing'), 'true')
        self.store.remove('roadqa_sync_processing')
        self.assertIsNone(self.store.get('roadqa_sync_processing'))

    def test_remove_missing_key(self):
        self.store.remove('nothing')
        self.assertIsNone(self.store.get('nothing'))

    def test_json_values_round_trip(self):
        value = json.dumps([{'file_id': 'C:/data/a, b.csv', 'payload': {'comments': 'line "one", two'}}])
        self.store.set('roadqa_sync_queue', value)
        self.assertEqual(DurableStore(self.path).get('roadqa_sync_queue'), value)

    def test_persists_to_disk(self):
        self.store.set('roadqa_sync_last_attempt', '2025-02-01T09:00:00+00:00')
        self.assertTrue(self.path.exists())
        self.assertEqual(DurableStore(self.path).get('roadqa_sync_last_attempt'), '2025-02-01T09:00:00+00:00')

    def test_rejects_non_string(self):
        with self.assertRaises(TypeError):
            self.store.set('count', 3)

    def test_unwritable_location(self):
        blocker = self.root / 'blocker'
        blocker.write_text('', encoding='utf-8')
        store = DurableStore(blocker / 'state.ini')
        with self.assertRaises(status.StorageException):
            store.set('key', 'value')
