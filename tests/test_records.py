"""Tests for RoadQA.core.records."""
import pathlib

from RoadQA.core.records import RecordStore, merge_text, parse_table, serialize_table
from RoadQA.status import status
from tests.base import BaseTestCase, HEADER, ROWS, SAMPLE_CSV, mute_ui_signals


class RecordStoreTest(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.path = self.root / 'Main_Road_2025-01-30.csv'
        self.path.write_text(SAMPLE_CSV, encoding='utf-8')
        self.file_id = str(self.path)
        self.records = RecordStore()

    def test_read_record(self):
        record = self.records.read_record(self.file_id, 'TP-2')
        self.assertEqual(record.key, 'TP-2')
        self.assertEqual(record.get('pavementThickness'), '145')
        self.assertEqual(record.get('comments'), 'Edge cracking')
        self.assertEqual(record.get('Latitude'), '-27.4699')

    def test_read_only_and_mutable_fields(self):
        record = self.records.read_record(self.file_id, 'TP-1')
        self.assertIn('TEST POINT', record.read_only_fields)
        self.assertIn('Chainage', record.read_only_fields)
        self.assertNotIn('comments', record.read_only_fields)
        self.assertIn('comments', record.mutable_fields)
        self.assertNotIn('LINE ITEM', record.mutable_fields)

    def test_read_missing_key(self):
        with self.assertRaises(status.NotFoundException):
            self.records.read_record(self.file_id, 'TP-99')

    def test_read_missing_file(self):
        with self.assertRaises(status.FileUnavailableException):
            self.records.read_record(str(self.root / 'missing.csv'), 'TP-1')

    def test_read_file_without_key_column(self):
        path = self.root / 'other.csv'
        path.write_text('a,b\n1,2\n', encoding='utf-8')
        with self.assertRaises(status.FileUnavailableException):
            self.records.read_record(str(path), '1')

    def test_read_empty_file(self):
        path = self.root / 'empty.csv'
        path.write_text('', encoding='utf-8')
        with self.assertRaises(status.FileUnavailableException):
            self.records.read_record(str(path), 'TP-1')

    def test_update_keeps_existing_values(self):
        with mute_ui_signals():
            record = self.records.update_record(self.file_id, 'TP-1', {'comments': 'ok'})
        self.assertEqual(record.get('comments'), 'ok')
        self.assertEqual(record.get('pavementThickness'), '150')

        record = self.records.read_record(self.file_id, 'TP-1')
        self.assertEqual(record.get('comments'), 'ok')
        self.assertEqual(record.get('pavementThickness'), '150')

    def test_update_ignores_empty_and_none(self):
        with mute_ui_signals():
            record = self.records.update_record(
                self.file_id, 'TP-2', {'comments': '', 'pavementThickness': None, 'roadWidthTotal': '6.3'}
            )
        self.assertEqual(record.get('comments'), 'Edge cracking')
        self.assertEqual(record.get('pavementThickness'), '145')
        self.assertEqual(record.get('roadWidthTotal'), '6.3')

    def test_update_keeps_text_verbatim(self):
        with mute_ui_signals():
            self.records.update_record(self.file_id, 'TP-7', {'roadWidthTotal': '6.20', 'crossfallInbound': '03'})
        record = self.records.read_record(self.file_id, 'TP-7')
        self.assertEqual(record.get('roadWidthTotal'), '6.20')
        self.assertEqual(record.get('crossfallInbound'), '03')

    def test_update_leaves_other_rows_untouched(self):
        with mute_ui_signals():
            self.records.update_record(self.file_id, 'TP-3', {'comments': 'Patched', 'lineItemCompleted': 'true'})

        lines = self.path.read_text(encoding='utf-8').splitlines()
        self.assertEqual(lines[0], HEADER)
        for original, written in zip(ROWS, lines[1:]):
            if original.startswith('TP-3,'):
                self.assertEqual(written, 'TP-3,1.03,Stabilised base,100,-27.4701,153.0261,,true,,,,,Patched')
            else:
                self.assertEqual(written, original)

    def test_update_never_changes_key(self):
        with mute_ui_signals():
            record = self.records.update_record(self.file_id, 'TP-1', {'TEST POINT': 'TP-100', 'comments': 'x'})
        self.assertEqual(record.key, 'TP-1')
        self.assertEqual(record.get('comments'), 'x')
        with self.assertRaises(status.NotFoundException):
            self.records.read_record(self.file_id, 'TP-100')

    def test_update_adds_new_column(self):
        with mute_ui_signals():
            self.records.update_record(self.file_id, 'TP-1', {'crossfallOutboundPhotos_photo1': 'img_001.jpg'})
        record = self.records.read_record(self.file_id, 'TP-1')
        self.assertEqual(record.get('crossfallOutboundPhotos_photo1'), 'img_001.jpg')
        self.assertEqual(self.records.read_record(self.file_id, 'TP-2').get('crossfallOutboundPhotos_photo1'), '')

    def test_update_missing_key_leaves_file(self):
        before = self.path.read_bytes()
        with self.assertRaises(status.NotFoundException):
            self.records.update_record(self.file_id, 'TP-99', {'comments': 'x'})
        self.assertEqual(self.path.read_bytes(), before)

    def test_update_leaves_no_temp_files(self):
        with mute_ui_signals():
            self.records.update_record(self.file_id, 'TP-1', {'comments': 'ok'})
        leftovers = [p.name for p in pathlib.Path(self.root).glob('*.tmp')]
        self.assertEqual(leftovers, [])

    def test_update_emits_record_updated(self):
        from RoadQA.ui.actions import signals
        received = []
        signals.recordUpdated.connect(lambda f, k: received.append((f, k)))
        try:
            self.records.update_record(self.file_id, 'TP-1', {'comments': 'ok'})
        finally:
            signals.recordUpdated.disconnect()
        self.assertEqual(received, [(self.file_id, 'TP-1')])

    def test_duplicate_key_updates_first_row(self):
        self.path.write_text(SAMPLE_CSV + ROWS[0] + '\n', encoding='utf-8')
        with mute_ui_signals():
            self.records.update_record(self.file_id, 'TP-1', {'comments': 'first'})
        lines = self.path.read_text(encoding='utf-8').splitlines()
        self.assertTrue(lines[1].endswith(',first'))
        self.assertEqual(lines[-1], ROWS[0])

    def test_list_records_natural_order(self):
        keys = [r.key for r in self.records.list_records(self.file_id)]
        self.assertEqual(keys, ['TP-1', 'TP-2', 'TP-3', 'TP-7', 'TP-10'])


class TableHelpersTest(BaseTestCase):

    def test_parse_keeps_text(self):
        df = parse_table(SAMPLE_CSV, 'TEST POINT')
        self.assertEqual(df.loc[0, 'roadWidthTotal'], '6.0')
        self.assertEqual(df.loc[1, 'testDate'], '')

    def test_serialize_round_trip(self):
        self.assertEqual(serialize_table(parse_table(SAMPLE_CSV, 'TEST POINT')), SAMPLE_CSV)

    def test_merge_text(self):
        merged = merge_text(SAMPLE_CSV, 'TEST POINT', 'TP-7', {'roadWidthTotal': '6.2'})
        df = parse_table(merged, 'TEST POINT')
        self.assertEqual(df[df['TEST POINT'] == 'TP-7'].iloc[0]['roadWidthTotal'], '6.2')

    def test_merge_text_missing_key(self):
        with self.assertRaises(status.NotFoundException):
            merge_text(SAMPLE_CSV, 'TEST POINT', 'TP-99', {'comments': 'x'})
