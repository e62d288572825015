"""Tests for RoadQA.core.submission."""
from unittest.mock import patch

from RoadQA.core import submission
from RoadQA.core.submission import normalize_payload, submit_edit, validate_payload
from RoadQA.status import status
from tests.base import EngineTestCase, BaseTestCase, mute_ui_signals


class NormalizePayloadTest(BaseTestCase):

    def test_booleans_and_none(self):
        flat = normalize_payload({'lineItemCompleted': True, 'comments': None, 'pavementThickness': '150'})
        self.assertEqual(flat, {'lineItemCompleted': 'true', 'pavementThickness': '150'})

    def test_photo_pairs_flattened(self):
        flat = normalize_payload({'crossfallOutboundPhotos': {'photo1': 'a.jpg', 'photo2': None}})
        self.assertEqual(flat, {'crossfallOutboundPhotos_photo1': 'a.jpg'})

    def test_numbers_become_text(self):
        self.assertEqual(normalize_payload({'roadWidthTotal': 6.2}), {'roadWidthTotal': '6.2'})


class ValidatePayloadTest(BaseTestCase):

    def test_valid(self):
        validate_payload({'roadWidthTotal': '6.2', 'comments': 'ok', 'pavementThickness': ''})

    def test_read_only_column(self):
        with self.assertRaises(status.ValidationException):
            validate_payload({'Chainage': '10'})

    def test_key_column(self):
        with self.assertRaises(status.ValidationException):
            validate_payload({'TEST POINT': 'TP-9'})

    def test_non_numeric(self):
        with self.assertRaises(status.ValidationException):
            validate_payload({'crossfallInbound': 'steep'})

    def test_required_column(self):
        table = {
            'key_column': 'TEST POINT',
            'read_only_columns': ['TEST POINT'],
            'numeric_columns': [],
            'required_columns': ['testDate'],
        }
        with self.assertRaises(status.ValidationException):
            validate_payload({'comments': 'ok'}, table=table)
        validate_payload({'testDate': '2025-02-01'}, table=table)


class SubmitEditTest(EngineTestCase):

    def submit(self, key, payload, online):
        with mute_ui_signals():
            return submit_edit(self.records, self.orchestrator, self.file_id, key, payload, online)

    def test_online_success(self):
        result = self.submit('TP-1', {'comments': 'ok'}, online=True)
        self.assertTrue(result.success)
        self.assertEqual(result.message, submission.SAVED_AND_SYNCED)
        self.assertEqual(self.orchestrator.pending_count(), 0)
        self.assertEqual(self.remote_record('TP-1')['comments'], 'ok')
        self.assertEqual(self.records.read_record(self.file_id, 'TP-1').get('comments'), 'ok')

    def test_online_failure_queues(self):
        self.transport.failing_uploads = {1}
        result = self.submit('TP-1', {'comments': 'ok'}, online=True)
        self.assertTrue(result.success)
        self.assertEqual(result.message, submission.SAVED_SYNC_FAILED)
        self.assertEqual(self.orchestrator.pending_count(), 1)
        self.assertEqual(self.records.read_record(self.file_id, 'TP-1').get('comments'), 'ok')

    def test_online_not_authenticated_queues(self):
        self.transport.download_error = status.AuthenticationException('expired')
        result = self.submit('TP-1', {'comments': 'ok'}, online=True)
        self.assertTrue(result.success)
        self.assertEqual(result.message, submission.SAVED_SYNC_FAILED)
        self.assertEqual(self.orchestrator.pending_count(), 1)

    def test_offline_queues(self):
        result = self.submit('TP-7', {'roadWidthTotal': '6.2'}, online=False)
        self.assertTrue(result.success)
        self.assertEqual(result.message, submission.SAVED_WILL_SYNC)
        self.assertEqual(self.orchestrator.pending_count(), 1)
        self.assertEqual(self.transport.upload_calls, 0)

    def test_offline_edits_of_same_record_collapse(self):
        self.submit('TP-7', {'roadWidthTotal': '6.2'}, online=False)
        self.submit('TP-7', {'roadWidthTotal': '6.3', 'comments': 'Remeasured'}, online=False)
        entries = self.orchestrator.queue.dequeue_all()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].payload, {'roadWidthTotal': '6.3', 'comments': 'Remeasured'})

    def test_validation_failure_writes_nothing(self):
        result = self.submit('TP-7', {'roadWidthTotal': 'wide'}, online=False)
        self.assertFalse(result.success)
        self.assertIn('roadWidthTotal', result.message)
        self.assertEqual(self.orchestrator.pending_count(), 0)
        self.assertEqual(self.records.read_record(self.file_id, 'TP-7').get('roadWidthTotal'), '')

    def test_missing_record(self):
        result = self.submit('TP-99', {'comments': 'ok'}, online=False)
        self.assertFalse(result.success)
        self.assertEqual(self.orchestrator.pending_count(), 0)

    def test_queue_failure_still_reports_local_save(self):
        with patch.object(self.orchestrator, 'enqueue', side_effect=status.StorageException('disk full')):
            result = self.submit('TP-1', {'comments': 'ok'}, online=False)
        self.assertTrue(result.success)
        self.assertEqual(result.message, submission.SAVED_NOT_QUEUED)
        self.assertEqual(self.records.read_record(self.file_id, 'TP-1').get('comments'), 'ok')

    def test_online_submit_during_flush_is_queued(self):
        self.submit('TP-1', {'comments': 'Patched'}, online=False)
        download = self.transport.download
        results = []

        def download_then_submit(remote_id):
            text = download(remote_id)
            if not results:
                results.append(submit_edit(self.records, self.orchestrator, self.file_id, 'TP-2',
                                           {'comments': 'Resealed'}, True))
            return text

        with mute_ui_signals(), patch.object(self.transport, 'download', side_effect=download_then_submit):
            self.orchestrator.force_sync()

        self.assertEqual(results[0], submission.SubmissionResult(True, submission.SAVED_WILL_SYNC))
        self.assertEqual(self.orchestrator.pending_count(), 1)
        self.assertEqual(self.remote_record('TP-1')['comments'], 'Patched')

        with mute_ui_signals():
            outcome = self.orchestrator.force_sync()
        self.assertTrue(outcome.success)
        self.assertEqual(self.orchestrator.pending_count(), 0)
        self.assertEqual(self.remote_record('TP-2')['comments'], 'Resealed')
        self.assertEqual(self.remote_record('TP-1')['comments'], 'Patched')

    def test_online_submit_queues_while_remote_busy(self):
        self.orchestrator._remote_lock.acquire()
        try:
            result = self.submit('TP-3', {'comments': 'Soft spot'}, online=True)
        finally:
            self.orchestrator._remote_lock.release()
        self.assertEqual(result.message, submission.SAVED_WILL_SYNC)
        self.assertEqual(self.transport.upload_calls, 0)
        self.assertEqual(self.orchestrator.pending_count(), 1)
