"""Tests for RoadQA.status.status."""
from RoadQA.status import status
from RoadQA.ui.actions import signals
from tests.base import BaseTestCase


class StatusTest(BaseTestCase):

    def test_every_status_has_a_message(self):
        for s in status.Status:
            self.assertIn(s, status.STATUS_MESSAGE)
            self.assertEqual(status.get_message(s), status.STATUS_MESSAGE[s])

    def test_exception_message(self):
        ex = status.NotFoundException('TP-9')
        self.assertEqual(ex.status, status.Status.NotFound)
        self.assertEqual(str(ex), 'Record not found. TP-9')

    def test_exception_without_context(self):
        ex = status.AuthenticationException()
        self.assertEqual(str(ex), 'Not authenticated with Google Drive.')

    def test_exception_emits_error(self):
        errors = []
        signals.error.connect(errors.append)
        try:
            status.StorageException('disk full')
            status.NetworkException()
        finally:
            signals.error.disconnect()
        self.assertEqual(errors, ['disk full', status.get_message(status.Status.NetworkError)])

    def test_taxonomy(self):
        for cls in (
                status.NotFoundException,
                status.FileUnavailableException,
                status.StorageException,
                status.AuthenticationException,
                status.NetworkException,
                status.ValidationException,
        ):
            self.assertTrue(issubclass(cls, status.BaseStatusException))
