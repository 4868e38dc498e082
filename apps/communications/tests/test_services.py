# communications/tests/test_services.py

from unittest.mock import Mock

from django.test import TestCase

from apps.communications.models import MessageLog
from apps.communications.services import MessagingService
from apps.communications.signals import message_status_changed
from apps.communications.whatsapp import WhatsAppAPIError


def status_payload(message_id, status, timestamp='1704967200', errors=None):
    payload = {'id': message_id, 'status': status, 'timestamp': timestamp}
    if errors:
        payload['errors'] = errors
    return payload


class SendMessageTests(TestCase):

    def test_send_text_success(self):
        client = Mock()
        client.send_text_message.return_value = {'message_id': 'wamid.1', 'to': '919876543210'}

        log = MessagingService.send_text('9876543210', 'Hello', recipient_name='Asha', client=client)

        log.refresh_from_db()
        self.assertEqual(log.status, 'SENT')
        self.assertEqual(log.provider_message_id, 'wamid.1')
        self.assertEqual(log.recipient, '919876543210')
        self.assertEqual(log.message_type, 'TEXT')
        self.assertIsNotNone(log.sent_at)

    def test_send_failure_is_logged_not_raised(self):
        client = Mock()
        client.send_text_message.side_effect = WhatsAppAPIError('Recipient unavailable', error_code=131026)

        log = MessagingService.send_text('9876543210', 'Hello', client=client)

        log.refresh_from_db()
        self.assertEqual(log.status, 'FAILED')
        self.assertEqual(log.error_code, '131026')
        self.assertEqual(log.error_message, 'Recipient unavailable')
        self.assertIsNone(log.provider_message_id)

    def test_send_template_keeps_variables(self):
        client = Mock()
        client.send_template_message.return_value = {'message_id': 'wamid.2', 'to': '919876543210'}

        log = MessagingService.send_template(
            '9876543210', 'fee_due_notice', variables={1: 'Asha', 2: 500}, client=client
        )

        self.assertEqual(log.template_variables, {'1': 'Asha', '2': '500'})
        client.send_template_message.assert_called_once_with(
            '9876543210', 'fee_due_notice', 'en', {'1': 'Asha', '2': '500'}
        )


class DeliveryStatusTests(TestCase):

    def setUp(self):
        self.log = MessageLog.objects.create(
            recipient='919876543210',
            message_type='TEXT',
            body='Hello',
            status='SENT',
            provider_message_id='wamid.ABC',
        )

    def test_status_moves_forward(self):
        updated = MessagingService.apply_status_update(status_payload('wamid.ABC', 'delivered'))
        self.assertEqual(updated.status, 'DELIVERED')
        self.assertIsNotNone(updated.delivered_at)

        updated = MessagingService.apply_status_update(status_payload('wamid.ABC', 'read'))
        self.assertEqual(updated.status, 'READ')

    def test_status_never_regresses(self):
        MessagingService.apply_status_update(status_payload('wamid.ABC', 'read'))
        self.assertIsNone(MessagingService.apply_status_update(status_payload('wamid.ABC', 'delivered')))

        self.log.refresh_from_db()
        self.assertEqual(self.log.status, 'READ')

    def test_failed_is_terminal(self):
        errors = [{'code': 131026, 'title': 'Message undeliverable',
                   'error_data': {'details': 'Receiver is not on WhatsApp'}}]
        updated = MessagingService.apply_status_update(status_payload('wamid.ABC', 'failed', errors=errors))

        self.assertEqual(updated.status, 'FAILED')
        self.assertEqual(updated.error_code, '131026')
        self.assertEqual(updated.error_message, 'Receiver is not on WhatsApp')
        self.assertIsNone(MessagingService.apply_status_update(status_payload('wamid.ABC', 'read')))

    def test_unknown_message_ignored(self):
        self.assertIsNone(MessagingService.apply_status_update(status_payload('wamid.NOPE', 'read')))
        self.assertIsNone(MessagingService.apply_status_update({'id': 'wamid.ABC', 'status': 'warning'}))

    def test_signal_sent_on_change(self):
        received = []

        def receiver(sender, message_log, status, **kwargs):
            received.append((message_log.pk, status))

        message_status_changed.connect(receiver)
        try:
            MessagingService.apply_status_update(status_payload('wamid.ABC', 'delivered'))
            MessagingService.apply_status_update(status_payload('wamid.ABC', 'delivered'))
        finally:
            message_status_changed.disconnect(receiver)

        self.assertEqual(received, [(self.log.pk, 'DELIVERED')])

    def test_process_webhook_payload(self):
        MessageLog.objects.create(
            recipient='919876500000', message_type='TEXT', status='SENT', provider_message_id='wamid.DEF'
        )
        payload = {
            'object': 'whatsapp_business_account',
            'entry': [{
                'changes': [{
                    'field': 'messages',
                    'value': {'statuses': [
                        status_payload('wamid.ABC', 'delivered'),
                        status_payload('wamid.DEF', 'read'),
                        status_payload('wamid.XYZ', 'read'),
                    ]},
                }],
            }],
        }

        self.assertEqual(MessagingService.process_webhook_payload(payload), 2)
        self.assertEqual(MessagingService.process_webhook_payload({}), 0)

    def test_malformed_payload_parts_skipped(self):
        payload = {
            'entry': [
                'x',
                {'changes': 'not-a-list'},
                {'changes': [None, {'value': 'text'}, {'value': {'statuses': [
                    7,
                    status_payload('wamid.ABC', 'failed', errors=['oops']),
                ]}}]},
            ],
        }

        self.assertEqual(MessagingService.process_webhook_payload(payload), 1)
        self.assertEqual(MessagingService.process_webhook_payload({'entry': 'abc'}), 0)
        self.log.refresh_from_db()
        self.assertEqual(self.log.status, 'FAILED')
        self.assertEqual(self.log.error_message, '')

    def test_error_without_details_object(self):
        errors = [{'code': 131047, 'title': 'Re-engagement message', 'error_data': 'n/a'}]
        updated = MessagingService.apply_status_update(status_payload('wamid.ABC', 'failed', errors=errors))
        self.assertEqual(updated.error_message, 'Re-engagement message')
