# communications/tests/test_whatsapp.py

from unittest.mock import Mock

import requests
from django.test import SimpleTestCase, override_settings

from apps.communications.whatsapp import (
    InvalidRecipientError,
    WhatsAppAPIError,
    WhatsAppClient,
    WhatsAppConfigurationError,
)

CREDENTIALS = {
    'META_WHATSAPP_ACCESS_TOKEN': 'test-token',
    'META_WHATSAPP_PHONE_NUMBER_ID': '1234567890',
    'META_WHATSAPP_API_VERSION': 'v21.0',
    'WHATSAPP_DEFAULT_COUNTRY_CODE': '91',
}


def response(status_code=200, data=None, reason='OK'):
    mock = Mock()
    mock.status_code = status_code
    mock.ok = status_code < 400
    mock.reason = reason
    mock.json.return_value = data if data is not None else {}
    return mock


@override_settings(**CREDENTIALS)
class WhatsAppClientConfigTests(SimpleTestCase):

    @override_settings(META_WHATSAPP_ACCESS_TOKEN='')
    def test_missing_token(self):
        with self.assertRaises(WhatsAppConfigurationError) as ctx:
            WhatsAppClient()
        self.assertIn('META_WHATSAPP_ACCESS_TOKEN', str(ctx.exception))
        self.assertFalse(WhatsAppClient.is_configured()[0])

    @override_settings(META_WHATSAPP_PHONE_NUMBER_ID='+91 98765')
    def test_phone_number_id_must_be_numeric(self):
        with self.assertRaises(WhatsAppConfigurationError):
            WhatsAppClient()

    def test_configured(self):
        self.assertEqual(WhatsAppClient.is_configured(), (True, ''))
        client = WhatsAppClient(session=Mock())
        self.assertEqual(client.messages_url, 'https://graph.facebook.com/v21.0/1234567890/messages')


@override_settings(**CREDENTIALS)
class ValidateNumberTests(SimpleTestCase):

    def setUp(self):
        self.client = WhatsAppClient(session=Mock())

    def test_local_number_gets_country_code(self):
        self.assertEqual(self.client.validate_number('98765 43210')['formatted'], '919876543210')
        self.assertEqual(self.client.validate_number('098765-43210')['formatted'], '919876543210')

    def test_international_number_kept(self):
        result = self.client.validate_number('+44 7700 900123')
        self.assertTrue(result['is_valid'])
        self.assertEqual(result['formatted'], '447700900123')

    def test_whatsapp_prefix_stripped(self):
        self.assertEqual(self.client.validate_number('whatsapp:+919876543210')['formatted'], '919876543210')

    def test_short_number_invalid(self):
        result = self.client.validate_number('12345')
        self.assertFalse(result['is_valid'])
        self.assertEqual(result['formatted'], '12345')


@override_settings(**CREDENTIALS)
class SendMessageTests(SimpleTestCase):

    def setUp(self):
        self.session = Mock()
        self.client = WhatsAppClient(session=self.session)

    def test_send_text_message(self):
        self.session.request.return_value = response(200, {'messages': [{'id': 'wamid.ABC'}]})

        result = self.client.send_text_message('9876543210', 'Fee receipt RCPT-2024-000001')

        self.assertEqual(result['message_id'], 'wamid.ABC')
        self.assertEqual(result['to'], '919876543210')
        method, url = self.session.request.call_args[0]
        kwargs = self.session.request.call_args[1]
        self.assertEqual(method, 'POST')
        self.assertEqual(url, 'https://graph.facebook.com/v21.0/1234567890/messages')
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer test-token')
        self.assertEqual(kwargs['json'], {
            'messaging_product': 'whatsapp',
            'to': '919876543210',
            'type': 'text',
            'text': {'body': 'Fee receipt RCPT-2024-000001'},
        })

    def test_send_template_orders_variables(self):
        self.session.request.return_value = response(200, {'messages': [{'id': 'wamid.T'}]})

        self.client.send_template_message(
            '9876543210', 'fee_due_notice', 'en',
            {'var2': 'INR 500.00', '1': 'Asha Rao', '{{3}}': 'Tuition'}
        )

        template = self.session.request.call_args[1]['json']['template']
        self.assertEqual(template['name'], 'fee_due_notice')
        self.assertEqual(template['language'], {'code': 'en'})
        self.assertEqual(
            [p['text'] for p in template['components'][0]['parameters']],
            ['Asha Rao', 'INR 500.00', 'Tuition']
        )

    def test_template_without_variables_has_no_components(self):
        self.session.request.return_value = response(200, {'messages': [{'id': 'wamid.T'}]})
        self.client.send_template_message('9876543210', 'hello_world')
        self.assertNotIn('components', self.session.request.call_args[1]['json']['template'])

    def test_api_error_includes_guidance(self):
        self.session.request.return_value = response(
            400,
            {'error': {'code': 131047, 'message': 'Re-engagement message'}},
            reason='Bad Request',
        )

        with self.assertRaises(WhatsAppAPIError) as ctx:
            self.client.send_text_message('9876543210', 'Hello')

        error = ctx.exception
        self.assertEqual(error.status_code, 400)
        self.assertEqual(error.error_code, 131047)
        self.assertIn('use an approved template', str(error))

    def test_authentication_failure(self):
        self.session.request.return_value = response(401, {'error': {'code': 190, 'message': 'Token expired'}})
        with self.assertRaises(WhatsAppAPIError) as ctx:
            self.client.send_text_message('9876543210', 'Hello')
        self.assertTrue(str(ctx.exception).startswith('Authentication failed'))

    def test_transport_error(self):
        self.session.request.side_effect = requests.ConnectionError('connection refused')
        with self.assertRaises(WhatsAppAPIError):
            self.client.send_text_message('9876543210', 'Hello')

    def test_invalid_recipient_not_sent(self):
        with self.assertRaises(InvalidRecipientError):
            self.client.send_text_message('123', 'Hello')
        self.session.request.assert_not_called()

    def test_connection_check(self):
        self.session.request.return_value = response(200, {
            'verified_name': 'Greenfield School',
            'display_phone_number': '+91 98765 43210',
            'account_mode': 'LIVE',
        })
        result = self.client.test_connection()
        self.assertEqual(result['verified_name'], 'Greenfield School')
        self.assertEqual(self.session.request.call_args[0], ('GET', 'https://graph.facebook.com/v21.0/1234567890'))
