# communications/whatsapp.py

"""
Meta WhatsApp Cloud API client.

Sends text and template messages through the Graph API
(``POST /{version}/{phone_number_id}/messages``). Credentials come from
Django settings:

    META_WHATSAPP_ACCESS_TOKEN
    META_WHATSAPP_PHONE_NUMBER_ID
    META_WHATSAPP_BUSINESS_ACCOUNT_ID   (optional)
    META_WHATSAPP_API_VERSION           (default v21.0)
    META_WHATSAPP_TIMEOUT               (seconds, default 15)

Usage:
    >>> client = WhatsAppClient()
    >>> result = client.send_text_message('+91 98765 43210', 'Fee receipt RCPT-2025-000001')
    >>> result['message_id']
    'wamid.HBgM...'
"""

import re
import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

GRAPH_API_URL = 'https://graph.facebook.com'
DEFAULT_API_VERSION = 'v21.0'
DEFAULT_TIMEOUT = 15

MIN_NUMBER_LENGTH = 10
MAX_NUMBER_LENGTH = 16

# Graph API error codes with a known remedy
ERROR_GUIDANCE = {
    100: "Check that template variables match the template structure in Meta Business Manager.",
    131026: "The recipient number is not on WhatsApp or cannot receive messages.",
    131047: "More than 24 hours since the recipient last replied; use an approved template.",
    132001: "The template does not exist in this language or is not approved yet.",
    190: "The access token has expired or is invalid.",
}


# =============================================================================
# EXCEPTIONS
# =============================================================================

class WhatsAppError(RuntimeError):
    """Base error for WhatsApp messaging."""


class WhatsAppConfigurationError(WhatsAppError):
    """Credentials are missing or malformed."""


class InvalidRecipientError(WhatsAppError):
    """Recipient number cannot be used."""


class WhatsAppAPIError(WhatsAppError):
    """The Graph API rejected the request or could not be reached."""

    def __init__(self, message, status_code=None, error_code=None, response_data=None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.response_data = response_data or {}


# =============================================================================
# CLIENT
# =============================================================================

class WhatsAppClient:
    """Thin client for the Meta WhatsApp Cloud API."""

    def __init__(self, access_token=None, phone_number_id=None, business_account_id=None,
                 api_version=None, timeout=None, session=None):
        self.access_token = access_token or getattr(settings, 'META_WHATSAPP_ACCESS_TOKEN', '')
        self.phone_number_id = str(
            phone_number_id or getattr(settings, 'META_WHATSAPP_PHONE_NUMBER_ID', '') or ''
        )
        self.business_account_id = (
            business_account_id or getattr(settings, 'META_WHATSAPP_BUSINESS_ACCOUNT_ID', '')
        )
        self.api_version = (
            api_version or getattr(settings, 'META_WHATSAPP_API_VERSION', '') or DEFAULT_API_VERSION
        )
        self.timeout = timeout or getattr(settings, 'META_WHATSAPP_TIMEOUT', DEFAULT_TIMEOUT)
        self.default_country_code = getattr(settings, 'WHATSAPP_DEFAULT_COUNTRY_CODE', '')

        missing = []
        if not self.access_token:
            missing.append('META_WHATSAPP_ACCESS_TOKEN')
        if not self.phone_number_id:
            missing.append('META_WHATSAPP_PHONE_NUMBER_ID')
        if missing:
            raise WhatsAppConfigurationError(
                f"Meta WhatsApp credentials are required for messaging. Missing: {', '.join(missing)}"
            )

        if not self.phone_number_id.isdigit():
            raise WhatsAppConfigurationError(
                f"Invalid Meta WhatsApp Phone Number ID format. "
                f"Expected numeric string, got: {self.phone_number_id}"
            )

        self.session = session or requests.Session()

    @classmethod
    def is_configured(cls):
        """
        Check whether WhatsApp messaging can be used.

        Returns:
            tuple: (configured, reason)
        """
        try:
            cls()
        except WhatsAppConfigurationError as e:
            return False, str(e)
        return True, ''

    @property
    def base_url(self):
        return f"{GRAPH_API_URL}/{self.api_version}"

    @property
    def messages_url(self):
        return f"{self.base_url}/{self.phone_number_id}/messages"

    def _headers(self):
        return {
            'Authorization': f"Bearer {self.access_token}",
            'Content-Type': 'application/json',
        }

    # -------------------------------------------------------------------------
    # NUMBER VALIDATION
    # -------------------------------------------------------------------------

    def validate_number(self, phone_number):
        """
        Normalize a phone number for the Graph API.

        Non-digits other than a leading '+' are dropped. A local
        10-digit number (optionally with a trunk '0') gets the default
        country code. The formatted number has no '+'.

        Returns:
            dict: {'original', 'formatted', 'is_valid'}
        """
        original = phone_number or ''
        cleaned = re.sub(r'^whatsapp:', '', original.strip())
        cleaned = re.sub(r'[^\d+]', '', cleaned)

        if self.default_country_code and not cleaned.startswith('+'):
            digits = cleaned
            if len(digits) == 11 and digits.startswith('0'):
                digits = digits[1:]
            if len(digits) == 10:
                cleaned = f"+{self.default_country_code}{digits}"

        digits_only = cleaned.lstrip('+')
        is_valid = (
            MIN_NUMBER_LENGTH <= len(cleaned) <= MAX_NUMBER_LENGTH
            and digits_only.isdigit()
        )

        return {
            'original': original,
            'formatted': digits_only if is_valid else original,
            'is_valid': is_valid,
        }

    def _recipient(self, to):
        validated = self.validate_number(to)
        if not validated['is_valid']:
            raise InvalidRecipientError(f"Invalid phone number: {to}")
        return validated['formatted']

    # -------------------------------------------------------------------------
    # TRANSPORT
    # -------------------------------------------------------------------------

    def _request(self, method, url, payload=None):
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"WhatsApp API request to {url} failed: {e}")
            raise WhatsAppAPIError(f"Could not reach WhatsApp API: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            error = data.get('error') or {}
            error_code = error.get('code')
            message = error.get('message') or response.reason or 'Unknown error occurred'

            if response.status_code == 401:
                message = f"Authentication failed: {message}"
            guidance = ERROR_GUIDANCE.get(error_code)
            if guidance:
                message = f"{message}. {guidance}"

            logger.error(
                f"WhatsApp API error {response.status_code} (code {error_code}): {message}"
            )
            raise WhatsAppAPIError(
                message,
                status_code=response.status_code,
                error_code=error_code,
                response_data=data,
            )

        return data

    def _send(self, payload):
        data = self._request('POST', self.messages_url, {'messaging_product': 'whatsapp', **payload})
        messages = data.get('messages') or [{}]
        return {
            'message_id': messages[0].get('id'),
            'to': payload['to'],
            'response': data,
        }

    # -------------------------------------------------------------------------
    # MESSAGES
    # -------------------------------------------------------------------------

    def send_text_message(self, to, body):
        """
        Send a free-form text message.

        Only delivered inside the 24-hour customer service window;
        use a template otherwise.
        """
        payload = {
            'to': self._recipient(to),
            'type': 'text',
            'text': {'body': body},
        }
        result = self._send(payload)
        logger.info(f"WhatsApp text message {result['message_id']} sent to {payload['to']}")
        return result

    @staticmethod
    def build_template_components(variables):
        """
        Body parameters ordered by the number in each variable name
        ('1', 'var2', '{{3}}'...).
        """
        if not variables:
            return []

        def position(key):
            digits = re.sub(r'\D', '', str(key))
            return int(digits) if digits else 0

        ordered = sorted(variables.items(), key=lambda item: position(item[0]))
        return [{
            'type': 'body',
            'parameters': [{'type': 'text', 'text': str(value)} for _, value in ordered],
        }]

    def send_template_message(self, to, template_name, language='en', variables=None):
        """Send an approved template message."""
        template = {
            'name': template_name,
            'language': {'code': language or 'en'},
        }
        components = self.build_template_components(variables)
        if components:
            template['components'] = components

        payload = {
            'to': self._recipient(to),
            'type': 'template',
            'template': template,
        }
        result = self._send(payload)
        logger.info(
            f"WhatsApp template '{template_name}' message {result['message_id']} sent to {payload['to']}"
        )
        return result

    def test_connection(self):
        """
        Verify credentials by fetching the phone number details.

        Returns:
            dict: phone_number_id, verified_name, display_phone_number, status
        """
        data = self._request('GET', f"{self.base_url}/{self.phone_number_id}")
        return {
            'phone_number_id': self.phone_number_id,
            'verified_name': data.get('verified_name'),
            'display_phone_number': data.get('display_phone_number'),
            'status': data.get('account_mode'),
        }
