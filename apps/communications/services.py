# communications/services.py

"""
Messaging Operations

Sends WhatsApp messages with a MessageLog row per attempt and applies
delivery status updates received from the Meta webhook.

Send failures are recorded on the log (status FAILED) rather than
raised, so one bad number never aborts a batch.
"""

from datetime import datetime, timezone as dt_timezone
from django.db import transaction
from django.utils import timezone
import logging

from apps.communications.models import MessageLog
from apps.communications.signals import message_status_changed
from apps.communications.whatsapp import WhatsAppClient, WhatsAppError, WhatsAppAPIError

logger = logging.getLogger(__name__)

WEBHOOK_STATUS_MAP = {
    'sent': 'SENT',
    'delivered': 'DELIVERED',
    'read': 'READ',
    'failed': 'FAILED',
}


def _objects(value):
    """JSON objects in a webhook array; anything else is dropped."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


# =============================================================================
# MESSAGING SERVICE
# =============================================================================

class MessagingService:
    """
    WhatsApp sends and delivery tracking.
    Pass ``client`` to reuse one WhatsAppClient across a batch.
    """

    @staticmethod
    def _dispatch(log, send):
        """Run a send callable and record the outcome on the log."""
        try:
            result = send()
        except WhatsAppError as e:
            log.status = 'FAILED'
            log.failed_at = timezone.now()
            log.error_message = str(e)
            if isinstance(e, WhatsAppAPIError) and e.error_code is not None:
                log.error_code = str(e.error_code)
            log.save()
            logger.warning(f"WhatsApp message to {log.recipient} failed: {e}")
            return log

        log.status = 'SENT'
        log.sent_at = timezone.now()
        log.provider_message_id = result.get('message_id')
        log.recipient = result.get('to') or log.recipient
        log.save()
        logger.info(f"WhatsApp message {log.provider_message_id} sent to {log.recipient}")
        return log

    @staticmethod
    def _get_client(client):
        return client or WhatsAppClient()

    @staticmethod
    def send_text(to, body, recipient_name='', category='GENERAL', client=None):
        """
        Send a text message.

        Returns:
            MessageLog: status SENT or FAILED
        """
        log = MessageLog.objects.create(
            recipient=to,
            recipient_name=recipient_name,
            category=category,
            message_type='TEXT',
            body=body,
        )
        return MessagingService._dispatch(
            log,
            lambda: MessagingService._get_client(client).send_text_message(to, body),
        )

    @staticmethod
    def send_template(to, template_name, language='en', variables=None, body='',
                      recipient_name='', category='GENERAL', client=None):
        """
        Send an approved template message.

        Args:
            body: Rendered text kept on the log for reference

        Returns:
            MessageLog: status SENT or FAILED
        """
        variables = {str(key): str(value) for key, value in (variables or {}).items()}
        log = MessageLog.objects.create(
            recipient=to,
            recipient_name=recipient_name,
            category=category,
            message_type='TEMPLATE',
            body=body,
            template_name=template_name,
            template_language=language,
            template_variables=variables,
        )
        return MessagingService._dispatch(
            log,
            lambda: MessagingService._get_client(client).send_template_message(
                to, template_name, language, variables
            ),
        )

    # -------------------------------------------------------------------------
    # DELIVERY STATUS
    # -------------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def apply_status_update(status_payload):
        """
        Apply one entry of a webhook ``statuses`` array.

        Args:
            status_payload (dict): {'id', 'status', 'timestamp', 'errors': [...]}

        Returns:
            MessageLog or None: The log if its status changed
        """
        message_id = status_payload.get('id')
        status = WEBHOOK_STATUS_MAP.get(str(status_payload.get('status', '')).lower())
        if not message_id or not status:
            logger.debug(f"Ignored webhook status entry: {status_payload}")
            return None

        log = MessageLog.objects.select_for_update().filter(provider_message_id=message_id).first()
        if log is None:
            logger.warning(f"Status update for unknown message {message_id}")
            return None

        try:
            timestamp = datetime.fromtimestamp(int(status_payload.get('timestamp')), tz=dt_timezone.utc)
        except (TypeError, ValueError):
            timestamp = timezone.now()

        error_code = ''
        error_message = ''
        errors = _objects(status_payload.get('errors'))
        if errors:
            error = errors[0]
            error_code = error.get('code', '')
            error_data = error.get('error_data')
            details = error_data.get('details') if isinstance(error_data, dict) else None
            error_message = details or error.get('message') or error.get('title') or ''

        if not log.apply_status(status, timestamp, error_code, error_message):
            return None

        logger.info(f"Message {message_id} is now {status}")
        message_status_changed.send(sender=MessageLog, message_log=log, status=status)
        return log

    @staticmethod
    def process_webhook_payload(payload):
        """
        Apply every status update in a webhook payload.

        Malformed parts (anything that is not an object where one is
        expected) are skipped.

        Returns:
            int: Number of messages whose status changed
        """
        updated = 0
        for entry in _objects(payload.get('entry')):
            for change in _objects(entry.get('changes')):
                value = change.get('value')
                if not isinstance(value, dict):
                    continue
                for status_payload in _objects(value.get('statuses')):
                    if MessagingService.apply_status_update(status_payload):
                        updated += 1
        return updated
