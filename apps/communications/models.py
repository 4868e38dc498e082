# communications/models.py

"""
Outbound message log.

Every WhatsApp send attempt is recorded, and delivery status updates
from the Meta webhook are applied to it.
"""

from django.db import models
import logging

from apps.utils.models import BaseModel

logger = logging.getLogger(__name__)


class MessageLog(BaseModel):
    """One outbound message and its delivery status"""

    MESSAGE_TYPE_CHOICES = [
        ('TEXT', 'Text'),
        ('TEMPLATE', 'Template'),
    ]

    STATUS_CHOICES = [
        ('QUEUED', 'Queued'),
        ('SENT', 'Sent'),
        ('DELIVERED', 'Delivered'),
        ('READ', 'Read'),
        ('FAILED', 'Failed'),
    ]

    # Delivery progress; statuses only move forward
    STATUS_RANK = {
        'QUEUED': 0,
        'SENT': 1,
        'DELIVERED': 2,
        'READ': 3,
    }

    CATEGORY_CHOICES = [
        ('FEE_REMINDER', 'Fee Reminder'),
        ('FEE_RECEIPT', 'Fee Receipt'),
        ('GENERAL', 'General'),
    ]

    recipient = models.CharField("Recipient", max_length=20, db_index=True)
    recipient_name = models.CharField("Recipient Name", max_length=100, blank=True)
    category = models.CharField(
        "Category",
        max_length=20,
        choices=CATEGORY_CHOICES,
        default='GENERAL',
        db_index=True
    )

    message_type = models.CharField("Message Type", max_length=10, choices=MESSAGE_TYPE_CHOICES)
    body = models.TextField("Body", blank=True)
    template_name = models.CharField("Template Name", max_length=100, blank=True)
    template_language = models.CharField("Template Language", max_length=10, blank=True)
    template_variables = models.JSONField("Template Variables", default=dict, blank=True)

    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default='QUEUED',
        db_index=True
    )
    provider_message_id = models.CharField(
        "Provider Message ID",
        max_length=128,
        null=True,
        blank=True,
        unique=True
    )
    error_code = models.CharField("Error Code", max_length=20, blank=True)
    error_message = models.TextField("Error Message", blank=True)

    sent_at = models.DateTimeField("Sent At", null=True, blank=True)
    delivered_at = models.DateTimeField("Delivered At", null=True, blank=True)
    read_at = models.DateTimeField("Read At", null=True, blank=True)
    failed_at = models.DateTimeField("Failed At", null=True, blank=True)

    class Meta:
        verbose_name = "Message Log"
        verbose_name_plural = "Message Logs"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_message_type_display()} to {self.recipient} ({self.status})"

    def can_transition_to(self, status):
        """FAILED is terminal; other statuses never move backwards."""
        if self.status == 'FAILED':
            return False
        if status == 'FAILED':
            return True
        return self.STATUS_RANK.get(status, -1) > self.STATUS_RANK.get(self.status, -1)

    def apply_status(self, status, timestamp, error_code='', error_message=''):
        """
        Move to a new delivery status if it is a forward move.

        Returns:
            bool: True if the status changed
        """
        if not self.can_transition_to(status):
            logger.debug(f"Ignored status {status} for message {self.pk} (currently {self.status})")
            return False

        self.status = status
        timestamp_field = {
            'SENT': 'sent_at',
            'DELIVERED': 'delivered_at',
            'READ': 'read_at',
            'FAILED': 'failed_at',
        }.get(status)
        if timestamp_field:
            setattr(self, timestamp_field, timestamp)
        if status == 'FAILED':
            self.error_code = str(error_code or '')
            self.error_message = error_message or ''
        self.save()
        return True
