# fees/signals.py

"""
Fee Management Signal Handlers

Auto-processing for:
- Receipt number generation
- Data integrity validation
"""

from django.core.exceptions import ValidationError
from django.db.models.signals import pre_save
from django.dispatch import receiver
import logging

from apps.communications.signals import message_status_changed
from apps.fees.utils import generate_receipt_number

logger = logging.getLogger(__name__)


# =============================================================================
# COLLECTION SIGNALS
# =============================================================================

@receiver(pre_save, sender='fees.FeeCollection')
def fee_collection_pre_save(sender, instance, **kwargs):
    """Auto-generate the receipt number for new collections."""
    if not instance.receipt_number:
        year = instance.payment_date.year if instance.payment_date else None
        instance.receipt_number = generate_receipt_number(year)
        logger.info(f"Generated receipt number: {instance.receipt_number}")


# =============================================================================
# DATA INTEGRITY SIGNALS
# =============================================================================

@receiver(pre_save, sender='fees.FeeCollection')
def validate_collection_amount(sender, instance, **kwargs):
    """Validate collection amount is positive"""
    if instance.total_amount is None or instance.total_amount <= 0:
        raise ValidationError("Collection amount must be greater than zero")


@receiver(pre_save, sender='fees.FeeCollectionItem')
def validate_collection_item_amount(sender, instance, **kwargs):
    """Validate collection line amount is positive"""
    if instance.amount is None or instance.amount <= 0:
        raise ValidationError("Collection item amount must be greater than zero")


# =============================================================================
# REMINDER DELIVERY SIGNALS
# =============================================================================

@receiver(message_status_changed)
def mirror_message_status_on_reminders(sender, message_log, status, **kwargs):
    """Reflect WhatsApp delivery outcome on the reminders sent with the message."""
    from apps.fees.models import FeeReminder

    if status == 'READ':
        updated = FeeReminder.objects.filter(
            message_log=message_log, status='SENT'
        ).update(status='ACKNOWLEDGED')
    elif status == 'FAILED':
        updated = FeeReminder.objects.filter(
            message_log=message_log
        ).exclude(status='FAILED').update(
            status='FAILED',
            error_message=message_log.error_message or 'Delivery failed',
        )
    else:
        return

    if updated:
        logger.info(f"Marked {updated} reminder(s) {status.lower()} from message {message_log.pk}")
