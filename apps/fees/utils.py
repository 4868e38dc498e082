# fees/utils.py

"""
Fee Management Utility Functions

Contains:
- Receipt number generation
- Payment data validation
"""

from django.db import transaction
from django.db.models.functions import Length
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# REFERENCE NUMBER GENERATION
# =============================================================================

def get_receipt_prefix(year=None):
    """
    Receipt number prefix from financial settings.
    Format: RCPT-2025- (with year), RCPT- or '' (no prefix)
    """
    from apps.core.models import FinancialSettings
    from apps.core.utils import get_school_today

    settings = FinancialSettings.get_instance()
    prefix = settings.receipt_prefix.strip() if settings.receipt_prefix else ""

    parts = [prefix] if prefix else []
    if settings.include_year_in_receipt_number:
        parts.append(str(year or get_school_today().year))

    return '-'.join(parts) + '-' if parts else ''


def generate_receipt_number(year=None):
    """
    Generate unique receipt number using school settings.
    Format: RCPT-2025-000001, RCPT-000001 or 000001

    Returns:
        str: Unique receipt number
    """
    from apps.fees.models import FeeCollection

    search_prefix = get_receipt_prefix(year)

    with transaction.atomic():
        if search_prefix:
            queryset = FeeCollection.objects.filter(receipt_number__startswith=search_prefix)
        else:
            queryset = FeeCollection.objects.exclude(receipt_number='')

        # Longest first so 1000000 sorts above 999999
        receipt_numbers = queryset.select_for_update().order_by(
            Length('receipt_number').desc(), '-receipt_number'
        ).values_list('receipt_number', flat=True)

        new_number = 1
        for receipt_num in receipt_numbers:
            numeric_part = receipt_num[len(search_prefix):]
            if numeric_part.isdigit():
                new_number = int(numeric_part) + 1
                break

        if new_number <= 999999:
            formatted_number = f"{new_number:06d}"
        else:
            formatted_number = str(new_number)

        return f"{search_prefix}{formatted_number}"


# =============================================================================
# VALIDATION UTILITIES
# =============================================================================

def validate_payment_data(payment_data):
    """
    Validate payment data before a collection is recorded.

    Args:
        payment_data: Dict with amount, payment_mode, payment_date, strategy

    Returns:
        dict: {
            'valid': bool,
            'errors': list of str,
            'warnings': list of str
        }
    """
    from apps.fees.models import FeeCollection
    from apps.fees.calculators import PaymentAllocator
    from apps.core.utils import get_school_today, safe_decimal

    errors = []
    warnings = []

    amount = safe_decimal(payment_data.get('amount'), default=None)
    if amount is None:
        errors.append("Payment amount must be a number")
    elif amount <= 0:
        errors.append("Payment amount must be positive")

    payment_mode = payment_data.get('payment_mode')
    if not payment_mode:
        errors.append("Payment mode is required")
    elif payment_mode not in dict(FeeCollection.PAYMENT_MODE_CHOICES):
        errors.append(f"Unknown payment mode: {payment_mode}")
    elif payment_mode != 'CASH' and not payment_data.get('transaction_reference'):
        warnings.append("No transaction reference recorded for a non-cash payment")

    strategy = payment_data.get('strategy')
    if strategy and strategy not in PaymentAllocator.STRATEGIES:
        errors.append(f"Unknown allocation strategy: {strategy}")

    if strategy == PaymentAllocator.MANUAL and not payment_data.get('manual_amounts'):
        errors.append("Manual allocation requires an amount per fee")

    payment_date = payment_data.get('payment_date')
    if payment_date and payment_date > get_school_today():
        errors.append("Payment date cannot be in the future")

    return {
        'valid': len(errors) == 0,
        'errors': errors,
        'warnings': warnings
    }
