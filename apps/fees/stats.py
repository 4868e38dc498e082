# fees/stats.py

"""
Statistics utility functions for fee collection.
Collection targets and projections, dashboard aggregates across
students, and outstanding dues for export.
"""

from calendar import monthrange
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from django.core.exceptions import ValidationError
from django.db.models import Count, Sum
from django.db.models.functions import Coalesce
import logging

from apps.fees.calculators import (
    STATUS_PAID, STATUS_PARTIALLY_PAID, STATUS_PENDING, STATUS_OVERDUE, ZERO, to_money
)

logger = logging.getLogger(__name__)

ON_TRACK_RATE = Decimal('0.9')
RATE_PLACES = Decimal('0.0001')


# =============================================================================
# COLLECTION TARGETS
# =============================================================================

def calculate_collection_targets(total_expected, collected, days_in_month, days_passed):
    """
    Daily target and month-end projection for collections.

    Args:
        total_expected: Amount expected over the month
        collected: Amount collected so far
        days_in_month: Days in the month
        days_passed: Days elapsed (0..days_in_month)

    Returns:
        dict: target_daily, target_remaining, projected_total,
        collection_rate (collected / expected by now), on_track (rate >= 0.9)

    Example:
        >>> calculate_collection_targets(30000, 8000, 30, 10)['on_track']
        False
    """
    total_expected = to_money(total_expected)
    collected = to_money(collected)
    days_in_month = int(days_in_month)
    days_passed = int(days_passed)

    if days_in_month <= 0:
        raise ValidationError("Days in month must be positive")
    if not (0 <= days_passed <= days_in_month):
        raise ValidationError("Days passed must be between 0 and the days in the month")

    target_daily = total_expected / days_in_month
    expected_by_now = target_daily * days_passed
    days_remaining = days_in_month - days_passed

    if expected_by_now > 0:
        collection_rate = (collected / expected_by_now).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    else:
        collection_rate = Decimal('0.0000')

    if days_remaining > 0 and days_passed > 0:
        projected_total = collected + (collected / days_passed) * days_remaining
    else:
        projected_total = collected

    return {
        'target_daily': to_money(target_daily),
        'target_remaining': max(ZERO, total_expected - collected),
        'projected_total': to_money(projected_total),
        'collection_rate': collection_rate,
        'on_track': collection_rate >= ON_TRACK_RATE,
    }


def _active_students():
    from apps.students.models import Student
    return Student.objects.filter(
        enrollment_status='ACTIVE',
        school_class__isnull=False,
    ).select_related('school_class').order_by('school_class__display_order', 'admission_number')


def iter_student_fees(as_of_date=None, students=None):
    """Yield (student, computed fees) for every active student."""
    from apps.fees.services import FeeCollectionService

    if students is None:
        students = _active_students()
    yield from FeeCollectionService.iter_students_fees(students, as_of_date)


def get_monthly_collection_targets(as_of_date=None):
    """
    Collection targets for the month containing as_of_date.

    Expected is what was collectible this month: collections made this
    month against fees due by month end, plus what is still outstanding
    on those fees.
    """
    from apps.core.utils import get_school_today
    from apps.fees.models import FeeCollectionItem

    today = as_of_date or get_school_today()
    month_start = today.replace(day=1)
    days_in_month = monthrange(today.year, today.month)[1]
    month_end = month_start + timedelta(days=days_in_month - 1)

    collected_this_month = defaultdict(lambda: ZERO)
    items = FeeCollectionItem.objects.filter(
        collection__status='COMPLETED',
        collection__payment_date__gte=month_start,
        collection__payment_date__lte=today,
    ).values('collection__student_id', 'fee_head_id', 'fee_term_id').annotate(total=Sum('amount'))
    for item in items:
        key = (str(item['collection__student_id']), str(item['fee_head_id']), str(item['fee_term_id']))
        collected_this_month[key] += item['total']

    expected = ZERO
    collected = ZERO
    for student, fees in iter_student_fees(today):
        for fee in fees:
            if fee['due_date'] > month_end:
                continue
            paid_now = collected_this_month[(str(student.pk), fee['fee_head_id'], fee['fee_term_id'])]
            collected += paid_now
            expected += fee['outstanding_amount'] + paid_now

    targets = calculate_collection_targets(expected, collected, days_in_month, today.day)
    targets.update({
        'month': month_start.strftime('%Y-%m'),
        'total_expected': expected,
        'collected': collected,
        'days_in_month': days_in_month,
        'days_passed': today.day,
    })
    return targets


# =============================================================================
# DASHBOARD
# =============================================================================

def get_collection_summary(as_of_date=None):
    """
    Consolidated fee collection dashboard.

    Returns:
        dict: totals, by_status, by_fee_head, outstanding_aging, payment_trends
    """
    from apps.core.utils import calculate_percentage, get_school_today
    from apps.fees.models import FeeCollection

    today = as_of_date or get_school_today()

    totals = {
        'students': 0,
        'students_with_dues': 0,
        'expected': ZERO,
        'collected': ZERO,
        'outstanding': ZERO,
        'late_fees': ZERO,
        'concessions': ZERO,
    }
    by_status = {
        status: {'count': 0, 'outstanding': ZERO}
        for status in (STATUS_PAID, STATUS_PARTIALLY_PAID, STATUS_PENDING, STATUS_OVERDUE)
    }
    by_fee_head = {}
    aging = {'current': ZERO, 'overdue_1_30': ZERO, 'overdue_31_60': ZERO, 'overdue_over_60': ZERO}

    for student, fees in iter_student_fees(today):
        totals['students'] += 1
        student_outstanding = ZERO

        for fee in fees:
            outstanding = fee['outstanding_amount']
            student_outstanding += outstanding

            totals['expected'] += fee['final_amount']
            totals['collected'] += fee['paid_amount']
            totals['outstanding'] += outstanding
            totals['late_fees'] += fee['late_fee_amount']
            totals['concessions'] += fee['concession_amount']

            by_status[fee['status']]['count'] += 1
            by_status[fee['status']]['outstanding'] += outstanding

            head = by_fee_head.setdefault(fee['fee_head_id'], {
                'fee_head_name': fee['fee_head_name'],
                'expected': ZERO,
                'collected': ZERO,
                'outstanding': ZERO,
            })
            head['expected'] += fee['final_amount']
            head['collected'] += fee['paid_amount']
            head['outstanding'] += outstanding

            if outstanding <= 0:
                continue
            if fee['overdue_days'] == 0:
                aging['current'] += outstanding
            elif fee['overdue_days'] <= 30:
                aging['overdue_1_30'] += outstanding
            elif fee['overdue_days'] <= 60:
                aging['overdue_31_60'] += outstanding
            else:
                aging['overdue_over_60'] += outstanding

        if student_outstanding > 0:
            totals['students_with_dues'] += 1

    totals['collection_rate'] = calculate_percentage(totals['collected'], totals['expected'])

    # Payment trends (last 30 days)
    thirty_days_ago = today - timedelta(days=30)
    recent = FeeCollection.objects.filter(
        status='COMPLETED',
        payment_date__gte=thirty_days_ago,
        payment_date__lte=today,
    ).values('payment_date').annotate(
        count=Count('id'),
        total=Coalesce(Sum('total_amount'), Decimal('0.00')),
    ).order_by('payment_date')

    return {
        'as_of_date': today,
        'totals': totals,
        'by_status': by_status,
        'by_fee_head': list(by_fee_head.values()),
        'outstanding_aging': aging,
        'payment_trends': [
            {
                'date': item['payment_date'],
                'count': item['count'],
                'amount': item['total'],
            }
            for item in recent
        ],
    }


def get_outstanding_dues(as_of_date=None):
    """
    Rows of unpaid fees across active students, oldest due first
    within each student.
    """
    rows = []
    for student, fees in iter_student_fees(as_of_date):
        for fee in sorted(fees, key=lambda f: f['due_date']):
            if fee['outstanding_amount'] <= 0:
                continue
            rows.append({'student': student, **fee})
    return rows
