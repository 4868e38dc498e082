# fees/tests/test_stats.py

from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import connection
from django.test import SimpleTestCase, TestCase
from django.test.utils import CaptureQueriesContext

from apps.fees.services import FeeCollectionService
from apps.fees.stats import (
    calculate_collection_targets,
    get_collection_summary,
    get_monthly_collection_targets,
    get_outstanding_dues,
)
from apps.fees.tests.factories import make_student, make_two_term_setup


class CollectionTargetTests(SimpleTestCase):

    def test_on_track_at_ninety_percent(self):
        targets = calculate_collection_targets(30000, 9000, 30, 10)
        self.assertEqual(targets['target_daily'], Decimal('1000.00'))
        self.assertEqual(targets['target_remaining'], Decimal('21000.00'))
        self.assertEqual(targets['projected_total'], Decimal('27000.00'))
        self.assertEqual(targets['collection_rate'], Decimal('0.9000'))
        self.assertTrue(targets['on_track'])

    def test_behind_target(self):
        targets = calculate_collection_targets(30000, 8000, 30, 10)
        self.assertFalse(targets['on_track'])

    def test_first_day_of_month(self):
        targets = calculate_collection_targets(30000, 0, 30, 0)
        self.assertEqual(targets['collection_rate'], Decimal('0.0000'))
        self.assertEqual(targets['projected_total'], Decimal('0.00'))
        self.assertFalse(targets['on_track'])

    def test_over_collection_has_no_remaining_target(self):
        targets = calculate_collection_targets(1000, 1500, 30, 30)
        self.assertEqual(targets['target_remaining'], Decimal('0.00'))
        self.assertEqual(targets['projected_total'], Decimal('1500.00'))

    def test_invalid_day_counts(self):
        with self.assertRaises(ValidationError):
            calculate_collection_targets(1000, 0, 0, 0)
        with self.assertRaises(ValidationError):
            calculate_collection_targets(1000, 0, 30, 31)


class CollectionSummaryTests(TestCase):

    def setUp(self):
        self.data = make_two_term_setup()
        make_student(self.data['school_class'], admission_number='ADM-002', first_name='Ravi')
        FeeCollectionService.collect_payment(self.data['student'], {
            'amount': Decimal('200.00'),
            'payment_mode': 'UPI',
            'transaction_reference': 'UPI-1',
            'payment_date': date(2024, 1, 15),
        })

    def test_totals_across_students(self):
        summary = get_collection_summary(date(2024, 1, 20))
        totals = summary['totals']

        self.assertEqual(totals['students'], 2)
        self.assertEqual(totals['students_with_dues'], 2)
        self.assertEqual(totals['expected'], Decimal('1600.00'))
        self.assertEqual(totals['collected'], Decimal('200.00'))
        self.assertEqual(totals['outstanding'], Decimal('1400.00'))
        self.assertEqual(totals['collection_rate'], Decimal('12.50'))

        self.assertEqual(summary['by_status']['Partially Paid']['count'], 1)
        self.assertEqual(summary['by_status']['Overdue']['count'], 1)
        self.assertEqual(summary['by_status']['Pending']['count'], 2)
        self.assertEqual(summary['by_fee_head'][0]['fee_head_name'], 'Tuition')
        self.assertEqual(summary['outstanding_aging']['overdue_1_30'], Decimal('800.00'))
        self.assertEqual(summary['outstanding_aging']['current'], Decimal('600.00'))

        self.assertEqual(summary['payment_trends'], [
            {'date': date(2024, 1, 15), 'count': 1, 'amount': Decimal('200.00')}
        ])

    def test_monthly_targets(self):
        targets = get_monthly_collection_targets(date(2024, 1, 20))

        self.assertEqual(targets['month'], '2024-01')
        self.assertEqual(targets['days_in_month'], 31)
        self.assertEqual(targets['days_passed'], 20)
        # Term 1 only: 300 + 500 still outstanding, plus 200 collected this month
        self.assertEqual(targets['total_expected'], Decimal('1000.00'))
        self.assertEqual(targets['collected'], Decimal('200.00'))

    def test_outstanding_dues_rows(self):
        rows = get_outstanding_dues(date(2024, 1, 20))
        self.assertEqual(len(rows), 4)
        self.assertEqual(rows[0]['student'].admission_number, 'ADM-001')
        self.assertEqual(rows[0]['outstanding_amount'], Decimal('300.00'))

    def test_summary_queries_do_not_grow_with_students(self):
        get_collection_summary(date(2024, 1, 20))
        with CaptureQueriesContext(connection) as few:
            get_collection_summary(date(2024, 1, 20))

        for number in range(3, 23):
            make_student(self.data['school_class'], admission_number=f'ADM-{number:03d}')
        with CaptureQueriesContext(connection) as many:
            summary = get_collection_summary(date(2024, 1, 20))

        self.assertEqual(summary['totals']['students'], 22)
        self.assertEqual(len(many.captured_queries), len(few.captured_queries))
