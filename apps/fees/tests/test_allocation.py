# fees/tests/test_allocation.py

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.fees.calculators import PaymentAllocator


def fee(head, term, outstanding, due):
    return {
        'fee_head_id': head,
        'fee_head_name': head.title(),
        'fee_term_id': term,
        'fee_term_name': term.upper(),
        'due_date': due,
        'outstanding_amount': Decimal(outstanding),
    }


def allocated(result):
    return {a['key']: a['allocated_amount'] for a in result['allocations']}


class OldestFirstTests(SimpleTestCase):

    def test_pays_oldest_due_first(self):
        fees = [fee('tuition', 't2', '300', '2024-02-01'), fee('tuition', 't1', '500', '2024-01-01')]
        result = PaymentAllocator.allocate(Decimal('600'), fees, 'oldest_first')

        self.assertEqual(
            [(a['key'], a['allocated_amount']) for a in result['allocations']],
            [('tuition:t1', Decimal('500.00')), ('tuition:t2', Decimal('100.00'))]
        )
        self.assertEqual(result['allocations'][1]['remaining_outstanding'], Decimal('200.00'))
        self.assertEqual(result['unallocated'], Decimal('0.00'))

    def test_payment_above_outstanding_leaves_unallocated(self):
        fees = [fee('tuition', 't1', '500', '2024-01-01'), fee('tuition', 't2', '300', '2024-02-01')]
        result = PaymentAllocator.allocate('1000', fees, 'oldest_first')
        self.assertEqual(result['total_allocated'], Decimal('800.00'))
        self.assertEqual(result['unallocated'], Decimal('200.00'))

    def test_same_due_date_keeps_input_order(self):
        fees = [fee('transport', 't1', '100', '2024-01-01'), fee('tuition', 't1', '100', '2024-01-01')]
        result = PaymentAllocator.allocate('150', fees, 'oldest_first')
        self.assertEqual(allocated(result), {'transport:t1': Decimal('100.00'), 'tuition:t1': Decimal('50.00')})

    def test_settled_fees_are_skipped(self):
        fees = [fee('tuition', 't1', '0', '2024-01-01'), fee('tuition', 't2', '300', '2024-02-01')]
        result = PaymentAllocator.allocate('100', fees)
        self.assertEqual(allocated(result), {'tuition:t2': Decimal('100.00')})


class HighestAmountFirstTests(SimpleTestCase):

    def test_pays_largest_balance_first(self):
        fees = [fee('tuition', 't1', '300', '2024-01-01'), fee('tuition', 't2', '500', '2024-02-01')]
        result = PaymentAllocator.allocate('600', fees, 'highest_amount_first')
        self.assertEqual(
            [a['key'] for a in result['allocations']],
            ['tuition:t2', 'tuition:t1']
        )
        self.assertEqual(allocated(result), {'tuition:t2': Decimal('500.00'), 'tuition:t1': Decimal('100.00')})

    def test_equal_balances_favour_older_fee(self):
        fees = [fee('tuition', 't2', '200', '2024-02-01'), fee('tuition', 't1', '200', '2024-01-01')]
        result = PaymentAllocator.allocate('100', fees, 'highest_amount_first')
        self.assertEqual(allocated(result), {'tuition:t1': Decimal('100.00')})


class EqualDistributionTests(SimpleTestCase):

    def test_splits_evenly(self):
        fees = [fee('tuition', 't1', '80', '2024-01-01'), fee('tuition', 't2', '80', '2024-02-01')]
        result = PaymentAllocator.allocate('100', fees, 'equal_distribution')
        self.assertEqual(allocated(result), {'tuition:t1': Decimal('50.00'), 'tuition:t2': Decimal('50.00')})

    def test_capped_fee_releases_its_share(self):
        fees = [fee('tuition', 't1', '20', '2024-01-01'), fee('tuition', 't2', '200', '2024-02-01')]
        result = PaymentAllocator.allocate('100', fees, 'equal_distribution')
        self.assertEqual(allocated(result), {'tuition:t1': Decimal('20.00'), 'tuition:t2': Decimal('80.00')})
        self.assertEqual(result['unallocated'], Decimal('0.00'))

    def test_leftover_cent_goes_to_oldest(self):
        fees = [
            fee('tuition', 't3', '100', '2024-03-01'),
            fee('tuition', 't1', '100', '2024-01-01'),
            fee('tuition', 't2', '100', '2024-02-01'),
        ]
        result = PaymentAllocator.allocate('100', fees, 'equal_distribution')
        self.assertEqual(allocated(result), {
            'tuition:t1': Decimal('33.34'),
            'tuition:t2': Decimal('33.33'),
            'tuition:t3': Decimal('33.33'),
        })


class ManualAllocationTests(SimpleTestCase):

    def setUp(self):
        self.fees = [fee('tuition', 't1', '500', '2024-01-01'), fee('tuition', 't2', '300', '2024-02-01')]

    def test_uses_requested_amounts(self):
        result = PaymentAllocator.allocate(
            '300', self.fees, 'manual', {'tuition:t1': '200', 'tuition:t2': '50'}
        )
        self.assertEqual(allocated(result), {'tuition:t1': Decimal('200.00'), 'tuition:t2': Decimal('50.00')})
        self.assertEqual(result['unallocated'], Decimal('50.00'))

    def test_requests_capped_by_outstanding_and_payment(self):
        result = PaymentAllocator.allocate(
            '400', self.fees, 'manual', {'tuition:t1': '900', 'tuition:t2': '300'}
        )
        self.assertEqual(allocated(result), {'tuition:t1': Decimal('400.00')})

    def test_unknown_and_invalid_entries_ignored(self):
        with self.assertLogs('apps.fees.calculators', level='WARNING'):
            result = PaymentAllocator.allocate(
                '300', self.fees, 'manual',
                {'tuition:t9': '100', 'tuition:t1': 'abc', 'tuition:t2': '-5'}
            )
        self.assertEqual(result['allocations'], [])
        self.assertEqual(result['unallocated'], Decimal('300.00'))


class AllocationValidationTests(SimpleTestCase):

    def setUp(self):
        self.fees = [fee('tuition', 't1', '500', '2024-01-01')]

    def test_rejects_non_positive_or_invalid_amount(self):
        for amount in ('0', '-10', 'abc', None):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    PaymentAllocator.allocate(amount, self.fees)

    def test_rejects_unknown_strategy(self):
        with self.assertRaises(ValidationError):
            PaymentAllocator.allocate('100', self.fees, 'newest_first')

    def test_never_allocates_more_than_payment(self):
        fees = [
            fee('tuition', 't1', '123.45', '2024-01-01'),
            fee('tuition', 't2', '67.89', '2024-02-01'),
            fee('transport', 't1', '250.00', '2024-01-15'),
        ]
        manual = {'tuition:t1': '100', 'tuition:t2': '100', 'transport:t1': '100'}
        for strategy in PaymentAllocator.STRATEGIES:
            for amount in ('0.01', '99.99', '200', '1000'):
                with self.subTest(strategy=strategy, amount=amount):
                    result = PaymentAllocator.allocate(amount, fees, strategy, manual)
                    self.assertLessEqual(result['total_allocated'], Decimal(amount))
                    for line in result['allocations']:
                        self.assertGreaterEqual(line['remaining_outstanding'], Decimal('0'))
