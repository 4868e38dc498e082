# fees/tests/test_views.py

import uuid
from datetime import date
from decimal import Decimal
from io import BytesIO

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from openpyxl import load_workbook

from apps.fees.models import FeeCollection, FeeReminder
from apps.fees.services import FeeCollectionService, ReminderService
from apps.fees.tests.factories import make_two_term_setup


class FeeViewTestCase(TestCase):

    def setUp(self):
        self.data = make_two_term_setup()
        self.student = self.data['student']
        self.user = get_user_model().objects.create_user(username='bursar', password='pass12345')
        self.client.force_login(self.user)


class StudentFeeViewTests(FeeViewTestCase):

    def test_login_required(self):
        self.client.logout()
        response = self.client.get(reverse('fees:student_fee_summary', args=[self.student.pk]))
        self.assertEqual(response.status_code, 302)

    def test_fee_summary(self):
        url = reverse('fees:student_fee_summary', args=[self.student.pk])
        response = self.client.get(url, {'as_of': '2024-01-11'})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['student']['admission_number'], 'ADM-001')
        self.assertEqual(len(data['fees']), 2)
        self.assertEqual(data['fees'][0]['status'], 'Overdue')
        self.assertEqual(data['fees'][0]['due_date'], '2024-01-01')
        self.assertEqual(Decimal(data['summary']['total_outstanding']), Decimal('800.00'))

    def test_bad_as_of_date(self):
        url = reverse('fees:student_fee_summary', args=[self.student.pk])
        response = self.client.get(url, {'as_of': '2024-13-45'})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])

    def test_unknown_student(self):
        response = self.client.get(reverse('fees:student_fee_summary', args=[uuid.uuid4()]))
        self.assertEqual(response.status_code, 404)

    def test_allocation_preview_records_nothing(self):
        url = reverse('fees:allocation_preview', args=[self.student.pk])
        response = self.client.post(url, {
            'amount': '100',
            'payment_mode': 'CASH',
            'strategy': 'equal_distribution',
        })

        self.assertEqual(response.status_code, 200)
        allocations = response.json()['allocation']['allocations']
        self.assertEqual([Decimal(a['allocated_amount']) for a in allocations], [Decimal('50.00'), Decimal('50.00')])
        self.assertFalse(FeeCollection.objects.exists())


class CollectionViewTests(FeeViewTestCase):

    def test_collect_payment(self):
        url = reverse('fees:collect_payment', args=[self.student.pk])
        response = self.client.post(url, {
            'amount': '600',
            'payment_mode': 'UPI',
            'transaction_reference': 'UPI-4471',
            'payment_date': '2024-03-01',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['collection']['receipt_number'], 'RCPT-2024-000001')
        self.assertEqual(Decimal(data['collection']['total_amount']), Decimal('600.00'))
        self.assertEqual(len(data['collection']['items']), 2)
        self.assertIsNone(data['receipt_status'])
        self.assertEqual(data['collection']['collected_by'], 'bursar')

        collection = FeeCollection.objects.get()
        self.assertEqual(collection.created_by_id, str(self.user.pk))

    def test_collect_payment_invalid_form(self):
        url = reverse('fees:collect_payment', args=[self.student.pk])
        response = self.client.post(url, {'amount': '-5', 'payment_mode': 'CASH'})

        self.assertEqual(response.status_code, 400)
        self.assertIn('amount', response.json()['errors'])

    def test_collect_payment_nothing_outstanding(self):
        url = reverse('fees:collect_payment', args=[self.student.pk])
        self.client.post(url, {'amount': '800', 'payment_mode': 'CASH', 'payment_date': '2024-03-01'})
        response = self.client.post(url, {'amount': '10', 'payment_mode': 'CASH', 'payment_date': '2024-03-01'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(FeeCollection.objects.count(), 1)

    def test_collect_payment_get_not_allowed(self):
        response = self.client.get(reverse('fees:collect_payment', args=[self.student.pk]))
        self.assertEqual(response.status_code, 405)

    def test_cancel_collection(self):
        collection = FeeCollectionService.collect_payment(self.student, {
            'amount': Decimal('100'), 'payment_mode': 'CASH', 'payment_date': date(2024, 3, 1),
        })['collection']
        url = reverse('fees:cancel_collection', args=[collection.pk])

        self.assertEqual(self.client.post(url, {}).status_code, 400)

        response = self.client.post(url, {'reason': 'Entered twice'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['collection']['status'], 'CANCELLED')

        self.assertEqual(self.client.post(url, {'reason': 'Again'}).status_code, 400)

    def test_collection_detail(self):
        collection = FeeCollectionService.collect_payment(self.student, {
            'amount': Decimal('100'), 'payment_mode': 'CASH', 'payment_date': date(2024, 3, 1),
        })['collection']
        response = self.client.get(reverse('fees:collection_detail', args=[collection.pk]))
        self.assertEqual(response.json()['collection']['items'][0]['fee_term'], 'Term 1')


class ReminderViewTests(FeeViewTestCase):

    def test_generate_and_list_reminders(self):
        url = reverse('fees:generate_reminders') + '?as_of=2024-01-11'

        dry = self.client.post(url, {'dry_run': 'true'}).json()
        self.assertEqual(dry['created'], 1)
        self.assertFalse(FeeReminder.objects.exists())

        response = self.client.post(url)
        self.assertEqual(response.json()['created'], 1)

        listing = self.client.get(reverse('fees:reminder_list'), {'status': 'PENDING'}).json()
        self.assertEqual(listing['count'], 1)
        self.assertEqual(listing['reminders'][0]['reminder_type'], 'first')

        empty = self.client.get(reverse('fees:reminder_list'), {'reminder_type': 'final'}).json()
        self.assertEqual(empty['count'], 0)

    def test_send_reminders_when_disabled(self):
        ReminderService.generate_reminders(as_of_date=date(2024, 1, 11))
        response = self.client.post(reverse('fees:send_reminders'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['total'], 0)
        self.assertEqual(FeeReminder.objects.get().status, 'PENDING')


class DashboardViewTests(FeeViewTestCase):

    def test_dashboard(self):
        response = self.client.get(reverse('fees:dashboard'), {'as_of': '2024-01-20'})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(Decimal(data['summary']['totals']['outstanding']), Decimal('800.00'))
        self.assertEqual(data['targets']['month'], '2024-01')

    def test_outstanding_export(self):
        response = self.client.get(reverse('fees:export_outstanding_excel'), {'as_of': '2024-01-20'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response['Content-Type'],
            'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )
        sheet = load_workbook(BytesIO(response.content)).active
        self.assertEqual(sheet['A1'].value, 'Outstanding Fee Dues')
        self.assertEqual(sheet['B4'].value, 'Admission No')
        self.assertEqual(sheet['B5'].value, 'ADM-001')
        self.assertEqual(sheet['L5'].value, 500.0)
        self.assertEqual(sheet['B6'].value, 'ADM-001')
