# fees/services.py

"""
Core Fee Operations

Loads a student's fee data, runs the calculators, and records
collections and reminders:

- FeeCollectionService: fee summary, allocation preview, payment collection, cancellation
- ReminderService: reminder generation and WhatsApp dispatch

For the calculations themselves, see fees/calculators.py
"""

from collections import defaultdict
from django.db import transaction
from django.utils import timezone
from django.core.exceptions import ValidationError
import logging

from apps.fees.models import (
    FeeStructure, FeeCollection, FeeCollectionItem, StudentConcession, FeeReminder
)
from apps.fees.calculators import FeeCalculator, PaymentAllocator, ReminderGenerator
from apps.fees.utils import validate_payment_data
from apps.students.models import Student
from apps.core.models import FinancialSettings
from apps.core.utils import get_school_today
from apps.communications.services import MessagingService
from apps.communications.whatsapp import WhatsAppClient

logger = logging.getLogger(__name__)


# =============================================================================
# FEE COLLECTION SERVICE
# =============================================================================

class FeeCollectionService:
    """
    Fee computation and collection for one student.
    Every read recomputes fees from structures and collections.
    """

    @staticmethod
    def get_fee_structures(student):
        """Active structures for the student's class."""
        if not student.school_class_id:
            return FeeStructure.objects.none()
        return FeeStructure.objects.filter(
            school_class_id=student.school_class_id,
            is_active=True,
            fee_head__is_active=True,
            fee_term__is_active=True,
        ).select_related('fee_head', 'fee_term')

    @staticmethod
    def get_payment_records(student):
        """Collection lines of the student's completed collections."""
        return FeeCollectionItem.objects.filter(
            collection__student=student,
            collection__status='COMPLETED',
        ).select_related('collection')

    @staticmethod
    def get_concessions(student):
        return StudentConcession.objects.filter(
            student=student,
            status='APPROVED',
        ).prefetch_related('fee_heads', 'fee_terms')

    @staticmethod
    def get_student_fees(student, as_of_date=None, calculate_installments=False):
        """
        Compute every obligation of a student.

        Args:
            student: Student instance
            as_of_date: Date to evaluate on (defaults to school today)
            calculate_installments: Include installment schedules

        Returns:
            list: Computed fee dicts (see FeeCalculator.calculate_fee)

        Example:
            fees = FeeCollectionService.get_student_fees(student)
            overdue = [fee for fee in fees if fee['status'] == 'Overdue']
        """
        settings = FinancialSettings.get_instance()
        options = settings.get_fee_calculation_options(as_of_date, calculate_installments)

        return FeeCalculator.calculate_student_fees(
            FeeCollectionService.get_fee_structures(student),
            FeeCollectionService.get_payment_records(student),
            options,
            FeeCollectionService.get_concessions(student),
            settings.get_default_late_fee_policy(),
        )

    @staticmethod
    def iter_students_fees(students, as_of_date=None, settings=None):
        """
        Compute fees for many students with a fixed number of queries.

        Structures, collection lines and concessions are each loaded in one
        query and grouped in memory.

        Args:
            students: Iterable of Student instances
            as_of_date: Date to evaluate on (defaults to school today)
            settings: FinancialSettings, loaded when omitted

        Yields:
            tuple: (student, computed fee dicts)
        """
        students = list(students)
        if not students:
            return

        settings = settings or FinancialSettings.get_instance()
        options = settings.get_fee_calculation_options(as_of_date)
        default_policy = settings.get_default_late_fee_policy()

        student_ids = [student.pk for student in students]
        class_ids = {student.school_class_id for student in students if student.school_class_id}

        structures_by_class = defaultdict(list)
        for structure in FeeStructure.objects.filter(
            school_class_id__in=class_ids,
            is_active=True,
            fee_head__is_active=True,
            fee_term__is_active=True,
        ).select_related('fee_head', 'fee_term'):
            structures_by_class[structure.school_class_id].append(structure)

        records_by_student = defaultdict(list)
        for item in FeeCollectionItem.objects.filter(
            collection__student_id__in=student_ids,
            collection__status='COMPLETED',
        ).select_related('collection'):
            records_by_student[item.collection.student_id].append(item)

        concessions_by_student = defaultdict(list)
        for concession in StudentConcession.objects.filter(
            student_id__in=student_ids,
            status='APPROVED',
        ).prefetch_related('fee_heads', 'fee_terms'):
            concessions_by_student[concession.student_id].append(concession)

        for student in students:
            yield student, FeeCalculator.calculate_student_fees(
                structures_by_class.get(student.school_class_id, []),
                records_by_student.get(student.pk, []),
                options,
                concessions_by_student.get(student.pk, []),
                default_policy,
            )

    @staticmethod
    def get_student_fee_summary(student, as_of_date=None, calculate_installments=True):
        """Computed fees plus totals."""
        fees = FeeCollectionService.get_student_fees(student, as_of_date, calculate_installments)
        return {
            'student': student,
            'fees': fees,
            'summary': FeeCalculator.summarize_fees(fees),
        }

    @staticmethod
    def preview_allocation(student, amount, strategy=None, selected_keys=None,
                           manual_amounts=None, as_of_date=None):
        """
        Show how a payment would be allocated, without recording anything.

        Args:
            student: Student instance
            amount: Payment amount
            strategy: Allocation strategy (defaults to the school setting)
            selected_keys: Obligation keys to pay; all outstanding when empty
            manual_amounts: For manual strategy: {key: amount}
            as_of_date: Date to evaluate fees on

        Returns:
            dict: Allocation result (see PaymentAllocator.allocate)
        """
        if not strategy:
            strategy = FinancialSettings.get_instance().default_allocation_strategy

        fees = FeeCollectionService.get_student_fees(student, as_of_date)
        selected = set(selected_keys or [])
        outstanding = [
            fee for fee in fees
            if fee['outstanding_amount'] > 0 and (not selected or fee['key'] in selected)
        ]

        return PaymentAllocator.allocate(amount, outstanding, strategy, manual_amounts)

    @staticmethod
    @transaction.atomic
    def collect_payment(student, payment_data):
        """
        Record a payment against a student's outstanding fees.

        Args:
            student: Student instance
            payment_data (dict):
                Required:
                    - amount: Decimal
                    - payment_mode: 'CASH', 'UPI', ...
                Optional:
                    - payment_date: Date (defaults to school today)
                    - strategy: allocation strategy
                    - selected_keys: list of '<fee_head_id>:<fee_term_id>'
                    - manual_amounts: {key: amount}
                    - transaction_reference: str
                    - notes: str

        Returns:
            dict: {'collection': FeeCollection, 'allocation': dict, 'unallocated': Decimal}

        Raises:
            ValidationError: Invalid data or nothing to allocate

        Example:
            result = FeeCollectionService.collect_payment(student, {
                'amount': Decimal('600.00'),
                'payment_mode': 'UPI',
                'transaction_reference': 'UPI-4471',
            })
            print(result['collection'].receipt_number)
        """
        validation = validate_payment_data(payment_data)
        if not validation['valid']:
            raise ValidationError(validation['errors'])
        for warning in validation['warnings']:
            logger.warning(f"Collection for {student.admission_number}: {warning}")

        # Serialize concurrent collections for the same student
        student = Student.objects.select_for_update().get(pk=student.pk)

        payment_date = payment_data.get('payment_date') or get_school_today()
        allocation = FeeCollectionService.preview_allocation(
            student,
            payment_data['amount'],
            payment_data.get('strategy'),
            payment_data.get('selected_keys'),
            payment_data.get('manual_amounts'),
            as_of_date=payment_date,
        )

        if allocation['total_allocated'] <= 0:
            raise ValidationError("Nothing to collect: the selected fees have no outstanding balance")

        collection = FeeCollection.objects.create(
            student=student,
            payment_date=payment_date,
            payment_mode=payment_data['payment_mode'],
            transaction_reference=payment_data.get('transaction_reference', ''),
            total_amount=allocation['total_allocated'],
            allocation_strategy=allocation['strategy'],
            notes=payment_data.get('notes', ''),
        )

        for line in allocation['allocations']:
            FeeCollectionItem.objects.create(
                collection=collection,
                fee_head_id=line['fee_head_id'],
                fee_term_id=line['fee_term_id'],
                amount=line['allocated_amount'],
            )

        logger.info(
            f"Recorded collection {collection.receipt_number} for {student.admission_number}: "
            f"{collection.total_amount} across {len(allocation['allocations'])} fee(s)"
        )
        if allocation['unallocated'] > 0:
            logger.warning(
                f"Collection {collection.receipt_number}: {allocation['unallocated']} "
                f"of {allocation['payment_amount']} could not be allocated"
            )

        return {
            'collection': collection,
            'allocation': allocation,
            'unallocated': allocation['unallocated'],
        }

    @staticmethod
    @transaction.atomic
    def cancel_collection(collection, reason, cancelled_by=None):
        """
        Cancel a collection. Its lines stay on record but no longer count
        as paid.

        Raises:
            ValidationError: Already cancelled or no reason given
        """
        collection = FeeCollection.objects.select_for_update().get(pk=collection.pk)

        if collection.status == 'CANCELLED':
            raise ValidationError("Collection is already cancelled")
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")

        collection.status = 'CANCELLED'
        collection.cancelled_at = timezone.now()
        collection.cancellation_reason = reason.strip()
        collection.save()

        logger.warning(
            f"Cancelled collection {collection.receipt_number}: {reason} "
            f"(by {cancelled_by or 'System'})"
        )
        return collection

    @staticmethod
    def send_collection_receipt(collection, client=None):
        """
        Send a receipt summary to the guardian over WhatsApp.

        Returns:
            MessageLog or None when no guardian number is on file
        """
        settings = FinancialSettings.get_instance()
        student = collection.student
        number = student.get_reminder_number()
        if not number:
            logger.info(f"No guardian number for {student.admission_number}; receipt not sent")
            return None

        lines = [
            f"- {item.fee_head.name} ({item.fee_term.name}): {settings.format_currency(item.amount)}"
            for item in collection.items.select_related('fee_head', 'fee_term')
        ]
        body = "\n".join([
            f"Payment received for {student.get_full_name()}.",
            f"Receipt: {collection.receipt_number}",
            f"Amount: {settings.format_currency(collection.total_amount)}",
            *lines,
            "Thank you.",
        ])
        return MessagingService.send_text(
            number, body,
            recipient_name=student.guardian_name,
            category='FEE_RECEIPT',
            client=client,
        )


# =============================================================================
# REMINDER SERVICE
# =============================================================================

class ReminderService:
    """Generation and delivery of fee reminders."""

    @staticmethod
    def get_students():
        return Student.objects.filter(
            enrollment_status='ACTIVE',
            school_class__isnull=False,
        ).select_related('school_class')

    @staticmethod
    def build_reminders(student, fees, settings):
        """Reminder dicts for one student's computed fees."""
        return ReminderGenerator.generate(
            fees,
            amount_formatter=settings.format_currency,
            student_name=student.get_full_name(),
            **settings.get_reminder_thresholds(),
        )

    @staticmethod
    def generate_reminders(students=None, as_of_date=None, dry_run=False):
        """
        Create reminders for overdue fees.

        A tier is reminded at most once per obligation; reruns only add
        reminders for newly reached tiers.

        Args:
            students: Students to check (defaults to all active students)
            as_of_date: Date to evaluate on
            dry_run: Build reminders without saving them

        Returns:
            list: FeeReminder instances (unsaved when dry_run)
        """
        settings = FinancialSettings.get_instance()
        if not settings.send_overdue_reminders:
            logger.info("Overdue reminders are disabled in financial settings")
            return []

        if students is None:
            students = ReminderService.get_students()

        students = list(students)
        existing = {
            (str(student_id), str(head_id), str(term_id), reminder_type)
            for student_id, head_id, term_id, reminder_type in FeeReminder.objects.filter(
                student__in=students
            ).values_list('student_id', 'fee_head_id', 'fee_term_id', 'reminder_type')
        }

        created = []
        for student, fees in FeeCollectionService.iter_students_fees(students, as_of_date, settings):
            for data in ReminderService.build_reminders(student, fees, settings):
                identity = (str(student.pk), data['fee_head_id'], data['fee_term_id'], data['reminder_type'])
                if identity in existing:
                    continue

                reminder = FeeReminder(
                    student=student,
                    fee_head_id=data['fee_head_id'],
                    fee_term_id=data['fee_term_id'],
                    reminder_type=data['reminder_type'],
                    days_overdue=data['days_overdue'],
                    outstanding_amount=data['outstanding_amount'],
                    message=data['message'],
                )
                if not dry_run:
                    reminder.save()
                created.append(reminder)

        logger.info(
            f"{'Would create' if dry_run else 'Created'} {len(created)} fee reminder(s)"
        )
        return created

    @staticmethod
    def get_template_variables(reminder):
        """Positional variables for the reminder template."""
        settings = FinancialSettings.get_instance()
        return {
            '1': reminder.student.get_full_name(),
            '2': settings.format_currency(reminder.outstanding_amount),
            '3': reminder.fee_head.name,
            '4': reminder.fee_term.name,
            '5': str(reminder.days_overdue),
        }

    @staticmethod
    def send_reminder(reminder, client=None):
        """
        Deliver one reminder over WhatsApp.

        Uses the configured template when one is set, plain text otherwise.
        Failures are recorded on the reminder.

        Returns:
            FeeReminder: Updated reminder
        """
        if reminder.status not in ('PENDING', 'FAILED'):
            raise ValidationError(f"Reminder already {reminder.get_status_display().lower()}")

        student = reminder.student
        number = student.get_reminder_number()
        if not number:
            reminder.status = 'FAILED'
            reminder.error_message = "No guardian WhatsApp number on file"
            reminder.save()
            logger.warning(f"Reminder {reminder.pk} not sent: no number for {student.admission_number}")
            return reminder

        settings = FinancialSettings.get_instance()
        if settings.reminder_template_name:
            log = MessagingService.send_template(
                number,
                settings.reminder_template_name,
                settings.reminder_template_language,
                ReminderService.get_template_variables(reminder),
                body=reminder.message,
                recipient_name=student.guardian_name,
                category='FEE_REMINDER',
                client=client,
            )
        else:
            log = MessagingService.send_text(
                number,
                reminder.message,
                recipient_name=student.guardian_name,
                category='FEE_REMINDER',
                client=client,
            )

        reminder.message_log = log
        if log.status == 'FAILED':
            reminder.status = 'FAILED'
            reminder.error_message = log.error_message
        else:
            reminder.status = 'SENT'
            reminder.sent_at = log.sent_at
            reminder.error_message = ''
        reminder.save()
        return reminder

    @staticmethod
    def send_pending_reminders(client=None, limit=None):
        """
        Send all pending reminders.

        Returns:
            dict: {'sent', 'failed', 'total'}

        Raises:
            WhatsAppConfigurationError: Credentials missing
        """
        results = {'sent': 0, 'failed': 0, 'total': 0}

        settings = FinancialSettings.get_instance()
        if not settings.whatsapp_reminders_enabled:
            logger.info("WhatsApp reminders are disabled in financial settings")
            return results

        pending = FeeReminder.objects.filter(status='PENDING').select_related(
            'student', 'fee_head', 'fee_term'
        ).order_by('created_at')
        if limit:
            pending = pending[:limit]

        client = client or WhatsAppClient()

        for reminder in pending:
            ReminderService.send_reminder(reminder, client=client)
            results['total'] += 1
            if reminder.status == 'SENT':
                results['sent'] += 1
            else:
                results['failed'] += 1

        logger.info(f"Sent {results['sent']} of {results['total']} pending reminder(s)")
        return results
