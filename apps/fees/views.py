# fees/views.py

"""
Fee Management Views

JSON endpoints for:
- Student fee summary and allocation preview
- Payment collection and cancellation
- Fee reminders (list, generate, send)
- Collection dashboard and outstanding dues export

Errors come back as {"success": False, "message": ...}
"""

from django.shortcuts import get_object_or_404
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse, HttpResponse
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_http_methods
from datetime import datetime
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
import logging

from .models import FeeCollection, FeeReminder
from .forms import PaymentCollectionForm, CollectionCancelForm
from .services import FeeCollectionService, ReminderService
from .stats import get_collection_summary, get_monthly_collection_targets, get_outstanding_dues
from apps.communications.whatsapp import WhatsAppConfigurationError
from apps.core.utils import paginate_queryset, parse_filters, log_user_action
from apps.students.models import Student

logger = logging.getLogger(__name__)


# =============================================================================
# UTILITY FUNCTIONS (View-specific only)
# =============================================================================

def _error(message, status=400, errors=None):
    payload = {'success': False, 'message': message}
    if errors:
        payload['errors'] = errors
    return JsonResponse(payload, status=status)


def _validation_error(e):
    if hasattr(e, 'message_dict'):
        errors = e.message_dict
        message = '; '.join(msg for messages in errors.values() for msg in messages)
        return _error(message, errors=errors)
    return _error('; '.join(e.messages))


def _get_as_of_date(request):
    """
    Optional ?as_of=YYYY-MM-DD.

    Raises:
        ValidationError: Unparseable date
    """
    raw = request.GET.get('as_of', '').strip()
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError(f"Invalid as_of date: {raw}")
    return value


def _serialize_student(student):
    return {
        'id': str(student.pk),
        'admission_number': student.admission_number,
        'name': student.get_full_name(),
        'class': str(student.school_class) if student.school_class_id else None,
    }


def _serialize_collection(collection):
    collected_by = collection.get_created_by()
    return {
        'id': str(collection.pk),
        'receipt_number': collection.receipt_number,
        'student': _serialize_student(collection.student),
        'payment_date': collection.payment_date,
        'payment_mode': collection.payment_mode,
        'transaction_reference': collection.transaction_reference,
        'total_amount': collection.total_amount,
        'allocation_strategy': collection.allocation_strategy,
        'status': collection.status,
        'cancelled_at': collection.cancelled_at,
        'cancellation_reason': collection.cancellation_reason,
        'collected_by': collected_by.get_username() if collected_by else None,
        'items': [
            {
                'fee_head': item.fee_head.name,
                'fee_term': item.fee_term.name,
                'amount': item.amount,
            }
            for item in collection.items.select_related('fee_head', 'fee_term')
        ],
    }


def _serialize_reminder(reminder):
    return {
        'id': str(reminder.pk),
        'student': _serialize_student(reminder.student),
        'fee_head': reminder.fee_head.name,
        'fee_term': reminder.fee_term.name,
        'reminder_type': reminder.reminder_type,
        'days_overdue': reminder.days_overdue,
        'outstanding_amount': reminder.outstanding_amount,
        'message': reminder.message,
        'status': reminder.status,
        'sent_at': reminder.sent_at,
        'error_message': reminder.error_message,
    }


# =============================================================================
# STUDENT FEES
# =============================================================================

@login_required
@require_http_methods(["GET"])
def student_fee_summary(request, student_pk):
    """All computed fees of a student, with totals and installment schedules."""
    student = get_object_or_404(Student.objects.select_related('school_class'), pk=student_pk)

    try:
        result = FeeCollectionService.get_student_fee_summary(student, _get_as_of_date(request))
    except ValidationError as e:
        return _validation_error(e)
    except Exception as e:
        logger.error(f"Error computing fees for {student.admission_number}: {e}", exc_info=True)
        return _error('Could not compute fees', status=500)

    return JsonResponse({
        'success': True,
        'student': _serialize_student(student),
        'fees': result['fees'],
        'summary': result['summary'],
    })


@login_required
@require_http_methods(["POST"])
def allocation_preview(request, student_pk):
    """How a payment would be split, without recording it."""
    student = get_object_or_404(Student, pk=student_pk)
    form = PaymentCollectionForm(request.POST)
    if not form.is_valid():
        return _error('Invalid payment details', errors=form.errors.get_json_data())

    data = form.get_payment_data()
    try:
        allocation = FeeCollectionService.preview_allocation(
            student,
            data['amount'],
            data.get('strategy'),
            data.get('selected_keys'),
            data.get('manual_amounts'),
            as_of_date=data.get('payment_date'),
        )
    except ValidationError as e:
        return _validation_error(e)

    return JsonResponse({'success': True, 'allocation': allocation})


# =============================================================================
# COLLECTIONS
# =============================================================================

@login_required
@require_http_methods(["POST"])
def collect_payment(request, student_pk):
    """Record a payment and optionally send the receipt over WhatsApp."""
    student = get_object_or_404(Student, pk=student_pk)
    form = PaymentCollectionForm(request.POST)
    if not form.is_valid():
        return _error('Invalid payment details', errors=form.errors.get_json_data())

    try:
        result = FeeCollectionService.collect_payment(student, form.get_payment_data())
    except ValidationError as e:
        return _validation_error(e)
    except Exception as e:
        logger.error(f"Error collecting payment for {student.admission_number}: {e}", exc_info=True)
        return _error('Could not record the payment', status=500)

    collection = result['collection']
    log_user_action(request.user, 'Fee Collected', {
        'receipt': collection.receipt_number,
        'amount': str(collection.total_amount),
    })

    receipt_status = None
    if form.cleaned_data.get('send_receipt'):
        try:
            log = FeeCollectionService.send_collection_receipt(collection)
            receipt_status = log.status if log else 'NO_NUMBER'
        except WhatsAppConfigurationError as e:
            logger.warning(f"Receipt {collection.receipt_number} not sent: {e}")
            receipt_status = 'NOT_CONFIGURED'

    return JsonResponse({
        'success': True,
        'message': f"Payment recorded. Receipt {collection.receipt_number}",
        'collection': _serialize_collection(collection),
        'allocation': result['allocation'],
        'unallocated': result['unallocated'],
        'receipt_status': receipt_status,
    }, status=201)


@login_required
@require_http_methods(["GET"])
def collection_detail(request, pk):
    collection = get_object_or_404(FeeCollection.objects.select_related('student__school_class'), pk=pk)
    return JsonResponse({'success': True, 'collection': _serialize_collection(collection)})


@login_required
@require_http_methods(["POST"])
def cancel_collection(request, pk):
    collection = get_object_or_404(FeeCollection, pk=pk)
    form = CollectionCancelForm(request.POST)
    if not form.is_valid():
        return _error('A cancellation reason is required', errors=form.errors.get_json_data())

    try:
        collection = FeeCollectionService.cancel_collection(
            collection, form.cleaned_data['reason'], cancelled_by=request.user.get_username()
        )
    except ValidationError as e:
        return _validation_error(e)

    log_user_action(request.user, 'Collection Cancelled', {'receipt': collection.receipt_number}, level='WARNING')
    return JsonResponse({'success': True, 'collection': _serialize_collection(collection)})


# =============================================================================
# REMINDERS
# =============================================================================

@login_required
@require_http_methods(["GET"])
def reminder_list(request):
    filters = parse_filters(request, ['status', 'reminder_type', 'student'])

    reminders = FeeReminder.objects.select_related(
        'student__school_class', 'fee_head', 'fee_term'
    )
    if filters['status']:
        reminders = reminders.filter(status=filters['status'])
    if filters['reminder_type']:
        reminders = reminders.filter(reminder_type=filters['reminder_type'])
    if filters['student']:
        reminders = reminders.filter(student__admission_number=filters['student'])

    page_obj, paginator = paginate_queryset(request, reminders)

    return JsonResponse({
        'success': True,
        'reminders': [_serialize_reminder(reminder) for reminder in page_obj],
        'page': page_obj.number,
        'num_pages': paginator.num_pages,
        'count': paginator.count,
    })


@login_required
@require_http_methods(["POST"])
def generate_reminders(request):
    """Create reminders for newly reached overdue tiers."""
    dry_run = request.POST.get('dry_run', '').lower() in ('1', 'true', 'yes')
    try:
        reminders = ReminderService.generate_reminders(
            as_of_date=_get_as_of_date(request), dry_run=dry_run
        )
    except ValidationError as e:
        return _validation_error(e)

    log_user_action(request.user, 'Reminders Generated', {'count': len(reminders), 'dry_run': dry_run})
    return JsonResponse({
        'success': True,
        'dry_run': dry_run,
        'created': len(reminders),
        'reminders': [
            {
                'student': reminder.student.admission_number,
                'fee_head_id': str(reminder.fee_head_id),
                'fee_term_id': str(reminder.fee_term_id),
                'reminder_type': reminder.reminder_type,
                'days_overdue': reminder.days_overdue,
                'outstanding_amount': reminder.outstanding_amount,
            }
            for reminder in reminders
        ],
    })


@login_required
@require_http_methods(["POST"])
def send_reminders(request):
    """Send pending reminders over WhatsApp."""
    try:
        limit = int(request.POST.get('limit') or 0) or None
    except ValueError:
        return _error('Limit must be a number')

    try:
        results = ReminderService.send_pending_reminders(limit=limit)
    except WhatsAppConfigurationError as e:
        return _error(str(e), status=503)

    log_user_action(request.user, 'Reminders Sent', results)
    return JsonResponse({'success': True, **results})


@login_required
@require_http_methods(["POST"])
def send_reminder(request, pk):
    reminder = get_object_or_404(
        FeeReminder.objects.select_related('student', 'fee_head', 'fee_term'), pk=pk
    )
    try:
        reminder = ReminderService.send_reminder(reminder)
    except ValidationError as e:
        return _validation_error(e)
    except WhatsAppConfigurationError as e:
        return _error(str(e), status=503)

    return JsonResponse({'success': reminder.status == 'SENT', 'reminder': _serialize_reminder(reminder)})


# =============================================================================
# DASHBOARD & EXPORTS
# =============================================================================

@login_required
@require_http_methods(["GET"])
def collection_dashboard(request):
    try:
        as_of_date = _get_as_of_date(request)
        summary = get_collection_summary(as_of_date)
        targets = get_monthly_collection_targets(as_of_date)
    except ValidationError as e:
        return _validation_error(e)
    except Exception as e:
        logger.error(f"Error building collection dashboard: {e}", exc_info=True)
        return _error('Could not load dashboard', status=500)

    return JsonResponse({'success': True, 'summary': summary, 'targets': targets})


@login_required
@require_http_methods(["GET"])
def export_outstanding_excel(request):
    """Export outstanding dues to Excel"""
    try:
        as_of_date = _get_as_of_date(request)
    except ValidationError as e:
        return _validation_error(e)

    rows = get_outstanding_dues(as_of_date)

    # Create workbook
    wb = Workbook()
    ws = wb.active
    ws.title = "Outstanding Dues"

    # Define styles
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF", size=12)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

    border_style = Border(
        left=Side(style='thin', color='000000'),
        right=Side(style='thin', color='000000'),
        top=Side(style='thin', color='000000'),
        bottom=Side(style='thin', color='000000')
    )

    # Title row
    ws.merge_cells('A1:L1')
    title_cell = ws['A1']
    title_cell.value = "Outstanding Fee Dues"
    title_cell.font = Font(bold=True, size=16, color="4472C4")
    title_cell.alignment = Alignment(horizontal="center", vertical="center")

    ws.merge_cells('A2:L2')
    subtitle_cell = ws['A2']
    subtitle_text = f"Generated on: {datetime.now().strftime('%Y-%m-%d %H:%M')}"
    if as_of_date:
        subtitle_text += f" | As of: {as_of_date.isoformat()}"
    subtitle_cell.value = subtitle_text
    subtitle_cell.font = Font(size=10, italic=True)
    subtitle_cell.alignment = Alignment(horizontal="center")

    ws.append([])

    headers = [
        '#', 'Admission No', 'Student', 'Class', 'Guardian Phone', 'Fee Head', 'Term',
        'Due Date', 'Days Overdue', 'Final Amount', 'Paid', 'Outstanding'
    ]
    ws.append(headers)

    for cell in ws[4]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = border_style

    total_outstanding = 0
    for idx, row in enumerate(rows, start=1):
        student = row['student']
        ws.append([
            idx,
            student.admission_number,
            student.get_full_name(),
            str(student.school_class) if student.school_class_id else '',
            student.get_reminder_number(),
            row['fee_head_name'],
            row['fee_term_name'],
            row['due_date'].strftime('%Y-%m-%d'),
            row['overdue_days'],
            float(row['final_amount']),
            float(row['paid_amount']),
            float(row['outstanding_amount']),
        ])
        total_outstanding += row['outstanding_amount']

        current_row = ws.max_row
        for cell in ws[current_row]:
            cell.border = border_style
            cell.alignment = Alignment(vertical="center", wrap_text=True)
        for column in ('J', 'K', 'L'):
            ws[f'{column}{current_row}'].number_format = '#,##0.00'

    column_widths = {
        'A': 5, 'B': 15, 'C': 25, 'D': 12, 'E': 16, 'F': 18,
        'G': 15, 'H': 12, 'I': 12, 'J': 14, 'K': 14, 'L': 14
    }
    for col, width in column_widths.items():
        ws.column_dimensions[col].width = width

    # Summary at bottom
    summary_row = ws.max_row + 2
    ws[f'A{summary_row}'] = 'Total Outstanding:'
    ws[f'C{summary_row}'] = float(total_outstanding)
    ws[f'C{summary_row}'].number_format = '#,##0.00'
    ws[f'A{summary_row}'].font = Font(bold=True)
    ws[f'C{summary_row}'].font = Font(bold=True)

    ws[f'A{summary_row + 1}'] = 'Students with dues:'
    ws[f'C{summary_row + 1}'] = len({row['student'].pk for row in rows})
    ws[f'A{summary_row + 1}'].font = Font(bold=True)

    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    filename = f"outstanding_dues_{datetime.now().strftime('%Y%m%d_%H%M')}.xlsx"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    wb.save(response)

    log_user_action(request.user, 'Outstanding Dues Exported', {'rows': len(rows)})
    return response
