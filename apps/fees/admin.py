# fees/admin.py

from django.contrib import admin
from .models import (
    FeeHead, FeeTerm, FeeStructure, StudentConcession,
    FeeCollection, FeeCollectionItem, FeeReminder
)
from .forms import FeeStructureForm, StudentConcessionForm


@admin.register(FeeHead)
class FeeHeadAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'display_order', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'code']


@admin.register(FeeTerm)
class FeeTermAdmin(admin.ModelAdmin):
    list_display = ['name', 'academic_year', 'start_date', 'end_date', 'due_date', 'is_active']
    list_filter = ['academic_year', 'is_active']

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.has_collected_dependents():
            return ['due_date']
        return []


@admin.register(FeeStructure)
class FeeStructureAdmin(admin.ModelAdmin):
    form = FeeStructureForm
    list_display = ['school_class', 'fee_head', 'fee_term', 'amount', 'late_fee_type', 'is_active']
    list_filter = ['fee_term', 'fee_head', 'school_class', 'is_active']
    list_select_related = ['school_class', 'fee_head', 'fee_term']


@admin.register(StudentConcession)
class StudentConcessionAdmin(admin.ModelAdmin):
    form = StudentConcessionForm
    list_display = ['student', 'name', 'concession_type', 'value', 'custom_value', 'status', 'valid_from', 'valid_until']
    list_filter = ['status', 'concession_type']
    search_fields = ['student__admission_number', 'student__first_name', 'student__last_name', 'name']
    filter_horizontal = ['fee_heads', 'fee_terms']


class FeeCollectionItemInline(admin.TabularInline):
    model = FeeCollectionItem
    extra = 0
    can_delete = False
    readonly_fields = ['fee_head', 'fee_term', 'amount']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(FeeCollection)
class FeeCollectionAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'student', 'payment_date', 'payment_mode', 'total_amount', 'status']
    list_filter = ['status', 'payment_mode', 'payment_date']
    search_fields = ['receipt_number', 'transaction_reference', 'student__admission_number']
    readonly_fields = [
        'receipt_number', 'student', 'payment_date', 'payment_mode', 'total_amount',
        'allocation_strategy', 'status', 'cancelled_at', 'cancellation_reason',
    ]
    inlines = [FeeCollectionItemInline]

    def has_add_permission(self, request):
        # Collections are recorded through FeeCollectionService.collect_payment
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(FeeReminder)
class FeeReminderAdmin(admin.ModelAdmin):
    list_display = ['student', 'fee_head', 'fee_term', 'reminder_type', 'days_overdue', 'outstanding_amount', 'status', 'sent_at']
    list_filter = ['status', 'reminder_type']
    search_fields = ['student__admission_number', 'student__first_name', 'student__last_name']
    readonly_fields = ['message_log', 'sent_at', 'error_message']
