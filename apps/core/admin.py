# core/admin.py

from django.contrib import admin
from .models import FinancialSettings


@admin.register(FinancialSettings)
class FinancialSettingsAdmin(admin.ModelAdmin):
    list_display = ['school_currency', 'late_fee_enabled', 'default_late_fee_type', 'grace_period_days']
    readonly_fields = ['created_at', 'updated_at', 'created_by_id', 'updated_by_id']

    fieldsets = (
        ('Currency', {
            'fields': ('school_currency', 'currency_position', 'decimal_places', 'use_thousand_separator')
        }),
        ('Receipts', {
            'fields': ('receipt_prefix', 'include_year_in_receipt_number')
        }),
        ('Late Fees', {
            'fields': (
                'late_fee_enabled', 'default_late_fee_type', 'default_late_fee_value',
                'default_max_late_fee', 'grace_period_days'
            )
        }),
        ('Discounts & Allocation', {
            'fields': ('apply_discounts', 'apply_concessions', 'default_allocation_strategy')
        }),
        ('Reminders', {
            'fields': (
                'send_overdue_reminders', 'first_reminder_days', 'second_reminder_days',
                'final_reminder_days', 'whatsapp_reminders_enabled',
                'reminder_template_name', 'reminder_template_language'
            )
        }),
        ('Audit', {
            'fields': ('created_at', 'updated_at', 'created_by_id', 'updated_by_id'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        # Singleton: created on first access
        return not FinancialSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
