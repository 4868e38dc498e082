# communications/admin.py

from django.contrib import admin
from .models import MessageLog


@admin.register(MessageLog)
class MessageLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'recipient', 'recipient_name', 'category', 'message_type', 'status']
    list_filter = ['status', 'category', 'message_type']
    search_fields = ['recipient', 'recipient_name', 'provider_message_id', 'template_name']
    readonly_fields = [
        'provider_message_id', 'status', 'error_code', 'error_message',
        'sent_at', 'delivered_at', 'read_at', 'failed_at', 'created_at', 'updated_at',
    ]

    def has_add_permission(self, request):
        # Logs are written by MessagingService only
        return False
