# students/admin.py

from django.contrib import admin
from .models import SchoolClass, Student


@admin.register(SchoolClass)
class SchoolClassAdmin(admin.ModelAdmin):
    list_display = ['name', 'section', 'display_order', 'is_active']
    list_filter = ['is_active']
    ordering = ['display_order', 'name']


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ['admission_number', 'get_full_name', 'school_class', 'enrollment_status', 'guardian_whatsapp']
    list_filter = ['enrollment_status', 'school_class']
    search_fields = ['admission_number', 'first_name', 'last_name', 'guardian_name']
    list_select_related = ['school_class']
