# fees/urls.py

from django.urls import path
from . import views

app_name = 'fees'

urlpatterns = [
    # =============================================================================
    # DASHBOARD
    # =============================================================================
    path('', views.collection_dashboard, name='dashboard'),
    path('outstanding/export/', views.export_outstanding_excel, name='export_outstanding_excel'),


    # =============================================================================
    # STUDENT FEES
    # =============================================================================
    path('students/<uuid:student_pk>/', views.student_fee_summary, name='student_fee_summary'),
    path('students/<uuid:student_pk>/preview/', views.allocation_preview, name='allocation_preview'),
    path('students/<uuid:student_pk>/collect/', views.collect_payment, name='collect_payment'),


    # =============================================================================
    # COLLECTIONS
    # =============================================================================
    path('collections/<uuid:pk>/', views.collection_detail, name='collection_detail'),
    path('collections/<uuid:pk>/cancel/', views.cancel_collection, name='cancel_collection'),


    # =============================================================================
    # REMINDERS
    # =============================================================================
    path('reminders/', views.reminder_list, name='reminder_list'),
    path('reminders/generate/', views.generate_reminders, name='generate_reminders'),
    path('reminders/send/', views.send_reminders, name='send_reminders'),
    path('reminders/<uuid:pk>/send/', views.send_reminder, name='send_reminder'),
]
