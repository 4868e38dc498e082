"""
URL configuration for scholaris project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Django admin
    path('admin/', admin.site.urls),

    # Fees app - fee computation, collection, reminders
    path('fees/', include(('apps.fees.urls', 'fees'), namespace='fees')),

    # Communications app - WhatsApp webhook
    path('communications/', include(('apps.communications.urls', 'communications'), namespace='communications')),
]
