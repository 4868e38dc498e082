# communications/urls.py

from django.urls import path
from apps.communications import views

app_name = 'communications'

urlpatterns = [
    path('whatsapp/webhook/', views.whatsapp_webhook, name='whatsapp_webhook'),
]
