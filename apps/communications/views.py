# communications/views.py

"""
Meta WhatsApp webhook.

GET  - subscription verification (hub.mode / hub.verify_token / hub.challenge)
POST - delivery status callbacks, signed with X-Hub-Signature-256
"""

import hashlib
import hmac
import json
import logging

from django.conf import settings
from django.http import HttpResponse, HttpResponseForbidden, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.communications.services import MessagingService

logger = logging.getLogger(__name__)


def verify_signature(body, signature_header, app_secret):
    """Check 'sha256=<hex digest>' against an HMAC-SHA256 of the raw body."""
    if not signature_header or not signature_header.startswith('sha256='):
        return False
    expected = hmac.new(app_secret.encode('utf-8'), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature_header)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def whatsapp_webhook(request):
    """Webhook endpoint registered in the Meta app dashboard."""
    if request.method == 'GET':
        mode = request.GET.get('hub.mode')
        token = request.GET.get('hub.verify_token')
        challenge = request.GET.get('hub.challenge', '')
        verify_token = getattr(settings, 'META_WHATSAPP_WEBHOOK_VERIFY_TOKEN', '')

        if mode == 'subscribe' and verify_token and token == verify_token:
            logger.info("WhatsApp webhook verified")
            return HttpResponse(challenge, content_type='text/plain')

        logger.warning("WhatsApp webhook verification failed")
        return HttpResponseForbidden('Verification failed')

    app_secret = getattr(settings, 'META_WHATSAPP_APP_SECRET', '')
    if app_secret:
        signature = request.headers.get('X-Hub-Signature-256', '')
        if not verify_signature(request.body, signature, app_secret):
            logger.warning("Rejected WhatsApp webhook with invalid signature")
            return HttpResponseForbidden('Invalid signature')
    elif not settings.DEBUG:
        logger.error("META_WHATSAPP_APP_SECRET is not configured; rejecting webhook")
        return HttpResponseForbidden('Webhook signature cannot be verified')
    else:
        logger.warning("META_WHATSAPP_APP_SECRET not set; accepting unsigned webhook in DEBUG")

    try:
        payload = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        return JsonResponse({'status': 'error', 'message': 'Invalid JSON'}, status=400)

    if not isinstance(payload, dict):
        return JsonResponse({'status': 'error', 'message': 'Invalid payload'}, status=400)

    updated = MessagingService.process_webhook_payload(payload)
    return JsonResponse({'status': 'ok', 'updated': updated})
