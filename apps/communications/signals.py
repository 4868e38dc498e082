# communications/signals.py

from django.dispatch import Signal

# Sent when a MessageLog delivery status moves forward.
# Arguments: message_log, status
message_status_changed = Signal()
