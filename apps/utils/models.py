# utils/models.py

"""
Base model for School Management System with audit trail fields
and timezone-aware timestamp handling.

Key Features:
- UUID primary keys
- Timestamps set in the school's operational timezone
- User and IP tracking from the thread-local request context
- Change reason tracking
"""

from django.db import models
import uuid
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# BASE MODEL - SCHOOL-SPECIFIC DATA
# =============================================================================

class BaseModel(models.Model):
    """
    Base model with audit trail fields.

    Features:
    - Automatic user tracking (who created/updated)
    - Real IP address tracking (where operations came from)
    - Change reason tracking (why changes were made)
    - School timezone-aware timestamps (when operations happened)

    The user and IP are read from the request context populated by
    ``AuditContextMiddleware`` (or ``RequestContext`` in management commands).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    created_at = models.DateTimeField(
        "Created At",
        db_index=True,
        help_text="When this record was created (in school's operational timezone)"
    )
    updated_at = models.DateTimeField(
        "Updated At",
        db_index=True,
        help_text="When this record was last updated (in school's operational timezone)"
    )

    # CharField rather than FK so records never depend on the auth tables
    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who last updated this record"
    )

    created_from_ip = models.GenericIPAddressField("Created From IP", null=True, blank=True)
    updated_from_ip = models.GenericIPAddressField("Updated From IP", null=True, blank=True)

    change_reason = models.CharField(
        "Change Reason",
        max_length=255,
        blank=True,
        null=True,
        help_text="Explanation for why this change was made"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Set timestamps in school timezone and populate the audit fields
        from the current request context before saving.
        """
        from apps.utils.context import get_request_context
        from apps.core.utils import get_school_current_time

        is_new = self._state.adding
        now = get_school_current_time()

        if is_new:
            if not self.created_at:
                self.created_at = now
            if not self.updated_at:
                self.updated_at = now
        else:
            self.updated_at = now

        context = get_request_context()

        if context:
            user = context.get('user')
            ip_address = context.get('ip_address')

            if is_new:
                if user and not self.created_by_id:
                    self.created_by_id = str(user.pk)
                if ip_address and not self.created_from_ip:
                    self.created_from_ip = ip_address

            if user:
                self.updated_by_id = str(user.pk)
            if ip_address:
                self.updated_from_ip = ip_address
        elif is_new:
            logger.debug(
                f"No request context available when creating {self.__class__.__name__}. "
                f"Audit fields will not be populated."
            )

        return super().save(*args, **kwargs)

    def get_created_by(self):
        """
        Get the user who created this record.

        Returns:
            User object or None
        """
        if not self.created_by_id:
            return None
        from django.contrib.auth import get_user_model
        User = get_user_model()
        return User.objects.filter(pk=self.created_by_id).first()
