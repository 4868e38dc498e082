# students/models.py

from django.db import models
from django.core.exceptions import ValidationError
from apps.utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# SCHOOL CLASS MODEL
# =============================================================================

class SchoolClass(BaseModel):
    """A class/section that fee structures are defined for."""

    name = models.CharField("Class Name", max_length=50)
    section = models.CharField("Section", max_length=10, blank=True)
    display_order = models.PositiveIntegerField("Display Order", default=0)
    is_active = models.BooleanField("Is Active", default=True)

    class Meta:
        ordering = ['display_order', 'name', 'section']
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        constraints = [
            models.UniqueConstraint(fields=['name', 'section'], name='unique_class_section'),
        ]

    def __str__(self):
        if self.section:
            return f"{self.name} - {self.section}"
        return self.name


# =============================================================================
# STUDENT MODEL
# =============================================================================

class Student(BaseModel):
    """Student details needed for fee computation and parent messaging"""

    # -------------------------------------------------------------------------
    # CHOICE FIELDS
    # -------------------------------------------------------------------------

    ENROLLMENT_STATUS_CHOICES = (
        ('ACTIVE', 'Active'),
        ('SUSPENDED', 'Suspended'),
        ('GRADUATED', 'Graduated'),
        ('TRANSFERRED', 'Transferred'),
        ('WITHDRAWN', 'Withdrawn'),
    )

    # -------------------------------------------------------------------------
    # IDENTIFICATION & BASIC INFORMATION
    # -------------------------------------------------------------------------

    admission_number = models.CharField(
        "Admission Number",
        max_length=20,
        unique=True,
        db_index=True
    )

    first_name = models.CharField("First Name", max_length=50)
    middle_name = models.CharField("Middle Name", max_length=50, blank=True)
    last_name = models.CharField("Last Name", max_length=50, blank=True)

    school_class = models.ForeignKey(
        SchoolClass,
        verbose_name="Class",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='students',
    )

    enrollment_status = models.CharField(
        "Enrollment Status",
        max_length=20,
        choices=ENROLLMENT_STATUS_CHOICES,
        default='ACTIVE',
        db_index=True
    )

    # -------------------------------------------------------------------------
    # GUARDIAN CONTACT
    # -------------------------------------------------------------------------

    guardian_name = models.CharField("Guardian Name", max_length=100, blank=True)
    guardian_phone = models.CharField("Guardian Phone", max_length=20, blank=True)
    guardian_whatsapp = models.CharField(
        "Guardian WhatsApp Number",
        max_length=20,
        blank=True,
        help_text="Number used for fee reminders (falls back to guardian phone)"
    )

    class Meta:
        ordering = ['admission_number']
        verbose_name = "Student"
        verbose_name_plural = "Students"
        indexes = [
            models.Index(fields=['first_name', 'last_name']),
        ]

    def __str__(self):
        return f"{self.get_full_name()} ({self.admission_number})"

    @property
    def full_name(self):
        return self.get_full_name()

    def get_full_name(self):
        """Get student's full name"""
        parts = [self.first_name, self.middle_name, self.last_name]
        return ' '.join(part for part in parts if part)

    def is_active(self):
        """Check if student is currently active"""
        return self.enrollment_status == 'ACTIVE'

    def get_reminder_number(self):
        """Guardian number reminders are sent to, or '' when none is on file."""
        return (self.guardian_whatsapp or self.guardian_phone or '').strip()

    def clean(self):
        super().clean()
        if self.enrollment_status == 'ACTIVE' and not self.school_class_id:
            raise ValidationError({'school_class': "Active students must be assigned to a class"})
