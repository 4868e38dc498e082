# fees/models.py

"""
Student Fee Management Models

Fee configuration and collection records:
- Fee Heads and Fee Terms
- Class-wise Fee Structures (late fee, discount and installment policy)
- Student Concessions
- Fee Collections (receipts) and their per-head collection lines
- Fee Reminders sent to guardians

Computed fees and payment allocations are never stored; they are
produced on demand by fees.calculators.

All user tracking handled automatically by BaseModel
"""

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal
import logging

from apps.utils.models import BaseModel
from apps.students.models import Student, SchoolClass

logger = logging.getLogger(__name__)


# =============================================================================
# FEE CONFIGURATION
# =============================================================================

class FeeHead(BaseModel):
    """A named category of charge (tuition, transport, etc.)"""

    name = models.CharField("Fee Head", max_length=100, unique=True)
    code = models.CharField(
        "Fee Code",
        max_length=20,
        blank=True,
        db_index=True,
        help_text="Short code shown on receipts (e.g., TUI, TRN)"
    )
    description = models.TextField("Description", blank=True)
    display_order = models.PositiveIntegerField("Display Order", default=0)
    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Fee Head"
        verbose_name_plural = "Fee Heads"
        ordering = ['display_order', 'name']

    def __str__(self):
        return self.name


class FeeTerm(BaseModel):
    """A billing period (e.g., a quarter) within an academic year"""

    name = models.CharField("Term Name", max_length=100)
    academic_year = models.CharField(
        "Academic Year",
        max_length=20,
        db_index=True,
        help_text="e.g., 2024-25"
    )
    start_date = models.DateField("Start Date")
    end_date = models.DateField("End Date")
    due_date = models.DateField("Due Date", db_index=True)
    order = models.PositiveIntegerField("Order", default=1)
    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Fee Term"
        verbose_name_plural = "Fee Terms"
        ordering = ['academic_year', 'order', 'due_date']
        constraints = [
            models.UniqueConstraint(fields=['academic_year', 'name'], name='unique_term_per_year'),
        ]

    def __str__(self):
        return f"{self.name} ({self.academic_year})"

    def clean(self):
        super().clean()
        errors = {}
        if self.start_date and self.end_date and self.end_date < self.start_date:
            errors['end_date'] = "End date cannot be before start date"
        if self.start_date and self.due_date and self.due_date < self.start_date:
            errors['due_date'] = "Due date cannot be before the term starts"
        if errors:
            raise ValidationError(errors)

    def has_collected_dependents(self):
        """Whether a structure inheriting this term's due date has collections."""
        return any(
            structure.has_collections()
            for structure in self.structures.filter(due_date__isnull=True)
        )

    def save(self, *args, **kwargs):
        """Refuse due date edits once fees inheriting it have been collected."""
        if not self._state.adding:
            original_due_date = FeeTerm.objects.filter(pk=self.pk).values_list('due_date', flat=True).first()
            if (original_due_date is not None
                    and original_due_date != self.due_date
                    and self.has_collected_dependents()):
                logger.warning(
                    f"Refused edit of due_date on fee term {self.pk}: collections exist"
                )
                raise ValidationError(
                    "Fees due on this term have already been collected; "
                    "its due date can no longer be changed."
                )
        super().save(*args, **kwargs)


class FeeStructure(BaseModel):
    """
    Amount charged to a class for one fee head in one fee term, with the
    late fee, discount and installment policy that applies to it.

    Once a collection has been recorded against it, the amount and due
    date are locked; corrections go through a new term or a concession.
    """

    LATE_FEE_TYPE_CHOICES = [
        ('DEFAULT', 'School Default'),
        ('NONE', 'No Late Fee'),
        ('FLAT', 'Flat Amount (one-off)'),
        ('PER_DAY', 'Fixed Amount Per Day'),
        ('PERCENTAGE', 'Percentage Per Month'),
        ('COMPOUND', 'Compound Percentage Per Day'),
    ]

    # Fields that cannot change once money has been collected
    LOCKED_FIELDS = ('amount', 'due_date', 'fee_head_id', 'fee_term_id', 'school_class_id')

    # -------------------------------------------------------------------------
    # CORE RELATIONSHIPS
    # -------------------------------------------------------------------------

    fee_head = models.ForeignKey(
        FeeHead,
        verbose_name="Fee Head",
        on_delete=models.PROTECT,
        related_name='structures'
    )
    fee_term = models.ForeignKey(
        FeeTerm,
        verbose_name="Fee Term",
        on_delete=models.PROTECT,
        related_name='structures'
    )
    school_class = models.ForeignKey(
        SchoolClass,
        verbose_name="Class",
        on_delete=models.PROTECT,
        related_name='fee_structures'
    )

    # -------------------------------------------------------------------------
    # AMOUNT & DUE DATE
    # -------------------------------------------------------------------------

    amount = models.DecimalField(
        "Base Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    due_date = models.DateField(
        "Due Date",
        null=True,
        blank=True,
        help_text="Leave blank to use the term's due date"
    )

    # -------------------------------------------------------------------------
    # LATE FEE CONFIGURATION
    # -------------------------------------------------------------------------

    late_fee_type = models.CharField(
        "Late Fee Type",
        max_length=20,
        choices=LATE_FEE_TYPE_CHOICES,
        default='DEFAULT'
    )
    late_fee_value = models.DecimalField(
        "Late Fee Value",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Amount (FLAT, PER_DAY) or percentage (PERCENTAGE, COMPOUND)"
    )
    max_late_fee = models.DecimalField(
        "Maximum Late Fee",
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    # -------------------------------------------------------------------------
    # DISCOUNT CONFIGURATION
    # -------------------------------------------------------------------------

    discount_amount = models.DecimalField(
        "Discount Amount",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Fixed discount; takes precedence over the percentage"
    )
    discount_percentage = models.DecimalField(
        "Discount Percentage",
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00')), MaxValueValidator(Decimal('100.00'))]
    )
    discount_reason = models.CharField("Discount Reason", max_length=255, blank=True)

    # -------------------------------------------------------------------------
    # INSTALLMENTS
    # -------------------------------------------------------------------------

    installment_allowed = models.BooleanField("Installments Allowed", default=False)
    installment_count = models.PositiveIntegerField("Installment Count", default=1)
    installment_interval_days = models.PositiveIntegerField("Days Between Installments", default=30)

    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Fee Structure"
        verbose_name_plural = "Fee Structures"
        ordering = ['fee_term__due_date', 'fee_head__display_order']
        constraints = [
            models.UniqueConstraint(
                fields=['school_class', 'fee_head', 'fee_term'],
                name='unique_structure_per_class_head_term'
            ),
        ]

    def __str__(self):
        return f"{self.school_class} - {self.fee_head} ({self.fee_term}): {self.amount}"

    # -------------------------------------------------------------------------
    # HELPER METHODS
    # -------------------------------------------------------------------------

    def get_due_date(self):
        """Structure-level due date, falling back to the term's due date."""
        return self.due_date or self.fee_term.due_date

    def get_late_fee_policy(self, default_policy=None):
        """
        Resolve the late fee policy, inheriting the school default when
        the structure is set to DEFAULT.
        """
        if self.late_fee_type == 'DEFAULT':
            if default_policy:
                return dict(default_policy)
            return {'late_fee_type': 'NONE', 'late_fee_value': Decimal('0.00'), 'max_late_fee': None}
        return {
            'late_fee_type': self.late_fee_type,
            'late_fee_value': self.late_fee_value,
            'max_late_fee': self.max_late_fee,
        }

    def as_calculation_input(self, default_policy=None):
        """Plain dict consumed by FeeCalculator."""
        data = {
            'id': str(self.pk),
            'fee_head_id': str(self.fee_head_id),
            'fee_head_name': self.fee_head.name,
            'fee_term_id': str(self.fee_term_id),
            'fee_term_name': self.fee_term.name,
            'base_amount': self.amount,
            'due_date': self.get_due_date(),
            'discount_amount': self.discount_amount,
            'discount_percentage': self.discount_percentage,
            'discount_reason': self.discount_reason,
            'installment_allowed': self.installment_allowed,
            'installment_count': self.installment_count,
            'installment_interval_days': self.installment_interval_days,
        }
        data.update(self.get_late_fee_policy(default_policy))
        return data

    def has_collections(self):
        """Whether completed collections exist against this structure."""
        return FeeCollectionItem.objects.filter(
            fee_head_id=self.fee_head_id,
            fee_term_id=self.fee_term_id,
            collection__student__school_class_id=self.school_class_id,
            collection__status='COMPLETED',
        ).exists()

    # -------------------------------------------------------------------------
    # VALIDATION & SAVE
    # -------------------------------------------------------------------------

    def clean(self):
        super().clean()
        errors = {}

        if self.late_fee_type in ('PERCENTAGE', 'COMPOUND') and self.late_fee_value > 100:
            errors['late_fee_value'] = "Late fee percentage must be between 0 and 100"

        if self.installment_allowed and self.installment_count < 1:
            errors['installment_count'] = "Installment count must be at least 1"

        if self.discount_amount and self.amount is not None and self.discount_amount > self.amount:
            errors['discount_amount'] = "Discount cannot exceed the base amount"

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        """Refuse edits to locked fields once fees have been collected."""
        if not self._state.adding:
            original = FeeStructure.objects.filter(pk=self.pk).values(*self.LOCKED_FIELDS).first()
            if original:
                changed = [
                    field for field in self.LOCKED_FIELDS
                    if original[field] != getattr(self, field)
                ]
                if changed and FeeStructure(
                    pk=self.pk,
                    fee_head_id=original['fee_head_id'],
                    fee_term_id=original['fee_term_id'],
                    school_class_id=original['school_class_id'],
                ).has_collections():
                    logger.warning(
                        f"Refused edit of {', '.join(changed)} on fee structure {self.pk}: "
                        f"collections exist"
                    )
                    raise ValidationError(
                        "This fee structure already has collections recorded against it; "
                        "its amount and due date can no longer be changed."
                    )
        super().save(*args, **kwargs)


# =============================================================================
# CONCESSIONS
# =============================================================================

class StudentConcession(BaseModel):
    """A student-specific reduction approved by the school"""

    CONCESSION_TYPE_CHOICES = [
        ('PERCENTAGE', 'Percentage of Base Amount'),
        ('FIXED', 'Fixed Amount'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending Approval'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
        ('SUSPENDED', 'Suspended'),
        ('EXPIRED', 'Expired'),
    ]

    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.CASCADE,
        related_name='concessions'
    )
    name = models.CharField(
        "Concession Name",
        max_length=100,
        help_text="e.g., Sibling Concession, Staff Child"
    )
    concession_type = models.CharField(
        "Concession Type",
        max_length=20,
        choices=CONCESSION_TYPE_CHOICES,
        default='PERCENTAGE'
    )
    value = models.DecimalField(
        "Value",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    custom_value = models.DecimalField(
        "Custom Value",
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Overrides the standard value for this student"
    )
    status = models.CharField(
        "Status",
        max_length=20,
        choices=STATUS_CHOICES,
        default='PENDING',
        db_index=True
    )
    valid_from = models.DateField("Valid From")
    valid_until = models.DateField("Valid Until", null=True, blank=True)

    fee_heads = models.ManyToManyField(
        FeeHead,
        verbose_name="Applicable Fee Heads",
        blank=True,
        related_name='concessions',
        help_text="Leave empty to apply to all fee heads"
    )
    fee_terms = models.ManyToManyField(
        FeeTerm,
        verbose_name="Applicable Fee Terms",
        blank=True,
        related_name='concessions',
        help_text="Leave empty to apply to all fee terms"
    )

    reason = models.TextField("Reason", blank=True)
    approved_by_id = models.CharField("Approved By ID", max_length=50, null=True, blank=True)
    approved_at = models.DateTimeField("Approved At", null=True, blank=True)

    class Meta:
        verbose_name = "Student Concession"
        verbose_name_plural = "Student Concessions"
        ordering = ['student', '-valid_from']

    def __str__(self):
        return f"{self.name} - {self.student}"

    def get_effective_value(self):
        if self.custom_value is not None:
            return self.custom_value
        return self.value

    def as_calculation_input(self):
        """Plain dict consumed by FeeCalculator (needs saved M2M relations)."""
        return {
            'id': str(self.pk),
            'name': self.name,
            'type': self.concession_type,
            'value': self.value,
            'custom_value': self.custom_value,
            'status': self.status,
            'valid_from': self.valid_from,
            'valid_until': self.valid_until,
            'applied_fee_heads': [str(head.pk) for head in self.fee_heads.all()],
            'applied_fee_terms': [str(term.pk) for term in self.fee_terms.all()],
        }

    def clean(self):
        super().clean()
        errors = {}
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            errors['valid_until'] = "Valid until cannot be before valid from"
        if self.concession_type == 'PERCENTAGE' and self.get_effective_value() is not None:
            if self.get_effective_value() > 100:
                errors['value'] = "Percentage concession cannot exceed 100"
        if errors:
            raise ValidationError(errors)


# =============================================================================
# COLLECTIONS
# =============================================================================

class FeeCollection(BaseModel):
    """One receipt: money received from a student in a single payment"""

    PAYMENT_MODE_CHOICES = [
        ('CASH', 'Cash'),
        ('UPI', 'UPI'),
        ('CARD', 'Card'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('CHEQUE', 'Cheque'),
        ('ONLINE', 'Online Gateway'),
    ]

    STATUS_CHOICES = [
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]

    receipt_number = models.CharField(
        "Receipt Number",
        max_length=50,
        unique=True,
        blank=True,
        db_index=True
    )
    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.PROTECT,
        related_name='fee_collections'
    )
    payment_date = models.DateField("Payment Date", db_index=True)
    payment_mode = models.CharField(
        "Payment Mode",
        max_length=20,
        choices=PAYMENT_MODE_CHOICES,
        default='CASH'
    )
    transaction_reference = models.CharField("Transaction Reference", max_length=100, blank=True, db_index=True)
    total_amount = models.DecimalField(
        "Total Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    allocation_strategy = models.CharField("Allocation Strategy", max_length=30, blank=True)
    notes = models.TextField("Notes", blank=True)

    status = models.CharField(
        "Status",
        max_length=20,
        choices=STATUS_CHOICES,
        default='COMPLETED',
        db_index=True
    )
    cancelled_at = models.DateTimeField("Cancelled At", null=True, blank=True)
    cancellation_reason = models.TextField("Cancellation Reason", blank=True)

    class Meta:
        verbose_name = "Fee Collection"
        verbose_name_plural = "Fee Collections"
        ordering = ['-payment_date', '-created_at']
        indexes = [
            models.Index(fields=['student', 'status']),
        ]

    def __str__(self):
        return f"{self.receipt_number} - {self.student} ({self.total_amount})"

    @property
    def is_cancelled(self):
        return self.status == 'CANCELLED'


class FeeCollectionItem(BaseModel):
    """
    Amount of a collection applied to one fee head in one fee term.
    Append-only: lines are never edited once written.
    """

    collection = models.ForeignKey(
        FeeCollection,
        verbose_name="Collection",
        on_delete=models.CASCADE,
        related_name='items'
    )
    fee_head = models.ForeignKey(
        FeeHead,
        verbose_name="Fee Head",
        on_delete=models.PROTECT,
        related_name='collection_items'
    )
    fee_term = models.ForeignKey(
        FeeTerm,
        verbose_name="Fee Term",
        on_delete=models.PROTECT,
        related_name='collection_items'
    )
    amount = models.DecimalField(
        "Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    class Meta:
        verbose_name = "Fee Collection Item"
        verbose_name_plural = "Fee Collection Items"
        ordering = ['collection', 'fee_term__due_date']

    def __str__(self):
        return f"{self.collection.receipt_number}: {self.fee_head} ({self.fee_term}) {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Collection items cannot be modified once recorded")
        super().save(*args, **kwargs)

    def as_payment_record(self):
        """Plain dict consumed by FeeCalculator."""
        return {
            'id': str(self.pk),
            'amount': self.amount,
            'payment_date': self.collection.payment_date,
            'payment_mode': self.collection.payment_mode,
            'fee_head_id': str(self.fee_head_id),
            'fee_term_id': str(self.fee_term_id),
        }


# =============================================================================
# REMINDERS
# =============================================================================

class FeeReminder(BaseModel):
    """A reminder generated for one overdue obligation of a student"""

    REMINDER_TYPE_CHOICES = [
        ('overdue', 'Overdue Notice'),
        ('first', 'First Reminder'),
        ('second', 'Second Reminder'),
        ('final', 'Final Notice'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('SENT', 'Sent'),
        ('FAILED', 'Failed'),
        ('ACKNOWLEDGED', 'Acknowledged'),
    ]

    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.CASCADE,
        related_name='fee_reminders'
    )
    fee_head = models.ForeignKey(
        FeeHead,
        verbose_name="Fee Head",
        on_delete=models.CASCADE,
        related_name='reminders'
    )
    fee_term = models.ForeignKey(
        FeeTerm,
        verbose_name="Fee Term",
        on_delete=models.CASCADE,
        related_name='reminders'
    )
    reminder_type = models.CharField(
        "Reminder Type",
        max_length=10,
        choices=REMINDER_TYPE_CHOICES,
        db_index=True
    )
    days_overdue = models.PositiveIntegerField("Days Overdue", default=0)
    outstanding_amount = models.DecimalField("Outstanding Amount", max_digits=12, decimal_places=2)
    message = models.TextField("Message")

    status = models.CharField(
        "Status",
        max_length=20,
        choices=STATUS_CHOICES,
        default='PENDING',
        db_index=True
    )
    sent_at = models.DateTimeField("Sent At", null=True, blank=True)
    error_message = models.TextField("Error Message", blank=True)
    message_log = models.ForeignKey(
        'communications.MessageLog',
        verbose_name="Message Log",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fee_reminders'
    )

    class Meta:
        verbose_name = "Fee Reminder"
        verbose_name_plural = "Fee Reminders"
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'fee_head', 'fee_term', 'reminder_type'],
                name='unique_reminder_tier_per_obligation'
            ),
        ]

    def __str__(self):
        return f"{self.get_reminder_type_display()} - {self.student} - {self.fee_head}"
