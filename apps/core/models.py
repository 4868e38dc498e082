# core/models.py

"""
Core models for the fee office.
School-wide financial policy: currency, receipt numbering, late fees,
discount/concession switches and reminder scheduling.
"""

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal, InvalidOperation
from apps.utils.models import BaseModel
import pycountry
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# FINANCIAL SETTINGS MODEL
# =============================================================================

class FinancialSettings(BaseModel):
    """
    Core financial settings for the school.
    Manages currency, formatting, late fee policy, and reminder schedule.
    Singleton pattern - only one instance per school database.
    """

    # -------------------------------------------------------------------------
    # CHOICE FIELDS
    # -------------------------------------------------------------------------

    CURRENCY_POSITION_CHOICES = [
        ('BEFORE', 'Before amount (INR 100.00)'),
        ('AFTER', 'After amount (100.00 INR)'),
        ('BEFORE_NO_SPACE', 'Before, no space (INR100.00)'),
        ('AFTER_NO_SPACE', 'After, no space (100.00INR)'),
    ]

    LATE_FEE_TYPE_CHOICES = [
        ('NONE', 'No Late Fee'),
        ('FLAT', 'Flat Amount (one-off)'),
        ('PER_DAY', 'Fixed Amount Per Day'),
        ('PERCENTAGE', 'Percentage Per Month'),
        ('COMPOUND', 'Compound Percentage Per Day'),
    ]

    ALLOCATION_STRATEGY_CHOICES = [
        ('oldest_first', 'Oldest Due First'),
        ('highest_amount_first', 'Highest Amount First'),
        ('equal_distribution', 'Equal Distribution'),
        ('manual', 'Manual'),
    ]

    # Singleton row, pinned to pk=1
    id = models.PositiveSmallIntegerField(primary_key=True, default=1, editable=False)

    # -------------------------------------------------------------------------
    # CURRENCY CONFIGURATION
    # -------------------------------------------------------------------------

    school_currency = models.CharField(
        "School Currency",
        max_length=3,
        default='INR',
        help_text='Primary currency for this school (ISO 4217 code)'
    )

    currency_position = models.CharField(
        "Currency Position",
        max_length=20,
        choices=CURRENCY_POSITION_CHOICES,
        default='BEFORE',
        help_text="How to display currency symbols"
    )

    decimal_places = models.PositiveIntegerField(
        "Decimal Places",
        default=2,
        validators=[MinValueValidator(0), MaxValueValidator(4)],
        help_text="Number of decimal places for currency display (0-4)"
    )

    use_thousand_separator = models.BooleanField(
        "Use Thousand Separator",
        default=True,
        help_text="Display numbers with comma separators (e.g., 1,000,000)"
    )

    # -------------------------------------------------------------------------
    # NUMBERING CONFIGURATION
    # -------------------------------------------------------------------------

    receipt_prefix = models.CharField(
        "Receipt Number Prefix",
        max_length=10,
        default="RCPT",
        blank=True,
        help_text="Prefix for receipt numbers (leave blank for no prefix)"
    )

    include_year_in_receipt_number = models.BooleanField(
        "Include Year in Receipt Number",
        default=True,
        help_text="Include year in receipt number format"
    )

    # -------------------------------------------------------------------------
    # LATE FEE POLICY
    # -------------------------------------------------------------------------

    late_fee_enabled = models.BooleanField(
        "Late Fee Enabled",
        default=True,
        help_text="Charge late fees on overdue obligations"
    )

    default_late_fee_type = models.CharField(
        "Default Late Fee Type",
        max_length=20,
        choices=LATE_FEE_TYPE_CHOICES,
        default='NONE',
        help_text="Late fee policy used by fee structures that do not define their own"
    )

    default_late_fee_value = models.DecimalField(
        "Default Late Fee Value",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Amount (FLAT, PER_DAY) or percentage (PERCENTAGE, COMPOUND)"
    )

    default_max_late_fee = models.DecimalField(
        "Default Maximum Late Fee",
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Upper bound for the late fee (leave blank for no cap)"
    )

    grace_period_days = models.PositiveIntegerField(
        "Grace Period (Days)",
        default=0,
        help_text="Days after the due date before late fees apply"
    )

    # -------------------------------------------------------------------------
    # DISCOUNTS & CONCESSIONS
    # -------------------------------------------------------------------------

    apply_discounts = models.BooleanField(
        "Apply Discounts",
        default=True,
        help_text="Apply fee structure discounts when computing fees"
    )

    apply_concessions = models.BooleanField(
        "Apply Concessions",
        default=True,
        help_text="Apply approved student concessions when computing fees"
    )

    default_allocation_strategy = models.CharField(
        "Default Allocation Strategy",
        max_length=30,
        choices=ALLOCATION_STRATEGY_CHOICES,
        default='oldest_first',
        help_text="How a lump payment is split across outstanding fees"
    )

    # -------------------------------------------------------------------------
    # REMINDERS
    # -------------------------------------------------------------------------

    send_overdue_reminders = models.BooleanField(
        "Send Overdue Reminders",
        default=True,
        help_text="Generate reminders for overdue fees"
    )

    first_reminder_days = models.PositiveIntegerField(
        "First Reminder (Days Overdue)",
        default=7,
        validators=[MinValueValidator(1)],
    )

    second_reminder_days = models.PositiveIntegerField(
        "Second Reminder (Days Overdue)",
        default=15,
    )

    final_reminder_days = models.PositiveIntegerField(
        "Final Reminder (Days Overdue)",
        default=30,
    )

    whatsapp_reminders_enabled = models.BooleanField(
        "WhatsApp Reminders Enabled",
        default=False,
        help_text="Deliver reminders to guardians over WhatsApp"
    )

    reminder_template_name = models.CharField(
        "WhatsApp Template Name",
        max_length=100,
        blank=True,
        help_text="Approved template for reminders (leave blank to send plain text)"
    )

    reminder_template_language = models.CharField(
        "WhatsApp Template Language",
        max_length=10,
        default='en',
    )

    # -------------------------------------------------------------------------
    # CLASS METHODS - Currency & Formatting
    # -------------------------------------------------------------------------

    @staticmethod
    def get_currency_choices():
        """Generate currency choices from pycountry."""
        currencies = [
            (currency.alpha_3, f"{currency.name} ({currency.alpha_3})")
            for currency in pycountry.currencies
        ]
        return sorted(currencies, key=lambda x: x[1])

    @classmethod
    def get_school_currency(cls):
        """Get school currency code"""
        return cls.get_instance().school_currency

    # -------------------------------------------------------------------------
    # INSTANCE METHODS - Currency Formatting
    # -------------------------------------------------------------------------

    def format_currency(self, amount, include_symbol=True):
        """Format amount based on school settings."""
        from apps.core.utils import round_to_currency

        try:
            amount = round_to_currency(Decimal(str(amount or 0)), self.school_currency, self.decimal_places)
            formatted = f"{amount:,.{self.decimal_places}f}"

            if not self.use_thousand_separator:
                formatted = formatted.replace(',', '')

            if include_symbol:
                symbol = self.school_currency
                if self.currency_position == 'AFTER':
                    return f"{formatted} {symbol}"
                elif self.currency_position == 'BEFORE_NO_SPACE':
                    return f"{symbol}{formatted}"
                elif self.currency_position == 'AFTER_NO_SPACE':
                    return f"{formatted}{symbol}"
                return f"{symbol} {formatted}"
            return formatted

        except (ValueError, TypeError, InvalidOperation) as e:
            logger.warning(f"Error formatting currency: {e}")
            return f"{self.school_currency} 0.{'0' * self.decimal_places}"

    # -------------------------------------------------------------------------
    # INSTANCE METHODS - Fee Computation
    # -------------------------------------------------------------------------

    def get_reminder_thresholds(self):
        """Reminder tier thresholds as keyword arguments for the generator."""
        return {
            'first_reminder_days': self.first_reminder_days,
            'second_reminder_days': self.second_reminder_days,
            'final_reminder_days': self.final_reminder_days,
        }

    def get_default_late_fee_policy(self):
        """Late fee policy inherited by structures without their own."""
        return {
            'late_fee_type': self.default_late_fee_type,
            'late_fee_value': self.default_late_fee_value,
            'max_late_fee': self.default_max_late_fee,
        }

    def get_fee_calculation_options(self, as_of_date=None, calculate_installments=False):
        """
        Build the options consumed by FeeCalculator.

        Args:
            as_of_date: Date to evaluate fees on (defaults to school today)
            calculate_installments: Include installment schedules

        Returns:
            dict: Calculator options

        Example:
            >>> settings = FinancialSettings.get_instance()
            >>> options = settings.get_fee_calculation_options()
            >>> FeeCalculator.calculate_student_fees(structures, payments, options)
        """
        from apps.core.utils import get_school_today

        return {
            'calculate_late_fees': self.late_fee_enabled,
            'apply_discounts': self.apply_discounts,
            'apply_concessions': self.apply_concessions,
            'calculate_installments': calculate_installments,
            'grace_period_days': self.grace_period_days,
            'as_of_date': as_of_date or get_school_today(),
        }

    # -------------------------------------------------------------------------
    # VALIDATION METHODS
    # -------------------------------------------------------------------------

    def clean(self):
        """Validate financial settings"""
        super().clean()
        errors = {}

        # Validate currency code
        if self.school_currency:
            currency = pycountry.currencies.get(alpha_3=self.school_currency.upper())
            if not currency:
                errors['school_currency'] = f"'{self.school_currency}' is not a valid ISO 4217 currency code"
            else:
                self.school_currency = self.school_currency.upper()

        if not (0 <= self.decimal_places <= 4):
            errors['decimal_places'] = "Decimal places must be between 0 and 4"

        if self.default_late_fee_value is not None and self.default_late_fee_value < 0:
            errors['default_late_fee_value'] = "Late fee value cannot be negative"

        if self.default_late_fee_type in ('PERCENTAGE', 'COMPOUND') and self.default_late_fee_value > 100:
            errors['default_late_fee_value'] = "Late fee percentage must be between 0 and 100"

        if self.first_reminder_days < 1:
            errors['first_reminder_days'] = "The first reminder must be at least one day overdue"

        if not (self.first_reminder_days < self.second_reminder_days < self.final_reminder_days):
            errors['second_reminder_days'] = (
                "Reminder thresholds must be strictly increasing "
                "(first < second < final)"
            )

        if errors:
            raise ValidationError(errors)

    # -------------------------------------------------------------------------
    # SINGLETON PATTERN METHODS
    # -------------------------------------------------------------------------

    @classmethod
    def get_instance(cls):
        """Get or create the singleton instance of FinancialSettings."""
        instance, created = cls.objects.get_or_create(
            pk=1,
            defaults={
                'school_currency': 'INR',
                'currency_position': 'BEFORE',
                'decimal_places': 2,
                'use_thousand_separator': True,
                'receipt_prefix': 'RCPT',
                'include_year_in_receipt_number': True,
                'late_fee_enabled': True,
                'default_late_fee_type': 'NONE',
                'default_late_fee_value': Decimal('0.00'),
                'grace_period_days': 0,
                'apply_discounts': True,
                'apply_concessions': True,
                'default_allocation_strategy': 'oldest_first',
                'send_overdue_reminders': True,
                'first_reminder_days': 7,
                'second_reminder_days': 15,
                'final_reminder_days': 30,
                'whatsapp_reminders_enabled': False,
                'reminder_template_language': 'en',
            }
        )
        if created:
            logger.info("Created default financial settings")
        return instance

    def save(self, *args, **kwargs):
        """Ensure only one instance exists (singleton pattern)"""
        self.pk = 1
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Prevent deletion of the singleton instance"""
        logger.warning("Attempted to delete financial settings; ignored")

    # -------------------------------------------------------------------------
    # STRING REPRESENTATION
    # -------------------------------------------------------------------------

    def __str__(self):
        return f"Financial Settings - {self.school_currency}"

    class Meta:
        verbose_name = "Financial Settings"
        verbose_name_plural = "Financial Settings"
