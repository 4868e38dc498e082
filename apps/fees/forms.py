# fees/forms.py

"""
Fee Management Forms

- PaymentCollectionForm: payment entry for a student (collect / preview)
- FeeStructureForm: per-class fee amounts and late fee policy
- StudentConcessionForm: student concessions and their scope
"""

from django import forms
from django.core.exceptions import ValidationError
from decimal import Decimal
import logging

from .models import FeeCollection, FeeStructure, StudentConcession, FeeHead, FeeTerm
from .calculators import PaymentAllocator
from apps.core.models import FinancialSettings
from apps.core.utils import get_school_today
from apps.students.models import SchoolClass

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT FORMS
# =============================================================================

class PaymentCollectionForm(forms.Form):
    """Payment entry for one student"""

    amount = forms.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
        widget=forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'})
    )
    payment_mode = forms.ChoiceField(
        choices=FeeCollection.PAYMENT_MODE_CHOICES,
        initial='CASH',
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    payment_date = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': 'form-control', 'type': 'date'})
    )
    strategy = forms.ChoiceField(
        choices=[('', 'School default')] + FinancialSettings.ALLOCATION_STRATEGY_CHOICES,
        required=False,
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    selected_keys = forms.CharField(
        required=False,
        help_text="Comma-separated fee keys to pay; leave empty for all outstanding fees",
        widget=forms.TextInput(attrs={'class': 'form-control'})
    )
    manual_amounts = forms.JSONField(
        required=False,
        help_text='For manual allocation: {"<fee key>": amount}'
    )
    transaction_reference = forms.CharField(
        max_length=100,
        required=False,
        widget=forms.TextInput(attrs={
            'class': 'form-control',
            'placeholder': 'UPI / card / cheque reference'
        })
    )
    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 2})
    )
    send_receipt = forms.BooleanField(required=False)

    def clean_payment_date(self):
        payment_date = self.cleaned_data.get('payment_date')
        if payment_date and payment_date > get_school_today():
            raise ValidationError('Payment date cannot be in the future.')
        return payment_date

    def clean_selected_keys(self):
        raw = self.cleaned_data.get('selected_keys') or ''
        return [key.strip() for key in raw.split(',') if key.strip()]

    def clean_manual_amounts(self):
        manual_amounts = self.cleaned_data.get('manual_amounts')
        if manual_amounts in (None, ''):
            return {}
        if not isinstance(manual_amounts, dict):
            raise ValidationError('Manual amounts must map fee keys to amounts.')
        return manual_amounts

    def clean(self):
        cleaned_data = super().clean()

        if cleaned_data.get('strategy') == PaymentAllocator.MANUAL and not cleaned_data.get('manual_amounts'):
            raise ValidationError({
                'manual_amounts': 'Manual allocation requires an amount per fee.'
            })

        return cleaned_data

    def get_payment_data(self):
        """Cleaned data in the shape FeeCollectionService.collect_payment expects."""
        data = self.cleaned_data
        payment_data = {
            'amount': data['amount'],
            'payment_mode': data['payment_mode'],
            'transaction_reference': data.get('transaction_reference', ''),
            'notes': data.get('notes', ''),
        }
        if data.get('payment_date'):
            payment_data['payment_date'] = data['payment_date']
        if data.get('strategy'):
            payment_data['strategy'] = data['strategy']
        if data.get('selected_keys'):
            payment_data['selected_keys'] = data['selected_keys']
        if data.get('manual_amounts'):
            payment_data['manual_amounts'] = data['manual_amounts']
        return payment_data


class CollectionCancelForm(forms.Form):
    reason = forms.CharField(
        widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 2})
    )


# =============================================================================
# FEE STRUCTURE FORMS
# =============================================================================

class FeeStructureForm(forms.ModelForm):
    """Form for creating and editing fee structures"""

    class Meta:
        model = FeeStructure
        fields = [
            'fee_head', 'fee_term', 'school_class', 'amount', 'due_date',
            'late_fee_type', 'late_fee_value', 'max_late_fee',
            'discount_amount', 'discount_percentage', 'discount_reason',
            'installment_allowed', 'installment_count', 'installment_interval_days',
            'is_active'
        ]
        widgets = {
            'fee_head': forms.Select(attrs={'class': 'form-control'}),
            'fee_term': forms.Select(attrs={'class': 'form-control'}),
            'school_class': forms.Select(attrs={'class': 'form-control'}),
            'amount': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'due_date': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
            'late_fee_type': forms.Select(attrs={'class': 'form-control'}),
            'late_fee_value': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'max_late_fee': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'discount_amount': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'discount_percentage': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'discount_reason': forms.TextInput(attrs={'class': 'form-control'}),
            'installment_allowed': forms.CheckboxInput(attrs={'class': 'form-check-input'}),
            'installment_count': forms.NumberInput(attrs={'class': 'form-control'}),
            'installment_interval_days': forms.NumberInput(attrs={'class': 'form-control'}),
            'is_active': forms.CheckboxInput(attrs={'class': 'form-check-input'}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        self.fields['fee_head'].queryset = FeeHead.objects.filter(is_active=True)
        self.fields['fee_term'].queryset = FeeTerm.objects.filter(is_active=True)
        self.fields['school_class'].queryset = SchoolClass.objects.filter(is_active=True)

        # Amount and scope are frozen once money has been collected
        if not self.instance._state.adding and self.instance.has_collections():
            for field_name in ('fee_head', 'fee_term', 'school_class', 'amount', 'due_date'):
                self.fields[field_name].disabled = True

    def clean(self):
        cleaned_data = super().clean()

        fee_term = cleaned_data.get('fee_term')
        due_date = cleaned_data.get('due_date')
        if fee_term and due_date and due_date < fee_term.start_date:
            raise ValidationError({
                'due_date': 'Due date cannot be before the term starts.'
            })

        return cleaned_data


# =============================================================================
# CONCESSION FORMS
# =============================================================================

class StudentConcessionForm(forms.ModelForm):
    """Form for granting a concession to a student"""

    class Meta:
        model = StudentConcession
        fields = [
            'student', 'name', 'concession_type', 'value', 'custom_value',
            'status', 'valid_from', 'valid_until', 'fee_heads', 'fee_terms', 'reason'
        ]
        widgets = {
            'student': forms.Select(attrs={'class': 'form-control'}),
            'name': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'Sibling, Merit, Staff ward...'}),
            'concession_type': forms.Select(attrs={'class': 'form-control'}),
            'value': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'custom_value': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
            'status': forms.Select(attrs={'class': 'form-control'}),
            'valid_from': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
            'valid_until': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
            'fee_heads': forms.SelectMultiple(attrs={'class': 'form-control', 'size': '5'}),
            'fee_terms': forms.SelectMultiple(attrs={'class': 'form-control', 'size': '5'}),
            'reason': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        self.fields['fee_heads'].queryset = FeeHead.objects.filter(is_active=True)
        self.fields['fee_terms'].queryset = FeeTerm.objects.filter(is_active=True)
        self.fields['fee_heads'].required = False
        self.fields['fee_terms'].required = False
        self.fields['fee_heads'].help_text = 'Leave empty to apply to all fee heads'
        self.fields['fee_terms'].help_text = 'Leave empty to apply to all terms'
