# core/tests/test_models.py

from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from apps.core.models import FinancialSettings


class FinancialSettingsTests(TestCase):

    def test_singleton(self):
        first = FinancialSettings.get_instance()
        second = FinancialSettings.get_instance()

        self.assertEqual(first.pk, 1)
        self.assertEqual(second.pk, 1)
        self.assertEqual(FinancialSettings.objects.count(), 1)
        self.assertEqual(first.school_currency, 'INR')

    def test_save_pins_primary_key(self):
        settings = FinancialSettings.get_instance()
        settings.pk = 5
        settings.school_currency = 'USD'
        settings.save()

        self.assertEqual(FinancialSettings.objects.count(), 1)
        self.assertEqual(FinancialSettings.get_instance().school_currency, 'USD')

    def test_delete_is_ignored(self):
        settings = FinancialSettings.get_instance()
        settings.delete()
        self.assertTrue(FinancialSettings.objects.filter(pk=1).exists())

    def test_invalid_currency(self):
        settings = FinancialSettings.get_instance()
        settings.school_currency = 'XYZ'
        with self.assertRaises(ValidationError) as ctx:
            settings.clean()
        self.assertIn('school_currency', ctx.exception.message_dict)

    def test_currency_code_uppercased(self):
        settings = FinancialSettings.get_instance()
        settings.school_currency = 'usd'
        settings.clean()
        self.assertEqual(settings.school_currency, 'USD')

    def test_reminder_thresholds_must_increase(self):
        settings = FinancialSettings.get_instance()
        settings.second_reminder_days = settings.final_reminder_days
        with self.assertRaises(ValidationError) as ctx:
            settings.clean()
        self.assertIn('second_reminder_days', ctx.exception.message_dict)

    def test_first_reminder_needs_a_day_overdue(self):
        settings = FinancialSettings.get_instance()
        settings.first_reminder_days = 0
        with self.assertRaises(ValidationError) as ctx:
            settings.clean()
        self.assertIn('first_reminder_days', ctx.exception.message_dict)

    def test_percentage_late_fee_over_100(self):
        settings = FinancialSettings.get_instance()
        settings.default_late_fee_type = 'PERCENTAGE'
        settings.default_late_fee_value = Decimal('120')
        with self.assertRaises(ValidationError):
            settings.clean()

    def test_format_currency_positions(self):
        settings = FinancialSettings.get_instance()
        self.assertEqual(settings.format_currency(Decimal('1500000')), 'INR 1,500,000.00')
        self.assertEqual(settings.format_currency(Decimal('1500'), include_symbol=False), '1,500.00')

        settings.currency_position = 'AFTER_NO_SPACE'
        settings.use_thousand_separator = False
        settings.decimal_places = 0
        self.assertEqual(settings.format_currency(Decimal('1500.4')), '1500INR')

        settings.currency_position = 'AFTER'
        self.assertEqual(settings.format_currency(None), '0 INR')

    def test_format_currency_bad_value(self):
        settings = FinancialSettings.get_instance()
        self.assertEqual(settings.format_currency('abc'), 'INR 0.00')

    def test_format_currency_rounds_half_up(self):
        settings = FinancialSettings.get_instance()
        self.assertEqual(settings.format_currency(Decimal('10.005')), 'INR 10.01')
        self.assertEqual(settings.format_currency(Decimal('10.125')), 'INR 10.13')

        settings.decimal_places = 0
        self.assertEqual(settings.format_currency(Decimal('2.5')), 'INR 3')

    def test_fee_calculation_options(self):
        settings = FinancialSettings.get_instance()
        settings.grace_period_days = 5
        settings.apply_concessions = False

        options = settings.get_fee_calculation_options(as_of_date=date(2024, 1, 11))

        self.assertEqual(options['as_of_date'], date(2024, 1, 11))
        self.assertEqual(options['grace_period_days'], 5)
        self.assertTrue(options['calculate_late_fees'])
        self.assertFalse(options['apply_concessions'])
        self.assertFalse(options['calculate_installments'])
        self.assertEqual(settings.get_reminder_thresholds(), {
            'first_reminder_days': 7,
            'second_reminder_days': 15,
            'final_reminder_days': 30,
        })
