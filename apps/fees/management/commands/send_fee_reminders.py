# fees/management/commands/send_fee_reminders.py

"""
Generate overdue fee reminders and send them over WhatsApp.

USAGE EXAMPLES:
===============

# 1. Generate reminders for today and send everything pending
python manage.py send_fee_reminders

# 2. Show what would be generated, without saving or sending
python manage.py send_fee_reminders --dry-run

# 3. Generate as of a given date, but leave sending for later
python manage.py send_fee_reminders --as-of 2025-07-31 --no-send

# 4. Send at most 50 pending reminders
python manage.py send_fee_reminders --limit 50
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date
import logging

from apps.communications.whatsapp import WhatsAppConfigurationError
from apps.core.utils import format_money
from apps.fees.services import ReminderService
from apps.utils.context import RequestContext

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Generate overdue fee reminders and send pending ones over WhatsApp'

    def add_arguments(self, parser):
        parser.add_argument(
            '--as-of',
            help='Evaluate fees as of this date (YYYY-MM-DD). Defaults to today.'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List reminders that would be created; save and send nothing'
        )
        parser.add_argument(
            '--no-send',
            action='store_true',
            help='Generate reminders without sending them'
        )
        parser.add_argument(
            '--limit',
            type=int,
            help='Maximum number of pending reminders to send'
        )

    def handle(self, *args, **options):
        as_of_date = None
        if options['as_of']:
            try:
                as_of_date = parse_date(options['as_of'])
            except ValueError:
                as_of_date = None
            if as_of_date is None:
                raise CommandError(f"Invalid --as-of date: {options['as_of']}")

        dry_run = options['dry_run']

        with RequestContext(request_path='manage.py send_fee_reminders'):
            reminders = ReminderService.generate_reminders(as_of_date=as_of_date, dry_run=dry_run)

            for reminder in reminders:
                self.stdout.write(
                    f"  {reminder.student.admission_number}  {reminder.fee_head.name} "
                    f"({reminder.fee_term.name})  {reminder.reminder_type}  "
                    f"{reminder.days_overdue} days  {format_money(reminder.outstanding_amount)}"
                )

            if dry_run:
                self.stdout.write(self.style.WARNING(f"Dry run: {len(reminders)} reminder(s) would be created"))
                return

            self.stdout.write(self.style.SUCCESS(f"Created {len(reminders)} reminder(s)"))

            if options['no_send']:
                return

            try:
                results = ReminderService.send_pending_reminders(limit=options['limit'])
            except WhatsAppConfigurationError as e:
                raise CommandError(f"WhatsApp is not configured: {e}")

        self.stdout.write(self.style.SUCCESS(
            f"Sent {results['sent']} of {results['total']} pending reminder(s)"
        ))
        if results['failed']:
            self.stdout.write(self.style.WARNING(f"{results['failed']} reminder(s) failed; see the reminder list"))
