"""
Management command to move received PDCs into DUE once their cheque date
is within the due window (PDC_DUE_WINDOW_DAYS).
Should be scheduled as a daily cron job.

Example cron entry (runs every day at 6 AM):
0 6 * * * cd /path/to/project && python manage.py mark_due_pdcs
"""
from datetime import date

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.property.models import PDCCheque, PDCStatus
from apps.property.services import mark_due_pdcs


class Command(BaseCommand):
    help = 'Mark received PDCs whose cheque date falls within the due window as DUE'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            type=str,
            help='Reference date (YYYY-MM-DD). Defaults to today.'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the PDCs that would be marked without changing them'
        )

    def handle(self, *args, **options):
        if options['date']:
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError('Invalid date format. Use YYYY-MM-DD')
        else:
            today = date.today()

        self.stdout.write(
            f'Reference date: {today} (window {settings.PDC_DUE_WINDOW_DAYS} days)'
        )

        if options['dry_run']:
            candidates = PDCCheque.objects.filter(
                status=PDCStatus.RECEIVED, is_active=True
            ).in_due_window(today).select_related('tenant')
            for pdc in candidates:
                self.stdout.write(
                    f'  {pdc.pdc_number}: cheque {pdc.cheque_number} dated {pdc.cheque_date} '
                    f'({pdc.tenant.name}, {pdc.amount})'
                )
            self.stdout.write(self.style.WARNING(
                f'Dry run: {candidates.count()} PDCs would be marked as due.'
            ))
            return

        marked = mark_due_pdcs(today)
        if marked:
            self.stdout.write(self.style.SUCCESS(f'Marked {marked} PDCs as due.'))
        else:
            self.stdout.write(self.style.WARNING('No PDCs entered the due window.'))
