# Reconcile Payments Management Command
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from market.exceptions import GatewayUnavailable
from market.lifecycle import reconcile_payments


class Command(BaseCommand):
    help = (
        'Applies payment authorizations that never reached their order and resolves '
        'payment attempts left initiated or errored.'
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would change without writing to the database.',
        )
        parser.add_argument(
            '--stale-minutes',
            type=int,
            default=None,
            help='Age in minutes after which an initiated or errored attempt is looked up at the gateway '
                 '(default: PAYMENT_RECONCILE_STALE_MINUTES).',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        stale_minutes = options['stale_minutes']
        if stale_minutes is None:
            stale_minutes = getattr(settings, 'PAYMENT_RECONCILE_STALE_MINUTES', 15)

        if stale_minutes < 0:
            raise CommandError('--stale-minutes cannot be negative.')

        self.stdout.write(f'Reconciling payment attempts older than {stale_minutes} minute(s)...')

        try:
            summary = reconcile_payments(
                stale_after=timedelta(minutes=stale_minutes),
                dry_run=dry_run,
            )
        except GatewayUnavailable as e:
            raise CommandError(f'Payment gateway unavailable: {e.message}')

        for key in ('applied', 'superseded', 'declined', 'needs_review', 'skipped'):
            self.stdout.write(f'  {key}: {summary[key]}')

        if summary['needs_review']:
            self.stdout.write(self.style.WARNING(
                f"{summary['needs_review']} payment(s) need manual review in the admin."
            ))

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Reconciliation completed successfully.'))
