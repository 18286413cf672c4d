"""
process_notifications.py
------------------------
Django management command that sends queued SMS notifications that are due.

Usage:
    python manage.py process_notifications
    python manage.py process_notifications --limit 100

Behavior:
- Picks pending notifications whose scheduled_for is in the past (oldest first).
- Hands each to settings.SMS_BACKEND via NotificationService.dispatch.
- Marks each sent or failed; reminders of cancelled appointments are
  already voided and are skipped.
- Meant to run from cron every few minutes.
"""

from django.core.management.base import BaseCommand

from booking.services.notification_service import NotificationService


class Command(BaseCommand):
    help = "Send due SMS notifications from the queue."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=50,
            help="Maximum number of notifications to send in this run.",
        )

    def handle(self, *args, **options):
        result = NotificationService().dispatch_due(limit=options["limit"])
        self.stdout.write(self.style.SUCCESS(
            f"Processed {result['processed']} notification(s): "
            f"sent={result['sent']}, failed={result['failed']}"
        ))
