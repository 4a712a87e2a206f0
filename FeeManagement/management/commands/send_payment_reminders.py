from django.core.management.base import BaseCommand

from FeeManagement.notifications import REMINDER_DAYS, send_due_reminders


class Command(BaseCommand):
    help = f"Email students with unpaid fees due in {', '.join(str(d) for d in REMINDER_DAYS)} days"

    def handle(self, *args, **options):
        sent = send_due_reminders()
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} payment reminder(s)."))
