from django.core.management.base import BaseCommand

from FeeManagement.notifications import OVERDUE_DAYS, send_overdue_notices


class Command(BaseCommand):
    help = f"Email students whose fees are {', '.join(str(d) for d in OVERDUE_DAYS)} days overdue"

    def handle(self, *args, **options):
        sent = send_overdue_notices()
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} overdue notice(s)."))
