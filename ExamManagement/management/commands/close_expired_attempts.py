from django.core.management.base import BaseCommand

from ExamManagement.services import expire_overdue_attempts


class Command(BaseCommand):
    help = "Auto-submit exam attempts whose time has run out"

    def handle(self, *args, **options):
        count = expire_overdue_attempts()
        self.stdout.write(self.style.SUCCESS(f"Auto-submitted {count} expired attempt(s)."))
