"""
Management command to assign a workbook to students.

    python manage.py assign_workbook 3 alice bob --due-at 2026-11-01T18:00:00+09:00

Creates one task per student with a progress row for every workbook item.
Students who already have the workbook only receive rows for new items.
"""

import logging

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from tasks.models import Workbook
from tasks.services import assign_workbook

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Assign a workbook to one or more students'

    def add_arguments(self, parser):
        parser.add_argument('workbook_id', type=int)
        parser.add_argument('usernames', nargs='+')
        parser.add_argument(
            '--due-at',
            help='ISO 8601 due date for the new tasks',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Print what would be assigned without writing anything',
        )

    def handle(self, *args, **options):
        try:
            workbook = Workbook.objects.get(pk=options['workbook_id'])
        except Workbook.DoesNotExist:
            raise CommandError(f"Workbook {options['workbook_id']} does not exist")

        due_at = None
        if options['due_at']:
            due_at = parse_datetime(options['due_at'])
            if due_at is None:
                raise CommandError(f"Invalid --due-at value: {options['due_at']}")
            if timezone.is_naive(due_at):
                due_at = timezone.make_aware(due_at)

        User = get_user_model()
        assigned = 0

        for username in options['usernames']:
            try:
                student = User.objects.get(username=username)
            except User.DoesNotExist:
                self.stderr.write(f"Skipping {username}: no such user")
                logger.warning("assign_workbook: unknown user %s", username)
                continue

            if options['dry_run']:
                self.stdout.write(f"[DRY RUN] Would assign '{workbook}' to {username}")
                continue

            task, created = assign_workbook(workbook, student, due_at=due_at)
            if created:
                assigned += 1
                self.stdout.write(f"Assigned '{workbook}' to {username} (task {task.pk})")
            else:
                self.stdout.write(f"{username} already has '{workbook}' (task {task.pk})")

        self.stdout.write(
            self.style.SUCCESS(f"Assigned workbook to {assigned} student(s)")
        )
