import logging
from datetime import timedelta

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from . import grading, srs

logger = logging.getLogger(__name__)

DUE_SOON_THRESHOLD = timedelta(hours=24)


class Workbook(models.Model):
    """A set of practice items that can be assigned to students."""
    title = models.CharField(max_length=200)
    subject = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)
    config = models.JSONField(default=dict, blank=True)
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='workbooks',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return self.title

    @property
    def allow_multiple_correct(self):
        """Read the SRS multiple-correct flag from config (defaults to True)."""
        srs_config = (self.config or {}).get('srs')
        if isinstance(srs_config, dict):
            flag = srs_config.get('allowMultipleCorrect')
            if isinstance(flag, bool):
                return flag
        return True


class WorkbookItem(models.Model):
    """A single question in a workbook."""

    class AnswerType(models.TextChoices):
        MULTIPLE_CHOICE = srs.MULTIPLE_CHOICE, 'Multiple Choice'
        SHORT_ANSWER = srs.SHORT_ANSWER, 'Short Answer'

    workbook = models.ForeignKey(Workbook, on_delete=models.CASCADE, related_name='items')
    position = models.PositiveIntegerField(default=0)
    prompt = models.TextField()
    answer_type = models.CharField(
        max_length=20,
        choices=AnswerType.choices,
        default=AnswerType.MULTIPLE_CHOICE,
    )
    explanation = models.TextField(blank=True)

    class Meta:
        ordering = ['workbook', 'position', 'id']

    def __str__(self):
        return f"{self.prompt[:50]}..."


class WorkbookChoice(models.Model):
    item = models.ForeignKey(WorkbookItem, on_delete=models.CASCADE, related_name='choices')
    position = models.PositiveIntegerField(default=0)
    label = models.CharField(max_length=20, blank=True)
    content = models.TextField()
    is_correct = models.BooleanField(default=False)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.content[:50]


class WorkbookShortField(models.Model):
    item = models.ForeignKey(WorkbookItem, on_delete=models.CASCADE, related_name='short_fields')
    position = models.PositiveIntegerField(default=0)
    label = models.CharField(max_length=100, blank=True)
    answer = models.CharField(max_length=500)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.label or self.answer[:50]


class StudentTask(models.Model):
    """A workbook assigned to one student."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        IN_PROGRESS = 'in_progress', 'In Progress'
        COMPLETED = 'completed', 'Completed'
        CANCELED = 'canceled', 'Canceled'

    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='student_tasks',
    )
    workbook = models.ForeignKey(Workbook, on_delete=models.CASCADE, related_name='student_tasks')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    due_at = models.DateTimeField(null=True, blank=True)
    completion_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        unique_together = ['student', 'workbook']

    def __str__(self):
        return f"{self.workbook} for {self.student}"

    def summary(self):
        """Return total, completed and remaining item counts."""
        total = self.items.count()
        completed = self.items.filter(completed_at__isnull=False).count()
        return {
            'total_items': total,
            'completed_items': completed,
            'remaining_items': max(total - completed, 0),
        }

    def due_state(self, now=None):
        """Check whether the task is overdue or due within the next day."""
        if now is None:
            now = timezone.now()

        if self.due_at is None:
            return {'due_at': None, 'is_overdue': False, 'is_due_soon': False}

        is_completed = self.status == self.Status.COMPLETED
        remaining = self.due_at - now
        return {
            'due_at': self.due_at,
            'is_overdue': not is_completed and self.due_at < now,
            'is_due_soon': not is_completed and timedelta(0) <= remaining <= DUE_SOON_THRESHOLD,
        }

    def review_items(self):
        """Load all items of the task as SRS value objects, in workbook order."""
        rows = self.items.select_related('workbook_item').prefetch_related(
            'workbook_item__choices', 'workbook_item__short_fields'
        )
        return [row.to_review_item() for row in rows]

    def refresh_status(self, now=None):
        """
        Recompute the task status from its items.

        Canceled tasks are left alone. A task completes once every item is
        completed, and only if it has at least one item.
        """
        if self.status == self.Status.CANCELED:
            return self.status

        if now is None:
            now = timezone.now()

        counts = self.summary()
        total = counts['total_items']
        completed = counts['completed_items']

        if total == 0:
            status = self.Status.IN_PROGRESS
        elif completed == 0:
            status = self.Status.PENDING
        elif completed >= total:
            status = self.Status.COMPLETED
        else:
            status = self.Status.IN_PROGRESS

        self.status = status
        self.completion_at = now if status == self.Status.COMPLETED else None
        self.save(update_fields=['status', 'completion_at', 'updated_at'])
        return status


class StudentTaskItem(models.Model):
    """One student's SRS progress on one workbook item."""

    class Result(models.TextChoices):
        PASS = srs.RESULT_PASS, 'Pass'
        NONPASS = srs.RESULT_NONPASS, 'Non-pass'

    task = models.ForeignKey(StudentTask, on_delete=models.CASCADE, related_name='items')
    workbook_item = models.ForeignKey(WorkbookItem, on_delete=models.CASCADE, related_name='student_items')
    streak = models.PositiveIntegerField(default=0)
    next_review_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    last_result = models.CharField(max_length=10, choices=Result.choices, null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['workbook_item__position', 'id']
        unique_together = ['task', 'workbook_item']

    def __str__(self):
        return f"{self.workbook_item} ({self.task.student})"

    def to_review_item(self):
        """Convert this row and its workbook item to an srs.ReviewItem."""
        workbook_item = self.workbook_item
        choices = tuple(
            srs.Choice(id=str(choice.pk), content=choice.content, is_correct=choice.is_correct)
            for choice in workbook_item.choices.all()
        )
        short_fields = tuple(
            srs.ShortField(id=str(short_field.pk), label=short_field.label, expected_answer=short_field.answer)
            for short_field in workbook_item.short_fields.all()
        )
        return srs.ReviewItem(
            id=str(self.pk),
            answer_type=workbook_item.answer_type,
            choices=choices,
            short_fields=short_fields,
            streak=self.streak,
            completed_at=self.completed_at,
            next_review_at=self.next_review_at,
            last_result=self.last_result,
        )

    def is_due(self, now=None):
        if now is None:
            now = timezone.now()
        return srs.is_due(self.to_review_item(), now)

    def submit(self, answer, now=None):
        """
        Grade an answer and move the item along its SRS ladder.

        The item, its answer log and the task status are written together.
        Returns the AnswerLog entry created, or None if the item was already
        completed.
        """
        if now is None:
            now = timezone.now()

        before = self.to_review_item()
        if before.completed_at is not None:
            return None

        is_correct = grading.grade(before, answer, self.task.workbook.allow_multiple_correct)
        after = srs.apply_answer(before, is_correct, now)

        with transaction.atomic():
            self.streak = after.streak
            self.next_review_at = after.next_review_at
            self.completed_at = after.completed_at
            self.last_result = after.last_result
            self.save()

            log = AnswerLog.objects.create(
                item=self,
                answer=list(answer),
                is_correct=is_correct,
                streak_before=before.streak,
                streak_after=after.streak,
                next_review_at=after.next_review_at,
                completed_at=after.completed_at,
                answered_at=now,
            )
            self.task.refresh_status(now)

        logger.info(
            "Graded item %s: %s, streak %s -> %s",
            self.pk, after.last_result, before.streak, after.streak,
        )
        return log


class AnswerLog(models.Model):
    """Log of submitted answers for task history."""
    item = models.ForeignKey(StudentTaskItem, on_delete=models.CASCADE, related_name='answer_logs')
    answer = models.JSONField(default=list, blank=True)
    is_correct = models.BooleanField()
    streak_before = models.PositiveIntegerField()
    streak_after = models.PositiveIntegerField()
    next_review_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    answered_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-answered_at', '-id']

    def __str__(self):
        result = 'correct' if self.is_correct else 'incorrect'
        return f"{self.item_id} {result} at {self.answered_at}"
