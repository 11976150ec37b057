"""
Answer submission and task assignment.

These functions sit between the views and the models: they load rows, check
that the caller owns them, validate the submitted payload and hand the rest to
StudentTaskItem.submit().
"""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.http import Http404
from django.utils import timezone

from . import srs
from .models import StudentTask, StudentTaskItem

logger = logging.getLogger(__name__)


def get_item(item_id):
    """Load a task item with everything grading needs."""
    try:
        return StudentTaskItem.objects.select_related(
            'task', 'task__workbook', 'workbook_item'
        ).get(pk=item_id)
    except (StudentTaskItem.DoesNotExist, ValueError, TypeError):
        raise Http404('Item not found.')


def assert_ownership(item, user):
    """Raise PermissionDenied unless the item's task belongs to user."""
    if not user.is_authenticated or item.task.student_id != user.pk:
        logger.warning("User %s denied access to item %s", getattr(user, 'pk', None), item.pk)
        raise PermissionDenied('You cannot access this item.')


def parse_submission(item, payload):
    """
    Validate the shape of a submitted answer.

    Multiple choice items expect {"choice_ids": [...]} with at least one id.
    Short answer items expect {"answers": [...]} with one non-blank string per
    field. A wrong number of answers is left for grading to mark incorrect.

    Returns the answer as a list of strings.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid request.')

    if item.completed_at is not None:
        raise ValidationError('This item is already completed.')

    answer_type = item.workbook_item.answer_type
    if answer_type == srs.MULTIPLE_CHOICE:
        choice_ids = payload.get('choice_ids')
        if not isinstance(choice_ids, list) or not choice_ids:
            raise ValidationError('Select at least one choice.')
        if not all(isinstance(choice_id, (str, int)) and not isinstance(choice_id, bool)
                   for choice_id in choice_ids):
            raise ValidationError('Choice ids must be strings or integers.')
        return [str(choice_id) for choice_id in choice_ids]

    if answer_type == srs.SHORT_ANSWER:
        answers = payload.get('answers')
        if not isinstance(answers, list):
            raise ValidationError('Answers must be a list.')
        if not all(isinstance(answer, str) for answer in answers):
            raise ValidationError('Answers must be strings.')
        if not all(answer.strip() for answer in answers):
            raise ValidationError('Fill in every answer.')
        return answers

    raise ValidationError(f'Unsupported answer type: {answer_type}')


def submit_answer(item_id, user, payload, clock=timezone.now):
    """
    Grade and record one answer.

    Args:
        item_id: Primary key of the StudentTaskItem
        user: The submitting user
        payload: Decoded request body
        clock: Callable returning the current time

    Returns:
        (item, answer_log) after the update

    Raises:
        Http404, PermissionDenied, ValidationError
    """
    item = get_item(item_id)
    assert_ownership(item, user)
    answer = parse_submission(item, payload)

    now = clock()
    with transaction.atomic():
        log = item.submit(answer, now=now)
    return item, log


def assign_workbook(workbook, student, due_at=None):
    """
    Assign a workbook to a student, creating one progress row per item.

    Assigning the same workbook twice returns the existing task and adds rows
    only for items created since.

    Returns (task, created).
    """
    with transaction.atomic():
        task, created = StudentTask.objects.get_or_create(
            student=student,
            workbook=workbook,
            defaults={'due_at': due_at},
        )
        existing = set(task.items.values_list('workbook_item_id', flat=True))
        new_items = [
            StudentTaskItem(task=task, workbook_item=workbook_item)
            for workbook_item in workbook.items.all()
            if workbook_item.pk not in existing
        ]
        StudentTaskItem.objects.bulk_create(new_items)
        if created or new_items:
            task.refresh_status()

    if created:
        logger.info("Assigned workbook %s to %s (%d items)", workbook.pk, student, len(new_items))
    return task, created
