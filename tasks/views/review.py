"""Review session views."""

import json
import logging

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import DatabaseError
from django.http import Http404, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.utils import timezone
from django.views.decorators.http import require_POST

from .. import srs
from ..models import StudentTask
from ..services import submit_answer
from ..session import load_cursor, save_cursor

logger = logging.getLogger(__name__)


def _due_rows(task, now):
    """Return the task's due rows in workbook order, plus the next scheduled item."""
    rows = list(task.items.select_related('workbook_item').prefetch_related(
        'workbook_item__choices', 'workbook_item__short_fields'
    ))
    review_items = [row.to_review_item() for row in rows]
    due_ids = {item.id for item in srs.due_items(review_items, now)}
    due = [row for row in rows if str(row.pk) in due_ids]
    return due, srs.next_scheduled(review_items, now)


@login_required
def review_session(request, pk):
    """Show the current due item of a task."""
    task = get_object_or_404(StudentTask.objects.select_related('workbook'), pk=pk, student=request.user)
    now = timezone.now()

    due, upcoming = _due_rows(task, now)
    cursor, _ = load_cursor(request.session, task.pk, [row.pk for row in due])
    save_cursor(request.session, task.pk, cursor)

    current = None
    if cursor.current is not None:
        current = next(row for row in due if str(row.pk) == cursor.current)

    context = {
        'task': task,
        'current': current,
        'position': cursor.position + 1,
        'total_due': len(due),
        'summary': task.summary(),
        'next_review_at': upcoming.next_review_at if upcoming else None,
        'allow_multiple': task.workbook.allow_multiple_correct,
    }
    return render(request, 'tasks/review_session.html', context)


@login_required
@require_POST
def review_next(request, pk):
    """Advance the session cursor to the next due item.

    When the due items changed since the page was shown, the rebuilt cursor
    already points at the first of them and is not moved.
    """
    task = get_object_or_404(StudentTask, pk=pk, student=request.user)
    due, _ = _due_rows(task, timezone.now())

    cursor, reset = load_cursor(request.session, task.pk, [row.pk for row in due])
    if not reset:
        cursor.advance()
    save_cursor(request.session, task.pk, cursor)
    return redirect('review_session', pk=task.pk)


def _error(message, status):
    return JsonResponse({'success': False, 'error': message}, status=status)


@login_required
@require_POST
def answer_item(request, pk):
    """Submit an answer for a task item."""
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error('Invalid request', 400)

    try:
        item, log = submit_answer(pk, request.user, data)
    except Http404:
        return _error('Item not found.', 404)
    except PermissionDenied as e:
        return _error(str(e) or 'You cannot access this item.', 403)
    except ValidationError as e:
        return _error(e.messages[0], 400)
    except DatabaseError:
        logger.exception("Failed to record answer for item %s", pk)
        return _error('Failed to record the answer. Please try again.', 500)

    return JsonResponse({
        'success': True,
        'is_correct': log.is_correct,
        'streak': item.streak,
        'next_review_at': item.next_review_at.isoformat() if item.next_review_at else None,
        'completed_at': item.completed_at.isoformat() if item.completed_at else None,
        'task_status': item.task.status,
    })
