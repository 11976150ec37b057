"""Student task list, history and state views."""

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, render
from django.utils import timezone

from .. import srs
from ..models import AnswerLog, StudentTask


@login_required
def task_list(request):
    """List the user's assigned tasks."""
    now = timezone.now()
    tasks = StudentTask.objects.filter(student=request.user).select_related('workbook')

    rows = []
    for task in tasks:
        rows.append({
            'task': task,
            'summary': task.summary(),
            'due': task.due_state(now),
        })

    return render(request, 'tasks/task_list.html', {'rows': rows})


@login_required
def task_history(request, pk):
    """Show every answer submitted for a task, newest first."""
    task = get_object_or_404(StudentTask.objects.select_related('workbook'), pk=pk, student=request.user)
    logs = AnswerLog.objects.filter(item__task=task).select_related('item__workbook_item')
    return render(request, 'tasks/task_history.html', {'task': task, 'logs': logs})


@login_required
def api_task_state(request, pk):
    """Return the task's progress and which items are due right now."""
    task = get_object_or_404(StudentTask, pk=pk, student=request.user)
    now = timezone.now()
    items = task.review_items()
    upcoming = srs.next_scheduled(items, now)

    return JsonResponse({
        'id': task.pk,
        'status': task.status,
        'summary': task.summary(),
        'due_item_ids': [item.id for item in srs.due_items(items, now)],
        'next_review_at': upcoming.next_review_at.isoformat() if upcoming else None,
    })
