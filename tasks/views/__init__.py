"""Views package for the tasks app."""

from .task import task_list, task_history, api_task_state
from .review import review_session, review_next, answer_item

__all__ = [
    # Task
    'task_list',
    'task_history',
    'api_task_state',
    # Review
    'review_session',
    'review_next',
    'answer_item',
]
