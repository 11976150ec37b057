"""
Spaced Repetition System (SRS) scheduling for workbook items.

Each student works through a task's items on a three-rung ladder:
a correct answer moves the item 10 minutes out, a second one a day out, and a
third retires it. Any miss resets the streak and asks for a retry a minute later.

Everything in this module is a pure function over plain values. Reading the
current state and writing the next one is left to the models.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional, Tuple


# Answer types
MULTIPLE_CHOICE = 'multiple_choice'
SHORT_ANSWER = 'short_answer'

# Grading outcomes recorded on the item
RESULT_PASS = 'pass'
RESULT_NONPASS = 'nonpass'

# Review states
STATE_DUE = 'due'
STATE_SCHEDULED = 'scheduled'
STATE_COMPLETED = 'completed'

# Scheduling policy
RETRY_DELAY = timedelta(minutes=1)      # After any incorrect answer
FIRST_INTERVAL = timedelta(minutes=10)  # After the first correct answer
SECOND_INTERVAL = timedelta(days=1)     # After the second correct answer in a row
COMPLETION_STREAK = 3                   # Correct answers in a row that retire an item


@dataclass(frozen=True)
class Choice:
    id: str
    content: str
    is_correct: bool


@dataclass(frozen=True)
class ShortField:
    id: str
    label: str
    expected_answer: str


@dataclass(frozen=True)
class ReviewItem:
    """Immutable snapshot of one student's progress on one workbook item."""
    id: str
    answer_type: str = MULTIPLE_CHOICE
    choices: Tuple[Choice, ...] = field(default_factory=tuple)
    short_fields: Tuple[ShortField, ...] = field(default_factory=tuple)
    streak: int = 0
    completed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    last_result: Optional[str] = None


def is_due(item: ReviewItem, now: datetime) -> bool:
    """Completed items are never due; unscheduled items always are."""
    if item.completed_at is not None:
        return False
    return item.next_review_at is None or item.next_review_at <= now


def review_state(item: ReviewItem, now: datetime) -> str:
    if item.completed_at is not None:
        return STATE_COMPLETED
    if is_due(item, now):
        return STATE_DUE
    return STATE_SCHEDULED


class DueItems:
    """
    Items eligible for review at a fixed point in time.

    Filtering happens while iterating, in the order of the underlying
    collection, so the sequence can be walked any number of times.
    """

    def __init__(self, items: Iterable[ReviewItem], now: datetime):
        self._items = items
        self.now = now

    def __iter__(self) -> Iterator[ReviewItem]:
        return (item for item in self._items if is_due(item, self.now))

    def __bool__(self) -> bool:
        return any(True for _ in self)


def due_items(items: Iterable[ReviewItem], now: datetime) -> DueItems:
    """
    Select the items that can be reviewed right now.

    Args:
        items: A restartable collection (list, tuple, queryset) of items
        now: Current time

    Returns:
        DueItems preserving the input order
    """
    return DueItems(items, now)


def next_scheduled(items: Iterable[ReviewItem], now: datetime) -> Optional[ReviewItem]:
    """
    Find the open item whose next review comes soonest after now.

    Returns None when every item is completed or nothing is scheduled ahead.
    """
    upcoming = [
        item for item in items
        if item.completed_at is None
        and item.next_review_at is not None
        and item.next_review_at > now
    ]
    if not upcoming:
        return None
    return min(upcoming, key=lambda item: item.next_review_at)


def apply_answer(item: ReviewItem, is_correct: bool, now: datetime) -> ReviewItem:
    """
    Calculate an item's next state after a graded answer.

    Transitions:
    - Incorrect: streak resets to 0, retry in 1 minute
    - Correct with streak 0: streak 1, review in 10 minutes
    - Correct with streak 1: streak 2, review in 1 day
    - Correct with streak 2 or more: streak 3, item completes now

    A completed item is returned unchanged.
    """
    if item.completed_at is not None:
        return item

    if not is_correct:
        return replace(
            item,
            streak=0,
            next_review_at=now + RETRY_DELAY,
            last_result=RESULT_NONPASS,
        )

    if item.streak <= 0:
        return replace(
            item,
            streak=1,
            next_review_at=now + FIRST_INTERVAL,
            last_result=RESULT_PASS,
        )

    if item.streak == 1:
        return replace(
            item,
            streak=2,
            next_review_at=now + SECOND_INTERVAL,
            last_result=RESULT_PASS,
        )

    return replace(
        item,
        streak=COMPLETION_STREAK,
        next_review_at=None,
        completed_at=now,
        last_result=RESULT_PASS,
    )
