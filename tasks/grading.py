"""
Pure functions for grading submitted answers.

Two answer types are supported:
- multiple_choice: the learner selects choice ids
- short_answer: the learner types one string per expected field

Grading never raises. A submission with the wrong shape is simply incorrect.
"""
from typing import Iterable, List, Sequence

from .srs import MULTIPLE_CHOICE, SHORT_ANSWER, Choice, ReviewItem, ShortField


def normalize_text(value: str) -> str:
    """Trim surrounding whitespace and case-fold for comparison."""
    return value.strip().casefold()


def correct_choice_ids(choices: Iterable[Choice]) -> List[str]:
    """Ids of the correct choices, in choice order."""
    return [choice.id for choice in choices if choice.is_correct]


def is_multiple_choice_correct(
    choices: Sequence[Choice],
    selected_ids: Sequence[str],
    allow_multiple: bool = True,
) -> bool:
    """
    Grade a multiple choice selection.

    In single-answer mode exactly one choice must be selected and it must be
    the correct one. When multiple correct choices are allowed, the selection
    must equal the set of correct choices.
    """
    correct_ids = correct_choice_ids(choices)
    if not correct_ids:
        return False

    if not allow_multiple:
        if len(selected_ids) != 1:
            return False
        return selected_ids[0] == correct_ids[0]

    if not selected_ids:
        return False
    return set(selected_ids) == set(correct_ids)


def is_short_answer_correct(fields: Sequence[ShortField], inputs: Sequence[str]) -> bool:
    """
    Grade typed answers position by position.

    Every field must match; there is no partial credit.
    """
    if not fields or len(fields) != len(inputs):
        return False

    for expected_field, given in zip(fields, inputs):
        expected = normalize_text(expected_field.expected_answer)
        # A blank expected answer can't be matched
        if not expected or expected != normalize_text(given):
            return False
    return True


def grade(item: ReviewItem, answer: Sequence[str], allow_multiple: bool = True) -> bool:
    """
    Grade an answer against an item.

    Args:
        item: The item being answered
        answer: Selected choice ids for multiple choice, typed strings for short answer
        allow_multiple: Whether the workbook allows several correct choices

    Returns:
        True if the answer is correct
    """
    if item.answer_type == MULTIPLE_CHOICE:
        return is_multiple_choice_correct(item.choices, answer, allow_multiple)
    if item.answer_type == SHORT_ANSWER:
        return is_short_answer_correct(item.short_fields, answer)
    return False
