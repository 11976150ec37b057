"""
Unit tests for the student tasks application.

Test organization:
- SRS tests: Pure function tests for due selection and state transitions
- Grading tests: Pure function tests for answer checking
- SessionCursor tests: Review session pointer
- Model tests: Workbook, StudentTask, StudentTaskItem, AnswerLog
- Service tests: Answer submission and assignment
- View tests: HTML pages and JSON API
- Command tests: assign_workbook
"""

import json
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest import mock

from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.http import Http404
from django.test import Client, SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from . import grading, srs
from .models import (
    AnswerLog,
    StudentTask,
    StudentTaskItem,
    Workbook,
    WorkbookChoice,
    WorkbookItem,
    WorkbookShortField,
)
from .services import assign_workbook, parse_submission, submit_answer
from .session import SessionCursor, load_cursor, save_cursor


NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=dt_timezone.utc)


def make_item(id='1', **kwargs):
    return srs.ReviewItem(id=id, **kwargs)


# =============================================================================
# SRS Due Selection Tests
# =============================================================================

class SRSDueItemsTests(SimpleTestCase):
    """Tests for selecting items that are due now."""

    def test_unscheduled_item_is_due(self):
        """Items with no next review and no completion are always due."""
        item = make_item()
        self.assertTrue(srs.is_due(item, NOW))
        self.assertEqual(list(srs.due_items([item], NOW)), [item])

    def test_past_and_present_items_are_due(self):
        """Items scheduled at or before now are due."""
        past = make_item('1', next_review_at=NOW - timedelta(minutes=5))
        present = make_item('2', next_review_at=NOW)
        self.assertEqual(list(srs.due_items([past, present], NOW)), [past, present])

    def test_future_item_is_not_due(self):
        """Items scheduled after now are not due."""
        future = make_item(next_review_at=NOW + timedelta(seconds=1))
        self.assertFalse(srs.is_due(future, NOW))
        self.assertEqual(list(srs.due_items([future], NOW)), [])

    def test_completed_items_never_due(self):
        """Completed items are excluded whatever their next review says."""
        items = [
            make_item('1', completed_at=NOW - timedelta(days=1)),
            make_item('2', completed_at=NOW, next_review_at=NOW - timedelta(days=1)),
            make_item('3', completed_at=NOW, next_review_at=None),
        ]
        self.assertEqual(list(srs.due_items(items, NOW)), [])

    def test_input_order_is_preserved(self):
        """Due items keep input order, not streak or due time order."""
        items = [
            make_item('a', streak=2, next_review_at=NOW - timedelta(minutes=1)),
            make_item('b', streak=0),
            make_item('c', streak=1, next_review_at=NOW - timedelta(days=3)),
        ]
        ids = [item.id for item in srs.due_items(items, NOW)]
        self.assertEqual(ids, ['a', 'b', 'c'])

    def test_due_items_can_be_iterated_twice(self):
        """The due sequence restarts on each iteration."""
        items = [make_item('1'), make_item('2', next_review_at=NOW + timedelta(days=1))]
        due = srs.due_items(items, NOW)
        self.assertEqual(list(due), list(due))
        self.assertTrue(due)

    def test_empty_due_items_is_falsy(self):
        self.assertFalse(srs.due_items([make_item(completed_at=NOW)], NOW))

    def test_review_state(self):
        self.assertEqual(srs.review_state(make_item(), NOW), srs.STATE_DUE)
        self.assertEqual(
            srs.review_state(make_item(next_review_at=NOW + timedelta(minutes=1)), NOW),
            srs.STATE_SCHEDULED,
        )
        self.assertEqual(srs.review_state(make_item(completed_at=NOW), NOW), srs.STATE_COMPLETED)


class SRSNextScheduledTests(SimpleTestCase):
    """Tests for finding the next scheduled review."""

    def test_returns_earliest_future_item(self):
        later = make_item('1', next_review_at=NOW + timedelta(days=1))
        sooner = make_item('2', next_review_at=NOW + timedelta(minutes=10))
        self.assertEqual(srs.next_scheduled([later, sooner], NOW), sooner)

    def test_ignores_due_and_completed_items(self):
        items = [
            make_item('1', next_review_at=NOW - timedelta(minutes=1)),
            make_item('2', next_review_at=NOW),
            make_item('3', completed_at=NOW, next_review_at=NOW + timedelta(minutes=1)),
            make_item('4', next_review_at=NOW + timedelta(hours=2)),
        ]
        self.assertEqual(srs.next_scheduled(items, NOW).id, '4')

    def test_none_when_nothing_scheduled(self):
        self.assertIsNone(srs.next_scheduled([], NOW))
        self.assertIsNone(srs.next_scheduled([make_item()], NOW))
        self.assertIsNone(srs.next_scheduled([make_item(completed_at=NOW)], NOW))


# =============================================================================
# SRS Transition Tests
# =============================================================================

class SRSApplyAnswerTests(SimpleTestCase):
    """Tests for the streak ladder."""

    def test_first_correct_answer(self):
        """Streak 0 + correct: streak 1, review in 10 minutes."""
        result = srs.apply_answer(make_item(streak=0), True, NOW)
        self.assertEqual(result.streak, 1)
        self.assertEqual(result.next_review_at, NOW + timedelta(minutes=10))
        self.assertIsNone(result.completed_at)
        self.assertEqual(result.last_result, srs.RESULT_PASS)

    def test_second_correct_answer(self):
        """Streak 1 + correct: streak 2, review in 1 day."""
        result = srs.apply_answer(make_item(streak=1), True, NOW)
        self.assertEqual(result.streak, 2)
        self.assertEqual(result.next_review_at, NOW + timedelta(days=1))
        self.assertIsNone(result.completed_at)

    def test_third_correct_answer_completes(self):
        """Streak 2 + correct: streak 3, item completes now."""
        result = srs.apply_answer(make_item(streak=2), True, NOW)
        self.assertEqual(result.streak, 3)
        self.assertEqual(result.completed_at, NOW)
        self.assertEqual(list(srs.due_items([result], NOW + timedelta(days=365))), [])

    def test_incorrect_answer_resets(self):
        """Any miss resets the streak and retries in 1 minute."""
        for streak in [0, 1, 2]:
            result = srs.apply_answer(make_item(streak=streak), False, NOW)
            self.assertEqual(result.streak, 0, f"Streak {streak} should reset")
            self.assertEqual(result.next_review_at, NOW + timedelta(minutes=1))
            self.assertIsNone(result.completed_at)
            self.assertEqual(result.last_result, srs.RESULT_NONPASS)

    def test_next_review_is_after_submission(self):
        for streak, is_correct in [(0, True), (1, True), (0, False), (2, False)]:
            result = srs.apply_answer(make_item(streak=streak), is_correct, NOW)
            self.assertGreater(result.next_review_at, NOW)

    def test_completion_is_terminal(self):
        """Answers to a completed item change nothing."""
        completed = srs.apply_answer(make_item(streak=2), True, NOW)
        later = NOW + timedelta(days=2)
        self.assertEqual(srs.apply_answer(completed, False, later), completed)
        self.assertEqual(srs.apply_answer(completed, True, later), completed)

    def test_input_is_not_mutated(self):
        item = make_item(streak=1)
        srs.apply_answer(item, True, NOW)
        self.assertEqual(item.streak, 1)
        self.assertIsNone(item.next_review_at)

    def test_complete_learning_progression(self):
        """Three correct answers in a row retire an item, a miss starts over."""
        item = make_item()
        item = srs.apply_answer(item, True, NOW)
        item = srs.apply_answer(item, True, item.next_review_at)
        item = srs.apply_answer(item, False, item.next_review_at)
        self.assertEqual(item.streak, 0)

        now = item.next_review_at
        for expected in [1, 2, 3]:
            item = srs.apply_answer(item, True, now)
            self.assertEqual(item.streak, expected)
            now = item.next_review_at or now
        self.assertIsNotNone(item.completed_at)


# =============================================================================
# Grading Tests
# =============================================================================

CHOICES = (
    srs.Choice(id='a', content='Berlin', is_correct=False),
    srs.Choice(id='b', content='Paris', is_correct=True),
    srs.Choice(id='c', content='Rome', is_correct=False),
)

MULTI_CHOICES = (
    srs.Choice(id='a', content='2', is_correct=True),
    srs.Choice(id='b', content='4', is_correct=False),
    srs.Choice(id='c', content='3', is_correct=True),
)


class MultipleChoiceGradingTests(SimpleTestCase):
    """Tests for multiple choice grading."""

    def test_single_mode_correct_choice(self):
        self.assertTrue(grading.is_multiple_choice_correct(CHOICES, ['b'], allow_multiple=False))

    def test_single_mode_wrong_choice(self):
        self.assertFalse(grading.is_multiple_choice_correct(CHOICES, ['a'], allow_multiple=False))

    def test_single_mode_requires_exactly_one_selection(self):
        self.assertFalse(grading.is_multiple_choice_correct(CHOICES, [], allow_multiple=False))
        self.assertFalse(grading.is_multiple_choice_correct(CHOICES, ['b', 'a'], allow_multiple=False))

    def test_multiple_mode_exact_set(self):
        self.assertTrue(grading.is_multiple_choice_correct(MULTI_CHOICES, ['c', 'a']))

    def test_multiple_mode_subset_fails(self):
        self.assertFalse(grading.is_multiple_choice_correct(MULTI_CHOICES, ['a']))

    def test_multiple_mode_superset_fails(self):
        self.assertFalse(grading.is_multiple_choice_correct(MULTI_CHOICES, ['a', 'b', 'c']))

    def test_multiple_mode_empty_selection_fails(self):
        self.assertFalse(grading.is_multiple_choice_correct(MULTI_CHOICES, []))

    def test_no_correct_choice_never_passes(self):
        choices = (srs.Choice(id='a', content='x', is_correct=False),)
        self.assertFalse(grading.is_multiple_choice_correct(choices, ['a']))
        self.assertFalse(grading.is_multiple_choice_correct(choices, [], allow_multiple=True))


class ShortAnswerGradingTests(SimpleTestCase):
    """Tests for short answer grading."""

    def fields(self, *answers):
        return tuple(
            srs.ShortField(id=str(i), label='', expected_answer=answer)
            for i, answer in enumerate(answers)
        )

    def test_trim_and_case_fold(self):
        """' paris ' matches 'Paris'."""
        self.assertTrue(grading.is_short_answer_correct(self.fields('Paris'), [' paris ']))

    def test_length_mismatch_fails(self):
        """Fewer inputs than fields fails the whole item."""
        self.assertFalse(grading.is_short_answer_correct(self.fields('Paris', '1889'), ['Paris']))
        self.assertFalse(grading.is_short_answer_correct(self.fields('Paris'), ['Paris', 'x']))

    def test_every_field_must_match(self):
        fields = self.fields('Paris', '1889')
        self.assertTrue(grading.is_short_answer_correct(fields, ['PARIS', '1889 ']))
        self.assertFalse(grading.is_short_answer_correct(fields, ['Paris', '1890']))

    def test_position_matters(self):
        self.assertFalse(grading.is_short_answer_correct(self.fields('Paris', '1889'), ['1889', 'Paris']))

    def test_no_fields_never_passes(self):
        self.assertFalse(grading.is_short_answer_correct((), []))

    def test_blank_expected_answer_never_passes(self):
        self.assertFalse(grading.is_short_answer_correct(self.fields('  '), ['']))


class GradeDispatchTests(SimpleTestCase):
    """Tests for grading by answer type."""

    def test_multiple_choice_item(self):
        item = make_item(answer_type=srs.MULTIPLE_CHOICE, choices=CHOICES)
        self.assertTrue(grading.grade(item, ['b'], allow_multiple=False))
        self.assertFalse(grading.grade(item, ['z'], allow_multiple=False))

    def test_short_answer_item(self):
        item = make_item(
            answer_type=srs.SHORT_ANSWER,
            short_fields=(srs.ShortField(id='1', label='Capital', expected_answer='Paris'),),
        )
        self.assertTrue(grading.grade(item, ['paris']))

    def test_unknown_answer_type_fails(self):
        self.assertFalse(grading.grade(make_item(answer_type='essay'), ['anything']))

    def test_grading_is_idempotent(self):
        item = make_item(answer_type=srs.MULTIPLE_CHOICE, choices=MULTI_CHOICES)
        answer = ['a', 'c']
        self.assertEqual(grading.grade(item, answer), grading.grade(item, answer))
        self.assertEqual(answer, ['a', 'c'])


# =============================================================================
# Session Cursor Tests
# =============================================================================

class SessionCursorTests(SimpleTestCase):
    """Tests for the review session pointer."""

    def test_empty_cursor(self):
        cursor = SessionCursor([])
        self.assertIsNone(cursor.current)
        self.assertIsNone(cursor.advance())

    def test_advance_wraps_to_start(self):
        cursor = SessionCursor(['1', '2', '3'])
        self.assertEqual(cursor.current, '1')
        self.assertEqual(cursor.advance(), '2')
        self.assertEqual(cursor.advance(), '3')
        self.assertEqual(cursor.advance(), '1')

    def test_out_of_range_position_resets(self):
        self.assertEqual(SessionCursor(['1', '2'], position=5).position, 0)

    def test_load_without_stored_cursor(self):
        cursor, reset = load_cursor({}, 7, [1, 2])
        self.assertTrue(reset)
        self.assertEqual(cursor.current, '1')

    def test_load_keeps_position_for_same_ids(self):
        session = {}
        cursor, _ = load_cursor(session, 7, [1, 2])
        cursor.advance()
        save_cursor(session, 7, cursor)
        restored, reset = load_cursor(session, 7, [1, 2])
        self.assertFalse(reset)
        self.assertEqual(restored.current, '2')

    def test_load_resets_when_due_ids_change(self):
        session = {}
        cursor, _ = load_cursor(session, 7, [1, 2, 3])
        cursor.advance()
        save_cursor(session, 7, cursor)
        restored, reset = load_cursor(session, 7, [2, 3])
        self.assertTrue(reset)
        self.assertEqual(restored.position, 0)
        self.assertEqual(restored.current, '2')


# =============================================================================
# Model Tests
# =============================================================================

class TaskFixtureMixin:
    """Creates a student, a workbook with one multiple choice and one short answer item."""

    def setUp(self):
        self.student = User.objects.create_user(username='student', password='testpass123')
        self.workbook = Workbook.objects.create(title='Capitals', subject='Geography')

        self.mc_item = WorkbookItem.objects.create(
            workbook=self.workbook, position=1, prompt='Capital of France?',
            answer_type=WorkbookItem.AnswerType.MULTIPLE_CHOICE,
        )
        self.wrong_choice = WorkbookChoice.objects.create(item=self.mc_item, position=1, content='Berlin')
        self.right_choice = WorkbookChoice.objects.create(
            item=self.mc_item, position=2, content='Paris', is_correct=True
        )

        self.short_item = WorkbookItem.objects.create(
            workbook=self.workbook, position=2, prompt='Capital and tower year?',
            answer_type=WorkbookItem.AnswerType.SHORT_ANSWER,
        )
        WorkbookShortField.objects.create(item=self.short_item, position=1, label='City', answer='Paris')
        WorkbookShortField.objects.create(item=self.short_item, position=2, label='Year', answer='1889')

        self.task, _ = assign_workbook(self.workbook, self.student)
        self.mc_row = self.task.items.get(workbook_item=self.mc_item)
        self.short_row = self.task.items.get(workbook_item=self.short_item)


class WorkbookModelTests(TestCase):
    """Tests for the Workbook model."""

    def test_allow_multiple_defaults_to_true(self):
        self.assertTrue(Workbook(title='x').allow_multiple_correct)
        self.assertTrue(Workbook(title='x', config={'srs': {'allowMultipleCorrect': 'no'}}).allow_multiple_correct)

    def test_allow_multiple_reads_config(self):
        workbook = Workbook(title='x', config={'srs': {'allowMultipleCorrect': False}})
        self.assertFalse(workbook.allow_multiple_correct)

    def test_workbook_str(self):
        self.assertEqual(str(Workbook(title='Capitals')), 'Capitals')


class StudentTaskItemModelTests(TaskFixtureMixin, TestCase):
    """Tests for StudentTaskItem conversion and submission."""

    def test_new_item_defaults(self):
        self.assertEqual(self.mc_row.streak, 0)
        self.assertIsNone(self.mc_row.next_review_at)
        self.assertIsNone(self.mc_row.completed_at)
        self.assertTrue(self.mc_row.is_due())

    def test_to_review_item(self):
        item = self.short_row.to_review_item()
        self.assertEqual(item.id, str(self.short_row.pk))
        self.assertEqual(item.answer_type, srs.SHORT_ANSWER)
        self.assertEqual([f.expected_answer for f in item.short_fields], ['Paris', '1889'])

        choices = self.mc_row.to_review_item().choices
        self.assertEqual([c.id for c in choices], [str(self.wrong_choice.pk), str(self.right_choice.pk)])
        self.assertEqual([c.is_correct for c in choices], [False, True])

    def test_submit_correct_answer(self):
        log = self.mc_row.submit([str(self.right_choice.pk)], now=NOW)
        self.mc_row.refresh_from_db()
        self.assertTrue(log.is_correct)
        self.assertEqual(self.mc_row.streak, 1)
        self.assertEqual(self.mc_row.next_review_at, NOW + timedelta(minutes=10))
        self.assertEqual(self.mc_row.last_result, StudentTaskItem.Result.PASS)

    def test_submit_incorrect_answer(self):
        self.mc_row.streak = 2
        self.mc_row.save()
        log = self.mc_row.submit([str(self.wrong_choice.pk)], now=NOW)
        self.mc_row.refresh_from_db()
        self.assertFalse(log.is_correct)
        self.assertEqual(log.streak_before, 2)
        self.assertEqual(self.mc_row.streak, 0)
        self.assertEqual(self.mc_row.next_review_at, NOW + timedelta(minutes=1))

    def test_submit_completed_item_does_nothing(self):
        self.mc_row.streak = 3
        self.mc_row.completed_at = NOW
        self.mc_row.save()
        self.assertIsNone(self.mc_row.submit([str(self.wrong_choice.pk)], now=NOW))
        self.mc_row.refresh_from_db()
        self.assertEqual(self.mc_row.completed_at, NOW)
        self.assertEqual(AnswerLog.objects.count(), 0)

    def test_each_submission_is_logged(self):
        self.mc_row.submit([str(self.right_choice.pk)], now=NOW)
        self.mc_row.submit([str(self.wrong_choice.pk)], now=NOW + timedelta(minutes=10))
        self.assertEqual(AnswerLog.objects.filter(item=self.mc_row).count(), 2)


class StudentTaskModelTests(TaskFixtureMixin, TestCase):
    """Tests for task status, summary and due state."""

    def test_new_task_is_pending(self):
        self.task.refresh_from_db()
        self.assertEqual(self.task.status, StudentTask.Status.PENDING)
        self.assertEqual(self.task.summary(), {
            'total_items': 2, 'completed_items': 0, 'remaining_items': 2,
        })

    def test_partial_completion_is_in_progress(self):
        self.mc_row.completed_at = NOW
        self.mc_row.save()
        self.assertEqual(self.task.refresh_status(NOW), StudentTask.Status.IN_PROGRESS)
        self.assertIsNone(self.task.completion_at)

    def test_all_items_completed(self):
        self.task.items.update(completed_at=NOW, streak=3)
        self.assertEqual(self.task.refresh_status(NOW), StudentTask.Status.COMPLETED)
        self.task.refresh_from_db()
        self.assertEqual(self.task.completion_at, NOW)
        self.assertEqual(self.task.summary()['remaining_items'], 0)

    def test_task_without_items_never_completes(self):
        empty = StudentTask.objects.create(
            student=self.student, workbook=Workbook.objects.create(title='Empty')
        )
        self.assertEqual(empty.refresh_status(NOW), StudentTask.Status.IN_PROGRESS)

    def test_canceled_task_keeps_status(self):
        self.task.status = StudentTask.Status.CANCELED
        self.task.save()
        self.task.items.update(completed_at=NOW)
        self.assertEqual(self.task.refresh_status(NOW), StudentTask.Status.CANCELED)

    def test_due_state(self):
        self.task.due_at = NOW + timedelta(hours=3)
        state = self.task.due_state(NOW)
        self.assertTrue(state['is_due_soon'])
        self.assertFalse(state['is_overdue'])

        self.task.due_at = NOW - timedelta(hours=1)
        state = self.task.due_state(NOW)
        self.assertTrue(state['is_overdue'])
        self.assertFalse(state['is_due_soon'])

    def test_completed_task_is_never_overdue(self):
        self.task.status = StudentTask.Status.COMPLETED
        self.task.due_at = NOW - timedelta(days=1)
        self.assertFalse(self.task.due_state(NOW)['is_overdue'])

    def test_no_due_date(self):
        self.assertEqual(self.task.due_state(NOW), {'due_at': None, 'is_overdue': False, 'is_due_soon': False})

    def test_review_items_follow_workbook_order(self):
        ids = [item.id for item in self.task.review_items()]
        self.assertEqual(ids, [str(self.mc_row.pk), str(self.short_row.pk)])


# =============================================================================
# Service Tests
# =============================================================================

class SubmitAnswerServiceTests(TaskFixtureMixin, TestCase):
    """Tests for the answer submission service."""

    def clock(self):
        return NOW

    def test_scenario_single_choice_first_correct(self):
        """Streak 0, single-answer mode, correct choice: streak 1, +10 minutes."""
        self.workbook.config = {'srs': {'allowMultipleCorrect': False}}
        self.workbook.save()

        item, log = submit_answer(
            self.mc_row.pk, self.student, {'choice_ids': [self.right_choice.pk]}, clock=self.clock
        )
        self.assertTrue(log.is_correct)
        self.assertEqual(item.streak, 1)
        self.assertEqual(item.next_review_at, NOW + timedelta(minutes=10))
        self.assertIsNone(item.completed_at)

    def test_scenario_short_answer_trimmed(self):
        WorkbookShortField.objects.filter(item=self.short_item, position=2).delete()
        item, log = submit_answer(self.short_row.pk, self.student, {'answers': [' paris ']}, clock=self.clock)
        self.assertTrue(log.is_correct)

    def test_scenario_short_answer_length_mismatch(self):
        item, log = submit_answer(self.short_row.pk, self.student, {'answers': ['Paris']}, clock=self.clock)
        self.assertFalse(log.is_correct)
        self.assertEqual(item.next_review_at, NOW + timedelta(minutes=1))

    def test_three_correct_answers_complete_task_item(self):
        answer = {'choice_ids': [str(self.right_choice.pk)]}
        for _ in range(3):
            item, _ = submit_answer(self.mc_row.pk, self.student, answer, clock=self.clock)
        self.assertEqual(item.streak, 3)
        self.assertEqual(item.completed_at, NOW)
        self.task.refresh_from_db()
        self.assertEqual(self.task.status, StudentTask.Status.IN_PROGRESS)

    def test_missing_item_raises_not_found(self):
        with self.assertRaises(Http404):
            submit_answer(99999, self.student, {'choice_ids': ['1']})

    def test_other_student_is_forbidden(self):
        other = User.objects.create_user(username='other', password='testpass123')
        with self.assertRaises(PermissionDenied):
            submit_answer(self.mc_row.pk, other, {'choice_ids': [str(self.right_choice.pk)]})
        self.mc_row.refresh_from_db()
        self.assertEqual(self.mc_row.streak, 0)
        self.assertEqual(AnswerLog.objects.count(), 0)

    def test_completed_item_rejects_answer(self):
        self.mc_row.completed_at = NOW
        self.mc_row.save()
        with self.assertRaises(ValidationError):
            submit_answer(self.mc_row.pk, self.student, {'choice_ids': [str(self.right_choice.pk)]})


class ParseSubmissionTests(TaskFixtureMixin, TestCase):
    """Tests for submission shape validation."""

    def test_choice_ids_are_stringified(self):
        self.assertEqual(parse_submission(self.mc_row, {'choice_ids': [1, '2']}), ['1', '2'])

    def test_multiple_choice_requires_selection(self):
        for payload in [{}, {'choice_ids': []}, {'choice_ids': 'abc'}, {'choice_ids': [None]}]:
            with self.assertRaises(ValidationError):
                parse_submission(self.mc_row, payload)

    def test_short_answer_requires_string_list(self):
        for payload in [{}, {'answers': 'Paris'}, {'answers': [1]}]:
            with self.assertRaises(ValidationError):
                parse_submission(self.short_row, payload)

    def test_short_answer_rejects_blank_inputs(self):
        for payload in [{'answers': ['Paris', '']}, {'answers': ['   ', '1889']}]:
            with self.assertRaises(ValidationError):
                parse_submission(self.short_row, payload)

    def test_short_answer_wrong_count_is_allowed(self):
        """A wrong number of answers is graded, not rejected."""
        self.assertEqual(parse_submission(self.short_row, {'answers': ['Paris']}), ['Paris'])

    def test_payload_must_be_object(self):
        with self.assertRaises(ValidationError):
            parse_submission(self.mc_row, ['1'])


class AssignWorkbookServiceTests(TaskFixtureMixin, TestCase):
    """Tests for assigning workbooks."""

    def test_creates_one_row_per_item(self):
        self.assertEqual(self.task.items.count(), 2)

    def test_reassigning_is_idempotent(self):
        task, created = assign_workbook(self.workbook, self.student)
        self.assertFalse(created)
        self.assertEqual(task.pk, self.task.pk)
        self.assertEqual(task.items.count(), 2)

    def test_reassigning_adds_new_items(self):
        WorkbookItem.objects.create(workbook=self.workbook, position=3, prompt='New question')
        task, created = assign_workbook(self.workbook, self.student)
        self.assertFalse(created)
        self.assertEqual(task.items.count(), 3)


# =============================================================================
# View Tests
# =============================================================================

class AnswerItemViewTests(TaskFixtureMixin, TestCase):
    """Tests for the answer JSON API."""

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.login(username='student', password='testpass123')

    def post_answer(self, pk, data):
        return self.client.post(
            reverse('answer_item', kwargs={'pk': pk}),
            data=json.dumps(data) if not isinstance(data, str) else data,
            content_type='application/json'
        )

    def test_correct_answer(self):
        response = self.post_answer(self.mc_row.pk, {'choice_ids': [str(self.right_choice.pk)]})
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.content)
        self.assertTrue(data['success'])
        self.assertTrue(data['is_correct'])
        self.assertEqual(data['streak'], 1)
        self.assertIsNotNone(data['next_review_at'])
        self.assertIsNone(data['completed_at'])
        self.assertEqual(data['task_status'], StudentTask.Status.PENDING)

    def test_incorrect_answer(self):
        response = self.post_answer(self.short_row.pk, {'answers': ['London', '1889']})
        data = json.loads(response.content)
        self.assertTrue(data['success'])
        self.assertFalse(data['is_correct'])
        self.assertEqual(data['streak'], 0)

    def test_invalid_json(self):
        response = self.post_answer(self.mc_row.pk, 'not json')
        self.assertEqual(response.status_code, 400)
        self.assertFalse(json.loads(response.content)['success'])

    def test_invalid_shape(self):
        response = self.post_answer(self.mc_row.pk, {'answers': ['Paris']})
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', json.loads(response.content))

    def test_not_found(self):
        response = self.post_answer(99999, {'choice_ids': ['1']})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(json.loads(response.content), {'success': False, 'error': 'Item not found.'})

    def test_forbidden_for_other_student(self):
        User.objects.create_user(username='other', password='testpass123')
        self.client.login(username='other', password='testpass123')
        response = self.post_answer(self.mc_row.pk, {'choice_ids': [str(self.right_choice.pk)]})
        self.assertEqual(response.status_code, 403)
        self.mc_row.refresh_from_db()
        self.assertEqual(self.mc_row.streak, 0)

    def test_storage_failure_rolls_back(self):
        """A failed write returns 500 and leaves the item as it was."""
        with mock.patch.object(AnswerLog.objects, 'create', side_effect=DatabaseError('disk full')):
            response = self.post_answer(self.mc_row.pk, {'choice_ids': [str(self.right_choice.pk)]})

        self.assertEqual(response.status_code, 500)
        data = json.loads(response.content)
        self.assertFalse(data['success'])
        self.assertIn('error', data)

        self.mc_row.refresh_from_db()
        self.assertEqual(self.mc_row.streak, 0)
        self.assertIsNone(self.mc_row.next_review_at)
        self.assertIsNone(self.mc_row.last_result)
        self.assertEqual(AnswerLog.objects.count(), 0)

    def test_blank_short_answer_rejected(self):
        response = self.post_answer(self.short_row.pk, {'answers': ['Paris', '  ']})
        self.assertEqual(response.status_code, 400)
        self.short_row.refresh_from_db()
        self.assertIsNone(self.short_row.last_result)

    def test_get_not_allowed(self):
        response = self.client.get(reverse('answer_item', kwargs={'pk': self.mc_row.pk}))
        self.assertEqual(response.status_code, 405)

    def test_requires_login(self):
        self.client.logout()
        response = self.post_answer(self.mc_row.pk, {'choice_ids': [str(self.right_choice.pk)]})
        self.assertEqual(response.status_code, 302)


class TaskStateApiTests(TaskFixtureMixin, TestCase):
    """Tests for the task state JSON API."""

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.login(username='student', password='testpass123')

    def test_all_new_items_are_due(self):
        response = self.client.get(reverse('api_task_state', kwargs={'pk': self.task.pk}))
        data = json.loads(response.content)
        self.assertEqual(data['due_item_ids'], [str(self.mc_row.pk), str(self.short_row.pk)])
        self.assertIsNone(data['next_review_at'])
        self.assertEqual(data['summary']['total_items'], 2)

    def test_scheduled_item_reported(self):
        self.mc_row.next_review_at = timezone.now() + timedelta(minutes=10)
        self.mc_row.save()
        data = json.loads(self.client.get(reverse('api_task_state', kwargs={'pk': self.task.pk})).content)
        self.assertEqual(data['due_item_ids'], [str(self.short_row.pk)])
        self.assertIsNotNone(data['next_review_at'])

    def test_other_students_task_is_hidden(self):
        User.objects.create_user(username='other', password='testpass123')
        self.client.login(username='other', password='testpass123')
        response = self.client.get(reverse('api_task_state', kwargs={'pk': self.task.pk}))
        self.assertEqual(response.status_code, 404)


class ReviewSessionViewTests(TaskFixtureMixin, TestCase):
    """Tests for the HTML review session."""

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.login(username='student', password='testpass123')
        self.url = reverse('review_session', kwargs={'pk': self.task.pk})

    def test_shows_first_due_item(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['current'], self.mc_row)
        self.assertContains(response, 'Capital of France?')

    def test_next_advances_and_wraps(self):
        next_url = reverse('review_next', kwargs={'pk': self.task.pk})
        self.client.get(self.url)

        response = self.client.post(next_url)
        self.assertRedirects(response, self.url)
        self.assertEqual(self.client.get(self.url).context['current'], self.short_row)

        self.client.post(next_url)
        self.assertEqual(self.client.get(self.url).context['current'], self.mc_row)

    def test_cursor_resets_when_due_items_change(self):
        self.client.get(self.url)
        self.client.post(reverse('review_next', kwargs={'pk': self.task.pk}))

        self.short_row.next_review_at = timezone.now() + timedelta(days=1)
        self.short_row.save()
        response = self.client.get(self.url)
        self.assertEqual(response.context['current'], self.mc_row)
        self.assertEqual(response.context['position'], 1)

    def test_next_after_answer_shows_following_item(self):
        """Answering removes the item from the due list; next lands on the item after it."""
        third_item = WorkbookItem.objects.create(workbook=self.workbook, position=3, prompt='Third?')
        WorkbookChoice.objects.create(item=third_item, position=1, content='Yes', is_correct=True)
        assign_workbook(self.workbook, self.student)

        self.assertEqual(self.client.get(self.url).context['current'], self.mc_row)

        response = self.client.post(
            reverse('answer_item', kwargs={'pk': self.mc_row.pk}),
            data=json.dumps({'choice_ids': [str(self.right_choice.pk)]}),
            content_type='application/json'
        )
        self.assertTrue(json.loads(response.content)['success'])

        self.client.post(reverse('review_next', kwargs={'pk': self.task.pk}))
        response = self.client.get(self.url)
        self.assertEqual(response.context['current'], self.short_row)
        self.assertEqual(response.context['total_due'], 2)

    def test_answer_form_posts_to_item_endpoint(self):
        response = self.client.get(self.url)
        self.assertContains(response, 'id="answer-form"')
        self.assertContains(response, reverse('answer_item', kwargs={'pk': self.mc_row.pk}))

    def test_nothing_due_shows_next_review(self):
        self.task.items.update(next_review_at=timezone.now() + timedelta(minutes=10))
        response = self.client.get(self.url)
        self.assertIsNone(response.context['current'])
        self.assertIsNotNone(response.context['next_review_at'])
        self.assertContains(response, 'Nothing to review right now.')

    def test_all_completed(self):
        self.task.items.update(completed_at=timezone.now(), streak=3)
        response = self.client.get(self.url)
        self.assertContains(response, 'All items completed.')

    def test_other_students_task_is_hidden(self):
        User.objects.create_user(username='other', password='testpass123')
        self.client.login(username='other', password='testpass123')
        self.assertEqual(self.client.get(self.url).status_code, 404)


class TaskListViewTests(TaskFixtureMixin, TestCase):
    """Tests for the task list and history pages."""

    def setUp(self):
        super().setUp()
        self.client = Client()

    def test_requires_login(self):
        response = self.client.get(reverse('task_list'))
        self.assertRedirects(response, f"{reverse('admin:login')}?next={reverse('task_list')}")

    def test_lists_own_tasks(self):
        self.client.login(username='student', password='testpass123')
        response = self.client.get(reverse('task_list'))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Capitals')
        self.assertContains(response, '0 / 2 done')

    def test_history_shows_answers(self):
        self.mc_row.submit([str(self.right_choice.pk)], now=NOW)
        self.client.login(username='student', password='testpass123')
        response = self.client.get(reverse('task_history', kwargs={'pk': self.task.pk}))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Correct')
        self.assertEqual(len(response.context['logs']), 1)


class AdminTests(TaskFixtureMixin, TestCase):
    """Tests that the admin pages render."""

    def test_admin_changelists_load(self):
        User.objects.create_superuser(username='admin', email='admin@example.com', password='adminpass123')
        client = Client()
        client.login(username='admin', password='adminpass123')
        for name in ['workbook', 'workbookitem', 'studenttask', 'answerlog']:
            response = client.get(reverse(f'admin:tasks_{name}_changelist'))
            self.assertEqual(response.status_code, 200, name)
        response = client.get(reverse('admin:tasks_workbookitem_change', args=[self.mc_item.pk]))
        self.assertEqual(response.status_code, 200)


# =============================================================================
# Command Tests
# =============================================================================

class AssignWorkbookCommandTests(TestCase):
    """Tests for the assign_workbook management command."""

    def setUp(self):
        self.student = User.objects.create_user(username='student', password='testpass123')
        self.workbook = Workbook.objects.create(title='Capitals')
        WorkbookItem.objects.create(workbook=self.workbook, position=1, prompt='Q1')

    def test_assigns_workbook(self):
        out = StringIO()
        call_command('assign_workbook', str(self.workbook.pk), 'student', stdout=out)
        self.assertIn('Assigned workbook to 1 student(s)', out.getvalue())
        task = StudentTask.objects.get(student=self.student, workbook=self.workbook)
        self.assertEqual(task.items.count(), 1)

    def test_due_at_option(self):
        call_command(
            'assign_workbook', str(self.workbook.pk), 'student',
            '--due-at', '2026-11-01T18:00:00+00:00', stdout=StringIO(),
        )
        task = StudentTask.objects.get(student=self.student)
        self.assertEqual(task.due_at, datetime(2026, 11, 1, 18, 0, tzinfo=dt_timezone.utc))

    def test_dry_run_writes_nothing(self):
        out = StringIO()
        call_command('assign_workbook', str(self.workbook.pk), 'student', '--dry-run', stdout=out)
        self.assertIn('[DRY RUN]', out.getvalue())
        self.assertFalse(StudentTask.objects.exists())

    def test_unknown_user_skipped(self):
        err = StringIO()
        call_command('assign_workbook', str(self.workbook.pk), 'nobody', stdout=StringIO(), stderr=err)
        self.assertIn('nobody', err.getvalue())

    def test_unknown_workbook(self):
        with self.assertRaises(CommandError):
            call_command('assign_workbook', '99999', 'student', stdout=StringIO())
