"""
Unit tests for the quiz engine helpers, builder and timers.
"""
import unittest
import asyncio
import random
from unittest.mock import Mock, AsyncMock

from trivia.quiz_engine import (
    DeferredAction, QuestionSetBuilder, QuestionTimer, calculate_percentage, decode_string
)
from tests.test_fixtures import TestFixtures, AsyncTestHelpers


class TestDecodeString(unittest.TestCase):
    """Test cases for HTML entity decoding."""

    def test_decodes_named_entity(self):
        self.assertEqual(decode_string("Q &amp; A"), "Q & A")

    def test_decodes_numeric_entities(self):
        self.assertEqual(decode_string("It&#039;s &quot;fine&quot;"), 'It\'s "fine"')

    def test_plain_text_unchanged(self):
        self.assertEqual(decode_string("No entities here"), "No entities here")

    def test_double_escaped_entity_decodes_once(self):
        self.assertEqual(decode_string("&amp;amp;"), "&amp;")

    def test_malformed_entity_passes_through(self):
        self.assertEqual(decode_string("5 &zzz; 6"), "5 &zzz; 6")


class TestCalculatePercentage(unittest.TestCase):
    """Test cases for progress percentage."""

    def test_zero_progress(self):
        for total in (0, 1, 10, 200):
            self.assertEqual(calculate_percentage(0, total), 0)

    def test_zero_total(self):
        for progress in (0, 1, 10):
            self.assertEqual(calculate_percentage(progress, 0), 0)

    def test_exact_fraction(self):
        self.assertEqual(calculate_percentage(50, 200), 25)

    def test_floors_instead_of_rounding(self):
        self.assertEqual(calculate_percentage(99, 100), 99)
        self.assertEqual(calculate_percentage(2, 3), 66)

    def test_complete(self):
        self.assertEqual(calculate_percentage(5, 5), 100)


class TestQuestionSetBuilder(unittest.TestCase):
    """Test cases for building questions from raw records."""

    def setUp(self):
        self.builder = QuestionSetBuilder(random.Random(42))
        self.records = TestFixtures.create_raw_records()

    def test_build_preserves_length_and_order(self):
        questions = self.builder.build(self.records)

        self.assertEqual(len(questions), 2)
        self.assertEqual(questions[0].question, 'What does "HTML" stand for?')
        self.assertEqual(questions[1].question, "Python's name comes from a snake.")

    def test_options_contain_answer_once(self):
        questions = self.builder.build(self.records)

        for question, record in zip(questions, self.records):
            self.assertEqual(len(question.options), len(record["incorrect_answers"]) + 1)
            self.assertEqual(question.options.count(question.answer), 1)

    def test_options_are_decoded(self):
        question = self.builder.build(self.records)[0]
        self.assertIn("Hyperlinks & Text Markup Language", question.options)

    def test_ids_unique_within_batch(self):
        records = self.records * 10
        questions = self.builder.build(records)

        ids = [question.id for question in questions]
        self.assertEqual(len(ids), len(set(ids)))

    def test_empty_input_builds_nothing(self):
        self.assertEqual(self.builder.build([]), [])

    def test_shuffle_uses_injected_randomness(self):
        rng = Mock()
        builder = QuestionSetBuilder(rng)

        builder.build(self.records[:1])

        rng.shuffle.assert_called_once()
        shuffled = rng.shuffle.call_args[0][0]
        self.assertEqual(shuffled[-1], "Hypertext Markup Language")

    def test_shuffle_produces_every_position(self):
        builder = QuestionSetBuilder(random.Random(7))
        positions = set()
        for _ in range(200):
            question = builder.build(self.records[:1])[0]
            positions.add(question.options.index(question.answer))
        self.assertEqual(positions, {0, 1, 2, 3})


class TestDeferredAction(unittest.IsolatedAsyncioTestCase):
    """Test cases for the replaceable scheduled callback."""

    async def test_fires_after_delay(self):
        callback = Mock()
        action = DeferredAction("test")

        action.schedule(0.01, callback)
        self.assertTrue(action.pending)
        callback.assert_not_called()

        await asyncio.sleep(0.05)
        callback.assert_called_once()
        self.assertFalse(action.pending)

    async def test_reschedule_replaces_pending_run(self):
        first = Mock()
        second = Mock()
        action = DeferredAction("test")

        action.schedule(0.02, first)
        action.schedule(0.02, second)
        await asyncio.sleep(0.06)

        first.assert_not_called()
        second.assert_called_once()

    async def test_cancel(self):
        callback = Mock()
        action = DeferredAction("test")

        action.schedule(0.01, callback)
        self.assertTrue(action.cancel())
        await asyncio.sleep(0.03)

        callback.assert_not_called()
        self.assertFalse(action.cancel())

    async def test_awaits_coroutine_callback(self):
        callback = AsyncMock()
        action = DeferredAction("test")

        action.schedule(0.0, callback)
        await asyncio.sleep(0.02)

        callback.assert_awaited_once()


class TestQuestionTimer(unittest.IsolatedAsyncioTestCase):
    """Test cases for the per-question countdown."""

    async def test_reports_elapsed_and_completes(self):
        updates = []
        completion = Mock()
        timer = QuestionTimer(3, tick=0.005)

        await timer.run(updates.append, completion)

        self.assertEqual(updates, [1, 2, 3])
        completion.assert_called_once()
        self.assertEqual(timer.remaining_time, 0)

    async def test_cancel_skips_completion(self):
        completion = Mock()
        timer = QuestionTimer(100, tick=0.005)

        timer.start(lambda elapsed: None, completion)
        await asyncio.sleep(0.02)
        timer.cancel()
        await asyncio.sleep(0.02)

        completion.assert_not_called()
        self.assertTrue(timer.is_cancelled)
        self.assertGreater(timer.remaining_time, 0)

    async def test_restart_after_cancel_runs_to_completion(self):
        completion = Mock()
        timer = QuestionTimer(2, tick=0.005)

        timer.start(lambda elapsed: None, Mock())
        timer.start(lambda elapsed: None, completion)

        self.assertTrue(await AsyncTestHelpers.wait_for(lambda: completion.called))
        completion.assert_called_once()
