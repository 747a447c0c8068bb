"""
Unit tests for the trivia API client and the score store.
"""
import unittest

import httpx

from trivia.data_manager import TriviaDataError, TriviaDataManager
from trivia.models import Category, QuizOptions, SavedScore
from trivia.score_store import ScoreStore, ScoreStoreError
from tests.test_fixtures import TestFixtures

BASE_URL = "https://trivia.test"


class TestTriviaDataManager(unittest.IsolatedAsyncioTestCase):
    """Test cases for category and question requests."""

    def make_manager(self, routes):
        self.transport = TestFixtures.create_mock_transport(routes)
        self.client = httpx.AsyncClient(transport=self.transport)
        return TriviaDataManager(
            category_url=f"{BASE_URL}/api_category.php",
            questions_url=f"{BASE_URL}/api.php",
            client=self.client
        )

    async def asyncSetUp(self):
        self.client = None

    async def asyncTearDown(self):
        if self.client is not None:
            await self.client.aclose()

    async def test_fetch_categories(self):
        manager = self.make_manager({
            "/api_category.php": httpx.Response(200, json=TestFixtures.create_categories_payload())
        })

        categories = await manager.fetch_categories()

        self.assertEqual(categories[0], Category(id=18, name="Science: Computers"))
        self.assertEqual(len(categories), 3)

    async def test_fetch_categories_accepts_bare_list(self):
        manager = self.make_manager({
            "/api_category.php": httpx.Response(200, json=[{"id": 1, "name": "A"}])
        })

        self.assertEqual(await manager.fetch_categories(), [Category(1, "A")])

    async def test_fetch_categories_rejects_bad_entries(self):
        manager = self.make_manager({
            "/api_category.php": httpx.Response(200, json={"trivia_categories": [{"id": "x"}]})
        })

        with self.assertRaises(TriviaDataError):
            await manager.fetch_categories()

    async def test_fetch_questions_sends_only_set_filters(self):
        manager = self.make_manager({
            "/api.php": httpx.Response(200, json={"response_code": 0, "results": TestFixtures.create_raw_records()})
        })

        records = await manager.fetch_questions(QuizOptions(amount="2", category=9))

        self.assertEqual(len(records), 2)
        params = self.transport.requests[0].url.params
        self.assertEqual(params["amount"], "2")
        self.assertEqual(params["category"], "9")
        self.assertNotIn("difficulty", params)
        self.assertNotIn("type", params)

    async def test_fetch_questions_empty_results_is_valid(self):
        manager = self.make_manager({
            "/api.php": httpx.Response(200, json={"response_code": 1, "results": []})
        })

        self.assertEqual(await manager.fetch_questions(QuizOptions()), [])

    async def test_fetch_questions_rejects_malformed_record(self):
        record = TestFixtures.create_raw_records()[0]
        record["incorrect_answers"] = "not a list"
        manager = self.make_manager({
            "/api.php": httpx.Response(200, json={"results": [record]})
        })

        with self.assertRaises(TriviaDataError):
            await manager.fetch_questions(QuizOptions())

    async def test_http_error_becomes_data_error(self):
        manager = self.make_manager({"/api.php": httpx.Response(500, text="down")})

        with self.assertRaises(TriviaDataError) as context:
            await manager.fetch_questions(QuizOptions())

        self.assertIn("500", str(context.exception))

    async def test_invalid_json_becomes_data_error(self):
        manager = self.make_manager({"/api.php": httpx.Response(200, text="<html>")})

        with self.assertRaises(TriviaDataError):
            await manager.fetch_questions(QuizOptions())

    async def test_transport_error_becomes_data_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = TriviaDataManager(questions_url=f"{BASE_URL}/api.php", client=self.client)

        with self.assertRaises(TriviaDataError):
            await manager.fetch_questions(QuizOptions())

    def test_validate_question_record(self):
        manager = TriviaDataManager()
        record = TestFixtures.create_raw_records()[0]

        self.assertTrue(manager.validate_question_record(record))
        self.assertFalse(manager.validate_question_record({"question": "Q?"}))
        self.assertFalse(manager.validate_question_record("not a dict"))
        self.assertFalse(manager.validate_question_record(
            {"question": "Q?", "correct_answer": "A", "incorrect_answers": [1]}
        ))


class TestScoreStore(unittest.IsolatedAsyncioTestCase):
    """Test cases for leaderboard writes."""

    def setUp(self):
        self.entry = SavedScore(name="Ada", score=300, category="History", timestamp="2024-01-01T00:00:00.000Z")

    async def test_push_posts_entry(self):
        transport = TestFixtures.create_mock_transport({
            "/scores.json": httpx.Response(200, json={"name": "-Nabc"})
        })
        async with httpx.AsyncClient(transport=transport) as client:
            store = ScoreStore(f"{BASE_URL}/", client=client)
            key = await store.push(self.entry)

        self.assertEqual(key, "-Nabc")
        request = transport.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/scores.json")
        self.assertIn(b'"name":"Ada"', request.content.replace(b" ", b""))

    async def test_push_http_error(self):
        transport = TestFixtures.create_mock_transport({
            "/scores.json": httpx.Response(401, text="denied")
        })
        async with httpx.AsyncClient(transport=transport) as client:
            store = ScoreStore(BASE_URL, client=client)
            with self.assertRaises(ScoreStoreError):
                await store.push(self.entry)

    async def test_push_requires_url(self):
        with self.assertRaises(ScoreStoreError):
            await ScoreStore("").push(self.entry)
