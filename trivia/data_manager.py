"""
Data manager for trivia API requests and response validation.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import Category, QuizOptions


class TriviaDataError(Exception):
    """Raised when the trivia API fails or returns an unusable payload."""
    pass


class TriviaDataManager:
    """Fetches categories and question records from the trivia API."""

    DEFAULT_CATEGORY_URL = "https://opentdb.com/api_category.php"
    DEFAULT_QUESTIONS_URL = "https://opentdb.com/api.php"
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        category_url: str = DEFAULT_CATEGORY_URL,
        questions_url: str = DEFAULT_QUESTIONS_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize TriviaDataManager with API endpoints.

        Args:
            category_url: Endpoint listing trivia categories
            questions_url: Endpoint returning question batches
            timeout: Request timeout in seconds
            client: Shared HTTP client, a short-lived one per request if None
        """
        self.category_url = category_url
        self.questions_url = questions_url
        self.timeout = timeout
        self._client = client
        self.logger = logging.getLogger(__name__)

    async def fetch_categories(self) -> List[Category]:
        """
        Request the list of trivia categories.

        Returns:
            Categories in the order the API returned them

        Raises:
            TriviaDataError: If the request fails or the payload is malformed
        """
        data = await self._get(self.category_url)

        if isinstance(data, dict):
            data = data.get('trivia_categories')
        if not isinstance(data, list):
            raise TriviaDataError("Category payload is not a list")

        categories = []
        for item in data:
            if (not isinstance(item, dict) or not isinstance(item.get('id'), int)
                    or not isinstance(item.get('name'), str)):
                raise TriviaDataError(f"Invalid category entry: {item!r}")
            categories.append(Category(id=item['id'], name=item['name']))

        self.logger.info(f"Fetched {len(categories)} categories")
        return categories

    async def fetch_questions(self, options: QuizOptions) -> List[Dict[str, Any]]:
        """
        Request a batch of raw question records.

        Args:
            options: Quiz options forwarded as query parameters

        Returns:
            Raw records, possibly empty when nothing matches the options

        Raises:
            TriviaDataError: If the request fails or a record is malformed
        """
        params = options.to_params()
        data = await self._get(self.questions_url, params)

        if not isinstance(data, dict) or not isinstance(data.get('results'), list):
            raise TriviaDataError("Question payload has no results list")

        results = data['results']
        for record in results:
            if not self.validate_question_record(record):
                raise TriviaDataError(f"Invalid question record: {record!r}")

        self.logger.info(f"Fetched {len(results)} questions with params {params}")
        return results

    def validate_question_record(self, record: Any) -> bool:
        """
        Validate that a record has the raw question structure.

        Expected structure:
        {
            "question": str,
            "correct_answer": str,
            "incorrect_answers": [str, ...]
        }
        """
        if not isinstance(record, dict):
            return False

        if not isinstance(record.get('question'), str):
            return False

        if not isinstance(record.get('correct_answer'), str):
            return False

        incorrect = record.get('incorrect_answers')
        if not isinstance(incorrect, list):
            return False

        return all(isinstance(answer, str) for answer in incorrect)

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self.logger.error(
                "Trivia API GET failed: url=%s status=%s body=%s",
                url,
                exc.response.status_code,
                exc.response.text,
            )
            raise TriviaDataError(f"HTTP {exc.response.status_code} from {url}") from exc
        except httpx.HTTPError as exc:
            self.logger.error("Trivia API GET failed: url=%s error=%s", url, exc)
            raise TriviaDataError(f"Request to {url} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise TriviaDataError(f"Invalid JSON from {url}") from exc
