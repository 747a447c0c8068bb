"""
Append-only leaderboard storage over a Firebase-style REST database.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from .models import SavedScore

logger = logging.getLogger(__name__)


class ScoreStoreError(RuntimeError):
    """Raised when a score cannot be written."""


class ScoreStore:
    """Pushes finished-game scores to the leaderboard collection."""

    def __init__(
        self,
        database_url: str,
        table: str = "scores",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.database_url = (database_url or "").rstrip("/")
        self.table = table
        self.timeout = timeout
        self._client = client

    def _require_config(self) -> None:
        if not self.database_url:
            raise ScoreStoreError(
                "Score store URL not configured. Set score_store.database_url."
            )

    async def push(self, entry: SavedScore) -> Optional[str]:
        """Append entry and return the key assigned by the database."""
        self._require_config()
        url = f"{self.database_url}/{self.table}.json"

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=entry.to_dict(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=entry.to_dict())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Score store POST failed: table=%s status=%s body=%s",
                self.table,
                exc.response.status_code,
                exc.response.text,
            )
            raise ScoreStoreError(f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Score store POST failed: table=%s error=%s", self.table, exc)
            raise ScoreStoreError(str(exc)) from exc

        if not response.content:
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Score store returned a non-JSON body for %s", entry.name)
            return None
        key = data.get("name") if isinstance(data, dict) else None
        logger.info("Saved score for %s (%s) as %s", entry.name, entry.score, key)
        return key
