"""
Similarity recall over past execution summaries.

Embeds a query text and ranks completed executions by cosine distance,
optionally restricted to one owner or one scout.
"""

import logging
from typing import Optional

from scout_engine.models.execution import RankedExecution
from scout_engine.ranking.similarity import DimensionMismatchError
from scout_engine.store.base import ExecutionStore
from scout_engine.utils.protocols import EmbeddingClientProtocol


logger = logging.getLogger(__name__)


class RecallService:
    """Finds the past findings most relevant to a query."""

    def __init__(self, store: ExecutionStore, embedding_client: EmbeddingClientProtocol):
        self.store = store
        self.embedding_client = embedding_client

    async def find_relevant(
        self,
        query_text: str,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
        top_k: int = 5,
    ) -> list[RankedExecution]:
        """
        Rank stored summaries against a query.

        Args:
            query_text: Free-text query
            owner_id: Restrict to one owner's scouts
            scout_id: Restrict to one scout's executions
            top_k: Maximum number of results

        Returns:
            Ranked executions, most similar first

        Raises:
            DimensionMismatchError: If the query embedding does not match
                the dimension recorded for the owner or the stored vectors
        """
        if not query_text.strip():
            return []

        query = await self.embedding_client.embed(query_text)

        if owner_id:
            preferences = self.store.get_preferences(owner_id)
            expected = preferences.embedding_dimension if preferences else None
            if expected is not None and expected != len(query):
                raise DimensionMismatchError(expected, len(query), f"owner {owner_id}")

        results = self.store.rank_similar(query, top_k=top_k, owner_id=owner_id, scout_id=scout_id)
        logger.info(f"Recall returned {len(results)} executions for query of {len(query)} dims")
        return results
