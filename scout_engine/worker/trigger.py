"""
Worker entry point for executions.

The scheduler hands executions off by id. Delivery may be duplicated or
retried, so the trigger first acquires the execution through a store
compare-and-set; only the delivery that wins runs the engine.
"""

import logging
from typing import Callable, Optional

from scout_engine.agent.loop import AgentLoopEngine
from scout_engine.models.execution import ScoutExecution
from scout_engine.models.scout import utcnow
from scout_engine.search.firecrawl_client import FirecrawlClient
from scout_engine.store.base import ExecutionStore
from scout_engine.utils.protocols import SearchClientProtocol


logger = logging.getLogger(__name__)


SearchClientFactory = Callable[[str], SearchClientProtocol]


class ExecutionTrigger:
    """Accepts execution hand-offs and runs them at most once."""

    def __init__(
        self,
        store: ExecutionStore,
        engine: AgentLoopEngine,
        worker_id: str,
        search_client_factory: Optional[SearchClientFactory] = None,
    ):
        """
        Args:
            store: Execution store
            engine: Agent loop engine
            worker_id: Identity recorded on acquired executions
            search_client_factory: Builds a search client from an owner's
                API key (defaults to FirecrawlClient)
        """
        self.store = store
        self.engine = engine
        self.worker_id = worker_id
        self.search_client_factory = search_client_factory or (
            lambda key: FirecrawlClient(api_key=key)
        )

    def accept(self, execution_id: str) -> Optional[ScoutExecution]:
        """
        Acquire an execution for this worker.

        Returns:
            The execution to run, or None for terminal executions and
            duplicate deliveries

        Raises:
            ExecutionNotFoundError: If the id is unknown
        """
        execution = self.store.acquire_execution(execution_id, self.worker_id, utcnow())
        if execution is None:
            logger.info(f"Ignoring delivery of execution {execution_id}: already taken or finished")
        return execution

    def search_client_for(self, owner_id: str) -> Optional[SearchClientProtocol]:
        """
        Build a search client with the owner's own key.

        Returns None when the owner has no key on file, in which case the
        engine's process-wide client is used.
        """
        preferences = self.store.get_preferences(owner_id)
        if preferences is None:
            return None
        key = preferences.resolve_firecrawl_key()
        if key is None:
            return None
        source = "custom" if preferences.has_custom_key else "sponsored"
        logger.debug(f"Using {source} search key for owner {owner_id}")
        return self.search_client_factory(key)

    async def run(self, execution: ScoutExecution) -> Optional[ScoutExecution]:
        """Run an acquired execution through the engine."""
        search_client = None
        if execution.scout_snapshot is not None:
            search_client = self.search_client_for(execution.scout_snapshot.owner_id)
        return await self.engine.run(execution, search_client=search_client)

    async def handle(self, execution_id: str) -> Optional[ScoutExecution]:
        """Accept and run an execution; a no-op for duplicate deliveries."""
        execution = self.accept(execution_id)
        if execution is None:
            return None
        return await self.run(execution)


def build_trigger(settings, store: Optional[ExecutionStore] = None) -> ExecutionTrigger:
    """
    Wire a trigger and its engine from process settings.

    Args:
        settings: Settings read at process start
        store: Optional store override (defaults to SQLite at settings.database_path)

    Returns:
        ExecutionTrigger ready to handle executions
    """
    from scout_engine.llm.client import LLMClient
    from scout_engine.llm.embeddings import EmbeddingClient
    from scout_engine.store.sqlite import SQLiteExecutionStore

    store = store or SQLiteExecutionStore(settings.database_path)

    search_client = None
    if settings.firecrawl_api_key:
        search_client = FirecrawlClient(api_key=settings.firecrawl_api_key)
    else:
        logger.warning("FIRECRAWL_API_KEY not set; only owners with their own key can run")

    engine = AgentLoopEngine(
        store=store,
        llm_client=LLMClient(api_key=settings.openrouter_api_key),
        search_client=search_client,
        embedding_client=EmbeddingClient(
            api_key=settings.openai_api_key,
            model=settings.engine.embedding_model,
        ),
        config=settings.engine,
    )
    return ExecutionTrigger(store=store, engine=engine, worker_id=settings.worker_id)
