"""
Agent Loop Engine.

Runs one claimed execution to completion: repeated think -> search ->
read -> summarize steps against the generation and search backends,
every step persisted as it happens. The run is bounded by a hard step
ceiling, a visited set that stops repeat queries and reads, a
diminishing-returns rule and a wall-clock budget.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from scout_engine.agent.guard import LoopGuard
from scout_engine.agent.prompts import (
    build_summarize_messages,
    build_think_messages,
    digest_findings,
)
from scout_engine.config import EngineConfig
from scout_engine.models.enums import AgentAction, StepKind
from scout_engine.models.execution import ScoutExecution
from scout_engine.models.llm import AgentDecision, SummaryUpdate
from scout_engine.models.scout import ScoutSnapshot, utcnow
from scout_engine.models.search import SearchResult, SourceFinding
from scout_engine.search.firecrawl_client import SearchBackendError
from scout_engine.store.base import ExecutionNotRunningError, ExecutionStore, StoreError
from scout_engine.utils.parsing import parse_structured
from scout_engine.utils.protocols import (
    EmbeddingClientProtocol,
    LLMClientProtocol,
    SearchClientProtocol,
)


logger = logging.getLogger(__name__)


EMPTY_SUMMARY = "No relevant findings were gathered for this run."


class _BudgetExhausted(Exception):
    """The run's wall-clock budget ran out before or during a backend call."""


class StepTimeoutError(Exception):
    """A single backend call exceeded its time budget."""

    def __init__(self, operation: str, seconds: float):
        super().__init__(f"{operation} timed out after {seconds:g} seconds")
        self.operation = operation
        self.seconds = seconds


@dataclass
class _RunState:
    """Mutable state of one execution's loop."""

    snapshot: ScoutSnapshot
    guard: LoopGuard
    search_client: SearchClientProtocol
    started: float
    searched_queries: list[str] = field(default_factory=list)
    candidates: dict[str, SearchResult] = field(default_factory=dict)
    findings: list[SourceFinding] = field(default_factory=list)
    unsummarized: list[SourceFinding] = field(default_factory=list)
    summary: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


class AgentLoopEngine:
    """
    Executes the bounded agent loop for claimed executions.

    The engine is stateless between runs; everything a run needs comes
    from the snapshot stored on the execution.
    """

    def __init__(
        self,
        store: ExecutionStore,
        llm_client: LLMClientProtocol,
        search_client: Optional[SearchClientProtocol],
        embedding_client: EmbeddingClientProtocol,
        config: Optional[EngineConfig] = None,
    ):
        """
        Args:
            store: Execution store for steps and terminal transitions
            llm_client: Generation backend
            search_client: Default search backend (per-owner clients may
                be passed to run())
            embedding_client: Embedding backend for the final summary
            config: Engine limits and models
        """
        self.store = store
        self.llm_client = llm_client
        self.search_client = search_client
        self.embedding_client = embedding_client
        self.config = config or EngineConfig()

    async def run(
        self,
        execution: ScoutExecution,
        search_client: Optional[SearchClientProtocol] = None,
    ) -> Optional[ScoutExecution]:
        """
        Drive a running execution to a terminal status.

        Args:
            execution: The claimed, running execution
            search_client: Search backend to use for this run (e.g. built
                with the owner's own API key)

        Returns:
            The execution as stored after the run

        Raises:
            StoreError: If the store fails; the reaper recovers the run
        """
        search = search_client or self.search_client
        if execution.scout_snapshot is None:
            self._fail(execution.id, "Execution has no configuration snapshot")
            return self.store.get_execution(execution.id)
        if search is None:
            self._fail(execution.id, "No search backend is configured")
            return self.store.get_execution(execution.id)

        state = _RunState(
            snapshot=execution.scout_snapshot,
            guard=LoopGuard(self.config.max_steps, self.config.stale_step_limit),
            search_client=search,
            started=time.monotonic(),
        )
        logger.info(f"Starting execution {execution.id} for scout {execution.scout_id}")

        try:
            reason = await self._loop(execution.id, state)
            await self._complete(execution.id, state, reason)
        except ExecutionNotRunningError as e:
            logger.warning(f"Stopping execution {execution.id}: {e}")
        except StoreError:
            raise
        except Exception as e:
            logger.exception(f"Execution {execution.id} failed")
            self._fail(execution.id, _describe_error(e))

        return self.store.get_execution(execution.id)

    # =========================================================================
    # LOOP
    # =========================================================================

    async def _loop(self, execution_id: str, state: _RunState) -> str:
        """Run steps until a termination condition; returns the reason."""
        try:
            return await self._step_until_done(execution_id, state)
        except _BudgetExhausted:
            logger.info(f"Execution {execution_id}: time budget exhausted mid-step")
            return "time budget exhausted"

    async def _step_until_done(self, execution_id: str, state: _RunState) -> str:
        guard = state.guard

        while True:
            if guard.exhausted:
                return "step ceiling reached"
            if guard.stalled:
                return "no new sources"
            if self._remaining(state) <= 0:
                return "time budget exhausted"

            decision = await self._think(execution_id, state)

            if guard.exhausted:
                return "step ceiling reached"

            if decision.action == AgentAction.FINISH:
                await self._summarize(execution_id, state, final=True)
                return "agent finished"

            if decision.action == AgentAction.SEARCH:
                await self._search(execution_id, state, decision.queries)
                continue

            read = await self._read(execution_id, state, decision.url)
            if not read or guard.exhausted:
                continue

            update = await self._summarize(execution_id, state)
            if update.done:
                return "goal satisfied"

    def _record(
        self,
        execution_id: str,
        state: _RunState,
        kind: StepKind,
        payload: dict[str, Any],
    ) -> None:
        state.guard.record_step()
        step = self.store.append_step(execution_id, kind, payload, utcnow())
        logger.debug(f"Execution {execution_id} step {step.sequence}: {kind.value}")

    def _remaining(self, state: _RunState) -> float:
        return self.config.max_run_seconds - (time.monotonic() - state.started)

    async def _call(self, operation: str, coro, state: Optional[_RunState] = None):
        """
        Await a backend call within the per-step time budget.

        With a run state the budget is also clamped to the run's remaining
        wall-clock time; running out of that raises _BudgetExhausted.
        """
        timeout = self.config.step_timeout_seconds
        clamped = False
        if state is not None:
            remaining = self._remaining(state)
            if remaining <= 0:
                coro.close()
                raise _BudgetExhausted()
            if remaining < timeout:
                timeout, clamped = remaining, True

        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            if clamped:
                raise _BudgetExhausted() from None
            raise StepTimeoutError(operation, timeout) from None

    async def _generate(self, state: _RunState, messages: list[dict]) -> str:
        response = await self._call("Generation", self.llm_client.complete(
            model=self.config.model,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            json_mode=True,
        ), state)
        state.input_tokens += response.input_tokens
        state.output_tokens += response.output_tokens
        return response.content

    # =========================================================================
    # STEPS
    # =========================================================================

    async def _think(self, execution_id: str, state: _RunState) -> AgentDecision:
        messages = build_think_messages(
            snapshot=state.snapshot,
            searched_queries=state.searched_queries,
            candidates=list(state.candidates.values()),
            findings=state.findings,
            summary=state.summary,
            steps_remaining=state.guard.max_steps - state.guard.steps_recorded,
        )
        decision = parse_structured(await self._generate(state, messages), AgentDecision)

        self._record(execution_id, state, StepKind.THINK, {
            "action": decision.action.value,
            "queries": decision.queries,
            "url": decision.url,
            "reasoning": decision.reasoning,
        })
        return decision

    async def _search(self, execution_id: str, state: _RunState, queries: list[str]) -> None:
        guard = state.guard

        if not queries:
            # Fall back to the scout's own queries the agent has not run yet
            queries = state.snapshot.search_queries

        fresh = []
        for q in queries:
            if q.strip() and guard.is_new_query(q):
                guard.visit_query(q)
                fresh.append(q.strip())

        if not fresh:
            logger.info(f"Execution {execution_id}: skipping repeated search")
            guard.record_action(0)
            return

        location = state.snapshot.location.describe() if state.snapshot.location else None
        results = await self._call("Search", state.search_client.search(
            fresh,
            limit=self.config.results_per_query,
            bypass_cache=True,
            location=location,
        ), state)
        state.searched_queries.extend(fresh)

        urls = []
        for q in fresh:
            for result in results.get(q, []):
                urls.append(result.url)
                if guard.is_new_url(result.url) and result.url not in state.candidates:
                    state.candidates[result.url] = result

        new_sources = guard.add_sources(urls)
        guard.record_action(new_sources)

        self._record(execution_id, state, StepKind.SEARCH, {
            "queries": fresh,
            "results": {
                q: [{"url": r.url, "title": r.title} for r in results.get(q, [])]
                for q in fresh
            },
            "new_sources": new_sources,
        })

    async def _read(self, execution_id: str, state: _RunState, url: Optional[str]) -> bool:
        """Read one page; returns True when new content was gathered."""
        guard = state.guard

        if not url:
            url = next(iter(state.candidates), None)
        if not url or not guard.is_new_url(url):
            logger.info(f"Execution {execution_id}: skipping read of {url or 'nothing'}")
            guard.record_action(0)
            return False

        guard.visit_url(url)
        candidate = state.candidates.pop(url, None)

        try:
            page = await self._call("Read", state.search_client.scrape(url, bypass_cache=True), state)
        except (SearchBackendError, StepTimeoutError) as e:
            if isinstance(e, SearchBackendError) and e.retryable:
                raise
            logger.warning(f"Execution {execution_id}: could not read {url}: {e}")
            guard.record_action(0)
            self._record(execution_id, state, StepKind.READ, {"url": url, "error": str(e)})
            return False

        content = page.content or (candidate.content if candidate else "")
        excerpt = content[: self.config.max_content_chars]
        finding = SourceFinding(
            url=url,
            title=page.title or (candidate.title if candidate else ""),
            excerpt=excerpt,
        )
        state.findings.append(finding)
        state.unsummarized.append(finding)
        guard.add_sources([url])
        guard.record_action(1)

        self._record(execution_id, state, StepKind.READ, {
            "url": url,
            "title": finding.title,
            "chars": len(content),
            "truncated": len(content) > len(excerpt),
        })
        return True

    async def _summarize(
        self,
        execution_id: str,
        state: _RunState,
        final: bool = False,
    ) -> SummaryUpdate:
        messages = build_summarize_messages(
            snapshot=state.snapshot,
            summary=state.summary,
            new_findings=state.unsummarized,
            final=final,
        )
        update = parse_structured(await self._generate(state, messages), SummaryUpdate)

        if update.summary.strip():
            state.summary = update.summary.strip()
        state.unsummarized = []

        self._record(execution_id, state, StepKind.SUMMARIZE, {
            "summary": state.summary,
            "done": update.done or final,
            "final": final,
        })
        return update

    # =========================================================================
    # TERMINATION
    # =========================================================================

    async def _complete(self, execution_id: str, state: _RunState, reason: str) -> None:
        summary = state.summary or digest_findings(state.findings) or EMPTY_SUMMARY

        embedding = await self._call("Embedding", self.embedding_client.embed(summary))
        duration_ms = int((time.monotonic() - state.started) * 1000)

        completed = self.store.complete_execution(
            execution_id,
            summary=summary,
            embedding=embedding,
            embedding_model=self.embedding_client.model,
            duration_ms=duration_ms,
            now=utcnow(),
        )
        if completed:
            logger.info(
                f"Execution {execution_id} completed ({reason}): "
                f"{state.guard.steps_recorded} steps, {len(state.findings)} sources, "
                f"{duration_ms}ms, {state.input_tokens} input / {state.output_tokens} output tokens"
            )
        else:
            logger.warning(f"Execution {execution_id} was no longer running at completion")

    def _fail(self, execution_id: str, message: str) -> None:
        if not self.store.fail_execution(execution_id, message, utcnow()):
            logger.warning(f"Execution {execution_id} was already terminal; not marking failed")


def _describe_error(error: Exception) -> str:
    text = str(error) or error.__class__.__name__
    return text[:500]
