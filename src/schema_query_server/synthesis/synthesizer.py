"""
Query Synthesizer

Orchestrates one natural-language request through the state machine::

    Idle -> ContextBuilt -> GenerationRequested -> Validated -> Executed
                                                            \\-> Rejected

Expected failures at any stage end in a `Rejection` tagged with the stage;
they never raise. Generation is attempted exactly once per call. Callers
that want another attempt re-invoke with adjusted input.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ..config import settings
from ..datasource.client import DataSourceError, QueryExecutionError, QueryExecutor
from ..embeddings.embedder import Embedder, EmbeddingError
from ..embeddings.index import VectorIndexError
from ..embeddings.store import FieldVectorStore
from ..graph.schema_graph import SchemaGraph
from ..llm.client import GenerationCapability, GenerationError, ToolChatCapability
from .context import SchemaContext, SchemaContextBuilder
from .exploration import ExplorationResult, SchemaExplorer
from .models import (
    QueryExecuted,
    QueryMetadata,
    QueryPlan,
    Rejection,
    RejectionStage,
    SynthesisResult,
    SynthesisState,
)
from .prompts import build_query_prompt
from .validation import validate_plan

logger = logging.getLogger("sqs.synthesizer")


class QuerySynthesizer:
    """
    Description + tables in, executed rows or a rejection out.

    Parameters
    ----------
    llm : GenerationCapability
        Structured generation capability (`generate(prompt, QueryPlan)`).

    executor : QueryExecutor
        Endpoint that runs validated queries.

    graph : Optional[SchemaGraph]
        Discovered schema for the requested tables.

    field_store, embedder : optional
        Vector source for nearest-field retrieval.

    explorer_llm : Optional[ToolChatCapability]
        Chat capability for the schema exploration tool loop. Exploration
        runs only when this is set, a graph is available and
        `enable_exploration` is true.

    min_confidence : Optional[float]
        Plans below this confidence are rejected. 0 disables the gate.

    clock : Optional[Callable[[], datetime]]
        Source of "now" for relative date resolution.
    """

    def __init__(
        self,
        llm: GenerationCapability,
        executor: QueryExecutor,
        graph: Optional[SchemaGraph] = None,
        field_store: Optional[FieldVectorStore] = None,
        embedder: Optional[Embedder] = None,
        explorer_llm: Optional[ToolChatCapability] = None,
        enable_exploration: Optional[bool] = None,
        min_confidence: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.llm = llm
        self.executor = executor
        self.graph = graph
        self.context_builder = SchemaContextBuilder(
            graph=graph,
            field_store=field_store,
            embedder=embedder,
        )
        self.explorer_llm = explorer_llm
        self.enable_exploration = (
            settings.enable_schema_exploration if enable_exploration is None else enable_exploration
        )
        self.min_confidence = (
            settings.min_plan_confidence if min_confidence is None else min_confidence
        )
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _reject(
        states: List[SynthesisState],
        stage: RejectionStage,
        reason: str,
        suggestions: Optional[List[str]] = None,
        details: object = None,
        plan: Optional[QueryPlan] = None,
    ) -> Rejection:
        states.append(SynthesisState.REJECTED)
        logger.info("Synthesis rejected at %s stage: %s", stage, reason)
        return Rejection(
            stage=stage,
            reason=reason,
            suggestions=suggestions or [],
            details=details,
            plan=plan,
            states=list(states),
        )

    def _known_tables(self, context: SchemaContext) -> List[str]:
        known = list(context.table_names)
        if self.graph is not None:
            known += self.graph.get_all_table_names()
        return known

    async def _explore(self, description: str, tables: Sequence[str]) -> Optional[ExplorationResult]:
        if not (self.enable_exploration and self.explorer_llm is not None and self.graph is not None):
            return None
        explorer = SchemaExplorer(self.explorer_llm, self.graph)
        return await explorer.explore(description, tables)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def synthesize(
        self,
        description: str,
        tables: Sequence[str] = (),
        user_id: Optional[str] = None,
    ) -> SynthesisResult:
        states: List[SynthesisState] = [SynthesisState.IDLE]

        desc = (description or "").strip()
        requested = [t.strip() for t in tables if t and t.strip()]

        # -------------------------------------------------------------
        # Idle -> ContextBuilt
        # -------------------------------------------------------------
        if not desc:
            return self._reject(
                states, "input", "A non-empty description is required.",
                suggestions=["Describe the data you want to retrieve."],
            )

        if self.graph is None and not self.context_builder.has_vector_source:
            return self._reject(
                states, "input", "No schema is available for this request.",
                suggestions=["Provide target table names so the schema can be discovered."],
            )

        try:
            context = await self.context_builder.build(desc, requested)
        except (EmbeddingError, VectorIndexError) as exc:
            return self._reject(
                states, "schema", f"Field retrieval failed: {exc}",
                details={"cause": repr(exc.__cause__ or exc)},
            )

        supplied = {name.lower() for name in context.table_names}
        missing = [
            t for t in requested
            if t.lower() not in supplied
            and (self.graph is None or not self.graph.has_table(t))
        ]

        if context.is_empty():
            return self._reject(
                states, "schema",
                "No columns were discovered for the requested tables."
                if requested else "No relevant fields were found for the request.",
                suggestions=[
                    "Check the table names.",
                    "Try a different table.",
                ],
                details={"missing_tables": missing} if missing else None,
            )

        warnings: List[str] = [
            f"Table '{t}' was not found in the discovered schema." for t in missing
        ]
        states.append(SynthesisState.CONTEXT_BUILT)

        # -------------------------------------------------------------
        # ContextBuilt -> GenerationRequested
        # -------------------------------------------------------------
        try:
            exploration = await self._explore(desc, requested or context.table_names)
        except GenerationError as exc:
            return self._reject(
                states, "generation", f"Schema exploration failed: {exc}",
                suggestions=["Retry the request later."],
                details={"cause": repr(exc.__cause__ or exc)},
            )

        prompt = build_query_prompt(
            desc,
            context,
            now=self.clock() if self.clock else None,
            user_id=user_id,
            exploration_notes=exploration.notes if exploration else None,
        )

        states.append(SynthesisState.GENERATION_REQUESTED)
        try:
            plan = await self.llm.generate(prompt, QueryPlan)
        except GenerationError as exc:
            return self._reject(
                states, "generation", f"Query generation failed: {exc}",
                suggestions=["Retry the request later.", "Simplify the request."],
                details={"cause": repr(exc.__cause__ or exc)},
            )

        # -------------------------------------------------------------
        # GenerationRequested -> Validated
        # -------------------------------------------------------------
        outcome = validate_plan(plan, self._known_tables(context), self.min_confidence)
        if not outcome.ok:
            return self._reject(
                states, "validation", outcome.reason or "Query validation failed.",
                suggestions=outcome.suggestions,
                plan=plan,
            )
        warnings += outcome.warnings
        states.append(SynthesisState.VALIDATED)

        # -------------------------------------------------------------
        # Validated -> Executed
        # -------------------------------------------------------------
        try:
            rows = await self.executor.execute_query(plan.query)
        except QueryExecutionError as exc:
            return self._reject(
                states, "execution", str(exc),
                suggestions=["Refine the request using the error details."],
                details={"error": exc.error, "details": exc.details},
                plan=plan,
            )
        except DataSourceError as exc:
            return self._reject(
                states, "execution", str(exc),
                details={"error": str(exc), "details": None},
                plan=plan,
            )

        states.append(SynthesisState.EXECUTED)

        metadata = QueryMetadata(
            description=desc,
            requested_tables=requested,
            tables_referenced=list(plan.tables_used),
            fields_considered=context.field_count,
            context_source=context.source,
            exploration_steps=exploration.steps if exploration else 0,
        )

        logger.info(
            "Executed query over %s: %d rows (%d fields considered)",
            ", ".join(plan.tables_used),
            len(rows),
            context.field_count,
        )

        return QueryExecuted(
            plan=plan,
            rows=rows,
            row_count=len(rows),
            metadata=metadata,
            warnings=warnings,
            states=list(states),
        )
