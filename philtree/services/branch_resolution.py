"""
Branch Resolution Engine
========================

Single orchestration point for growing the concept graph.

Per interaction from a source concept::

    START -> OFFERING_NEIGHBORS -> (ACCEPTED_NEIGHBOR | REQUESTED_GENERATION)
          -> GENERATING -> RESOLVED | FAILED

The engine holds no state between calls. Consistency under concurrent users
rests on the stores: slug uniqueness for concepts, pair uniqueness for edges,
and re-fetch-and-reuse whenever either reports a conflict.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from philtree.core.config import settings
from philtree.core.metrics import (
    branch_generations_total,
    concepts_created_total,
    concepts_reused_total,
    rate_limit_denials_total,
)
from philtree.core.qdrant import ConceptVectorIndex
from philtree.models.branch_type import BranchType
from philtree.models.concept import Concept
from philtree.models.edge import Edge
from philtree.schemas.generation import BranchCandidate
from philtree.services.analytics import BranchAnalytics, BranchStat
from philtree.services.concept_store import (
    ConceptNotFoundError,
    ConceptStore,
    ConceptStoreError,
    DuplicateSlugError,
    slugify,
)
from philtree.services.edge_store import EdgeStore
from philtree.services.embedding_service import EmbeddingFailedError, EmbeddingService
from philtree.services.generation_service import GenerationFailedError, GenerationService
from philtree.services.neighbor_resolver import NeighborResolver
from philtree.services.rate_limiter import (
    GenerationLogStore,
    GenerationRateLimiter,
    RateLimitExceededError,
    RateLimitStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InvalidBranchRequestError(Exception):
    """The requested branch can never exist (e.g. a concept linked to itself)."""


@dataclass
class BranchOffer:
    neighbors: list[tuple[Concept, float]]
    can_generate: bool
    rate_limit: RateLimitStatus


@dataclass
class ResolvedBranch:
    edge: Edge
    target: Concept
    reused_existing: bool


@dataclass
class GenerationResult:
    branches: list[ResolvedBranch] = field(default_factory=list)
    rate_limit: Optional[RateLimitStatus] = None


@dataclass
class ConceptCreation:
    concept: Concept
    created: bool


class BranchEngine:
    """Offers, accepts and generates branches from a source concept."""

    def __init__(
        self,
        *,
        concepts: ConceptStore,
        edges: EdgeStore,
        resolver: NeighborResolver,
        rate_limiter: GenerationRateLimiter,
        analytics: BranchAnalytics,
        embeddings: EmbeddingService,
        generator: GenerationService,
        suggestion_limit: Optional[int] = None,
        suggestion_min_similarity: Optional[float] = None,
        dedup_min_similarity: Optional[float] = None,
        exclude_connected: Optional[bool] = None,
        default_branch_type: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ):
        self.concepts = concepts
        self.edges = edges
        self.resolver = resolver
        self.rate_limiter = rate_limiter
        self.analytics = analytics
        self.embeddings = embeddings
        self.generator = generator

        self.suggestion_limit = int(
            suggestion_limit if suggestion_limit is not None else settings.NEIGHBOR_SUGGESTION_LIMIT
        )
        self.suggestion_min_similarity = float(
            suggestion_min_similarity
            if suggestion_min_similarity is not None
            else settings.NEIGHBOR_SUGGESTION_MIN_SIMILARITY
        )
        self.dedup_min_similarity = float(
            dedup_min_similarity if dedup_min_similarity is not None else settings.DEDUP_MIN_SIMILARITY
        )
        self.exclude_connected = (
            settings.OFFER_EXCLUDE_CONNECTED if exclude_connected is None else bool(exclude_connected)
        )
        self.default_branch_type = BranchType(default_branch_type or settings.DEFAULT_NEIGHBOR_BRANCH_TYPE)
        self.max_attempts = max(1, int(max_attempts or settings.GENERATION_MAX_ATTEMPTS))

    @classmethod
    def for_session(
        cls,
        session: AsyncSession,
        *,
        vector_index: ConceptVectorIndex,
        embeddings: EmbeddingService,
        generator: GenerationService,
    ) -> "BranchEngine":
        """Wire the SQL-backed stores for one database session."""
        concepts = ConceptStore(session, vector_index)
        return cls(
            concepts=concepts,
            edges=EdgeStore(session),
            resolver=NeighborResolver(concepts),
            rate_limiter=GenerationRateLimiter(GenerationLogStore(session)),
            analytics=BranchAnalytics(session),
            embeddings=embeddings,
            generator=generator,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_concept(self, concept_id: str) -> Concept:
        concept = await self.concepts.get_by_id(concept_id)
        if concept is None:
            raise ConceptNotFoundError(str(concept_id))
        return concept

    async def get_concept_by_slug(self, slug: str) -> Concept:
        concept = await self.concepts.get_by_slug(slug)
        if concept is None:
            raise ConceptNotFoundError(slug)
        return concept

    async def search_concepts(self, query: str, limit: int = 20) -> list[Concept]:
        return await self.concepts.search_by_name(query, limit)

    async def list_branches(self, source_id: str) -> list[Edge]:
        """Existing edges from a concept, each with its target loaded."""
        source = await self.get_concept(source_id)
        return await self.edges.list_from_source(source.id)

    async def branch_stats(self, concept_id: str) -> list[BranchStat]:
        concept = await self.get_concept(concept_id)
        return await self.analytics.branch_stats(concept.id)

    async def rate_limit_status(self, user_id: str) -> RateLimitStatus:
        return await self.rate_limiter.check(user_id)

    # ------------------------------------------------------------------
    # START -> OFFERING_NEIGHBORS
    # ------------------------------------------------------------------

    async def offer_branches(self, source_id: str, user_id: str) -> BranchOffer:
        """
        Nearest existing concepts the user can link to without generating.

        Neighbours exclude the source and, when configured, concepts the
        source already links to. An empty list means the graph is young or
        the source has no embedding; generation remains available either way.
        """
        source = await self.get_concept(source_id)
        status = await self.rate_limiter.check(user_id)

        neighbors: list[tuple[Concept, float]] = []
        embedding = await self._source_embedding(source)
        if embedding is not None:
            exclude = {str(source.id)}
            if self.exclude_connected:
                exclude |= await self.edges.target_ids_from_source(source.id)
            neighbors = await self._nearest(
                embedding,
                limit=self.suggestion_limit,
                exclude_ids=exclude,
                min_similarity=self.suggestion_min_similarity,
            )

        return BranchOffer(neighbors=neighbors, can_generate=status.allowed, rate_limit=status)

    async def _nearest(
        self,
        embedding: Sequence[float],
        limit: int,
        exclude_ids: set[str],
        min_similarity: float,
    ) -> list[tuple[Concept, float]]:
        """Resolver lookup that treats an unreachable vector index as no neighbours."""
        try:
            return await self.resolver.resolve(
                embedding,
                limit=limit,
                exclude_ids=exclude_ids,
                min_similarity=min_similarity,
            )
        except Exception as e:
            logger.warning(f"Similarity search failed, continuing without neighbours: {e}")
            return []

    async def _source_embedding(self, source: Concept) -> Optional[list[float]]:
        try:
            vector = await self.concepts.get_embedding(source.id)
        except Exception as e:
            logger.warning(f"Could not read embedding for concept {source.slug}: {e}")
            vector = None
        if vector is not None:
            return vector

        try:
            vector = await self.embeddings.embed(source.embedding_text)
        except EmbeddingFailedError as e:
            logger.warning(f"Could not embed concept {source.slug}, offering no neighbours: {e}")
            return None

        try:
            await self.concepts.attach_embedding(source.id, vector)
        except (ConceptStoreError, ConceptNotFoundError) as e:
            logger.warning(f"Could not attach embedding to concept {source.slug}: {e}")
        return vector

    # ------------------------------------------------------------------
    # OFFERING_NEIGHBORS -> ACCEPTED_NEIGHBOR
    # ------------------------------------------------------------------

    async def accept_neighbor(
        self,
        source_id: str,
        target_id: str,
        user_id: str,
        branch_type: Optional[BranchType | str] = None,
        description: Optional[str] = None,
    ) -> ResolvedBranch:
        """
        Link the source to an offered neighbour.

        No generation happens, so this is not rate limited.
        """
        if str(source_id) == str(target_id):
            raise InvalidBranchRequestError("A concept cannot branch to itself")

        source = await self.concepts.get_by_id(source_id)
        target = await self.concepts.get_by_id(target_id)
        if source is None or target is None:
            missing = str(source_id) if source is None else str(target_id)
            logger.error(
                f"Graph inconsistency: user {user_id} accepted {source_id} -> {target_id} "
                f"but concept {missing} does not exist"
            )
            raise ConceptNotFoundError(missing)

        bt = BranchType(branch_type) if branch_type else self.default_branch_type
        text = (description or "").strip() or f"{target.name} is closely related to {source.name}."

        edge = await self.edges.create(source.id, target.id, bt, text)
        await self.record_choice(source.id, bt)
        return ResolvedBranch(edge=edge, target=target, reused_existing=True)

    # ------------------------------------------------------------------
    # REQUESTED_GENERATION -> GENERATING -> RESOLVED | FAILED
    # ------------------------------------------------------------------

    async def generate_new_branches(self, source_id: str, user_id: str) -> GenerationResult:
        """
        Generate four branches from a source concept.

        The batch is validated before anything is written. An unusable batch
        raises ``GenerationFailedError`` with no concepts, edges or quota
        consumed. A usable batch records exactly one generation-log entry.

        Raises:
            ConceptNotFoundError: unknown source
            RateLimitExceededError: no quota left in the window
            GenerationFailedError: every attempt failed or was invalid
        """
        source = await self.get_concept(source_id)
        await self._require_quota(user_id)

        try:
            batch = await self._with_attempts(
                lambda: self.generator.generate_branches(source.name, source.description),
                f"branches for {source.slug}",
            )
        except GenerationFailedError:
            branch_generations_total.labels(outcome="failed").inc()
            raise

        await self._record_generation(user_id)

        resolved: list[ResolvedBranch] = []
        seen_edges: set[str] = set()
        for candidate in batch.branches:
            branch = await self._apply_candidate(source, candidate)
            if branch is None or str(branch.edge.id) in seen_edges:
                continue
            seen_edges.add(str(branch.edge.id))
            resolved.append(branch)

        branch_generations_total.labels(outcome="resolved").inc()
        status = await self.rate_limiter.check(user_id)
        return GenerationResult(branches=resolved, rate_limit=status)

    async def _apply_candidate(self, source: Concept, candidate: BranchCandidate) -> Optional[ResolvedBranch]:
        embedding: Optional[list[float]] = None
        try:
            embedding = await self.embeddings.embed(f"{candidate.target_name}: {candidate.description}")
        except EmbeddingFailedError as e:
            logger.warning(
                f"Embedding failed for candidate {candidate.target_name!r}; "
                f"it will not be deduplicated by similarity: {e}"
            )

        target, reused = await self._resolve_target(source, candidate, embedding)
        if str(target.id) == str(source.id):
            logger.info(f"Skipping {candidate.type.value} candidate that resolves to its source {source.slug}")
            return None

        edge = await self.edges.create(source.id, target.id, candidate.type, candidate.description)
        return ResolvedBranch(edge=edge, target=target, reused_existing=reused)

    async def _resolve_target(
        self,
        source: Concept,
        candidate: BranchCandidate,
        embedding: Optional[Sequence[float]],
    ) -> tuple[Concept, bool]:
        slug = slugify(candidate.target_name)

        existing = await self.concepts.get_by_slug(slug)
        if existing is not None:
            concepts_reused_total.labels(method="slug").inc()
            return existing, True

        if embedding is not None:
            hits = await self._nearest(
                embedding,
                limit=1,
                exclude_ids={str(source.id)},
                min_similarity=self.dedup_min_similarity,
            )
            if hits:
                match, score = hits[0]
                logger.info(
                    f"Candidate {candidate.target_name!r} reuses concept {match.slug} (similarity={score:.3f})"
                )
                concepts_reused_total.labels(method="similarity").inc()
                return match, True

        try:
            created = await self.concepts.create(
                candidate.target_name,
                candidate.description,
                [],
                embedding,
            )
        except DuplicateSlugError:
            # Another request created the same concept after our slug lookup.
            winner = await self.concepts.get_by_slug(slug)
            if winner is None:
                raise ConceptStoreError(f"Slug {slug} conflicted but could not be re-read")
            concepts_reused_total.labels(method="race").inc()
            return winner, True

        concepts_created_total.inc()
        return created, False

    # ------------------------------------------------------------------
    # Concept creation from a name
    # ------------------------------------------------------------------

    async def create_concept(self, name: str, user_id: str) -> ConceptCreation:
        """
        Return the concept for ``name``, generating its lesson if it is new.

        An existing slug is returned without touching the quota. Otherwise the
        lesson generation is rate limited and recorded exactly like a branch
        generation.
        """
        name = (name or "").strip()
        slug = slugify(name)

        existing = await self.concepts.get_by_slug(slug)
        if existing is not None:
            return ConceptCreation(concept=existing, created=False)

        await self._require_quota(user_id)
        try:
            lesson = await self._with_attempts(
                lambda: self.generator.generate_lesson(name),
                f"lesson for {slug}",
            )
        except GenerationFailedError:
            branch_generations_total.labels(outcome="failed").inc()
            raise

        await self._record_generation(user_id)

        embedding: Optional[list[float]] = None
        try:
            embedding = await self.embeddings.embed(f"{name}: {lesson.description}")
        except EmbeddingFailedError as e:
            logger.warning(f"Embedding failed for new concept {slug}: {e}")

        reading = [entry.model_dump() for entry in lesson.recommended_reading]
        try:
            concept = await self.concepts.create(name, lesson.description, reading, embedding)
        except DuplicateSlugError:
            winner = await self.concepts.get_by_slug(slug)
            if winner is None:
                raise ConceptStoreError(f"Slug {slug} conflicted but could not be re-read")
            concepts_reused_total.labels(method="race").inc()
            return ConceptCreation(concept=winner, created=False)

        concepts_created_total.inc()
        return ConceptCreation(concept=concept, created=True)

    # ------------------------------------------------------------------
    # Analytics and maintenance
    # ------------------------------------------------------------------

    async def record_choice(self, source_id: str, branch_type: BranchType | str) -> None:
        """Best effort; never raises."""
        try:
            await self.analytics.record_choice(source_id, branch_type)
        except Exception as e:
            logger.warning(f"Branch choice for {source_id} not recorded: {e}")

    async def backfill_embeddings(self, batch_size: int = 50) -> int:
        """Embed concepts created without a vector. Returns how many were embedded."""
        embedded = 0
        for concept in await self.concepts.list_missing_embeddings(batch_size):
            try:
                vector = await self.embeddings.embed(concept.embedding_text)
            except EmbeddingFailedError as e:
                logger.warning(f"Backfill: embedding failed for {concept.slug}: {e}")
                continue
            try:
                await self.concepts.attach_embedding(concept.id, vector)
            except ConceptStoreError as e:
                logger.warning(f"Backfill: could not store embedding for {concept.slug}: {e}")
                continue
            embedded += 1
        return embedded

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_quota(self, user_id: str) -> RateLimitStatus:
        status = await self.rate_limiter.check(user_id)
        if not status.allowed:
            branch_generations_total.labels(outcome="rate_limited").inc()
            rate_limit_denials_total.inc()
            raise RateLimitExceededError(status)
        return status

    async def _record_generation(self, user_id: str) -> None:
        try:
            await self.rate_limiter.record(user_id)
        except Exception as e:
            logger.warning(f"Generation for user {user_id} succeeded but was not logged: {e}")

    async def _with_attempts(self, call: Callable[[], Awaitable[T]], what: str) -> T:
        last_error: Optional[GenerationFailedError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except GenerationFailedError as e:
                last_error = e
                logger.warning(f"Generation of {what} failed (attempt {attempt}/{self.max_attempts}): {e}")
        raise GenerationFailedError(
            f"Generation of {what} failed after {self.max_attempts} attempts"
        ) from last_error


EngineFactory = Callable[[], AbstractAsyncContextManager[BranchEngine]]

_detached_tasks: set[asyncio.Task[Any]] = set()


async def run_detached(
    engine_factory: EngineFactory,
    operation: Callable[[BranchEngine], Awaitable[T]],
) -> T:
    """
    Run ``operation`` in its own task with its own engine and session.

    If the caller is cancelled (client went away) the operation still runs
    to completion and commits; the caller just stops waiting for it.
    """

    async def _run() -> T:
        async with engine_factory() as engine:
            return await operation(engine)

    task = asyncio.ensure_future(_run())
    _detached_tasks.add(task)
    task.add_done_callback(_detached_tasks.discard)
    return await asyncio.shield(task)
