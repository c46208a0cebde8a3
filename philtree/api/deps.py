"""
API Dependencies
================

Request-scoped wiring for the branch engine plus the acting user.

Provider clients (vector index, embedding and generation services) are
process-wide singletons; stores are built per request around the request's
database session.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from philtree.core.database import async_session_factory, get_db
from philtree.core.qdrant import ConceptVectorIndex
from philtree.llm import build_llm_client
from philtree.services.branch_resolution import BranchEngine, EngineFactory
from philtree.services.embedding_service import EmbeddingService
from philtree.services.generation_service import GenerationService

_vector_index: Optional[ConceptVectorIndex] = None
_embedding_service: Optional[EmbeddingService] = None
_generation_service: Optional[GenerationService] = None


def get_vector_index() -> ConceptVectorIndex:
    global _vector_index
    if _vector_index is None:
        _vector_index = ConceptVectorIndex.from_settings()
    return _vector_index


def get_embedding_service() -> EmbeddingService:
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service


def get_generation_service() -> GenerationService:
    global _generation_service
    if _generation_service is None:
        _generation_service = GenerationService(build_llm_client())
    return _generation_service


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Identify the acting user.

    Sessions are handled upstream; the gateway forwards the authenticated
    user id in ``X-User-Id``.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return user_id


def get_branch_engine(
    db: AsyncSession = Depends(get_db),
    vector_index: ConceptVectorIndex = Depends(get_vector_index),
    embeddings: EmbeddingService = Depends(get_embedding_service),
    generator: GenerationService = Depends(get_generation_service),
) -> BranchEngine:
    return BranchEngine.for_session(
        db,
        vector_index=vector_index,
        embeddings=embeddings,
        generator=generator,
    )


def get_engine_factory(
    vector_index: ConceptVectorIndex = Depends(get_vector_index),
    embeddings: EmbeddingService = Depends(get_embedding_service),
    generator: GenerationService = Depends(get_generation_service),
) -> EngineFactory:
    """
    Factory for engines that own their session.

    Generation runs detached from the request, so it cannot share the
    request session that is closed when the client disconnects.
    """

    @asynccontextmanager
    async def factory() -> AsyncIterator[BranchEngine]:
        async with async_session_factory() as session:
            yield BranchEngine.for_session(
                session,
                vector_index=vector_index,
                embeddings=embeddings,
                generator=generator,
            )

    return factory
