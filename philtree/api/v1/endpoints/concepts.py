"""
API endpoints for concepts.

Endpoints:
- GET /api/v1/concepts/search - Search concepts by name
- GET /api/v1/concepts/by-slug/{slug} - Concept with its branches
- POST /api/v1/concepts/generate - Find or generate a concept by name
- GET /api/v1/concepts/{concept_id} - Concept with its branches
- GET /api/v1/concepts/{concept_id}/analytics - Branch choice statistics
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from philtree.api.deps import get_branch_engine, get_current_user_id, get_engine_factory
from philtree.api.errors import graph_errors
from philtree.api.v1.endpoints.serializers import branch_response, concept_response, concept_summary
from philtree.schemas.concept import (
    BranchStatResponse,
    ConceptDetailResponse,
    ConceptSearchResponse,
    CreateConceptRequest,
    CreateConceptResponse,
)
from philtree.services.branch_resolution import BranchEngine, EngineFactory, run_detached

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/concepts", tags=["concepts"])


@router.get("/search", response_model=ConceptSearchResponse)
async def search_concepts(
    q: str = Query(..., min_length=1, max_length=255, description="Name substring"),
    limit: int = Query(20, ge=1, le=100),
    engine: BranchEngine = Depends(get_branch_engine),
) -> ConceptSearchResponse:
    concepts = await engine.search_concepts(q, limit)
    return ConceptSearchResponse(
        items=[concept_summary(c) for c in concepts],
        total=len(concepts),
    )


@router.get("/by-slug/{slug}", response_model=ConceptDetailResponse)
async def get_concept_by_slug(
    slug: str,
    engine: BranchEngine = Depends(get_branch_engine),
) -> ConceptDetailResponse:
    with graph_errors():
        concept = await engine.get_concept_by_slug(slug)
        edges = await engine.list_branches(concept.id)
    return ConceptDetailResponse(
        concept=concept_response(concept),
        branches=[branch_response(e) for e in edges],
    )


@router.post("/generate", response_model=CreateConceptResponse)
async def generate_concept(
    body: CreateConceptRequest,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    engine_factory: EngineFactory = Depends(get_engine_factory),
) -> CreateConceptResponse:
    """
    Return the concept for a name, generating its lesson if it does not exist.

    Generating counts against the caller's generation quota; finding an
    existing concept does not.
    """
    with graph_errors():
        result = await run_detached(
            engine_factory,
            lambda engine: engine.create_concept(body.name, user_id),
        )
    if result.created:
        response.status_code = status.HTTP_201_CREATED
    return CreateConceptResponse(concept=concept_response(result.concept), created=result.created)


@router.get("/{concept_id}", response_model=ConceptDetailResponse)
async def get_concept(
    concept_id: UUID,
    engine: BranchEngine = Depends(get_branch_engine),
) -> ConceptDetailResponse:
    with graph_errors():
        concept = await engine.get_concept(str(concept_id))
        edges = await engine.list_branches(concept.id)
    return ConceptDetailResponse(
        concept=concept_response(concept),
        branches=[branch_response(e) for e in edges],
    )


@router.get("/{concept_id}/analytics", response_model=List[BranchStatResponse])
async def get_branch_stats(
    concept_id: UUID,
    engine: BranchEngine = Depends(get_branch_engine),
) -> List[BranchStatResponse]:
    with graph_errors():
        stats = await engine.branch_stats(str(concept_id))
    return [
        BranchStatResponse(branch_type=s.branch_type, count=s.count, percentage=s.percentage)
        for s in stats
    ]
