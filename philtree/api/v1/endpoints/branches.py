"""
API endpoints for growing the graph from a concept.

Endpoints:
- GET /api/v1/concepts/{concept_id}/branches - Existing branches
- GET /api/v1/concepts/{concept_id}/branches/offer - Nearest neighbours to link
- POST /api/v1/concepts/{concept_id}/branches/accept - Link an offered neighbour
- POST /api/v1/concepts/{concept_id}/branches/generate - Generate four new branches
- POST /api/v1/concepts/{concept_id}/choose - Record a branch choice
- GET /api/v1/rate-limit - Caller's generation quota
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from philtree.api.deps import get_branch_engine, get_current_user_id, get_engine_factory
from philtree.api.errors import graph_errors
from philtree.api.v1.endpoints.serializers import branch_response, concept_summary, rate_limit_response
from philtree.schemas.concept import (
    AcceptNeighborRequest,
    BranchOfferResponse,
    BranchResponse,
    ChooseBranchRequest,
    GeneratedBranchesResponse,
    NeighborSuggestion,
    RateLimitResponse,
    ResolvedBranchResponse,
)
from philtree.services.branch_resolution import BranchEngine, EngineFactory, run_detached

logger = logging.getLogger(__name__)

router = APIRouter(tags=["branches"])


@router.get("/concepts/{concept_id}/branches", response_model=List[BranchResponse])
async def list_branches(
    concept_id: UUID,
    engine: BranchEngine = Depends(get_branch_engine),
) -> List[BranchResponse]:
    with graph_errors():
        edges = await engine.list_branches(str(concept_id))
    return [branch_response(e) for e in edges]


@router.get("/concepts/{concept_id}/branches/offer", response_model=BranchOfferResponse)
async def offer_branches(
    concept_id: UUID,
    user_id: str = Depends(get_current_user_id),
    engine: BranchEngine = Depends(get_branch_engine),
) -> BranchOfferResponse:
    """
    Existing concepts close to this one, most similar first.

    ``can_generate`` tells the client whether "generate new" is available.
    """
    with graph_errors():
        offer = await engine.offer_branches(str(concept_id), user_id)
    return BranchOfferResponse(
        neighbors=[
            NeighborSuggestion(concept=concept_summary(c), similarity=round(score, 4))
            for c, score in offer.neighbors
        ],
        can_generate=offer.can_generate,
        rate_limit=rate_limit_response(offer.rate_limit),
    )


@router.post("/concepts/{concept_id}/branches/accept", response_model=BranchResponse)
async def accept_neighbor(
    concept_id: UUID,
    body: AcceptNeighborRequest,
    user_id: str = Depends(get_current_user_id),
    engine: BranchEngine = Depends(get_branch_engine),
) -> BranchResponse:
    with graph_errors():
        branch = await engine.accept_neighbor(
            str(concept_id),
            str(body.target_id),
            user_id,
            branch_type=body.branch_type,
            description=body.description,
        )
    return branch_response(branch.edge, branch.target)


@router.post("/concepts/{concept_id}/branches/generate", response_model=GeneratedBranchesResponse)
async def generate_branches(
    concept_id: UUID,
    user_id: str = Depends(get_current_user_id),
    engine_factory: EngineFactory = Depends(get_engine_factory),
) -> GeneratedBranchesResponse:
    """
    Generate four new branches (constructive, critique, author, wildcard).

    Counts one unit against the caller's generation quota when the model
    returns a usable batch. The work completes even if the client disconnects.
    """
    with graph_errors():
        result = await run_detached(
            engine_factory,
            lambda engine: engine.generate_new_branches(str(concept_id), user_id),
        )
    return GeneratedBranchesResponse(
        branches=[
            ResolvedBranchResponse(
                branch=branch_response(b.edge, b.target),
                reused_existing=b.reused_existing,
            )
            for b in result.branches
        ],
        rate_limit=rate_limit_response(result.rate_limit),
    )


@router.post("/concepts/{concept_id}/choose", status_code=status.HTTP_204_NO_CONTENT)
async def choose_branch(
    concept_id: UUID,
    body: ChooseBranchRequest,
    user_id: str = Depends(get_current_user_id),
    engine: BranchEngine = Depends(get_branch_engine),
) -> Response:
    """Record which branch type the user followed. Best effort."""
    await engine.record_choice(str(concept_id), body.branch_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/rate-limit", response_model=RateLimitResponse)
async def get_rate_limit(
    user_id: str = Depends(get_current_user_id),
    engine: BranchEngine = Depends(get_branch_engine),
) -> RateLimitResponse:
    status_ = await engine.rate_limit_status(user_id)
    return rate_limit_response(status_)
