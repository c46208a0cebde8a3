"""Response builders shared by the concept and branch endpoints."""

from typing import Optional

from philtree.models.concept import Concept
from philtree.models.edge import Edge
from philtree.schemas.concept import (
    BranchResponse,
    ConceptResponse,
    ConceptSummary,
    RateLimitResponse,
)
from philtree.services.rate_limiter import RateLimitStatus


def concept_response(concept: Concept) -> ConceptResponse:
    return ConceptResponse.model_validate(concept)


def concept_summary(concept: Concept) -> ConceptSummary:
    return ConceptSummary.model_validate(concept)


def branch_response(edge: Edge, target: Optional[Concept] = None) -> BranchResponse:
    target = target if target is not None else edge.target
    return BranchResponse(
        id=str(edge.id),
        source_id=str(edge.source_id),
        target_id=str(edge.target_id),
        branch_type=edge.branch_type,
        description=edge.description,
        created_at=edge.created_at,
        target=concept_summary(target),
    )


def rate_limit_response(status: RateLimitStatus) -> RateLimitResponse:
    return RateLimitResponse(
        allowed=status.allowed,
        remaining=status.remaining,
        limit=status.limit,
        reset_at=status.reset_at,
    )
