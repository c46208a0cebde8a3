"""
Concept Graph Schemas
=====================

Request and response bodies for concept, branch and analytics endpoints.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from philtree.models.branch_type import BranchType
from philtree.schemas.base import BaseSchema


class ReadingEntryResponse(BaseSchema):
    title: str
    author: str
    year: str = ""
    relevance: str = ""


class ConceptResponse(BaseSchema):
    """A concept node."""

    id: str
    name: str
    slug: str
    description: str
    recommended_reading: List[ReadingEntryResponse] = Field(default_factory=list)
    has_embedding: bool = False
    created_at: Optional[datetime] = None


class ConceptSummary(BaseSchema):
    id: str
    name: str
    slug: str


class BranchResponse(BaseSchema):
    """An edge with its target concept."""

    id: str
    source_id: str
    target_id: str
    branch_type: BranchType
    description: str
    created_at: Optional[datetime] = None
    target: ConceptSummary


class ConceptDetailResponse(BaseSchema):
    concept: ConceptResponse
    branches: List[BranchResponse] = Field(default_factory=list)


class RateLimitResponse(BaseSchema):
    allowed: bool
    remaining: int
    limit: int
    reset_at: Optional[datetime] = None


class NeighborSuggestion(BaseSchema):
    concept: ConceptSummary
    similarity: float


class BranchOfferResponse(BaseSchema):
    neighbors: List[NeighborSuggestion]
    can_generate: bool
    rate_limit: RateLimitResponse


class ResolvedBranchResponse(BaseSchema):
    branch: BranchResponse
    reused_existing: bool


class GeneratedBranchesResponse(BaseSchema):
    branches: List[ResolvedBranchResponse]
    rate_limit: RateLimitResponse


class AcceptNeighborRequest(BaseSchema):
    target_id: UUID
    branch_type: Optional[BranchType] = None
    description: Optional[str] = Field(None, max_length=2000)


class ChooseBranchRequest(BaseSchema):
    branch_type: BranchType


class CreateConceptRequest(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)


class CreateConceptResponse(BaseSchema):
    concept: ConceptResponse
    created: bool


class BranchStatResponse(BaseSchema):
    branch_type: BranchType
    count: int
    percentage: float


class ConceptSearchResponse(BaseSchema):
    items: List[ConceptSummary]
    total: int
