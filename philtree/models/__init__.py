"""
SQLAlchemy models for the concept graph.

Importing this package registers every table on ``Base.metadata``.
"""

from philtree.models.base import Base, CreatedAtMixin, UUIDMixin, generate_uuid, utc_now
from philtree.models.branch_type import BRANCH_TYPE_VALUES, BranchType
from philtree.models.concept import Concept, concept_payload
from philtree.models.edge import Edge
from philtree.models.generation_log import GenerationLogEntry
from philtree.models.branch_analytics import BranchAnalyticsCounter

__all__ = [
    "Base",
    "CreatedAtMixin",
    "UUIDMixin",
    "generate_uuid",
    "utc_now",
    "BRANCH_TYPE_VALUES",
    "BranchType",
    "Concept",
    "concept_payload",
    "Edge",
    "GenerationLogEntry",
    "BranchAnalyticsCounter",
]
