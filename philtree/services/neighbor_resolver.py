"""Nearest-neighbour resolution over concept embeddings."""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from philtree.models.concept import Concept


class ScoredConceptSource(Protocol):
    async def find_nearest_scored(
        self,
        embedding: Sequence[float],
        limit: int,
        exclude_ids: Iterable[str] = (),
        min_similarity: float | None = None,
    ) -> list[tuple[Concept, float]]: ...


class NeighborResolver:
    """
    Similarity lookup with a threshold.

    Similarity is ``1 - cosine distance``. A ``min_similarity`` of 0 disables
    thresholding, which is what user-facing suggestions use; dedup passes a
    stricter value.
    """

    def __init__(self, concepts: ScoredConceptSource):
        self.concepts = concepts

    async def resolve(
        self,
        embedding: Sequence[float],
        limit: int,
        exclude_ids: Iterable[str] = (),
        min_similarity: float = 0.0,
    ) -> list[tuple[Concept, float]]:
        if limit <= 0:
            return []
        excluded = {str(i) for i in exclude_ids}
        hits = await self.concepts.find_nearest_scored(
            embedding,
            limit=limit,
            exclude_ids=excluded,
            min_similarity=min_similarity if min_similarity > 0 else None,
        )
        hits = [
            (concept, score)
            for concept, score in hits
            if str(concept.id) not in excluded and (min_similarity <= 0 or score >= min_similarity)
        ]
        hits.sort(key=lambda pair: pair[1], reverse=True)
        return hits[:limit]
