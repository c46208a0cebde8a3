"""
Qdrant Vector Index
===================

Stores one point per embedded concept (point id == concept id) and answers
cosine nearest-neighbour queries. Qdrant reports cosine scores as similarity
(``1 - cosine distance``), which is what callers threshold on.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from qdrant_client import QdrantClient
from qdrant_client.http.models import (
    Distance,
    Filter,
    HasIdCondition,
    PointStruct,
    VectorParams,
)

from philtree.core.config import settings


class ConceptVectorIndex:
    """
    Vector index over concept embeddings.

    A concept without a point here has no embedding and is invisible to
    similarity search until one is attached.
    """

    def __init__(
        self,
        client: QdrantClient,
        collection_name: str,
        dimensions: int,
    ):
        self.client = client
        self.collection_name = collection_name
        self.dimensions = dimensions
        self._collection_ready = False

    @classmethod
    def from_settings(cls) -> "ConceptVectorIndex":
        """Build an index from global settings (server or embedded local mode)."""
        if settings.QDRANT_LOCATION:
            client = QdrantClient(location=settings.QDRANT_LOCATION)
        else:
            client = QdrantClient(
                host=settings.QDRANT_HOST,
                port=settings.QDRANT_PORT,
                api_key=settings.QDRANT_API_KEY if settings.QDRANT_API_KEY else None,
            )
        return cls(
            client=client,
            collection_name=settings.QDRANT_COLLECTION_NAME,
            dimensions=settings.EMBEDDING_DIMENSIONS,
        )

    async def ensure_collection(self) -> None:
        """
        Ensure the concepts collection exists with cosine distance and the
        configured vector size.
        """
        if self._collection_ready:
            return

        collections = self.client.get_collections()
        collection_names = [c.name for c in collections.collections]

        if self.collection_name not in collection_names:
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
        self._collection_ready = True

    async def upsert(self, concept_id: str, vector: Sequence[float], payload: Optional[dict] = None) -> None:
        """Store (or replace) the embedding for a concept."""
        if len(vector) != self.dimensions:
            raise ValueError(
                f"Embedding has {len(vector)} dimensions, index expects {self.dimensions}"
            )
        await self.ensure_collection()
        self.client.upsert(
            collection_name=self.collection_name,
            points=[
                PointStruct(
                    id=str(concept_id),
                    vector=[float(x) for x in vector],
                    payload=payload or {},
                ),
            ],
        )

    async def get_vector(self, concept_id: str) -> Optional[List[float]]:
        """Return the stored embedding for a concept, or None."""
        await self.ensure_collection()
        records = self.client.retrieve(
            collection_name=self.collection_name,
            ids=[str(concept_id)],
            with_vectors=True,
            with_payload=False,
        )
        if not records:
            return None
        vector = records[0].vector
        if isinstance(vector, dict):
            # Named vectors; this collection only ever has the default one.
            vector = next(iter(vector.values()), None)
        return [float(x) for x in vector] if vector is not None else None

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        exclude_ids: Iterable[str] = (),
        score_threshold: Optional[float] = None,
    ) -> List[Tuple[str, float]]:
        """
        Nearest concepts to ``query_vector`` by cosine similarity.

        Args:
            query_vector: Query embedding
            limit: Maximum number of hits
            exclude_ids: Concept ids that must not be returned
            score_threshold: Minimum similarity, or None for no threshold

        Returns:
            List of (concept_id, similarity), most similar first
        """
        if limit <= 0:
            return []
        await self.ensure_collection()

        excluded = [str(i) for i in exclude_ids]
        query_filter = Filter(must_not=[HasIdCondition(has_id=excluded)]) if excluded else None

        response = self.client.query_points(
            collection_name=self.collection_name,
            query=[float(x) for x in query_vector],
            query_filter=query_filter,
            limit=limit,
            score_threshold=score_threshold,
            with_payload=False,
            with_vectors=False,
        )

        return [(str(point.id), float(point.score)) for point in response.points]

    def health_check(self) -> bool:
        """Return True when the Qdrant backend answers."""
        try:
            self.client.get_collections()
            return True
        except Exception:
            return False
