"""ConceptVectorIndex against Qdrant's embedded in-memory mode."""

import math
import uuid

import pytest
from qdrant_client import QdrantClient

from philtree.core.qdrant import ConceptVectorIndex

DIMS = 4


def _ids(n: int) -> list[str]:
    return [str(uuid.uuid4()) for _ in range(n)]


def _direction(v):
    norm = math.sqrt(sum(x * x for x in v))
    return [x / norm for x in v]


@pytest.fixture
def index() -> ConceptVectorIndex:
    return ConceptVectorIndex(QdrantClient(location=":memory:"), "concepts_test", DIMS)


@pytest.mark.asyncio
async def test_upsert_then_get_vector(index):
    (cid,) = _ids(1)
    await index.upsert(cid, [3.0, 0.0, 4.0, 0.0], payload={"slug": "stoicism"})

    stored = await index.get_vector(cid)

    # Cosine collections may normalize on write; only the direction is guaranteed.
    assert _direction(stored) == pytest.approx(_direction([3.0, 0.0, 4.0, 0.0]))


@pytest.mark.asyncio
async def test_get_vector_for_unknown_id_is_none(index):
    assert await index.get_vector(str(uuid.uuid4())) is None


@pytest.mark.asyncio
async def test_wrong_dimensions_rejected(index):
    with pytest.raises(ValueError):
        await index.upsert(str(uuid.uuid4()), [1.0, 0.0])


@pytest.mark.asyncio
async def test_search_orders_by_similarity_and_excludes(index):
    near, mid, far, source = _ids(4)
    await index.upsert(source, [1.0, 0.0, 0.0, 0.0])
    await index.upsert(near, [0.9, 0.1, 0.0, 0.0])
    await index.upsert(mid, [0.5, 0.5, 0.0, 0.0])
    await index.upsert(far, [0.0, 0.0, 1.0, 0.0])

    hits = await index.search([1.0, 0.0, 0.0, 0.0], limit=3, exclude_ids=[source])

    assert [cid for cid, _ in hits] == [near, mid, far]
    scores = [s for _, s in hits]
    assert scores == sorted(scores, reverse=True)
    assert scores[-1] == pytest.approx(0.0, abs=1e-6)


@pytest.mark.asyncio
async def test_search_applies_score_threshold(index):
    near, far = _ids(2)
    await index.upsert(near, [1.0, 0.1, 0.0, 0.0])
    await index.upsert(far, [0.0, 1.0, 0.0, 0.0])

    hits = await index.search([1.0, 0.0, 0.0, 0.0], limit=5, score_threshold=0.85)

    assert [cid for cid, _ in hits] == [near]


@pytest.mark.asyncio
async def test_search_with_zero_limit_is_empty(index):
    assert await index.search([1.0, 0.0, 0.0, 0.0], limit=0) == []


def test_health_check(index):
    assert index.health_check() is True
