import pytest

from philtree.services.neighbor_resolver import NeighborResolver

from tests.fakes import InMemoryConceptStore, blend, unit


@pytest.fixture
def store() -> InMemoryConceptStore:
    store = InMemoryConceptStore()
    store.add("Source", embedding=unit(0))
    return store


@pytest.mark.asyncio
async def test_results_are_sorted_and_limited(store):
    for i, similarity in enumerate([0.2, 0.9, 0.5, 0.7], start=1):
        store.add(f"C{i}", embedding=blend(0, i, similarity))

    hits = await NeighborResolver(store).resolve(unit(0), limit=2)

    assert [c.name for c, _ in hits] == ["Source", "C2"]


@pytest.mark.asyncio
async def test_excluded_ids_never_returned(store):
    source = next(iter(store.concepts.values()))
    store.add("Other", embedding=blend(0, 1, 0.3))

    hits = await NeighborResolver(store).resolve(unit(0), limit=5, exclude_ids=[source.id])

    assert [c.name for c, _ in hits] == ["Other"]


@pytest.mark.asyncio
async def test_threshold_keeps_only_close_matches(store):
    source = next(iter(store.concepts.values()))
    store.add("Close", embedding=blend(0, 1, 0.9))
    store.add("Loose", embedding=blend(0, 2, 0.6))

    hits = await NeighborResolver(store).resolve(
        unit(0), limit=5, exclude_ids={source.id}, min_similarity=0.85
    )

    assert [c.name for c, _ in hits] == ["Close"]
    assert hits[0][1] == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_concepts_without_embeddings_are_invisible(store):
    store.add("Unembedded")

    hits = await NeighborResolver(store).resolve(unit(0), limit=5)

    assert "Unembedded" not in [c.name for c, _ in hits]


@pytest.mark.asyncio
async def test_zero_limit(store):
    assert await NeighborResolver(store).resolve(unit(0), limit=0) == []
