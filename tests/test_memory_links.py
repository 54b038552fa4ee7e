import pytest

from portal.memory.links import get_links, traverse, upsert_link
from portal.memory.models import LinkType


@pytest.mark.asyncio
async def test_upsert_same_pair_updates_instead_of_duplicating() -> None:
    await upsert_link("a", "b", LinkType.RELATES_TO, 0.3, "first")
    await upsert_link("a", "b", LinkType.SUPPORTS, 0.9, "second")

    links = await get_links("a")
    assert len(links.outgoing) == 1
    edge = links.outgoing[0]
    assert edge.link_type == LinkType.SUPPORTS
    assert edge.weight == 0.9
    assert edge.description == "second"


@pytest.mark.asyncio
async def test_get_links_separates_outgoing_and_incoming() -> None:
    await upsert_link("a", "b", LinkType.EXTENDS, 0.5)
    await upsert_link("c", "a", LinkType.DEFINES, 0.5)

    links = await get_links("a")
    assert [l.target_memory_id for l in links.outgoing] == ["b"]
    assert [l.source_memory_id for l in links.incoming] == ["c"]


@pytest.mark.asyncio
async def test_traverse_without_links_is_empty() -> None:
    assert await traverse("lonely", depth=3) == []


@pytest.mark.asyncio
async def test_traverse_cycle_terminates_and_excludes_start() -> None:
    await upsert_link("a", "b", LinkType.RELATES_TO, 0.5)
    await upsert_link("b", "c", LinkType.TRIGGERS, 0.5)
    await upsert_link("c", "a", LinkType.REFERENCES, 0.5)

    results = await traverse("a", depth=10)
    assert [(r.memory_id, r.depth) for r in results] == [("b", 1), ("c", 2)]
    assert results[1].path == [LinkType.RELATES_TO, LinkType.TRIGGERS]


@pytest.mark.asyncio
async def test_traverse_respects_depth_bound() -> None:
    await upsert_link("a", "b", LinkType.RELATES_TO, 0.5)
    await upsert_link("b", "c", LinkType.RELATES_TO, 0.5)

    assert [r.memory_id for r in await traverse("a")] == ["b"]
    assert [r.memory_id for r in await traverse("a", depth=2)] == ["b", "c"]


@pytest.mark.asyncio
async def test_traverse_first_discovery_wins() -> None:
    await upsert_link("a", "b", LinkType.RELATES_TO, 0.5)
    await upsert_link("a", "c", LinkType.SUPPORTS, 0.5)
    await upsert_link("b", "d", LinkType.EXTENDS, 0.5)
    await upsert_link("c", "d", LinkType.DEFINES, 0.5)

    results = {r.memory_id: r for r in await traverse("a", depth=2)}
    assert results["d"].depth == 2
    assert results["d"].path == [LinkType.RELATES_TO, LinkType.EXTENDS]


@pytest.mark.asyncio
async def test_traverse_rejects_depth_below_one() -> None:
    with pytest.raises(ValueError):
        await traverse("a", depth=0)
