import pytest

from portal.memory import store
from portal.memory.models import MemoryType
from portal.memory.store import build_fts_query


async def _seed(memory_id: str, **overrides):
    fields = dict(
        memory_id=memory_id,
        type=MemoryType.INSIGHT,
        title=f"Title {memory_id}",
        content=f"Content of {memory_id}",
        summary=f"Summary {memory_id}",
        resonance=0.5,
    )
    fields.update(overrides)
    await store.upsert_memory(**fields)


def test_build_fts_query_quotes_tokens() -> None:
    assert build_fts_query("garden AND moon") == '"garden"* OR "AND"* OR "moon"*'
    assert build_fts_query("   ?! ") is None


@pytest.mark.asyncio
async def test_upsert_same_id_twice_keeps_one_record_with_latest_fields() -> None:
    await _seed("m-1", title="First", resonance=0.3)
    await store.touch("m-1")
    await _seed("m-1", title="Second", content="Rewritten", resonance=0.9)

    memory = await store.get_memory("m-1")
    assert memory.title == "Second"
    assert memory.content == "Rewritten"
    assert memory.resonance == 0.9
    # 计数器与类型保持不变
    assert memory.access_count == 1
    assert memory.type == MemoryType.INSIGHT
    assert await store.count() == 1


@pytest.mark.asyncio
async def test_new_memory_starts_active_with_zero_counters() -> None:
    await _seed("fresh")
    memory = await store.get_memory("fresh")
    assert memory.is_active is True
    assert memory.access_count == 0
    assert memory.last_accessed_at is None


@pytest.mark.asyncio
async def test_resonance_out_of_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        await _seed("bad", resonance=1.5)


@pytest.mark.asyncio
async def test_soft_deleted_memory_disappears_from_every_read() -> None:
    await _seed("keep", content="lantern festival", resonance=0.4)
    await _seed("gone", content="lantern festival", resonance=0.8)
    await store.deactivate("gone")

    assert [m.memory_id for m in await store.list_by_type(MemoryType.INSIGHT)] == ["keep"]
    assert [m.memory_id for m in await store.list_top()] == ["keep"]
    assert [m.memory_id for m in await store.search("lantern")] == ["keep"]
    assert await store.get_memory("gone") is None


@pytest.mark.asyncio
async def test_search_falls_back_to_title_when_content_has_no_hits() -> None:
    await _seed("t-1", title="Orchard notes", content="apples and pears")

    by_content = await store.search("pears")
    assert [m.memory_id for m in by_content] == ["t-1"]

    by_title = await store.search("orchard")
    assert [m.memory_id for m in by_title] == ["t-1"]

    assert await store.search("volcano") == []


@pytest.mark.asyncio
async def test_search_respects_type_filter() -> None:
    await _seed("core-a", type=MemoryType.CORE, content="river stones")
    await _seed("ins-a", type=MemoryType.INSIGHT, content="river stones")

    results = await store.search("river", type=MemoryType.CORE)
    assert [m.memory_id for m in results] == ["core-a"]


@pytest.mark.asyncio
async def test_list_top_orders_by_resonance() -> None:
    await _seed("low", resonance=0.1)
    await _seed("high", resonance=0.9)
    await _seed("mid", resonance=0.5)

    assert [m.memory_id for m in await store.list_top(limit=2)] == ["high", "mid"]


@pytest.mark.asyncio
async def test_touch_and_deactivate_missing_id_are_silent() -> None:
    await store.touch("does-not-exist")
    await store.deactivate("does-not-exist")
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_touch_increments_access_count() -> None:
    await _seed("used")
    await store.touch("used")
    await store.touch("used")

    memory = await store.get_memory("used")
    assert memory.access_count == 2
    assert memory.last_accessed_at is not None


@pytest.mark.asyncio
async def test_insert_if_absent_never_overwrites() -> None:
    assert await store.insert_memory_if_absent(
        memory_id="doc-1", type=MemoryType.CORE, title="Original", content="one"
    ) is True
    assert await store.insert_memory_if_absent(
        memory_id="doc-1", type=MemoryType.CORE, title="Changed", content="two"
    ) is False

    assert (await store.get_memory("doc-1")).title == "Original"


@pytest.mark.asyncio
async def test_embeddings_round_trip_through_storage() -> None:
    await _seed("vec")
    assert [m.memory_id for m in await store.list_without_embeddings()] == ["vec"]

    await store.store_embedding("vec", [0.25, -0.5, 1.0])

    memory = await store.get_memory("vec")
    assert memory.embedding == [0.25, -0.5, 1.0]
    assert [m.memory_id for m in await store.list_with_embeddings()] == ["vec"]
    assert await store.list_without_embeddings() == []
