import pytest

from portal.memory import profiles, store
from portal.memory.context import BLOCK_SEPARATOR, compile_context, list_snapshots
from portal.memory.models import MemoryType


async def _memory(memory_id, type, summary="", content=None, resonance=0.5):
    await store.upsert_memory(
        memory_id=memory_id,
        type=type,
        title=memory_id.upper(),
        content=content or f"plain body of {memory_id}",
        summary=summary or None,
        resonance=resonance,
    )


@pytest.fixture
def seeded_graph():
    async def seed():
        await _memory("c1", MemoryType.CORE, "who I am", resonance=1.0)
        await _memory("c2", MemoryType.CORE, resonance=0.9)
        await _memory("i1", MemoryType.INSIGHT, "stars at night", content="telescope lens", resonance=0.6)
        for n in range(1, 5):
            await _memory(f"h{n}", MemoryType.HARMONIC, f"theme {n}", resonance=0.7)
    return seed


@pytest.mark.asyncio
async def test_tiers_are_emitted_in_priority_order(seeded_graph) -> None:
    await seeded_graph()

    result = await compile_context(recent_messages=["hello", "the telescope"])

    assert result.memory_ids == ["c1", "c2", "i1", "h1", "h2", "h3"]
    assert result.memory_count == 6
    assert result.context == BLOCK_SEPARATOR.join([
        "[Core: C1]\nwho I am",
        "[insight: I1]\nstars at night",
        "[Harmonic: H1]\ntheme 1",
        "[Harmonic: H2]\ntheme 2",
        "[Harmonic: H3]\ntheme 3",
    ])
    assert result.total_resonance == pytest.approx(1.0 + 0.9 + 0.6 + 0.7 * 3)


@pytest.mark.asyncio
async def test_only_last_three_messages_drive_search(seeded_graph) -> None:
    await seeded_graph()

    result = await compile_context(recent_messages=["telescope", "x", "y", "z"])
    assert "i1" not in result.memory_ids


@pytest.mark.asyncio
async def test_harmonic_without_summary_is_skipped() -> None:
    await _memory("h-bare", MemoryType.HARMONIC)
    await _memory("h-ok", MemoryType.HARMONIC, "has summary")

    result = await compile_context()
    assert result.memory_ids == ["h-ok"]


@pytest.mark.asyncio
async def test_profile_block_follows_core(seeded_graph) -> None:
    await seeded_graph()
    await profiles.update_profile("u1", name="Ada", facts=["likes tea"], interests=["chess", "math"])

    result = await compile_context(user_id="u1")
    blocks = result.context.split(BLOCK_SEPARATOR)

    assert blocks[0] == "[Core: C1]\nwho I am"
    assert blocks[1] == "[Subject Memory]\nName: Ada\nKnown facts: likes tea\nInterests: chess, math"
    # 画像不计入 memory_ids
    assert "u1" not in result.memory_ids


@pytest.mark.asyncio
async def test_compilation_is_deterministic(seeded_graph) -> None:
    await seeded_graph()

    first = await compile_context(recent_messages=["telescope"])
    second = await compile_context(recent_messages=["telescope"])

    assert first.context == second.context
    assert first.memory_ids == second.memory_ids


@pytest.mark.asyncio
async def test_snapshot_written_and_memories_touched(seeded_graph) -> None:
    await seeded_graph()

    result = await compile_context(conversation_id=9, recent_messages=["telescope"])

    snapshots = await list_snapshots(conversation_id=9)
    assert len(snapshots) == 1
    assert snapshots[0].memory_ids == result.memory_ids
    assert snapshots[0].compiled_context == result.context

    for memory_id in result.memory_ids:
        assert (await store.get_memory(memory_id)).access_count == 1
    assert (await store.get_memory("h4")).access_count == 0


@pytest.mark.asyncio
async def test_empty_store_compiles_to_empty_context() -> None:
    result = await compile_context(recent_messages=["anything"])
    assert result.context == ""
    assert result.memory_ids == []
    assert len(await list_snapshots()) == 1
