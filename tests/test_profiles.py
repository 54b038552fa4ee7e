import pytest

from portal.memory import profiles


@pytest.mark.asyncio
async def test_missing_profile_is_none() -> None:
    assert await profiles.get_profile("nobody") is None


@pytest.mark.asyncio
async def test_add_fact_deduplicates_exact_strings() -> None:
    assert await profiles.add_fact("u1", "likes tea") is True
    assert await profiles.add_fact("u1", "likes tea") is False
    assert await profiles.add_fact("u1", "Likes tea") is True

    profile = await profiles.get_profile("u1")
    assert profile.facts == ["likes tea", "Likes tea"]


@pytest.mark.asyncio
async def test_relationship_notes_are_appended() -> None:
    await profiles.append_relationship_notes("u1", "first meeting")
    await profiles.append_relationship_notes("u1", "shared a joke")

    profile = await profiles.get_profile("u1")
    assert profile.relationship_notes == "first meeting\n\nshared a joke"


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields() -> None:
    await profiles.update_profile("u1", name="Ada", interests=["chess"])
    await profiles.add_fact("u1", "likes tea")

    profile = await profiles.update_profile("u1", preferences="short answers")

    assert profile.name == "Ada"
    assert profile.interests == ["chess"]
    assert profile.facts == ["likes tea"]
    assert profile.preferences == "short answers"
