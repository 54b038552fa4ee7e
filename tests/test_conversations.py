import pytest

from portal.chat import conversations, messages
from portal.errors import AuthorizationError, NotFoundError
from portal.models import Role


@pytest.mark.asyncio
async def test_create_uses_default_title(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)

    assert conversation.title == conversations.DEFAULT_TITLE
    assert conversation.is_archived is False


@pytest.mark.asyncio
async def test_cannot_start_conversation_with_someone_elses_agent(make_agent) -> None:
    agent = await make_agent("u1")
    with pytest.raises(AuthorizationError):
        await conversations.create_conversation("u2", agent.id)
    with pytest.raises(NotFoundError):
        await conversations.create_conversation("u1", 999)


@pytest.mark.asyncio
async def test_list_orders_by_latest_message(make_agent) -> None:
    agent = await make_agent()
    older = await conversations.create_conversation("u1", agent.id, "older")
    newer = await conversations.create_conversation("u1", agent.id, "newer")

    assert [c.id for c in await conversations.list_conversations("u1")] == [newer.id, older.id]

    await messages.add_message(older.id, Role.USER, "bump", user_id="u1")
    assert [c.id for c in await conversations.list_conversations("u1")] == [older.id, newer.id]


@pytest.mark.asyncio
async def test_archived_conversations_are_hidden(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)

    await conversations.archive_conversation(conversation.id, "u1")
    assert await conversations.list_conversations("u1") == []


@pytest.mark.asyncio
async def test_rename_missing_conversation_raises() -> None:
    with pytest.raises(NotFoundError):
        await conversations.rename_conversation(404, "title")


@pytest.mark.asyncio
async def test_rename_and_detail(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)
    await messages.add_message(conversation.id, Role.USER, "hi", user_id="u1")
    await conversations.rename_conversation(conversation.id, "Greetings", "u1")

    detail = await conversations.get_conversation(conversation.id, "u1")
    assert detail.title == "Greetings"
    assert detail.agent.id == agent.id
    assert [m.content for m in detail.messages] == ["hi"]

    with pytest.raises(AuthorizationError):
        await conversations.get_conversation(conversation.id, "u2")


@pytest.mark.asyncio
async def test_delete_removes_messages(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)
    await messages.add_message(conversation.id, Role.USER, "hi")

    await conversations.delete_conversation(conversation.id, "u1")

    assert await messages.list_messages(conversation.id) == []
    with pytest.raises(NotFoundError):
        await conversations.require_conversation(conversation.id)


@pytest.mark.asyncio
async def test_favorites(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)

    assert await conversations.toggle_favorite(conversation.id, "u1") is True
    assert [c.id for c in await conversations.list_favorites("u1")] == [conversation.id]
    assert await conversations.toggle_favorite(conversation.id, "u1") is False
    assert await conversations.list_favorites("u1") == []


@pytest.mark.asyncio
async def test_add_message_to_missing_conversation() -> None:
    with pytest.raises(NotFoundError):
        await messages.add_message(404, Role.USER, "hello")


@pytest.mark.asyncio
async def test_streaming_message_can_be_finished_once(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)
    draft = await messages.add_message(conversation.id, Role.ASSISTANT, "", is_streaming=True)

    partial = await messages.update_streaming_message(conversation.id, draft.id, "Hel", is_streaming=True)
    assert partial.content == "Hel"

    done = await messages.update_streaming_message(
        conversation.id, draft.id, "Hello", is_streaming=False, tokens_used=5
    )
    assert (done.content, done.is_streaming, done.tokens_used) == ("Hello", False, 5)

    with pytest.raises(ValueError):
        await messages.update_streaming_message(conversation.id, draft.id, "again", is_streaming=False)
    with pytest.raises(NotFoundError):
        await messages.update_streaming_message(conversation.id, 999, "x", is_streaming=False)


@pytest.mark.asyncio
async def test_recent_messages_are_chronological(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)
    for text in ["one", "two", "three", "four"]:
        await messages.add_message(conversation.id, Role.USER, text)

    recent = await messages.recent_messages(conversation.id, 2)
    assert [m.content for m in recent] == ["three", "four"]
    assert await messages.first_user_message(conversation.id) == "one"


@pytest.mark.asyncio
async def test_message_favorite_toggle(make_agent) -> None:
    agent = await make_agent()
    conversation = await conversations.create_conversation("u1", agent.id)
    message = await messages.add_message(conversation.id, Role.ASSISTANT, "keep this")

    assert await messages.toggle_message_favorite(conversation.id, message.id) is True
    assert (await messages.list_messages(conversation.id))[0].is_favorite is True


@pytest.mark.asyncio
async def test_message_must_belong_to_conversation(make_agent) -> None:
    agent = await make_agent()
    own = await conversations.create_conversation("u1", agent.id)
    other = await conversations.create_conversation("u1", agent.id)
    draft = await messages.add_message(other.id, Role.ASSISTANT, "", is_streaming=True)

    with pytest.raises(NotFoundError):
        await messages.update_streaming_message(own.id, draft.id, "hijack", is_streaming=False)
    with pytest.raises(NotFoundError):
        await messages.toggle_message_favorite(own.id, draft.id)

    untouched = (await messages.list_messages(other.id))[0]
    assert (untouched.content, untouched.is_streaming, untouched.is_favorite) == ("", True, False)
