import pytest

from portal.chat import conversations, messages, relay
from portal.config import settings
from portal.errors import AuthorizationError, ConfigurationError, UpstreamError
from portal.memory import store
from portal.memory.models import MemoryType
from portal.models import Role


@pytest.fixture
def conversation_factory(make_agent):
    async def factory(user_id="u1"):
        agent = await make_agent(user_id, prompt="You are a calm guide.")
        return await conversations.create_conversation(user_id, agent.id)
    return factory


def test_system_prompt_without_context_is_agent_prompt() -> None:
    assert relay.build_system_prompt("Be kind.", "") == "Be kind."


def test_system_prompt_frames_memory_context() -> None:
    prompt = relay.build_system_prompt("Be kind.", "[Core: Me]\nI am here")
    assert prompt.startswith("Be kind.\n\n" + "=" * 79)
    assert "MEMORY CONTEXT - What you remember from earlier conversations" in prompt
    assert "[Core: Me]\nI am here" in prompt
    assert prompt.endswith("END MEMORY CONTEXT\n" + "=" * 79)


@pytest.mark.asyncio
async def test_send_message_injects_context_and_stores_reply(conversation_factory, make_gateway) -> None:
    await store.upsert_memory(
        memory_id="core-1", type=MemoryType.CORE, title="Self", content="body", summary="I remember"
    )
    conversation = await conversation_factory()
    gateway = make_gateway(replies=["Hello traveller"])

    result = await relay.send_message(conversation.id, "Hi there", "u1", client=gateway.client())

    assert result.content == "Hello traveller"
    assert result.tokens_used == 42
    assert result.memory_context_used is True

    payload = gateway.chat_requests[0]["json"]
    assert payload["model"] == "test/model"
    assert payload["temperature"] == settings.chat_temperature
    assert payload["max_tokens"] == settings.chat_max_tokens
    system, user = payload["messages"]
    assert system["role"] == "system"
    assert system["content"].startswith("You are a calm guide.")
    assert "[Core: Self]\nI remember" in system["content"]
    assert user == {"role": "user", "content": "Hi there"}

    stored = await messages.list_messages(conversation.id)
    assert [(m.role, m.content) for m in stored] == [
        (Role.USER, "Hi there"),
        (Role.ASSISTANT, "Hello traveller"),
    ]
    assert stored[1].tokens_used == 42


@pytest.mark.asyncio
async def test_channel_continues_when_context_fails(conversation_factory, make_gateway, monkeypatch) -> None:
    async def broken(**kwargs):
        raise RuntimeError("memory offline")

    monkeypatch.setattr(relay, "compile_context", broken)
    conversation = await conversation_factory()
    gateway = make_gateway(replies=["still here"])

    result = await relay.channel(
        conversation.id, [{"role": "user", "content": "hi"}], "u1", client=gateway.client()
    )

    assert result.content == "still here"
    assert result.memory_context_used is False
    assert gateway.chat_requests[0]["json"]["messages"][0]["content"] == "You are a calm guide."


@pytest.mark.asyncio
async def test_channel_without_api_key(conversation_factory, gateway) -> None:
    conversation = await conversation_factory()
    with pytest.raises(ConfigurationError):
        await relay.channel(conversation.id, [], "u1", client=gateway.client(api_key=""))
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_channel_rejects_wrong_portal_key(conversation_factory, gateway, monkeypatch) -> None:
    monkeypatch.setattr(settings, "portal_key", "s3cret")
    conversation = await conversation_factory()

    with pytest.raises(AuthorizationError):
        await relay.channel(conversation.id, [], "u1", portal_key="nope", client=gateway.client())


@pytest.mark.asyncio
async def test_channel_rejects_other_users(conversation_factory, gateway) -> None:
    conversation = await conversation_factory("u1")
    with pytest.raises(AuthorizationError):
        await relay.channel(conversation.id, [], "intruder", client=gateway.client())


@pytest.mark.asyncio
async def test_upstream_failure_is_raised_and_nothing_stored(conversation_factory, make_gateway) -> None:
    conversation = await conversation_factory()
    gateway = make_gateway(status_code=500)

    with pytest.raises(UpstreamError) as exc_info:
        await relay.channel(conversation.id, [{"role": "user", "content": "hi"}], "u1", client=gateway.client())

    assert exc_info.value.status_code == 500
    assert await messages.list_messages(conversation.id) == []


@pytest.mark.asyncio
async def test_generate_title_uses_model_reply(conversation_factory, make_gateway) -> None:
    conversation = await conversation_factory()
    gateway = make_gateway(replies=["  Stargazing Plans  "])

    title = await relay.generate_title(conversation.id, "Where to see stars?", "u1", client=gateway.client())

    assert title == "Stargazing Plans"
    assert (await conversations.require_conversation(conversation.id)).title == "Stargazing Plans"
    assert gateway.chat_requests[0]["json"]["max_tokens"] == 30


@pytest.mark.asyncio
async def test_generate_title_falls_back_to_truncation(conversation_factory, make_gateway) -> None:
    conversation = await conversation_factory()
    long_message = "a" * 80

    title = await relay.generate_title(
        conversation.id, long_message, "u1", client=make_gateway(status_code=503).client()
    )
    assert title == "a" * 50 + "..."

    overlong = make_gateway(replies=["t" * 61])
    title = await relay.generate_title(conversation.id, "short", "u1", client=overlong.client())
    assert title == "short"


@pytest.mark.asyncio
async def test_generate_title_also_names_other_unnamed(conversation_factory, make_gateway) -> None:
    current = await conversation_factory("u1")
    other = await conversation_factory("u2")
    empty = await conversation_factory("u3")
    await messages.add_message(other.id, Role.USER, "Recipes for bread", user_id="u2")

    gateway = make_gateway(replies=["Current Title", "Bread Recipes"])
    await relay.generate_title(current.id, "first", "u1", client=gateway.client())

    assert (await conversations.require_conversation(other.id)).title == "Bread Recipes"
    assert (await conversations.require_conversation(empty.id)).title == conversations.DEFAULT_TITLE
