import asyncio

import pytest

from tidemark.errors import ConversationNotFoundError
from tidemark.message import MessageRole
from tidemark.session import DEFAULT_TITLE, title_from_message


class TestTitles:
    def test_short_message_used_verbatim(self):
        assert title_from_message("  ¿Qué es Python?  ") == "¿Qué es Python?"

    def test_fifty_characters_kept(self):
        text = "x" * 50
        assert title_from_message(text) == text

    def test_long_message_truncated(self):
        title = title_from_message("y" * 51)
        assert title == "y" * 47 + "..."
        assert len(title) == 50


class TestInMemoryMessageStore:
    @pytest.mark.asyncio
    async def test_start_conversation(self, store):
        conversation = await store.start_conversation()
        assert conversation.conversation_id == 1
        assert conversation.title == DEFAULT_TITLE
        assert conversation.message_count == 0
        assert conversation.last_message_at is None

    @pytest.mark.asyncio
    async def test_append_and_history_in_order(self, store):
        conversation = await store.start_conversation()
        cid = conversation.conversation_id
        first = await store.append_message(cid, "hola", True)
        second = await store.append_message(cid, "¡hola!", False)

        history = await store.history(cid)
        assert [m.message_id for m in history] == [first, second]
        assert [m.role for m in history] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert (await store.get_conversation(cid)).last_message_at == history[-1].timestamp

    @pytest.mark.asyncio
    async def test_history_is_a_copy(self, store):
        cid = (await store.start_conversation()).conversation_id
        (await store.history(cid)).clear()
        await store.append_message(cid, "a", True)
        assert len(await store.history(cid)) == 1

    @pytest.mark.asyncio
    async def test_first_user_message(self, store):
        cid = (await store.start_conversation()).conversation_id
        await store.append_message(cid, "bot first", False)
        await store.append_message(cid, "user", True)
        conversation = await store.get_conversation(cid)
        assert conversation.first_user_message().content == "user"

    @pytest.mark.asyncio
    async def test_unknown_conversation_raises(self, store):
        with pytest.raises(ConversationNotFoundError):
            await store.append_message(99, "x", True)
        with pytest.raises(ConversationNotFoundError):
            await store.history(99)
        with pytest.raises(KeyError):
            await store.get_conversation(99)

    @pytest.mark.asyncio
    async def test_list_newest_first_and_search(self, store):
        a = await store.start_conversation()
        b = await store.start_conversation()
        await store.set_title(a.conversation_id, "Recetas de cocina")
        await store.set_title(b.conversation_id, "Python async")

        listed = await store.list_conversations()
        assert [c.conversation_id for c in listed] == [b.conversation_id, a.conversation_id]

        found = await store.list_conversations(search="PYTHON")
        assert [c.title for c in found] == ["Python async"]

    @pytest.mark.asyncio
    async def test_delete_conversation(self, store):
        cid = (await store.start_conversation()).conversation_id
        await store.append_message(cid, "a", True)
        await store.delete_conversation(cid)

        assert await store.list_conversations() == []
        with pytest.raises(ConversationNotFoundError):
            await store.history(cid)

    @pytest.mark.asyncio
    async def test_concurrent_appends_all_stored(self, store):
        cid = (await store.start_conversation()).conversation_id
        ids = await asyncio.gather(
            *(store.append_message(cid, str(i), i % 2 == 0) for i in range(20))
        )
        assert len(set(ids)) == 20
        assert len(await store.history(cid)) == 20
