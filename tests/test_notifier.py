from types import SimpleNamespace

import pytest
from telegram import InlineKeyboardMarkup
from telegram.error import BadRequest, Forbidden

from meetbot.errors import DeliveryError, ProvisionError, StaleEditTarget
from meetbot.keyboards import InteractionKeyboard
from meetbot.models import Button, ButtonStyle, MessageRef, Recipient, Rendered, Workspace
from meetbot.notifier import TelegramNotifier, VoicePresence

JOIN = Button(token="tok-join", label="Join", style=ButtonStyle.SUCCESS)
CANCEL = Button(token="tok-cancel", label="Cancel", style=ButtonStyle.DANGER)


class FakeBot:
    def __init__(self):
        self.calls = []
        self.error = None

    async def _call(self, name, /, **kwargs):
        self.calls.append((name, kwargs))
        if self.error is not None:
            raise self.error

    async def send_message(self, **kwargs):
        await self._call("send_message", **kwargs)
        return SimpleNamespace(chat_id=kwargs["chat_id"], message_id=7)

    async def edit_message_text(self, **kwargs):
        await self._call("edit_message_text", **kwargs)

    async def delete_message(self, **kwargs):
        await self._call("delete_message", **kwargs)

    async def create_forum_topic(self, **kwargs):
        await self._call("create_forum_topic", **kwargs)
        return SimpleNamespace(message_thread_id=55)

    async def delete_forum_topic(self, **kwargs):
        await self._call("delete_forum_topic", **kwargs)


@pytest.fixture
def bot():
    return FakeBot()


@pytest.fixture
def presence():
    return VoicePresence()


@pytest.fixture
def telegram_notifier(bot, presence):
    return TelegramNotifier(bot, presence, workspace_chat_id=-100)


def test_keyboard_rows_and_labels():
    markup = InteractionKeyboard.build(((JOIN, CANCEL),))
    assert isinstance(markup, InlineKeyboardMarkup)
    row = markup.inline_keyboard[0]
    assert [b.text for b in row] == ["✅ Join", "❌ Cancel"]
    assert [b.callback_data for b in row] == ["tok-join", "tok-cancel"]


def test_empty_keyboard_is_none():
    assert InteractionKeyboard.build(()) is None
    assert InteractionKeyboard.build(((),)) is None


@pytest.mark.anyio("asyncio")
async def test_send_targets_thread_and_returns_ref(telegram_notifier, bot):
    ref = await telegram_notifier.send_message(Recipient(chat_id=-100, thread_id=55), Rendered(text="<b>hi</b>"))

    assert ref == MessageRef(chat_id=-100, message_id=7)
    name, kwargs = bot.calls[0]
    assert name == "send_message"
    assert kwargs["message_thread_id"] == 55
    assert kwargs["reply_markup"] is None


@pytest.mark.anyio("asyncio")
async def test_send_failure_is_a_delivery_error(telegram_notifier, bot):
    bot.error = Forbidden("bot was blocked by the user")
    with pytest.raises(DeliveryError):
        await telegram_notifier.send_message(Recipient(chat_id=42), Rendered(text="hi"))


@pytest.mark.anyio("asyncio")
async def test_unchanged_edit_is_accepted(telegram_notifier, bot):
    bot.error = BadRequest("Message is not modified: specified new message content is identical")
    await telegram_notifier.edit_message(MessageRef(chat_id=42, message_id=7), Rendered(text="hi"))


@pytest.mark.anyio("asyncio")
async def test_edit_of_missing_message_is_stale(telegram_notifier, bot):
    bot.error = BadRequest("Message to edit not found")
    with pytest.raises(StaleEditTarget):
        await telegram_notifier.edit_message(MessageRef(chat_id=42, message_id=7), Rendered(text="hi"))


@pytest.mark.anyio("asyncio")
async def test_delete_of_missing_message_is_stale(telegram_notifier, bot):
    bot.error = BadRequest("Message to delete not found")
    with pytest.raises(StaleEditTarget):
        await telegram_notifier.delete_message(MessageRef(chat_id=42, message_id=7))


@pytest.mark.anyio("asyncio")
async def test_provision_opens_a_forum_topic(telegram_notifier, bot):
    workspace = await telegram_notifier.provision_workspace("catan-game-meetup")

    assert bot.calls == [("create_forum_topic", {"chat_id": -100, "name": "catan-game-meetup"})]
    assert workspace.text == Recipient(chat_id=-100, thread_id=55)
    assert workspace.voice == -100

    await telegram_notifier.teardown_workspace(workspace)
    assert bot.calls[-1] == ("delete_forum_topic", {"chat_id": -100, "message_thread_id": 55})


@pytest.mark.anyio("asyncio")
async def test_provision_without_workspace_chat_fails(bot, presence):
    notifier = TelegramNotifier(bot, presence)
    with pytest.raises(ProvisionError):
        await notifier.provision_workspace("catan-game-meetup")
    assert bot.calls == []


@pytest.mark.anyio("asyncio")
async def test_teardown_failure_is_swallowed(telegram_notifier, bot):
    bot.error = BadRequest("Topic_id_invalid")
    workspace = Workspace(category=Recipient(chat_id=-100, thread_id=55))
    await telegram_notifier.teardown_workspace(workspace)


@pytest.mark.anyio("asyncio")
async def test_voice_presence_drives_occupancy(telegram_notifier, presence):
    presence.join(-100, [1, 2])
    presence.leave(-100, 2)
    assert await telegram_notifier.voice_members(-100) == {1}
    assert await telegram_notifier.voice_occupancy(-100) == 1

    presence.end(-100)
    assert await telegram_notifier.voice_occupancy(-100) == 0
