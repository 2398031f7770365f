"""Telegram command handlers and application builder for the bot."""
from __future__ import annotations

import logging
from html import escape
from typing import Optional

from dateutil import tz
from telegram import Update, User
from telegram.constants import ChatType, ParseMode
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .config import Settings
from .errors import ValidationError
from .interactions import Interaction, InteractionRegistry
from .messages import error_text
from .models import Member, Recipient
from .notifier import TelegramNotifier, VoicePresence
from .parsing import USAGE, build_info
from .registry import MeetupRegistry
from .scheduler import BotScheduler
from .utils import local_clock

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "🎲 <b>Game meetup bot</b>\n\n"
    "Available commands:\n"
    f"📝 {escape(USAGE)} — create a game meetup\n"
    "📅 /meetups — list live meetups\n"
    "🛠 /provision &lt;id&gt; — retry creating a meetup's workspace (owner only)\n"
    "🎙 /here — tell the bot you are in this chat's video chat\n"
    "🚪 /left — tell the bot you left this chat's video chat\n"
    "❓ /help — show this help"
)


def _member(user: User) -> Member:
    return Member(id=user.id, name=user.full_name or user.username or str(user.id))


class BotApp:
    """Assembles the Telegram Application, the meetup registry and their handlers."""

    def __init__(
        self,
        settings: Settings,
        scheduler: BotScheduler,
        interactions: Optional[InteractionRegistry] = None,
        presence: Optional[VoicePresence] = None,
    ):
        self.settings = settings
        self.scheduler = scheduler
        self.interactions = interactions or InteractionRegistry()
        self.presence = presence or VoicePresence()
        self.local_tz = tz.gettz(settings.tz)
        self.clock = local_clock(self.local_tz)
        self.registry: Optional[MeetupRegistry] = None

    def build(self) -> Application:
        """Create and configure the PTB Application with command handlers."""
        app = ApplicationBuilder().token(self.settings.telegram_bot_token).build()

        notifier = TelegramNotifier(app.bot, self.presence, self.settings.workspace_chat_id)
        self.registry = MeetupRegistry(
            notifier=notifier,
            scheduler=self.scheduler,
            interactions=self.interactions,
            lifecycle=self.settings.lifecycle_config(),
            clock=self.clock,
        )

        app.add_handler(CommandHandler(["start", "help"], self.cmd_help))
        app.add_handler(CommandHandler("gamemeet", self.cmd_gamemeet))
        app.add_handler(CommandHandler("meetups", self.cmd_meetups))
        app.add_handler(CommandHandler("provision", self.cmd_provision))
        app.add_handler(CommandHandler("here", self.cmd_here))
        app.add_handler(CommandHandler("left", self.cmd_left))
        app.add_handler(MessageHandler(filters.StatusUpdate.VIDEO_CHAT_STARTED, self.on_video_chat_started))
        app.add_handler(MessageHandler(filters.StatusUpdate.VIDEO_CHAT_ENDED, self.on_video_chat_ended))
        app.add_handler(CallbackQueryHandler(self.cb_interaction))

        # Lifecycle hooks to start/stop scheduler
        async def on_start(_: Application) -> None:
            self.scheduler.start()

        async def on_stop(_: Application) -> None:
            self.scheduler.shutdown()

        app.post_init = on_start
        app.post_shutdown = on_stop
        return app

    # ========== Command Handlers ==========

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start and /help: list commands."""
        await update.effective_message.reply_text(HELP_TEXT, parse_mode=ParseMode.HTML)

    async def cmd_gamemeet(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Create a meetup announced in the current chat."""
        user = update.effective_user
        chat = update.effective_chat
        message = update.effective_message
        if not user or not chat or not message:
            return
        if chat.type == ChatType.PRIVATE:
            await message.reply_text(error_text("This command is not available in private chats"), parse_mode=ParseMode.HTML)
            return
        try:
            info = build_info(_member(user), context.args or [], self.clock())
        except ValidationError as exc:
            logger.debug("rejected /gamemeet from %s: %s", user.id, exc)
            await message.reply_text(error_text(str(exc)), parse_mode=ParseMode.HTML)
            return
        origin = Recipient(chat_id=chat.id, thread_id=message.message_thread_id if message.is_topic_message else None)
        await self.registry.create(info, origin)

    async def cmd_meetups(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """List live meetups."""
        meetups = self.registry.list()
        if not meetups:
            await update.effective_message.reply_text("No game meetups planned.")
            return
        lines = ["<b>Game meetups</b>"] + [m.describe() for m in meetups]
        await update.effective_message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML)

    async def cmd_provision(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Retry workspace creation for one of the caller's meetups."""
        user = update.effective_user
        message = update.effective_message
        if not user or not message:
            return
        if not context.args:
            await message.reply_text("Usage: /provision <meetup_id>")
            return
        try:
            meetup_id = int(context.args[0])
        except ValueError:
            await message.reply_text("Meetup id must be a number.")
            return
        meetup = self.registry.find(meetup_id)
        if meetup is None or meetup.owner.id != user.id:
            await message.reply_text("No such meetup of yours.")
            return
        if meetup.workspace is not None:
            await message.reply_text("The workspace already exists.")
            return
        if await meetup.provision():
            await message.reply_text("Workspace created.")
        else:
            await message.reply_text("Could not create the workspace, try again later.")

    async def cmd_here(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Mark the caller present in this chat's video chat."""
        user = update.effective_user
        chat = update.effective_chat
        if not user or not chat:
            return
        self.presence.join(chat.id, [user.id])
        await update.effective_message.reply_text("🎙 Noted, you are in the video chat.")

    async def cmd_left(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Mark the caller gone from this chat's video chat."""
        user = update.effective_user
        chat = update.effective_chat
        if not user or not chat:
            return
        self.presence.leave(chat.id, user.id)
        await update.effective_message.reply_text("🚪 Noted, you left the video chat.")

    # ========== Video chat service messages ==========

    async def on_video_chat_started(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat = update.effective_chat
        user = update.effective_user
        if not chat:
            return
        self.presence.join(chat.id, [user.id] if user else [])
        logger.debug("video chat started in %s", chat.id)

    async def on_video_chat_ended(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat = update.effective_chat
        if not chat:
            return
        self.presence.end(chat.id)
        logger.debug("video chat ended in %s", chat.id)

    # ========== Callback Query Handlers ==========

    async def cb_interaction(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Route a button press to the meetup that registered it."""
        cq = update.callback_query
        if not cq:
            return
        await cq.answer()
        user = update.effective_user
        if not user or not cq.data:
            return
        chat_id = cq.message.chat.id if cq.message else None
        await self.interactions.dispatch(cq.data, Interaction(user=_member(user), chat_id=chat_id))
