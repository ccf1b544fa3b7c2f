"""Example pollgram bot — ``python main.py``.

Registers a few handlers to show the chain in action:

* every update is logged, then passed on;
* ``/start`` and ``/help`` reply with a short text;
* other commands get an "unknown command" reply;
* plain text is echoed back;
* callback and inline queries are answered.

Reads its settings from the environment (see :mod:`config`).
"""

import asyncio
from typing import Any

from config import API_BASE, BOT_TOKEN, bot_options
from core.logger import PollgramLogger
from bot import Bot, Continuation, IncomingUpdate
from sdk.exceptions import RequestError

logger = PollgramLogger.get_logger()

HELP_TEXT = (
    "I echo whatever you write.\n"
    "/start - say hello\n"
    "/help - show this message"
)


def build_bot(token: str) -> Bot:
    """Create the bot and register its handler chain."""
    bot = Bot.from_token(token, bot_options(), api_base=API_BASE)

    async def reply(chat_id: int, text: str) -> None:
        try:
            await asyncio.to_thread(bot.client.send_message, chat_id, text)
        except RequestError as exc:
            logger.error("Reply failed", extra={"chat_id": chat_id, "error": str(exc)})

    @bot.use
    def log_update(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        logger.info(
            "Update received",
            extra={"update_id": event.id, "kind": event.kind.value, "queued": event.queued},
        )
        proceed()

    @bot.use
    def skip_backlog(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        # Old messages only get logged.
        if not event.queued:
            proceed()

    @bot.command("start")
    async def on_start(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        sender = event.message.from_field if event.message else None
        name = sender.first_name if sender else "there"
        await reply(event.chat.id, f"👋 Hello, {name}! Send me some text.")

    @bot.command("help")
    async def on_help(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        await reply(event.chat.id, HELP_TEXT)

    @bot.command
    async def on_unknown_command(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        await reply(event.chat.id, "❓ Unknown command. Try /help.")

    @bot.text
    async def echo(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        await reply(event.chat.id, event.text or "")

    @bot.callback_query
    async def on_callback(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        await asyncio.to_thread(bot.client.answer_callback_query, event.payload.id, "👍")

    @bot.inline_query
    async def on_inline(event: IncomingUpdate[Any], proceed: Continuation) -> None:
        query = event.payload.query or "…"
        results = [{
            "type": "article",
            "id": "echo",
            "title": f"Echo: {query}",
            "input_message_content": {"message_text": query},
        }]
        await asyncio.to_thread(bot.client.answer_inline_query, event.payload.id, results, cache_time=0)

    bot.on("caught_up", lambda: logger.info("Caught up with the backlog"))
    bot.on("update_error", lambda error: logger.warning("Transient polling problem", extra={"error": str(error)}))
    bot.on("error", lambda error: logger.critical("Polling halted", extra={"error": str(error)}))
    return bot


async def run() -> None:
    """Start polling and block until polling ends or the task is cancelled.

    Raises:
        EnvironmentError: If ``BOT_TOKEN`` is not set.
    """
    if not BOT_TOKEN:
        raise EnvironmentError("BOT_TOKEN environment variable is not set or is empty.")

    bot = build_bot(BOT_TOKEN)
    me = await bot.autodetect()
    logger.info("Bot is running. Polling for updates...", extra={"username": me.username})
    bot.start()
    try:
        await bot.wait()
    finally:
        bot.stop()
        await bot.join()
        bot.client.close()
        logger.info("Bot stopped")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        PollgramLogger().cleanup()


if __name__ == "__main__":
    main()
