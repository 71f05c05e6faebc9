"""The bot's command handling and polling loop."""

from __future__ import annotations

import argparse
import logging
import threading
from typing import Any

import httpx

from routerbot.config import Config, ConfigError, ConfigManager
from routerbot.lang import load_translations, translate
from routerbot.openrouter import ChatClient, handle_stream_response
from routerbot.telegram import IncomingMessage, TelegramBot, TelegramError
from routerbot.usage import UsageTracker
from routerbot.users import UserManager

log = logging.getLogger(__name__)

COMMANDS = ("start", "help", "reset", "stats", "stop")


def bot_commands(config: Config) -> list[tuple[str, str]]:
    return [(name, translate(f"description.{name}", config.lang)) for name in COMMANDS]


def format_stats(tracker: UsageTracker, config: Config) -> str:
    tracker.check_history(config.max_history_size, config.max_history_time)
    count = str(len(tracker.messages))
    if tracker.can_view_stats(config):
        costs = tuple(
            f"{tracker.current_cost(period):.6f}"
            for period in (config.budget_period, "daily", "monthly", "total")
        )
        return translate("commands.stats", config.lang) % (*costs, count)
    return translate("commands.stats_min", config.lang) % (count,)


def handle_command(bot: Any, message: IncomingMessage, tracker: UsageTracker, config: Config) -> None:
    """Answer one of the bot's slash commands; unknown commands are ignored."""
    lang = config.lang
    chat_id = message.chat_id
    name = message.command()
    if name == "start":
        text = translate("commands.start", lang) + translate("commands.help", lang) + translate("commands.start_end", lang)
        bot.send_message(chat_id, text, "HTML")
    elif name == "help":
        bot.send_message(chat_id, translate("commands.help", lang), "HTML")
    elif name == "reset":
        args = message.command_arguments()
        if args == "system":
            tracker.system_prompt = config.system_prompt
            text = translate("commands.reset_system", lang)
        elif args:
            tracker.system_prompt = args
            text = translate("commands.reset_prompt", lang) + args + "."
        else:
            tracker.clear_history()
            text = translate("commands.reset", lang)
        bot.send_message(chat_id, text)
    elif name == "stats":
        bot.send_message(chat_id, format_stats(tracker, config), "HTML")
    elif name == "stop":
        stream = tracker.current_stream
        if stream is not None:
            stream.close()
            bot.send_message(chat_id, translate("commands.stop", lang))
        else:
            bot.send_message(chat_id, translate("commands.stop_err", lang))


def _reply(bot: TelegramBot, client: ChatClient, message: IncomingMessage,
           config: Config, tracker: UsageTracker) -> None:
    if tracker.have_access(config):
        response_id = handle_stream_response(bot, client, message, config, tracker)
        if config.model.type == "openrouter":
            try:
                tracker.fetch_generation_cost(response_id, config)
            except (httpx.HTTPError, ValueError) as exc:
                log.error("Failed to fetch generation cost: %s", exc)
    else:
        try:
            bot.send_message(message.chat_id, translate("budget_out", config.lang))
        except TelegramError as exc:
            log.error("%s", exc)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="routerbot", description="Telegram chat bot for OpenAI-compatible APIs.")
    parser.add_argument("--config", default="./config.yaml")
    parser.add_argument("--lang-dir", default="./lang/")
    parser.add_argument("--logs-dir", default="logs")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    try:
        load_translations(args.lang_dir)
    except (OSError, ValueError) as exc:
        parser.exit(1, f"Error loading translations: {exc}\n")
    try:
        manager = ConfigManager(args.config)
    except ConfigError as exc:
        parser.exit(1, f"Error initializing config manager: {exc}\n")
    manager.start_watching()
    config = manager.config

    bot = TelegramBot(config.telegram_bot_token)
    try:
        bot.delete_webhook()
        bot.set_my_commands(bot_commands(config))
    except TelegramError as exc:
        parser.exit(1, f"Failed to prepare bot: {exc}\n")

    client = ChatClient(config.openai_api_key, config.openai_base_url)
    users = UserManager(args.logs_dir)
    try:
        for update in bot.iter_updates(timeout=60):
            data = update.get("message")
            if not data:
                continue
            message = IncomingMessage.from_dict(data)
            tracker = users.get_user(message.user_id, message.user_name, config)
            if message.is_command():
                try:
                    handle_command(bot, message, tracker, config)
                except TelegramError as exc:
                    log.error("%s", exc)
            else:
                threading.Thread(
                    target=_reply, args=(bot, client, message, config, tracker), daemon=True
                ).start()
    except KeyboardInterrupt:
        pass
    finally:
        manager.stop_watching()
    return 0