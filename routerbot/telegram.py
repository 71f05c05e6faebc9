"""A small Telegram Bot API client and the incoming-message model the bot uses."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

log = logging.getLogger(__name__)

API_URL = "https://api.telegram.org"


class TelegramError(Exception):
    """Raised when the Bot API reports a failure."""


@dataclass
class IncomingMessage:
    message_id: int
    chat_id: int
    text: str = ""
    user_id: int = 0
    user_name: str = ""
    photo_file_ids: list[str] = field(default_factory=list)
    entities: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IncomingMessage:
        """Build from a Bot API ``Message`` object."""
        sender = data.get("from") or {}
        return cls(
            message_id=int(data.get("message_id", 0)),
            chat_id=int((data.get("chat") or {}).get("id", 0)),
            text=data.get("text") or "",
            user_id=int(sender.get("id", 0)),
            user_name=sender.get("username") or "",
            photo_file_ids=[p["file_id"] for p in data.get("photo") or []],
            entities=list(data.get("entities") or []),
        )

    def is_command(self) -> bool:
        if not self.entities:
            return False
        first = self.entities[0]
        return first.get("offset") == 0 and first.get("type") == "bot_command"

    def _command_length(self) -> int:
        return int(self.entities[0].get("length", 0))

    def command(self) -> str:
        """The command name without the slash and without any ``@botname``."""
        if not self.is_command():
            return ""
        name = self.text[1:self._command_length()]
        return name.split("@", 1)[0]

    def command_arguments(self) -> str:
        """Everything after the command and the space that follows it."""
        if not self.is_command():
            return ""
        length = self._command_length()
        if len(self.text) == length:
            return ""
        return self.text[length + 1:]


class TelegramBot:
    """Calls Bot API methods over HTTP."""

    def __init__(self, token: str, client: httpx.Client | None = None, api_url: str = API_URL) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self._http = client if client is not None else httpx.Client(timeout=90.0)

    def _call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.api_url}/bot{self.token}/{method}"
        try:
            response = self._http.post(url, json=params or {})
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TelegramError(f"{method}: {exc}") from exc
        if not isinstance(payload, dict) or not payload.get("ok"):
            description = payload.get("description", "request failed") if isinstance(payload, dict) else "bad response"
            raise TelegramError(f"{method}: {description}")
        return payload.get("result")

    def send_message(self, chat_id: int, text: str, parse_mode: str | None = None) -> int:
        """Send a text message and return its message id."""
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            params["parse_mode"] = parse_mode
        result = self._call("sendMessage", params)
        return int(result["message_id"])

    def edit_message_text(self, chat_id: int, message_id: int, text: str) -> None:
        self._call("editMessageText", {"chat_id": chat_id, "message_id": message_id, "text": text})

    def delete_webhook(self) -> None:
        self._call("deleteWebhook")

    def set_my_commands(self, commands: Sequence[tuple[str, str]]) -> None:
        self._call(
            "setMyCommands",
            {"commands": [{"command": c, "description": d} for c, d in commands]},
        )

    def get_updates(self, offset: int = 0, timeout: int = 0) -> list[dict[str, Any]]:
        return list(self._call("getUpdates", {"offset": offset, "timeout": timeout}) or [])

    def iter_updates(self, timeout: int = 60) -> Iterator[dict[str, Any]]:
        """Long-poll for updates forever, yielding each one once."""
        offset = 0
        while True:
            try:
                updates = self.get_updates(offset, timeout)
            except TelegramError as exc:
                log.error("Failed to get updates: %s", exc)
                continue
            for update in updates:
                offset = max(offset, int(update["update_id"]) + 1)
                yield update

    def get_file_url(self, file_id: str) -> str:
        """Resolve a file id to its download URL."""
        result = self._call("getFile", {"file_id": file_id})
        return f"{self.api_url}/file/bot{self.token}/{result['file_path']}"