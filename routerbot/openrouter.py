"""Chat completion calls against an OpenAI-compatible API, relayed to Telegram."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any

import httpx

from routerbot.config import Config
from routerbot.telegram import IncomingMessage, TelegramError
from routerbot.usage import UsageTracker

log = logging.getLogger(__name__)

EDIT_INTERVAL = 0.8


class ChatStream:
    """Iterates over the chunks of a streamed chat completion."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._lines = response.iter_lines()
        self.closed = False

    def __iter__(self) -> ChatStream:
        return self

    def __next__(self) -> dict[str, Any]:
        while True:
            if self.closed:
                raise RuntimeError("stream closed")
            line = next(self._lines).strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == "[DONE]":
                raise StopIteration
            chunk = json.loads(data)
            if isinstance(chunk, dict) and chunk.get("error"):
                error = chunk["error"]
                raise RuntimeError(error.get("message", str(error)) if isinstance(error, dict) else str(error))
            return chunk

    def close(self) -> None:
        self.closed = True
        self._response.close()


class ChatClient:
    """Minimal client for the ``/chat/completions`` endpoint."""

    def __init__(self, api_key: str, base_url: str, client: httpx.Client | None = None) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = client if client is not None else httpx.Client(timeout=None)

    def _request(self, body: dict[str, Any]) -> httpx.Request:
        return self._http.build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def create_chat_completion_stream(self, request: dict[str, Any]) -> ChatStream:
        response = self._http.send(self._request({**request, "stream": True}), stream=True)
        if response.status_code >= 400:
            response.read()
            response.close()
            response.raise_for_status()
        return ChatStream(response)

    def create_chat_completion(self, request: dict[str, Any]) -> dict[str, Any]:
        response = self._http.send(self._request(request))
        response.raise_for_status()
        return response.json()


def _build_request(config: Config, messages: list[dict[str, Any]], *, full: bool) -> dict[str, Any]:
    model = config.model
    values: dict[str, Any] = {"model": config.model.model_name, "max_tokens": config.max_tokens,
                              "temperature": model.temperature}
    if full:
        values.update(frequency_penalty=model.frequency_penalty,
                      presence_penalty=model.presence_penalty, top_p=model.top_p)
    request = {k: v for k, v in values.items() if v}
    request["messages"] = messages
    return request


def _history(tracker: UsageTracker, system_prompt: str) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": m.role, "content": m.content} for m in tracker.messages)
    return messages


def vision_message(bot: Any, message: IncomingMessage, config: Config) -> dict[str, Any]:
    """The user's message, with the largest attached photo when there is one."""
    if not message.photo_file_ids:
        return {"role": "user", "content": message.text}
    try:
        url = bot.get_file_url(message.photo_file_ids[-1])
    except TelegramError as exc:
        log.error("Error getting file: %s", exc)
        return {"role": "user", "content": message.text}
    print("Photo URL:", url)
    if not message.text:
        message.text = config.vision_prompt
    image: dict[str, Any] = {"url": url}
    if config.vision_details:
        image["detail"] = config.vision_details
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": message.text},
            {"type": "image_url", "image_url": image},
        ],
    }


def _safe_send(bot: Any, chat_id: int, text: str) -> None:
    try:
        bot.send_message(chat_id, text)
    except TelegramError as exc:
        log.error("Failed to send message: %s", exc)


def handle_stream_response(
    bot: Any, client: ChatClient, message: IncomingMessage, config: Config, tracker: UsageTracker
) -> str:
    """Stream a reply into a Telegram message, editing it as text arrives; return the response id."""
    tracker.check_history(config.max_history_size, config.max_history_time)
    tracker.last_message_time = datetime.now()
    messages = _history(tracker, tracker.system_prompt)
    if config.vision == "true":
        messages.append(vision_message(bot, message, config))
    else:
        messages.append({"role": "user", "content": message.text})

    try:
        stream = client.create_chat_completion_stream(_build_request(config, messages, full=True))
    except httpx.HTTPError as exc:
        print(f"ChatCompletionStream error: {exc}")
        return ""

    tracker.current_stream = stream
    last_message_id = 0
    text = ""
    last_sent = 0.0
    response_id = ""
    log.info("User: %s Stream response.", tracker.user_name)
    try:
        while True:
            try:
                chunk = next(stream)
            except StopIteration:
                print("\nStream finished, response ID:", response_id)
                tracker.add_message("user", message.text)
                tracker.add_message("assistant", text)
                try:
                    bot.edit_message_text(message.chat_id, last_message_id, text)
                except TelegramError as exc:
                    log.error("Failed to edit message: %s", exc)
                return response_id
            except (httpx.HTTPError, RuntimeError, ValueError) as exc:
                print(f"\nStream error: {exc}")
                _safe_send(bot, message.chat_id, str(exc))
                return response_id

            if not response_id:
                response_id = chunk.get("id") or ""
            choices = chunk.get("choices") or []
            if not choices:
                log.info("Received empty response choices")
                continue
            text += (choices[0].get("delta") or {}).get("content") or ""
            if last_message_id == 0:
                try:
                    last_message_id = bot.send_message(message.chat_id, text)
                except TelegramError:
                    continue
                last_sent = time.monotonic()
            elif time.monotonic() - last_sent >= EDIT_INTERVAL:
                try:
                    bot.edit_message_text(message.chat_id, last_message_id, text)
                except TelegramError as exc:
                    log.error("Failed to edit message: %s", exc)
                    continue
                last_sent = time.monotonic()
    finally:
        tracker.current_stream = None
        stream.close()


def handle_response(
    bot: Any, client: ChatClient, message: IncomingMessage, config: Config, tracker: UsageTracker
) -> str:
    """Ask for a whole reply at once and send it; return the response id."""
    messages = _history(tracker, config.system_prompt)
    messages.append({"role": "user", "content": message.text})
    try:
        response = client.create_chat_completion(_build_request(config, messages, full=False))
    except httpx.HTTPError as exc:
        log.error("ChatGPT request error: %s", exc)
        _safe_send(bot, message.chat_id, f"Error: {exc}")
        return ""
    answer = response["choices"][0]["message"]["content"]
    tracker.add_message("assistant", answer)
    _safe_send(bot, message.chat_id, answer)
    return response.get("id", "")