import json

import httpx
import pytest

from routerbot.config import Config, ModelParameters
from routerbot.openrouter import (
    ChatClient, handle_response, handle_stream_response, vision_message,
)
from routerbot.telegram import IncomingMessage
from routerbot.usage import UsageTracker

SSE = (
    'data: {"id":"gen-1","choices":[{"delta":{"content":"Hel"}}]}\n\n'
    'data: {"id":"gen-1","choices":[{"delta":{"content":"lo"}}]}\n\n'
    "data: [DONE]\n\n"
)


class FakeBot:
    def __init__(self):
        self.sent = []
        self.edits = []

    def send_message(self, chat_id, text, parse_mode=None):
        self.sent.append((chat_id, text))
        return 100 + len(self.sent)

    def edit_message_text(self, chat_id, message_id, text):
        self.edits.append((chat_id, message_id, text))

    def get_file_url(self, file_id):
        return f"https://files.example.com/{file_id}"


@pytest.fixture
def config():
    return Config(telegram_bot_token="token", openai_api_key="placeholder",
                  model=ModelParameters(model_name="m"), system_prompt="be nice")


@pytest.fixture
def tracker(tmp_path, config):
    return UsageTracker("1", "alice", tmp_path, config)


def make_client(handler):
    return ChatClient("placeholder", "https://api.example.com/v1",
                      client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_stream_response_relays_and_records(config, tracker):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, content=SSE.encode())

    bot = FakeBot()
    msg = IncomingMessage(message_id=1, chat_id=5, text="hi")
    assert handle_stream_response(bot, make_client(handler), msg, config, tracker) == "gen-1"
    assert bot.sent[0] == (5, "Hel")
    assert bot.edits[-1] == (5, 101, "Hello")
    assert [(m.role, m.content) for m in tracker.messages] == [("user", "hi"), ("assistant", "Hello")]
    assert bodies[0]["stream"] is True
    assert bodies[0]["messages"][0] == {"role": "system", "content": "be nice"}
    assert tracker.current_stream is None


def test_stream_creation_failure_returns_empty(config, tracker):
    bot = FakeBot()
    client = make_client(lambda r: httpx.Response(500, text="boom"))
    msg = IncomingMessage(message_id=1, chat_id=5, text="hi")
    assert handle_stream_response(bot, client, msg, config, tracker) == ""
    assert bot.sent == []


def test_closed_stream_raises(config):
    stream = make_client(lambda r: httpx.Response(200, content=SSE.encode())).create_chat_completion_stream({})
    first = next(stream)
    assert first["id"] == "gen-1"
    stream.close()
    with pytest.raises(RuntimeError):
        next(stream)


def test_vision_message_uses_prompt_and_photo(config):
    config.vision_prompt = "describe"
    config.vision_details = "low"
    msg = IncomingMessage(message_id=1, chat_id=5, photo_file_ids=["s", "b"])
    result = vision_message(FakeBot(), msg, config)
    assert result["content"][0] == {"type": "text", "text": "describe"}
    assert result["content"][1]["image_url"] == {"url": "https://files.example.com/b", "detail": "low"}


def test_vision_message_without_photo(config):
    msg = IncomingMessage(message_id=1, chat_id=5, text="plain")
    assert vision_message(FakeBot(), msg, config) == {"role": "user", "content": "plain"}


def test_handle_response(config, tracker):
    client = make_client(lambda r: httpx.Response(
        200, json={"id": "gen-2", "choices": [{"message": {"content": "answer"}}]}))
    bot = FakeBot()
    msg = IncomingMessage(message_id=1, chat_id=5, text="q")
    assert handle_response(bot, client, msg, config, tracker) == "gen-2"
    assert bot.sent == [(5, "answer")]
    assert tracker.messages[-1].content == "answer"