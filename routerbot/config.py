"""Bot configuration read from the environment, with a file-watching manager."""

from __future__ import annotations

import logging
import os
import queue
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from routerbot.lang import translate

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"

_INT_RE = re.compile(r"[+-]?[0-9]+")


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


@dataclass
class ModelParameters:
    type: str = ""
    model_name: str = ""
    frequency_penalty: float = 0.0
    min_p: float = 0.0
    presence_penalty: float = 0.0
    repetition_penalty: float = 1.0
    temperature: float = 1.0
    top_a: float = 0.0
    top_k: float = 0.0
    top_p: float = 0.7


@dataclass
class Config:
    telegram_bot_token: str = ""
    openai_api_key: str = ""
    model: ModelParameters = field(default_factory=ModelParameters)
    max_tokens: int = 2000
    bot_language: str = ""
    openai_base_url: str = DEFAULT_BASE_URL
    system_prompt: str = ""
    budget_period: str = "monthly"
    guest_budget: float = 0.0
    user_budget: float = 0.0
    admin_chat_ids: list[int] = field(default_factory=list)
    allowed_user_chat_ids: list[int] = field(default_factory=list)
    max_history_size: int = 10
    max_history_time: int = 60
    vision: str = ""
    vision_prompt: str = ""
    vision_details: str = ""
    stats_min_role: str = "user"
    lang: str = "en"


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer literal: {text!r}")
    return int(text)


def _parse_float(text: str) -> float:
    if text != text.strip() or "_" in text:
        raise ValueError(f"invalid float literal: {text!r}")
    return float(text)


def parse_id_list(value: str) -> list[int]:
    """Parse a comma-separated list of integers, skipping entries that do not parse."""
    ids: list[int] = []
    if not value:
        return ids
    for part in value.split(","):
        if part == "":
            continue
        try:
            ids.append(_parse_int(part.strip()))
        except ValueError as exc:
            log.warning("Warning: could not parse %s as int64: %s", part, exc)
    return ids


def _env_string(env: Mapping[str, str], key: str, default: str) -> str:
    return env.get(key, "") or default


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key, "")
    if not value:
        return default
    try:
        return _parse_int(value)
    except ValueError as exc:
        log.warning("Warning: could not parse %s as int: %s, using default value %d", key, exc, default)
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key, "")
    if not value:
        return default
    try:
        return _parse_float(value)
    except ValueError as exc:
        log.warning("Warning: could not parse %s as float: %s, using default value %f", key, exc, default)
        return default


def load(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from ``environ`` (the process environment by default)."""
    env: Mapping[str, str] = os.environ if environ is None else environ
    config = Config(
        telegram_bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
        openai_api_key=env.get("API_KEY", ""),
        model=ModelParameters(
            type=env.get("TYPE", ""),
            model_name=env.get("MODEL", ""),
            temperature=_env_float(env, "TEMPERATURE", 1.0),
            top_p=_env_float(env, "TOP_P", 0.7),
            frequency_penalty=_env_float(env, "FREQUENCY_PENALTY", 0.0),
            presence_penalty=_env_float(env, "PRESENCE_PENALTY", 0.0),
            min_p=_env_float(env, "MIN_P", 0.0),
            repetition_penalty=_env_float(env, "REPETITION_PENALTY", 1.0),
            top_a=_env_float(env, "TOP_A", 0.0),
            top_k=_env_float(env, "TOP_K", 0.0),
        ),
        max_tokens=_env_int(env, "MAX_TOKENS", 2000),
        openai_base_url=_env_string(env, "BASE_URL", DEFAULT_BASE_URL),
        system_prompt=env.get("ASSISTANT_PROMPT", ""),
        budget_period=_env_string(env, "BUDGET_PERIOD", "monthly"),
        guest_budget=_env_float(env, "GUEST_BUDGET", 0.0),
        user_budget=_env_float(env, "USER_BUDGET", 0.0),
        admin_chat_ids=parse_id_list(env.get("ADMIN_IDS", "")),
        allowed_user_chat_ids=parse_id_list(env.get("ALLOWED_USER_IDS", "")),
        max_history_size=_env_int(env, "MAX_HISTORY_SIZE", 10),
        max_history_time=_env_int(env, "MAX_HISTORY_TIME", 60),
        vision=env.get("VISION", ""),
        vision_prompt=env.get("VISION_PROMPT", ""),
        vision_details=env.get("VISION_DETAIL", ""),
        stats_min_role=_env_string(env, "STATS_MIN_ROLE", "user"),
        lang=_env_string(env, "LANG", "en"),
    )

    if not config.telegram_bot_token:
        raise ConfigError("TELEGRAM_BOT_TOKEN is required")
    if not config.openai_api_key:
        raise ConfigError("API_KEY is required")
    if not config.budget_period:
        raise ConfigError("BUDGET_PERIOD is required")

    if translate("language", config.lang) == "":
        log.warning("Warning: Language '%s' not found, defaulting to 'en'", config.lang)
        config.lang = "en"
    return config


class _ConfigFileHandler(FileSystemEventHandler):
    def __init__(self, path: Path, callback: Callable[[], None]) -> None:
        super().__init__()
        self._path = path
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("modified", "created", "moved"):
            return
        candidates = (event.src_path, getattr(event, "dest_path", ""))
        if any(p and Path(os.fsdecode(p)).resolve() == self._path for p in candidates):
            self._callback()


class ConfigManager:
    """Keeps the current Config and reloads it when the config file changes."""

    def __init__(self, config_path: str | Path, environ: Mapping[str, str] | None = None) -> None:
        self.config_path = Path(config_path)
        self._environ = environ
        self._read_config_file()
        self._lock = threading.RLock()
        self._listeners: list[queue.Queue[Config]] = []
        self._observer: Observer | None = None
        self._config = load(environ)

    def _read_config_file(self) -> None:
        try:
            yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Error reading config file, {exc}") from exc

    @property
    def config(self) -> Config:
        with self._lock:
            return self._config

    def reload(self) -> None:
        """Load the configuration again and notify subscribers; keep the old one on error."""
        try:
            new_config = load(self._environ)
        except ConfigError as exc:
            log.error("Failed to reload config: %s", exc)
            return
        with self._lock:
            self._config = new_config
            listeners = list(self._listeners)
        for listener in listeners:
            listener.put(new_config)

    def subscribe(self) -> queue.Queue[Config]:
        """Return a queue that receives every newly loaded Config."""
        channel: queue.Queue[Config] = queue.Queue(maxsize=1)
        with self._lock:
            self._listeners.append(channel)
        return channel

    def start_watching(self) -> None:
        """Reload whenever the config file is modified."""
        if self._observer is not None:
            return
        path = self.config_path.resolve()
        observer = Observer()
        observer.schedule(_ConfigFileHandler(path, self.reload), str(path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def stop_watching(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None

    def __enter__(self) -> ConfigManager:
        self.start_watching()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_watching()