"""Per-user conversation history, spending records and access rules."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import httpx

from routerbot.config import Config

log = logging.getLogger(__name__)

GENERATION_URL = "https://openrouter.ai/api/v1/generation"


@dataclass
class Message:
    role: str
    content: str


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    GUEST = "GUEST"


def cost_for_day(chat_cost: dict[str, float], day: str) -> float:
    """Cost recorded for ``day`` (YYYY-MM-DD)."""
    return chat_cost.get(day, 0.0)


def cost_for_month(chat_cost: dict[str, float], today: str) -> float:
    """Sum of costs in the month that ``today`` (YYYY-MM-DD) falls in."""
    month = today[:7]
    return sum(cost for day, cost in chat_cost.items() if day.startswith(month))


def total_cost(chat_cost: dict[str, float]) -> float:
    return sum(chat_cost.values(), 0.0)


def _decode_usage(raw: str) -> tuple[str, dict[str, float]]:
    data: Any = json.loads(raw)
    if data is None:
        return "", {}
    if not isinstance(data, dict):
        raise ValueError("usage data must be a JSON object")
    user_name = data.get("user_name") or ""
    if not isinstance(user_name, str):
        raise ValueError("user_name must be a string")
    history = data.get("usage_history") or {}
    if not isinstance(history, dict):
        raise ValueError("usage_history must be an object")
    chat_cost = history.get("chat_cost") or {}
    if not isinstance(chat_cost, dict):
        raise ValueError("chat_cost must be an object")
    costs: dict[str, float] = {}
    for day, cost in chat_cost.items():
        if isinstance(cost, bool) or not isinstance(cost, (int, float)):
            raise ValueError(f"cost for {day} must be a number")
        costs[day] = float(cost)
    return user_name, costs


class UsageTracker:
    """Tracks one user's chat history and spending, persisted as JSON in ``logs_dir``."""

    def __init__(self, user_id: str, user_name: str, logs_dir: str | Path, config: Config) -> None:
        self.user_id = str(user_id)
        self.user_name = user_name
        self.logs_dir = Path(logs_dir)
        self.system_prompt = config.system_prompt
        self.last_message_time: datetime | None = None
        self.current_stream: Any = None
        self._messages: list[Message] = []
        self._usage_user_name = ""
        self._chat_cost: dict[str, float] = {}
        self._history_lock = threading.Lock()
        self._usage_lock = threading.Lock()
        self._file_lock = threading.Lock()
        try:
            self._load_usage()
        except (OSError, ValueError) as exc:
            log.error("Error loading usage for user %s: %s", self.user_id, exc)

    @property
    def usage_path(self) -> Path:
        return self.logs_dir / f"{self.user_id}.json"

    @property
    def chat_cost(self) -> dict[str, float]:
        with self._usage_lock:
            return dict(self._chat_cost)

    # history

    @property
    def messages(self) -> list[Message]:
        with self._history_lock:
            return list(self._messages)

    def add_message(self, role: str, content: str) -> None:
        with self._history_lock:
            self._messages.append(Message(role, content))

    def clear_history(self) -> None:
        with self._history_lock:
            self._messages = []

    def check_history(self, max_messages: int, max_minutes: int) -> None:
        """Drop the history if it is stale, then keep only the last ``max_messages``."""
        with self._history_lock:
            now = datetime.now()
            if self.last_message_time is None:
                self.last_message_time = now
            if self.last_message_time < now - timedelta(minutes=max_minutes):
                self._messages = []
            if len(self._messages) > max_messages:
                self._messages = self._messages[len(self._messages) - max_messages:]

    # access

    def user_role(self, config: Config) -> UserRole:
        if any(str(i) == self.user_id for i in config.admin_chat_ids):
            return UserRole.ADMIN
        if any(str(i) == self.user_id for i in config.allowed_user_chat_ids):
            return UserRole.USER
        return UserRole.GUEST

    def have_access(self, config: Config) -> bool:
        """Admins always; users and guests while under their budget for the period."""
        role = self.user_role(config)
        if role is UserRole.ADMIN:
            log.info("Admin")
            return True
        current = self.current_cost(config.budget_period)
        budget = config.user_budget if role is UserRole.USER else config.guest_budget
        if budget > current:
            log.info("ID: %s Budget: %f CurrentCost: %f", self.user_id, budget, current)
            return True
        log.info(
            "UserID: %s, AdminChatIDs: %s, AllowedUserChatIDs: %s",
            self.user_id, config.admin_chat_ids, config.allowed_user_chat_ids,
        )
        log.info(
            "UserBudget: %f, GuestBudget: %f, CurrentCost: %f",
            config.user_budget, config.guest_budget, current,
        )
        return False

    def can_view_stats(self, config: Config) -> bool:
        role = self.user_role(config)
        return role is UserRole.ADMIN or (config.stats_min_role == "USER" and role is not UserRole.GUEST)

    # usage persistence

    def _save_usage(self) -> None:
        with self._file_lock:
            with self._usage_lock:
                payload = {
                    "user_name": self._usage_user_name,
                    "usage_history": {"chat_cost": dict(sorted(self._chat_cost.items()))},
                }
            text = json.dumps(payload, indent=2, ensure_ascii=False)
            try:
                self.usage_path.write_text(text, encoding="utf-8")
            except OSError as exc:
                log.error("Error writing usage data to file for user %s: %s", self.user_id, exc)
                raise

    def _load_usage(self) -> None:
        try:
            raw = self.usage_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.info("File not found for user %s, creating new usage data.", self.user_id)
            with self._usage_lock:
                self._usage_user_name = ""
                self._chat_cost = {}
            self._save_usage()
            return
        except OSError as exc:
            log.error("Error reading usage data from file for user %s: %s", self.user_id, exc)
            raise
        try:
            user_name, chat_cost = _decode_usage(raw)
        except ValueError as exc:
            log.error("Error unmarshalling usage data for user %s: %s", self.user_id, exc)
            raise
        with self._usage_lock:
            self._usage_user_name = user_name
            self._chat_cost = chat_cost

    def add_cost(self, cost: float) -> None:
        """Add ``cost`` to today's total and save."""
        today = date.today().isoformat()
        with self._usage_lock:
            self._chat_cost[today] = self._chat_cost.get(today, 0.0) + cost
        try:
            self._save_usage()
        except OSError as exc:
            log.error("Failed to save usage after adding cost for user %s: %s", self.user_id, exc)

    def current_cost(self, period: str) -> float:
        """Spending for ``daily``, ``monthly`` or ``total``; 0.0 for any other period."""
        today = date.today().isoformat()
        with self._usage_lock:
            if period == "daily":
                return cost_for_day(self._chat_cost, today)
            if period == "monthly":
                return cost_for_month(self._chat_cost, today)
            if period == "total":
                return total_cost(self._chat_cost)
        log.warning("Invalid period: %s. Valid periods are 'daily', 'monthly', 'total'.", period)
        return 0.0

    def fetch_generation_cost(
        self, generation_id: str, config: Config, client: httpx.Client | None = None
    ) -> float:
        """Look up the cost of a generation, record it and return it."""
        headers = {"Authorization": f"Bearer {config.openai_api_key}"}
        owned = client is None
        http = httpx.Client(timeout=None) if client is None else client
        try:
            response = http.get(GENERATION_URL, params={"id": generation_id}, headers=headers)
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            log.error("Error fetching generation for user %s: %s", self.user_id, exc)
            raise
        finally:
            if owned:
                http.close()
        if not isinstance(payload, dict):
            raise ValueError("unexpected response body")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("unexpected data field")
        raw_cost = data.get("total_cost") or 0.0
        if isinstance(raw_cost, bool) or not isinstance(raw_cost, (int, float)):
            raise ValueError("total_cost must be a number")
        cost = float(raw_cost)
        print(f"Total Cost for user {self.user_id}: {cost:.6f}")
        self.add_cost(cost)
        return cost