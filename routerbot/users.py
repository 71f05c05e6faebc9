"""Registry of per-user usage trackers."""

from __future__ import annotations

import threading
from pathlib import Path

from routerbot.config import Config
from routerbot.usage import UsageTracker


class UserManager:
    """Creates one UsageTracker per user id and hands back the same one afterwards."""

    def __init__(self, logs_dir: str | Path) -> None:
        self.logs_dir = Path(logs_dir)
        self._users: dict[int, UsageTracker] = {}
        self._lock = threading.Lock()

    def get_user(self, user_id: int, user_name: str, config: Config) -> UsageTracker:
        with self._lock:
            tracker = self._users.get(user_id)
            if tracker is None:
                tracker = UsageTracker(str(user_id), user_name, self.logs_dir, config)
                self._users[user_id] = tracker
            return tracker