"""Translation tables loaded from JSON files and looked up by dotted keys."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

LANGUAGES = ("EN", "RU")


class Translator:
    """Holds one nested translation table per language code."""

    def __init__(self) -> None:
        self._tables: dict[str, Any] | None = None

    @property
    def loaded(self) -> bool:
        return self._tables is not None

    def load(self, lang_dir: str | Path) -> None:
        """Read ``<code>.json`` for every supported language from ``lang_dir``."""
        self._tables = {}
        directory = Path(lang_dir)
        for code in LANGUAGES:
            path = directory / f"{code}.json"
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"{path}: expected a JSON object at the top level")
            self._tables[code] = data
        for code in LANGUAGES:
            log.info("Loading translations from: %s", directory / f"{code}.json")

    def translate(self, key: str, lang: str) -> str:
        """Return the string stored under the dotted ``key``, or ``key`` itself."""
        if self._tables is None:
            log.warning("Translations not loaded. Did you call load_translations?")
            return key
        value: Any = self._tables.get(lang)
        for part in key.split("."):
            if not isinstance(value, dict):
                return key
            value = value.get(part)
        return value if isinstance(value, str) else key


_default = Translator()


def load_translations(lang_dir: str | Path) -> None:
    """Load the shared translation tables."""
    _default.load(lang_dir)


def translate(key: str, lang: str) -> str:
    """Look up ``key`` in the shared translation tables."""
    return _default.translate(key, lang)