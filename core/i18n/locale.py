"""Display locale selection and per-locale message lookup.

The host reports whatever locale the user picked; only a handful are
translated, everything else falls back to English.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"
SUPPORTED_LOCALES = (DEFAULT_LOCALE, "ja", "ja-Hira", "zh-cn")

MESSAGES_PATH = Path(__file__).parent / "messages.yaml"


def resolve_locale(configured: Optional[str]) -> str:
    """Return the configured locale if it is supported, else the default."""
    if configured in SUPPORTED_LOCALES:
        return configured
    return DEFAULT_LOCALE


class MessageTable:
    """Read-only ``key -> {locale -> text}`` table with English fallback."""

    def __init__(self, entries: Mapping[str, Mapping[str, str]]):
        self._entries = {key: dict(texts) for key, texts in entries.items()}
        for key, texts in self._entries.items():
            if DEFAULT_LOCALE not in texts:
                raise ValueError(f"Message '{key}' has no '{DEFAULT_LOCALE}' text")

    @classmethod
    def load(cls, path: Path = MESSAGES_PATH) -> MessageTable:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.debug("Loaded %d messages from %s", len(data), path)
        return cls(data)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def text(self, key: str, locale: str = DEFAULT_LOCALE) -> str:
        texts = self._entries[key]
        return texts.get(locale, texts[DEFAULT_LOCALE])

    def missing(self) -> list[tuple[str, str]]:
        """(key, locale) pairs that would fall back to English."""
        return [
            (key, locale)
            for key, texts in self._entries.items()
            for locale in SUPPORTED_LOCALES
            if locale not in texts
        ]


_default_table: Optional[MessageTable] = None


def default_messages() -> MessageTable:
    """Shared table loaded from the bundled messages file."""
    global _default_table
    if _default_table is None:
        _default_table = MessageTable.load()
    return _default_table
