"""
Static filler table: filler category -> filler text.
Loaded once at process start and read-only afterwards.
"""

import json
from types import MappingProxyType
from typing import Dict, Mapping

from .codec import validate_category
from .errors import EncodingRangeError, FillerTableError, FillerTableMissError


class FillerTable:
    """Immutable mapping from filler category to filler text."""

    def __init__(self, entries: Mapping[int, str]):
        table = {}
        for category, text in entries.items():
            try:
                category = validate_category(category)
            except (TypeError, EncodingRangeError) as e:
                raise FillerTableError(f"Invalid filler category {category!r}: {e}") from e
            if not isinstance(text, str):
                raise FillerTableError(f"Filler text for category {category} must be a string")
            table[category] = text
        self._entries = MappingProxyType(table)

    @classmethod
    def from_file(cls, path: str) -> 'FillerTable':
        """
        Load a filler table from a JSON object of {"<category>": "<text>"}.

        Raises:
            FillerTableError: If the file is missing, unreadable or malformed
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except FileNotFoundError as e:
            raise FillerTableError(f"Filler table not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise FillerTableError(f"Failed to read filler table {path}: {e}") from e

        if not isinstance(raw, dict):
            raise FillerTableError(f"Filler table {path} must be a JSON object")

        entries: Dict[int, str] = {}
        for key, text in raw.items():
            try:
                entries[int(key)] = text
            except ValueError as e:
                raise FillerTableError(f"Filler table key {key!r} is not an integer") from e
        return cls(entries)

    def lookup(self, category: int) -> str:
        """Return the filler text for a category, raising FillerTableMissError if absent."""
        try:
            return self._entries[category]
        except KeyError:
            raise FillerTableMissError(category) from None

    def __contains__(self, category) -> bool:
        return category in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def categories(self):
        return sorted(self._entries)
