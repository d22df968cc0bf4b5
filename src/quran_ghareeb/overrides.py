"""
Manual highlight overrides and the single meaning resolver.

An override forces a word on or off regardless of what the matcher decided.
It is addressed two ways: by its position on the page
("<page>_<line>_<token>") and by its identity in the text
("<surah>_<ayah>_<word>"), which survives re-layout of the page.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .ghareeb_typing import GhareebWord, MeaningSource

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_TYPE = "highlight-overrides"

# Keys used by exports from the reader app
_CAMEL_CASE_FIELDS = {
    "positionKey": "position_key",
    "identityKey": "identity_key",
    "wordText": "word_text",
    "pageNumber": "page_number",
    "lineIndex": "line_index",
    "tokenIndex": "token_index",
    "surahNumber": "surah_number",
    "verseNumber": "verse_number",
    "wordIndex": "word_index",
    "surahName": "surah_name",
    "createdAt": "created_at",
}


def make_position_key(page_number: int, line_index: int, token_index: int) -> str:
    return f"{page_number}_{line_index}_{token_index}"


def make_identity_key(surah_number: int, verse_number: int, word_index: int) -> str:
    return f"{surah_number}_{verse_number}_{word_index}"


@dataclass(frozen=True)
class HighlightOverride:
    position_key: str
    identity_key: str
    word_text: str
    # True forces a highlight, False removes one
    highlight: bool
    page_number: int
    meaning: Optional[str] = None
    line_index: Optional[int] = None
    token_index: Optional[int] = None
    surah_number: Optional[int] = None
    verse_number: Optional[int] = None
    word_index: Optional[int] = None
    surah_name: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HighlightOverride":
        """Accepts both snake_case and the reader app's camelCase keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _CAMEL_CASE_FIELDS.get(key, key)
            if name in known:
                values[name] = value
        values["highlight"] = bool(values.get("highlight", False))
        values["page_number"] = int(values["page_number"])
        return cls(**values)


class OverrideLayer:
    """In-memory store of highlight overrides."""

    def __init__(self, overrides: Optional[List[HighlightOverride]] = None):
        self._overrides: List[HighlightOverride] = list(overrides or [])
        self.version = 0
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._overrides)

    def __iter__(self):
        return iter(list(self._overrides))

    def set_override(self, override: HighlightOverride) -> HighlightOverride:
        """Add an override, replacing any earlier one at the same position."""
        stamped = replace(override, created_at=datetime.now(timezone.utc).isoformat())
        self._overrides = [
            o for o in self._overrides if o.position_key != stamped.position_key
        ]
        self._overrides.append(stamped)
        self.version += 1
        return stamped

    def remove_override(self, position_key: str) -> None:
        self._overrides = [o for o in self._overrides if o.position_key != position_key]
        self.version += 1

    def get_override(self, position_key: str) -> Optional[HighlightOverride]:
        return next((o for o in self._overrides if o.position_key == position_key), None)

    def get_by_identity(self, identity_key: str) -> Optional[HighlightOverride]:
        return next((o for o in self._overrides if o.identity_key == identity_key), None)

    def for_page(self, page_number: int) -> List[HighlightOverride]:
        return [o for o in self._overrides if o.page_number == page_number]

    def should_highlight(self, position_key: str, identity_key: str, default: bool) -> bool:
        for override in self._overrides:
            if override.position_key == position_key or override.identity_key == identity_key:
                return override.highlight
        return default

    def clear_page(self, page_number: int) -> None:
        self._overrides = [o for o in self._overrides if o.page_number != page_number]
        self.version += 1

    def clear_all(self) -> None:
        self._overrides = []
        self.version = 0

    def export_json(self) -> str:
        return json.dumps({
            "version": EXPORT_VERSION,
            "type": EXPORT_TYPE,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "overrides": [o.to_dict() for o in self._overrides],
        }, ensure_ascii=False, indent=2)

    def import_json(self, payload: str) -> Tuple[bool, int]:
        """
        Append overrides from an export.

        Args:
            payload: JSON text with an "overrides" list

        Returns:
            (success, number of overrides imported); bad input gives (False, 0)
        """
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Override import rejected: {e}")
            return False, 0

        raw = data.get("overrides") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            self.logger.warning("Override import rejected: no overrides list")
            return False, 0

        try:
            imported = [HighlightOverride.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.warning(f"Override import rejected: malformed entry ({e})")
            return False, 0

        self._overrides.extend(imported)
        self.version += 1
        self.logger.info(f"Imported {len(imported)} highlight overrides")
        return True, len(imported)


def _find_override_for(entry: GhareebWord, overrides: OverrideLayer) -> Optional[HighlightOverride]:
    override = overrides.get_by_identity(entry.unique_key)
    if override is None:
        override = overrides.get_by_identity(
            make_identity_key(entry.surah_number, entry.verse_number, entry.word_index)
        )
    return override


def resolve_meaning(
    entry: GhareebWord,
    overrides: Optional[OverrideLayer] = None
) -> Tuple[str, MeaningSource]:
    """
    The meaning to display for a word and where it came from.

    An override carrying a meaning wins, then the dataset's own meaning.

    Args:
        entry: Ghareeb word being displayed
        overrides: Optional override layer

    Returns:
        (meaning text, MeaningSource); ("", MeaningSource.NONE) when neither exists
    """
    if overrides is not None:
        override = _find_override_for(entry, overrides)
        if override is not None and override.meaning and override.meaning.strip():
            return override.meaning.strip(), MeaningSource.OVERRIDE

    if entry.meaning and entry.meaning.strip():
        return entry.meaning.strip(), MeaningSource.CANONICAL

    return "", MeaningSource.NONE
