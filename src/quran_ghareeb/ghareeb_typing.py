"""
Shared data types for ghareeb alignment.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class GhareebWord:
    """A rare Quranic word with its short meaning, as loaded from the dataset."""
    page_number: int
    word_text: str
    meaning: str
    surah_name: str
    surah_number: int
    verse_number: int
    word_index: int
    order: int
    unique_key: str


@dataclass(frozen=True)
class QuranPage:
    """One mushaf page. `surah_name` is the surah in effect when the page opens."""
    page_number: int
    text: str
    surah_name: Optional[str] = None

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n")


@dataclass(frozen=True)
class PhraseMatch:
    """A highlighted span of one line; end_idx is exclusive."""
    start_idx: int
    end_idx: int
    entry: GhareebWord

    def overlaps(self, other: "PhraseMatch") -> bool:
        return self.start_idx < other.end_idx and other.start_idx < self.end_idx


@dataclass(frozen=True)
class LineMatches:
    line_index: int
    line: str
    surah_context: str
    matches: Tuple[PhraseMatch, ...]


class MismatchReason(str, Enum):
    NOT_FOUND_IN_PAGE = "not_found_in_page"
    # Reserved: kept so older exported reports still parse, never produced
    DIACRITIC_MISMATCH = "diacritic_mismatch"
    PAGE_NUMBER_OFF = "page_number_off"
    DUPLICATE_MATCH = "duplicate_match"
    PARTIAL_MATCH = "partial_match"
    UNKNOWN = "unknown"


class MeaningSource(str, Enum):
    OVERRIDE = "override"
    CANONICAL = "canonical"
    NONE = "none"


@dataclass
class MismatchEntry:
    entry: GhareebWord
    reason: MismatchReason
    detail: str
    found_in_pages: Optional[List[int]] = None


@dataclass
class LowConfidenceMatch:
    """A word accepted only through its root key; needs a human look."""
    entry: GhareebWord
    strategy: str
    detail: str


@dataclass
class MatchingReport:
    """Result of validating every ghareeb word against the page corpus."""
    total_entries: int
    matched_count: int
    unmatched_count: int
    mismatches: List[MismatchEntry]
    coverage_percent: float
    generated_at: str
    strategy_counts: Dict[str, int] = field(default_factory=dict)
    low_confidence: List[LowConfidenceMatch] = field(default_factory=list)
