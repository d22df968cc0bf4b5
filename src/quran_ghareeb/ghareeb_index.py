"""
Ghareeb dataset index: page -> words, and text-driven lookup per page.

The page number recorded in the dataset is only a hint. What is shown on a
page is decided by matching candidates from that page and its neighbours
against the page's real text.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .ghareeb_typing import GhareebWord, LineMatches, PhraseMatch, QuranPage
from .overrides import OverrideLayer, make_identity_key, make_position_key
from .page_text import tokenize_line
from .phrase_matcher import match_page, prepare_candidates

logger = logging.getLogger(__name__)

OPEN_BRACKET = "﴿"
CLOSE_BRACKET = "﴾"

# Recorded page numbers drift by up to two pages
NEIGHBOR_OFFSETS = (0, -1, 1, -2, 2)


def extract_word_from_raw(raw: str) -> str:
    """
    Pull the Quranic word out of the dataset's raw field.

    The word sits between ornate brackets, e.g. '... ﴿ٱلۡمَغۡضُوبِ﴾ ...'.
    Returns '' when no complete bracket pair is present.
    """
    if not isinstance(raw, str) or not raw:
        return ""
    start = raw.find(OPEN_BRACKET)
    if start == -1:
        return ""
    end = raw.find(CLOSE_BRACKET, start + 1)
    if end == -1:
        return ""
    return raw[start + 1:end].strip()


class GhareebIndex:
    """Ghareeb words bucketed by their recorded page number."""

    def __init__(self, pages: Dict[int, List[GhareebWord]], dropped_rows: int = 0):
        self._pages = {number: list(words) for number, words in pages.items()}
        self.dropped_rows = dropped_rows

    def __len__(self) -> int:
        return sum(len(words) for words in self._pages.values())

    @property
    def page_numbers(self) -> List[int]:
        return sorted(self._pages)

    def words_for_page(self, page_number: int) -> List[GhareebWord]:
        return list(self._pages.get(page_number, []))

    def all_words(self) -> Iterator[GhareebWord]:
        for number in self.page_numbers:
            yield from self._pages[number]

    def gather_candidates(self, page_number: int) -> List[GhareebWord]:
        """Words recorded on the page itself, then ±1, then ±2."""
        candidates: List[GhareebWord] = []
        for offset in NEIGHBOR_OFFSETS:
            candidates.extend(self._pages.get(page_number + offset, []))
        return candidates


def _parse_int(value: Any) -> int:
    return int(str(value).strip())


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def build_index(dataset: Dict[str, Any]) -> GhareebIndex:
    """
    Build the page index from the ghareeb dataset.

    Expected shape: {"pages": [{"page": n, "items": [{"raw", "word", "surah",
    "surah_name", "ayah"}]}]}. The "word" field carries the meaning; "meaning"
    is accepted as a fallback. Rows that are not objects, lack an extractable
    word or a meaning, or have non-numeric page/surah/ayah are skipped.

    Args:
        dataset: Parsed JSON document

    Returns:
        GhareebIndex with unique keys of the form "<surah>_<ayah>_<n>"
    """
    pages: Dict[int, List[GhareebWord]] = defaultdict(list)
    per_ayah_counter: Dict[Tuple[int, int], int] = defaultdict(int)
    dropped = 0

    page_blocks = dataset.get("pages") if isinstance(dataset, dict) else None
    if not isinstance(page_blocks, list):
        page_blocks = []

    for page_block in page_blocks:
        if not isinstance(page_block, dict):
            dropped += 1
            continue
        items = page_block.get("items")
        if not isinstance(items, list):
            continue
        page_value = page_block.get("page")
        for item in items:
            if not isinstance(item, dict):
                dropped += 1
                continue
            word_text = extract_word_from_raw(_text(item.get("raw")))
            meaning = _text(item.get("word")) or _text(item.get("meaning"))
            if not word_text or not meaning:
                dropped += 1
                continue

            try:
                page_number = _parse_int(page_value)
                surah_number = _parse_int(item.get("surah"))
                verse_number = _parse_int(item.get("ayah"))
            except (TypeError, ValueError):
                dropped += 1
                continue

            ayah_key = (surah_number, verse_number)
            n = per_ayah_counter[ayah_key]
            per_ayah_counter[ayah_key] = n + 1

            word_index = item.get("word_index", n)
            try:
                word_index = _parse_int(word_index)
            except (TypeError, ValueError):
                word_index = n

            bucket = pages[page_number]
            bucket.append(GhareebWord(
                page_number=page_number,
                word_text=word_text,
                meaning=meaning,
                surah_name=_text(item.get("surah_name")),
                surah_number=surah_number,
                verse_number=verse_number,
                word_index=word_index,
                order=len(bucket),
                unique_key=f"{surah_number}_{verse_number}_{n}",
            ))

    index = GhareebIndex(pages, dropped_rows=dropped)
    logger.info(f"Loaded {len(index)} ghareeb words across {len(index.page_numbers)} pages")
    if dropped:
        logger.debug(f"Skipped {dropped} dataset rows without word, meaning or location")
    return index


@dataclass(frozen=True)
class PageRender:
    """What a page shows: words in reading order and their spans per line."""
    page_number: int
    words: List[GhareebWord]
    lines: List[LineMatches]


def _token_index(line: str, offset: int) -> int:
    for i, token in enumerate(tokenize_line(line)):
        if token.end > offset:
            return i
    return 0


def _is_highlighted(
    overrides: OverrideLayer,
    page_number: int,
    line: LineMatches,
    match: PhraseMatch
) -> bool:
    entry = match.entry
    position_key = make_position_key(page_number, line.line_index, _token_index(line.line, match.start_idx))
    identity_key = make_identity_key(entry.surah_number, entry.verse_number, entry.word_index)
    return (
        overrides.should_highlight(position_key, entry.unique_key, True)
        and overrides.should_highlight(position_key, identity_key, True)
    )


def _apply_overrides(
    lines: List[LineMatches],
    page_number: int,
    overrides: OverrideLayer
) -> List[LineMatches]:
    kept: List[LineMatches] = []
    for line in lines:
        matches = tuple(m for m in line.matches if _is_highlighted(overrides, page_number, line, m))
        if matches:
            kept.append(replace(line, matches=matches))
    return kept


def render_page_text(
    index: GhareebIndex,
    page_number: int,
    page_text: str,
    opening_surah: str = "",
    overrides: Optional[OverrideLayer] = None
) -> PageRender:
    """Match a page's text; overrides switched off drop their highlights."""
    candidates = prepare_candidates(index.gather_candidates(page_number))
    lines = match_page(page_text, candidates, page_number, opening_surah)
    if overrides is not None and len(overrides):
        lines = _apply_overrides(lines, page_number, overrides)

    words: List[GhareebWord] = []
    seen = set()
    for line in lines:
        for match in line.matches:
            if match.entry.unique_key in seen:
                continue
            seen.add(match.entry.unique_key)
            words.append(replace(match.entry, order=len(words)))

    return PageRender(page_number=page_number, words=words, lines=lines)


def render_page(
    index: GhareebIndex,
    page: QuranPage,
    overrides: Optional[OverrideLayer] = None
) -> PageRender:
    return render_page_text(index, page.page_number, page.text, page.surah_name or "", overrides)


def find_words_in_page_text(
    index: GhareebIndex,
    page_number: int,
    page_text: str,
    opening_surah: str = ""
) -> List[GhareebWord]:
    """
    Ghareeb words actually present in a page's text.

    Candidates come from the requested page and two pages either side.
    Each word appears once, ordered by where it is first found
    (line, then offset), with `order` renumbered from 0.
    """
    return render_page_text(index, page_number, page_text, opening_surah).words


def get_words_for_page(
    index: GhareebIndex,
    page_number: int,
    page_text: Optional[str] = None,
    opening_surah: str = ""
) -> List[GhareebWord]:
    if page_text:
        return find_words_in_page_text(index, page_number, page_text, opening_surah)
    return index.words_for_page(page_number)
