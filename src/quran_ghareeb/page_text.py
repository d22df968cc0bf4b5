"""
Page text helpers: line classification, tokenization and corpus parsing.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .ghareeb_typing import QuranPage
from .normalization import normalize

logger = logging.getLogger(__name__)

SURAH_HEADER_PREFIXES = ("سُورَةُ", "سورة ")
_SURAH_PREFIX_RE = re.compile(r"^(?:سُورَةُ|سورة)\s*")

# Compared in normalized form so any diacritization of the separator matches
BISMILLAH_KEY = normalize("بِسۡمِ ٱللَّهِ ٱلرَّحۡمَٰنِ ٱلرَّحِيمِ")

# Ayah numbers: Arabic-Indic, Extended Arabic-Indic or ASCII digits, maybe bracketed
_VERSE_NUMBER_RE = re.compile(r"^[\uFD3E\uFD3F(]?[0-9\u0660-\u0669\u06F0-\u06F9]+[\uFD3E\uFD3F)]?$")

# Stripped before deciding what a token is
_DECORATION_RE = re.compile(r"[\uFD3E\uFD3F()\[\]{}\u06DD\u06DE\u066D\u061F\u060C\u06D4\u06D6-\u06ED]")

_TOKEN_RE = re.compile(r"\S+")

FIRST_PAGE = 1


@dataclass(frozen=True)
class Token:
    text: str
    start: int
    end: int
    is_verse_number: bool


def is_surah_header(line: str) -> bool:
    return line.strip().startswith(SURAH_HEADER_PREFIXES)


def extract_surah_name(line: str) -> str:
    """'سُورَةُ البقرة' -> 'البقرة'"""
    return _SURAH_PREFIX_RE.sub("", line.strip()).strip()


def is_chapter_separator(line: str, page_number: int) -> bool:
    """
    A Bismillah line between surahs.

    On the first page the Bismillah is verse 1 of al-Fatiha and is real text.
    """
    if page_number == FIRST_PAGE:
        return False
    return BISMILLAH_KEY in normalize(line)


def is_skipped_line(line: str, page_number: int) -> bool:
    """Header and separator lines are never tokenized or matched."""
    return is_surah_header(line) or is_chapter_separator(line, page_number)


def is_verse_number_token(token: str) -> bool:
    return _VERSE_NUMBER_RE.match(token.strip()) is not None


def tokenize_line(line: str) -> List[Token]:
    tokens = []
    for m in _TOKEN_RE.finditer(line):
        raw = m.group(0)
        cleaned = _DECORATION_RE.sub("", raw)
        if not cleaned:
            continue
        tokens.append(Token(
            text=raw,
            start=m.start(),
            end=m.end(),
            is_verse_number=is_verse_number_token(raw) or is_verse_number_token(cleaned),
        ))
    return tokens


def count_tokens(page_text: str, page_number: int) -> int:
    """Number of word tokens on a page, ignoring headers, separators and ayah numbers."""
    total = 0
    for line in page_text.split("\n"):
        if is_skipped_line(line, page_number):
            continue
        total += sum(1 for t in tokenize_line(line) if not t.is_verse_number)
    return total


def parse_mushaf_text(text: str) -> List[QuranPage]:
    """
    Parse a plain-text mushaf where an empty line ends a page.

    Pages are numbered from 1 in file order.
    """
    pages: List[QuranPage] = []
    current_lines: List[str] = []
    opening_surah: Optional[str] = None
    current_surah: Optional[str] = None

    for line in text.splitlines():
        if not line.strip():
            if current_lines:
                pages.append(QuranPage(
                    page_number=len(pages) + 1,
                    text="\n".join(current_lines),
                    surah_name=opening_surah,
                ))
                current_lines = []
                opening_surah = current_surah
            continue

        if is_surah_header(line):
            current_surah = extract_surah_name(line)
        current_lines.append(line)

    if current_lines:
        pages.append(QuranPage(
            page_number=len(pages) + 1,
            text="\n".join(current_lines),
            surah_name=opening_surah,
        ))

    logger.info(f"Parsed {len(pages)} pages")
    return pages


def pages_from_records(records: Iterable[Dict[str, Any]]) -> List[QuranPage]:
    """
    Build pages from JSON records ({page_number|pageNumber, text|page_text}).

    Records are sorted by page number; the opening surah of each page is
    carried over from the last header of the previous page.
    """
    raw_pages = []
    for record in records:
        if not isinstance(record, dict):
            logger.debug(f"Skipping page record that is not an object: {record!r}")
            continue
        number = record.get("page_number", record.get("pageNumber"))
        text = record.get("text", record.get("page_text"))
        if number is None or not isinstance(text, str):
            logger.debug(f"Skipping page record without number or text: {sorted(record)}")
            continue
        try:
            number = int(str(number).strip())
        except ValueError:
            logger.debug(f"Skipping page record with non-numeric page number: {number!r}")
            continue
        raw_pages.append((number, text))

    raw_pages.sort(key=lambda item: item[0])

    pages = []
    current_surah: Optional[str] = None
    for number, text in raw_pages:
        pages.append(QuranPage(page_number=number, text=text, surah_name=current_surah))
        for line in text.split("\n"):
            if is_surah_header(line):
                current_surah = extract_surah_name(line)

    logger.info(f"Loaded {len(pages)} pages from records")
    return pages
