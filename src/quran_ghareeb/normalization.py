"""
Arabic text normalization for ghareeb matching.

Normalized strings are comparison keys only, never shown to the reader.
Every normalized character keeps the range of original characters it came
from, so a hit found in normalized space can be highlighted in the page text.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple


class NormalizationLevel(str, Enum):
    STANDARD = "standard"
    AGGRESSIVE = "aggressive"


# Anything shorter than this after normalization is too ambiguous to match
MIN_MATCH_LENGTH = 2

ALEF = "ا"
LAM = "ل"
LAM_ALEF = "ﻻ"
TATWEEL = "ـ"
HAMZA = "ء"

# Tashkeel, small high Quranic signs, dagger alef and extended Arabic marks
_MARKS_RE = re.compile(r"[\u0610-\u061A\u064B-\u065F\u0670\u06D6-\u06ED\u08D3-\u08FF]")

# Letters that survive the final filter
_LETTER_RE = re.compile(r"[\u0621-\u064A\u066E-\u06D3]")

_STANDARD_MAP: Dict[str, str] = {
    # Alef variants (madda, hamza above/below, wasla, wavy hamza)
    "آ": ALEF, "أ": ALEF, "إ": ALEF, "ٱ": ALEF,
    "ٲ": ALEF, "ٳ": ALEF, "ٵ": ALEF,
    "ى": "ي",  # alef maksura -> yeh
    "ة": "ه",  # teh marbuta -> heh
    "ۀ": "ه",  # heh with yeh above
    "ؤ": "و",  # waw with hamza
    "ئ": "ي",  # yeh with hamza
}

# Presentation-form lam-alef ligatures always decompose
for _code in range(0xFEF5, 0xFEFD):
    _STANDARD_MAP[chr(_code)] = LAM + ALEF

_AGGRESSIVE_MAP: Dict[str, str] = dict(_STANDARD_MAP)
_AGGRESSIVE_MAP.update({
    # Persian / Urdu yeh forms
    "ی": "ي", "ۍ": "ي", "ې": "ي",
    "ے": "ي", "ۓ": "ي", "ٸ": "ي",
    # Keheh and swash kaf
    "ک": "ك", "ڪ": "ك", "ګ": "ك",
    # Heh goal, heh doachashmee, teh marbuta goal
    "ہ": "ه", "ۂ": "ه", "ۃ": "ه", "ھ": "ه",
    "ں": "ن",  # noon ghunna
    "ٮ": "ب",  # dotless beh
    "ٯ": "ق",  # dotless qaf
    "ۆ": "و", "ۇ": "و", "ۈ": "و", "ۋ": "و",
    "ٶ": "و", "ٷ": "و",
})

_WEAK_LETTERS = {ALEF, "و", "ي"}


@dataclass(frozen=True)
class NormalizedText:
    """A normalized string plus, per normalized character, its original range."""
    original: str
    text: str
    spans: Tuple[Tuple[int, int], ...]
    level: NormalizationLevel

    def __len__(self) -> int:
        return len(self.text)

    def to_original(self, start: int, length: int) -> Tuple[int, int]:
        """
        Translate a normalized range to the original string.

        Args:
            start: Offset in the normalized text
            length: Number of normalized characters

        Returns:
            (orig_start, orig_end) with orig_end exclusive
        """
        if length <= 0 or start < 0 or start + length > len(self.text):
            raise ValueError(
                f"Range [{start}, {start + length}) outside normalized text of length {len(self.text)}"
            )
        return self.spans[start][0], self.spans[start + length - 1][1]


def _is_mark(ch: str) -> bool:
    return ch == TATWEEL or ch == HAMZA or _MARKS_RE.match(ch) is not None


def _is_kept(ch: str, level: NormalizationLevel) -> bool:
    if ch == LAM_ALEF:
        return level == NormalizationLevel.AGGRESSIVE
    return _LETTER_RE.match(ch) is not None


def normalize_with_alignment(
    text: str,
    level: NormalizationLevel = NormalizationLevel.STANDARD
) -> NormalizedText:
    """
    Normalize Arabic text and record where each output character came from.

    Dropped marks (tashkeel, tatweel, hamza) are folded into the span of the
    letter they belong to, so a highlight covers the whole written word.
    """
    level = NormalizationLevel(level)
    table = _AGGRESSIVE_MAP if level == NormalizationLevel.AGGRESSIVE else _STANDARD_MAP

    # [char, orig_start, orig_end]
    units: List[List] = []
    in_word = False
    pending_start = None

    for i, ch in enumerate(text or ""):
        if ch.isspace():
            units.append([" ", i, i + 1])
            in_word = False
            pending_start = None
            continue

        if _is_mark(ch):
            if in_word:
                units[-1][2] = i + 1
            elif pending_start is None:
                pending_start = i
            continue

        mapped = table.get(ch, ch)
        if not all(_is_kept(out, level) for out in mapped):
            # Brackets, digits, punctuation: dropped and break the word
            in_word = False
            pending_start = None
            continue

        start = pending_start if pending_start is not None else i
        for out in mapped:
            units.append([out, start, i + 1])
        in_word = True
        pending_start = None

    if level == NormalizationLevel.AGGRESSIVE:
        units = _fold_lam_alef(units)

    chars: List[str] = []
    spans: List[Tuple[int, int]] = []
    for ch, start, end in units:
        if ch == " ":
            if not chars or chars[-1] == " ":
                continue
        chars.append(ch)
        spans.append((start, end))

    if chars and chars[-1] == " ":
        chars.pop()
        spans.pop()

    return NormalizedText(
        original=text or "",
        text="".join(chars),
        spans=tuple(spans),
        level=level,
    )


def _fold_lam_alef(units: List[List]) -> List[List]:
    folded: List[List] = []
    i = 0
    while i < len(units):
        ch, start, end = units[i]
        if ch == LAM and i + 1 < len(units) and units[i + 1][0] == ALEF:
            folded.append([LAM_ALEF, start, units[i + 1][2]])
            i += 2
            continue
        folded.append([ch, start, end])
        i += 1
    return folded


def normalize(text: str, level: NormalizationLevel = NormalizationLevel.STANDARD) -> str:
    """Return the comparison key of `text` at the given strictness level."""
    return normalize_with_alignment(text, level).text


def normalize_aggressive(text: str) -> str:
    return normalize(text, NormalizationLevel.AGGRESSIVE)


def normalize_surah_name(name: str) -> str:
    """Surah names compare without spaces ("آل عمران" == "آلعمران")."""
    return normalize(name or "").replace(" ", "")


def extract_root(word: str) -> str:
    """
    Coarse fuzzy key: aggressive form without weak letters, first 4 letters.

    Only good enough for a low-confidence fallback; two words sharing a root
    key are not the same word.
    """
    key = normalize_aggressive(word).replace(LAM_ALEF, LAM)
    return "".join(ch for ch in key if ch not in _WEAK_LETTERS and ch != " ")[:4]


def map_to_original(
    original: str,
    start: int,
    length: int,
    level: NormalizationLevel = NormalizationLevel.STANDARD
) -> Tuple[int, int]:
    """
    Map `[start, start + length)` in normalized space back to `original`.

    Args:
        original: The text as displayed
        start: Offset into normalize(original, level)
        length: Length of the normalized range
        level: Level the offsets were computed at

    Returns:
        (orig_start, orig_end) with orig_end exclusive
    """
    return normalize_with_alignment(original, level).to_original(start, length)
