"""
Matching ghareeb phrases inside the lines of a rendered page.

Matching is a pure function of (line, candidates, surah context, used keys):
the set of keys already highlighted on the page is passed in and the updated
set is returned, never mutated in place.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .ghareeb_typing import GhareebWord, LineMatches, PhraseMatch, QuranPage
from .normalization import (
    MIN_MATCH_LENGTH,
    NormalizedText,
    normalize,
    normalize_surah_name,
    normalize_with_alignment,
)
from .page_text import extract_surah_name, is_skipped_line, is_surah_header

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A ghareeb word prepared for matching."""
    entry: GhareebWord
    phrase: str
    surah_key: str

    @property
    def key(self) -> str:
        return self.entry.unique_key


def prepare_candidates(entries: Iterable[GhareebWord]) -> List[Candidate]:
    """
    Normalize entries and order them longest phrase first.

    A multi-word gloss must claim its span before a shorter gloss contained
    in it gets the chance. Equal lengths keep their input order.
    """
    candidates = [
        Candidate(
            entry=entry,
            phrase=normalize(entry.word_text),
            surah_key=normalize_surah_name(entry.surah_name),
        )
        for entry in entries
    ]
    candidates.sort(key=lambda c: len(c.phrase), reverse=True)
    return candidates


def is_surah_compatible(candidate_surah_key: str, context_key: str) -> bool:
    # No header seen yet: accept everything
    if not context_key:
        return True
    return (
        candidate_surah_key == context_key
        or context_key in candidate_surah_key
        or candidate_surah_key in context_key
    )


def _on_token_boundary(text: str, start: int, end: int) -> bool:
    return (start == 0 or text[start - 1] == " ") and (end == len(text) or text[end] == " ")


def _first_free_occurrence(
    normalized: NormalizedText,
    candidate: Candidate,
    accepted: Sequence[PhraseMatch],
    whole_tokens: bool = False
) -> Optional[PhraseMatch]:
    text = normalized.text
    idx = text.find(candidate.phrase)
    while idx != -1:
        end = idx + len(candidate.phrase)
        if not whole_tokens or _on_token_boundary(text, idx, end):
            start, orig_end = normalized.to_original(idx, len(candidate.phrase))
            match = PhraseMatch(start_idx=start, end_idx=orig_end, entry=candidate.entry)
            if not any(match.overlaps(other) for other in accepted):
                return match
        idx = text.find(candidate.phrase, idx + 1)
    return None


def _match_pass(
    normalized: NormalizedText,
    candidates: Sequence[Candidate],
    context_key: str,
    used_keys: FrozenSet[str],
    accepted: Tuple[PhraseMatch, ...],
    whole_tokens: bool
) -> Tuple[Tuple[PhraseMatch, ...], FrozenSet[str]]:
    found = list(accepted)
    for candidate in candidates:
        if len(candidate.phrase) < MIN_MATCH_LENGTH:
            continue
        if candidate.key in used_keys:
            continue
        if not is_surah_compatible(candidate.surah_key, context_key):
            continue

        match = _first_free_occurrence(normalized, candidate, found, whole_tokens)
        if match is None:
            continue
        found.append(match)
        used_keys = used_keys | {candidate.key}

    return tuple(found), used_keys


def match_line(
    line: str,
    candidates: Sequence[Candidate],
    surah_context: str = "",
    used_keys: FrozenSet[str] = frozenset()
) -> Tuple[Tuple[PhraseMatch, ...], FrozenSet[str]]:
    """
    Find non-overlapping ghareeb phrases in one line.

    Hits that cover whole tokens are taken first; a second pass then accepts
    any substring hit in the text that is still free.

    Args:
        line: Line text as displayed
        candidates: Output of prepare_candidates (longest first)
        surah_context: Surah name in effect for this line ("" matches any)
        used_keys: Keys already highlighted earlier on the page

    Returns:
        (matches sorted by start offset, used_keys including the new matches)
    """
    normalized = normalize_with_alignment(line)
    if len(normalized) < MIN_MATCH_LENGTH:
        return (), used_keys

    context_key = normalize_surah_name(surah_context)
    accepted: Tuple[PhraseMatch, ...] = ()
    for whole_tokens in (True, False):
        accepted, used_keys = _match_pass(
            normalized, candidates, context_key, used_keys, accepted, whole_tokens
        )
    return tuple(sorted(accepted, key=lambda m: m.start_idx)), used_keys


def match_page(
    page_text: str,
    candidates: Sequence[Candidate],
    page_number: int,
    opening_surah: str = "",
    used_keys: FrozenSet[str] = frozenset()
) -> List[LineMatches]:
    """
    Match every line of a page in reading order.

    The whole page is scanned for whole-token hits before any line is allowed
    a substring hit, so a gloss is not used up inside a longer word on an
    earlier line. Surah headers update the context for the lines after them;
    header and Bismillah separator lines themselves are skipped.
    """
    # (line_index, line, surah context, normalized line)
    lines: List[Tuple[int, str, str, NormalizedText]] = []
    context = opening_surah or ""
    for line_index, line in enumerate(page_text.split("\n")):
        if is_surah_header(line):
            context = extract_surah_name(line)
        if is_skipped_line(line, page_number):
            continue
        normalized = normalize_with_alignment(line)
        if len(normalized) < MIN_MATCH_LENGTH:
            continue
        lines.append((line_index, line, context, normalized))

    accepted: List[Tuple[PhraseMatch, ...]] = [() for _ in lines]
    for whole_tokens in (True, False):
        for i, (_, _, line_context, normalized) in enumerate(lines):
            accepted[i], used_keys = _match_pass(
                normalized,
                candidates,
                normalize_surah_name(line_context),
                used_keys,
                accepted[i],
                whole_tokens,
            )

    results: List[LineMatches] = []
    for (line_index, line, line_context, _), matches in zip(lines, accepted):
        if matches:
            results.append(LineMatches(
                line_index=line_index,
                line=line,
                surah_context=line_context,
                matches=tuple(sorted(matches, key=lambda m: m.start_idx)),
            ))

    logger.debug(
        f"Page {page_number}: {sum(len(r.matches) for r in results)} matches "
        f"from {len(candidates)} candidates"
    )
    return results


def match_quran_page(page: QuranPage, candidates: Sequence[Candidate]) -> List[LineMatches]:
    return match_page(page.text, candidates, page.page_number, page.surah_name or "")
