"""
Corpus-wide validation of the ghareeb dataset against the mushaf text.

Every word is run through a ladder of match strategies, from strict to
loose. The first rung that finds the word decides the outcome; words no rung
can place end up in the report as classified mismatches.
"""

import csv
import io
import json
import logging
import math
from collections import Counter, defaultdict
from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .ghareeb_index import GhareebIndex
from .ghareeb_typing import (
    GhareebWord,
    LowConfidenceMatch,
    MatchingReport,
    MismatchEntry,
    MismatchReason,
    QuranPage,
)
from .normalization import (
    ALEF,
    MIN_MATCH_LENGTH,
    extract_root,
    normalize,
    normalize_aggressive,
)

ADJACENT_OFFSETS = (-2, -1, 1, 2)
ROOT_LENGTH_TOLERANCE = 2
AFFIX_LENGTH = 3

CSV_HEADERS = [
    "الكلمة",
    "السورة",
    "الآية",
    "الصفحة",
    "السبب",
    "التفاصيل",
    "الصفحات الفعلية",
]

REASON_LABELS = {
    MismatchReason.NOT_FOUND_IN_PAGE: "غير موجودة",
    MismatchReason.DIACRITIC_MISMATCH: "اختلاف تشكيل",
    MismatchReason.PAGE_NUMBER_OFF: "صفحة مختلفة",
    MismatchReason.DUPLICATE_MATCH: "مكررة",
    MismatchReason.PARTIAL_MATCH: "تطابق جزئي",
    MismatchReason.UNKNOWN: "غير معروف",
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WordForms:
    """Comparison keys of one ghareeb word."""
    entry: GhareebWord
    standard: str
    aggressive: str
    root: str

    @classmethod
    def of(cls, entry: GhareebWord) -> "WordForms":
        return cls(
            entry=entry,
            standard=normalize(entry.word_text),
            aggressive=normalize_aggressive(entry.word_text),
            root=extract_root(entry.word_text),
        )


@dataclass(frozen=True)
class PageForms:
    """Comparison keys of one page, plus the root of each aggressive token."""
    page_number: int
    standard: str
    aggressive: str
    token_roots: Tuple[Tuple[str, str], ...]

    @classmethod
    def of(cls, page: QuranPage) -> "PageForms":
        aggressive = normalize_aggressive(page.text)
        return cls(
            page_number=page.page_number,
            standard=normalize(page.text),
            aggressive=aggressive,
            token_roots=tuple((token, extract_root(token)) for token in aggressive.split()),
        )


@dataclass(frozen=True)
class MatchResult:
    strategy: str
    confident: bool = True
    detail: str = ""


class MatchStrategy:
    """One rung of the validation ladder."""

    name = ""
    confident = True
    # A hit claims the (page, word) slot, so a second identical word is a duplicate
    claims_slot = False

    def try_match(self, word: WordForms, page: PageForms) -> Optional[MatchResult]:
        raise NotImplementedError

    def _hit(self, detail: str = "") -> MatchResult:
        return MatchResult(strategy=self.name, confident=self.confident, detail=detail)


class ExactMatch(MatchStrategy):
    name = "exact"
    claims_slot = True

    def try_match(self, word, page):
        if word.standard and word.standard in page.standard:
            return self._hit()
        return None


class AggressiveMatch(MatchStrategy):
    name = "aggressive"

    def try_match(self, word, page):
        if word.aggressive and word.aggressive in page.aggressive:
            return self._hit()
        return None


class AlefDroppedMatch(MatchStrategy):
    """Words written with a leading alef that the mushaf spells without it."""

    name = "alef_dropped"

    def try_match(self, word, page):
        if not word.aggressive.startswith(ALEF):
            return None
        stripped = word.aggressive[1:]
        if len(stripped) >= MIN_MATCH_LENGTH and stripped in page.aggressive:
            return self._hit(f'بدون الألف الأولى "{stripped}"')
        return None


class RootMatch(MatchStrategy):
    name = "root"
    confident = False

    def try_match(self, word, page):
        if len(word.root) < MIN_MATCH_LENGTH:
            return None
        target_length = len(word.aggressive)
        for token, root in page.token_roots:
            if abs(len(token) - target_length) > ROOT_LENGTH_TOLERANCE:
                continue
            if root == word.root:
                return self._hit(f'تطابق بالجذر "{word.root}" مع "{token}"')
        return None


class PartialMatch(MatchStrategy):
    name = "partial"

    def try_match(self, word, page):
        prefix = word.standard[:AFFIX_LENGTH]
        suffix = word.standard[-AFFIX_LENGTH:]
        if prefix and prefix in page.standard:
            return self._hit(f'البادئة "{prefix}" موجودة')
        if suffix and suffix in page.standard:
            return self._hit(f'اللاحقة "{suffix}" موجودة')
        return None


DEFAULT_LADDER: Tuple[MatchStrategy, ...] = (
    ExactMatch(),
    AggressiveMatch(),
    AlefDroppedMatch(),
    RootMatch(),
)

ADJACENT_STRATEGIES: Tuple[MatchStrategy, ...] = (ExactMatch(), AggressiveMatch())


@dataclass
class _GroupResult:
    matched: int = 0
    mismatches: List[MismatchEntry] = field(default_factory=list)
    strategy_counts: Counter = field(default_factory=Counter)
    low_confidence: List[LowConfidenceMatch] = field(default_factory=list)


def coverage_percent(matched: int, total: int) -> float:
    """Percentage with two decimals, halves rounded up."""
    if total <= 0:
        return 0.0
    return math.floor(matched / total * 10000 + 0.5) / 100


def _nearby_forms(page_number: int, page_forms: Dict[int, PageForms]) -> Dict[int, PageForms]:
    reach = (0,) + ADJACENT_OFFSETS
    return {
        page_number + offset: page_forms[page_number + offset]
        for offset in reach
        if page_number + offset in page_forms
    }


class MatchingValidator:
    """Runs the validation ladder over every ghareeb word in an index."""

    def __init__(
        self,
        ladder: Sequence[MatchStrategy] = DEFAULT_LADDER,
        adjacent_strategies: Sequence[MatchStrategy] = ADJACENT_STRATEGIES,
        partial_strategy: Optional[MatchStrategy] = None,
        workers: int = 1
    ):
        """
        Args:
            ladder: Strategies tried on the expected page, in order
            adjacent_strategies: Strategies tried on the pages around it
            partial_strategy: Last resort that only classifies, never matches
            workers: Worker processes validating page groups (1 = in process)
        """
        self.ladder = tuple(ladder)
        self.adjacent_strategies = tuple(adjacent_strategies)
        self.partial_strategy = partial_strategy or PartialMatch()
        self.workers = max(1, int(workers))
        self.logger = logging.getLogger(__name__)

    def validate(self, index: GhareebIndex, pages: Iterable[QuranPage]) -> MatchingReport:
        page_forms = {page.page_number: PageForms.of(page) for page in pages}

        groups: Dict[int, List[GhareebWord]] = defaultdict(list)
        for entry in index.all_words():
            groups[entry.page_number].append(entry)
        ordered_groups = sorted(groups.items())

        total = sum(len(words) for _, words in ordered_groups)
        self.logger.info(
            f"Validating {total} ghareeb words against {len(page_forms)} pages "
            f"(workers={self.workers})"
        )

        if self.workers > 1 and len(ordered_groups) > 1:
            # Each worker process only receives the pages its group can reach
            nearby = [_nearby_forms(page_number, page_forms) for page_number, _ in ordered_groups]
            with ProcessPoolExecutor(max_workers=self.workers) as executor:
                results = list(executor.map(
                    self._validate_group,
                    [page_number for page_number, _ in ordered_groups],
                    [words for _, words in ordered_groups],
                    nearby,
                ))
        else:
            results = [
                self._validate_group(page_number, words, page_forms)
                for page_number, words in ordered_groups
            ]

        matched = 0
        mismatches: List[MismatchEntry] = []
        strategy_counts: Counter = Counter()
        low_confidence: List[LowConfidenceMatch] = []
        for result in results:
            matched += result.matched
            mismatches.extend(result.mismatches)
            strategy_counts.update(result.strategy_counts)
            low_confidence.extend(result.low_confidence)

        report = MatchingReport(
            total_entries=total,
            matched_count=matched,
            unmatched_count=total - matched,
            mismatches=mismatches,
            coverage_percent=coverage_percent(matched, total),
            generated_at=datetime.now(timezone.utc).isoformat(),
            strategy_counts=dict(strategy_counts),
            low_confidence=low_confidence,
        )
        self.logger.info(
            f"Validation done: {report.matched_count}/{report.total_entries} matched "
            f"({report.coverage_percent}%), {len(report.mismatches)} mismatches"
        )
        return report

    def _validate_group(
        self,
        page_number: int,
        entries: List[GhareebWord],
        page_forms: Dict[int, PageForms]
    ) -> _GroupResult:
        result = _GroupResult()
        claimed: Set[Tuple[int, str]] = set()
        page = page_forms.get(page_number)

        for entry in entries:
            word = WordForms.of(entry)

            # Too short to say anything meaningful about
            if len(word.standard) < MIN_MATCH_LENGTH:
                result.matched += 1
                result.strategy_counts["too_short"] += 1
                continue

            hit = self._run_ladder(word, page) if page is not None else None
            if hit is not None:
                strategy, match = hit
                if strategy.claims_slot:
                    slot = (page_number, word.standard)
                    if slot in claimed:
                        result.mismatches.append(MismatchEntry(
                            entry=entry,
                            reason=MismatchReason.DUPLICATE_MATCH,
                            detail=f'الكلمة "{entry.word_text}" مكررة في الصفحة {page_number}',
                        ))
                        continue
                    claimed.add(slot)

                result.matched += 1
                result.strategy_counts[match.strategy] += 1
                if not match.confident:
                    result.low_confidence.append(LowConfidenceMatch(
                        entry=entry,
                        strategy=match.strategy,
                        detail=match.detail,
                    ))
                continue

            found_in_pages = self._search_adjacent(word, page_number, page_forms)
            if found_in_pages:
                result.matched += 1
                result.strategy_counts["adjacent_page"] += 1
                result.mismatches.append(MismatchEntry(
                    entry=entry,
                    reason=MismatchReason.PAGE_NUMBER_OFF,
                    detail=(
                        f'الكلمة "{entry.word_text}" المتوقعة في ص{page_number} '
                        f'موجودة في ص{", ".join(str(p) for p in found_in_pages)}'
                    ),
                    found_in_pages=found_in_pages,
                ))
                continue

            result.mismatches.append(self._classify_unmatched(word, page))

        return result

    def _run_ladder(
        self,
        word: WordForms,
        page: PageForms
    ) -> Optional[Tuple[MatchStrategy, MatchResult]]:
        for strategy in self.ladder:
            match = strategy.try_match(word, page)
            if match is not None:
                return strategy, match
        return None

    def _search_adjacent(
        self,
        word: WordForms,
        page_number: int,
        page_forms: Dict[int, PageForms]
    ) -> List[int]:
        found = []
        for offset in ADJACENT_OFFSETS:
            neighbor = page_forms.get(page_number + offset)
            if neighbor is None:
                continue
            if any(s.try_match(word, neighbor) is not None for s in self.adjacent_strategies):
                found.append(neighbor.page_number)
        return found

    def _classify_unmatched(self, word: WordForms, page: Optional[PageForms]) -> MismatchEntry:
        entry = word.entry
        if page is None:
            return MismatchEntry(
                entry=entry,
                reason=MismatchReason.UNKNOWN,
                detail=f'الصفحة {entry.page_number} للكلمة "{entry.word_text}" غير موجودة في المصحف',
            )

        partial = self.partial_strategy.try_match(word, page)
        if partial is not None:
            return MismatchEntry(
                entry=entry,
                reason=MismatchReason.PARTIAL_MATCH,
                detail=f'تطابق جزئي للكلمة "{entry.word_text}" ({partial.detail})',
            )

        return MismatchEntry(
            entry=entry,
            reason=MismatchReason.NOT_FOUND_IN_PAGE,
            detail=f'الكلمة "{entry.word_text}" غير موجودة في نص الصفحة {entry.page_number}',
        )


def validate_matching(
    index: GhareebIndex,
    pages: Iterable[QuranPage],
    workers: int = 1
) -> MatchingReport:
    """Convenience wrapper around MatchingValidator.validate."""
    return MatchingValidator(workers=workers).validate(index, pages)


def report_to_dict(report: MatchingReport, mismatch_limit: Optional[int] = None) -> Dict[str, Any]:
    """Plain-dict form of a report; `mismatch_limit` only trims the copy."""
    data = asdict(report)
    for mismatch in data["mismatches"]:
        mismatch["reason"] = MismatchReason(mismatch["reason"]).value
    if mismatch_limit is not None:
        data["mismatches"] = data["mismatches"][:mismatch_limit]
    return data


def export_report_as_json(report: MatchingReport) -> str:
    return json.dumps(report_to_dict(report), ensure_ascii=False, indent=2)


def translate_reason(reason: MismatchReason) -> str:
    return REASON_LABELS.get(MismatchReason(reason), REASON_LABELS[MismatchReason.UNKNOWN])


def export_report_as_csv(report: MatchingReport) -> str:
    """
    CSV of the mismatch list for spreadsheet review.

    Starts with a BOM so Excel opens the Arabic text as UTF-8; every data
    cell is quoted with embedded quotes doubled.
    """
    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADERS) + "\n")

    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for mismatch in report.mismatches:
        entry = mismatch.entry
        writer.writerow([
            entry.word_text,
            entry.surah_name,
            str(entry.verse_number),
            str(entry.page_number),
            translate_reason(mismatch.reason),
            mismatch.detail,
            ", ".join(str(p) for p in mismatch.found_in_pages or []),
        ])

    return "\uFEFF" + buffer.getvalue()


def write_report(
    report: MatchingReport,
    json_path: Optional[Union[str, Path]] = None,
    csv_path: Optional[Union[str, Path]] = None
) -> None:
    if json_path:
        Path(json_path).write_text(export_report_as_json(report), encoding="utf-8")
        logger.info(f"Wrote JSON report to {json_path}")
    if csv_path:
        with open(csv_path, "w", encoding="utf-8", newline="") as f:
            f.write(export_report_as_csv(report))
        logger.info(f"Wrote CSV report to {csv_path}")
