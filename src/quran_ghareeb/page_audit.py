"""
Global page audit.

Renders every page the way the reader does and reports what looks wrong:
pages that lost all their highlights, dataset words that never show up,
missing meanings, highlighted particles and overrides that no longer point
at anything.
"""

import json
import logging
import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .ghareeb_index import GhareebIndex, find_words_in_page_text
from .ghareeb_typing import GhareebWord, QuranPage
from .normalization import normalize
from .overrides import OverrideLayer, make_identity_key
from .page_text import count_tokens

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_TYPE = "global-audit-report"

TOP_ISSUE_TYPES = 5
# Health score assumes at most this many issues per page
MAX_ISSUES_PER_PAGE = 10


class AuditIssueType(str, Enum):
    PLAIN_TEXT_FALLBACK = "PLAIN_TEXT_FALLBACK"
    ZERO_TOKENS = "ZERO_TOKENS"
    UNMATCHED_GHAREEB = "UNMATCHED_GHAREEB"
    MISSING_MEANING = "MISSING_MEANING"
    EMPTY_NORMALIZED = "EMPTY_NORMALIZED"
    HIGHLIGHT_NO_MEANING = "HIGHLIGHT_NO_MEANING"
    STALE_OVERRIDE = "STALE_OVERRIDE"
    STOPWORD_HIGHLIGHTED = "STOPWORD_HIGHLIGHTED"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class RendererType(str, Enum):
    WORD_SPANS = "WORD_SPANS"
    PLAIN_TEXT = "PLAIN_TEXT"


_STOPWORD_TEXTS = [
    # Prepositions
    "من", "إلى", "على", "في", "عن", "مع", "ل", "ب", "ك",
    # Conjunctions
    "و", "ف", "ثم", "أو", "أم", "بل", "لكن", "حتى",
    # Particles
    "إن", "أن", "إذا", "إذ", "لو", "لولا", "لما", "ما", "لا", "لم", "لن",
    "قد", "هل", "أ", "يا", "أي", "أيا", "هذا", "هذه", "ذلك", "تلك",
    # Pronouns
    "هو", "هي", "هم", "هن", "أنت", "أنتم", "أنتن", "أنا", "نحن",
    # Relatives
    "الذي", "التي", "الذين", "اللذان", "اللتان", "اللاتي", "اللائي",
    "كل", "بعض", "غير", "سوى", "كان", "كانت", "كانوا", "يكون", "تكون",
]

ARABIC_STOPWORDS = frozenset(normalize(word) for word in _STOPWORD_TEXTS)


def is_stopword(word: str) -> bool:
    """Particles, pronouns and anything of two letters or fewer."""
    normalized = normalize(word)
    return normalized in ARABIC_STOPWORDS or len(normalized) <= 2


@dataclass
class AuditIssue:
    type: AuditIssueType
    page_number: int
    severity: Severity
    description: str
    details: Dict[str, Any] = field(default_factory=dict)
    word_key: Optional[str] = None
    word_text: Optional[str] = None


@dataclass
class PageAuditStats:
    ghareeb_total: int
    matched_count: int
    unmatched_count: int
    meanings_missing: int
    tokens_count: int
    renderer_type: RendererType


@dataclass
class PageAuditResult:
    page_number: int
    issues: List[AuditIssue]
    stats: PageAuditStats


@dataclass
class GlobalAuditResult:
    total_pages: int
    scanned_pages: int
    total_issues: int
    issues_by_type: Dict[str, int]
    pages_with_issues: List[int]
    page_results: List[PageAuditResult]
    timestamp: str


@dataclass
class AuditSummary:
    health_score: int
    critical_issues: int
    warning_issues: int
    info_issues: int
    top_issue_types: List[Dict[str, Any]]


def _word_issues(page_number: int, word: GhareebWord, rendered_keys: set) -> List[AuditIssue]:
    issues = []
    normalized = normalize(word.word_text)

    if not normalized:
        issues.append(AuditIssue(
            type=AuditIssueType.EMPTY_NORMALIZED,
            page_number=page_number,
            severity=Severity.ERROR,
            description=f'Word "{word.word_text}" normalizes to an empty string',
            details={"original_word": word.word_text, "unique_key": word.unique_key},
            word_key=word.unique_key,
            word_text=word.word_text,
        ))

    if word.unique_key not in rendered_keys:
        issues.append(AuditIssue(
            type=AuditIssueType.UNMATCHED_GHAREEB,
            page_number=page_number,
            severity=Severity.WARNING,
            description=f'Ghareeb word "{word.word_text}" not found in rendered output',
            details={
                "original_word": word.word_text,
                "normalized_word": normalized,
                "unique_key": word.unique_key,
                "surah": word.surah_number,
                "ayah": word.verse_number,
            },
            word_key=word.unique_key,
            word_text=word.word_text,
        ))

    if not word.meaning or not word.meaning.strip():
        issues.append(AuditIssue(
            type=AuditIssueType.MISSING_MEANING,
            page_number=page_number,
            severity=Severity.WARNING,
            description=f'Word "{word.word_text}" has no meaning defined',
            details={"unique_key": word.unique_key},
            word_key=word.unique_key,
            word_text=word.word_text,
        ))

    if is_stopword(word.word_text):
        issues.append(AuditIssue(
            type=AuditIssueType.STOPWORD_HIGHLIGHTED,
            page_number=page_number,
            severity=Severity.INFO,
            description=f'"{word.word_text}" is a particle and probably should not be highlighted',
            details={"word": word.word_text, "normalized": normalized, "unique_key": word.unique_key},
            word_key=word.unique_key,
            word_text=word.word_text,
        ))

    return issues


def _override_issues(
    page_number: int,
    overrides: OverrideLayer,
    rendered_words: Sequence[GhareebWord]
) -> List[AuditIssue]:
    issues = []
    rendered_identities = set()
    for word in rendered_words:
        rendered_identities.add(word.unique_key)
        rendered_identities.add(make_identity_key(word.surah_number, word.verse_number, word.word_index))

    for override in overrides.for_page(page_number):
        if not override.highlight:
            continue
        details = {"position_key": override.position_key, "identity_key": override.identity_key}

        if not override.meaning or not override.meaning.strip():
            issues.append(AuditIssue(
                type=AuditIssueType.HIGHLIGHT_NO_MEANING,
                page_number=page_number,
                severity=Severity.ERROR,
                description=f'Override for "{override.word_text}" highlights without a meaning',
                details=dict(details, created_at=override.created_at),
                word_key=override.identity_key,
                word_text=override.word_text,
            ))

        if override.identity_key not in rendered_identities:
            issues.append(AuditIssue(
                type=AuditIssueType.STALE_OVERRIDE,
                page_number=page_number,
                severity=Severity.INFO,
                description=f'Override for "{override.word_text}" may be stale (word not in current render)',
                details=details,
                word_key=override.identity_key,
                word_text=override.word_text,
            ))

    return issues


def audit_page(
    page: QuranPage,
    ghareeb_words: Sequence[GhareebWord],
    rendered_words: Sequence[GhareebWord],
    overrides: Optional[OverrideLayer] = None
) -> PageAuditResult:
    """
    Audit one page.

    Args:
        page: The page as loaded from the corpus
        ghareeb_words: Dataset words recorded for this page
        rendered_words: Words the reader actually highlights on it
        overrides: Optional override layer to check for stale entries

    Returns:
        PageAuditResult with issues and per-page stats
    """
    issues: List[AuditIssue] = []
    tokens_count = count_tokens(page.text, page.page_number)

    if tokens_count == 0:
        issues.append(AuditIssue(
            type=AuditIssueType.ZERO_TOKENS,
            page_number=page.page_number,
            severity=Severity.ERROR,
            description="Page has no tokenizable content",
            details={"text_length": len(page.text)},
        ))

    if ghareeb_words and rendered_words:
        renderer_type = RendererType.WORD_SPANS
    else:
        renderer_type = RendererType.PLAIN_TEXT

    if ghareeb_words and not rendered_words:
        issues.append(AuditIssue(
            type=AuditIssueType.PLAIN_TEXT_FALLBACK,
            page_number=page.page_number,
            severity=Severity.WARNING,
            description="Page fell back to plain text despite having ghareeb words",
            details={"ghareeb_count": len(ghareeb_words), "rendered_count": 0},
        ))

    rendered_keys = {w.unique_key for w in rendered_words}
    for word in ghareeb_words:
        issues.extend(_word_issues(page.page_number, word, rendered_keys))

    if overrides is not None:
        issues.extend(_override_issues(page.page_number, overrides, rendered_words))

    return PageAuditResult(
        page_number=page.page_number,
        issues=issues,
        stats=PageAuditStats(
            ghareeb_total=len(ghareeb_words),
            matched_count=len(rendered_words),
            unmatched_count=sum(1 for w in ghareeb_words if w.unique_key not in rendered_keys),
            meanings_missing=sum(1 for w in ghareeb_words if not (w.meaning or "").strip()),
            tokens_count=tokens_count,
            renderer_type=renderer_type,
        ),
    )


def run_global_audit(
    pages: Sequence[QuranPage],
    index: GhareebIndex,
    overrides: Optional[OverrideLayer] = None,
    on_progress: Optional[Callable[[int, int], None]] = None
) -> GlobalAuditResult:
    """Audit every page, rendering each through find_words_in_page_text."""
    issues_by_type = Counter({issue_type.value: 0 for issue_type in AuditIssueType})
    page_results: List[PageAuditResult] = []
    pages_with_issues: List[int] = []
    total_issues = 0

    logger.info(f"Starting global audit of {len(pages)} pages")
    for i, page in enumerate(pages):
        rendered = find_words_in_page_text(
            index, page.page_number, page.text, page.surah_name or ""
        )
        result = audit_page(page, index.words_for_page(page.page_number), rendered, overrides)
        page_results.append(result)

        if result.issues:
            pages_with_issues.append(page.page_number)
            total_issues += len(result.issues)
            for issue in result.issues:
                issues_by_type[issue.type.value] += 1

        if on_progress:
            on_progress(i + 1, len(pages))

    logger.info(f"Global audit done: {total_issues} issues on {len(pages_with_issues)} pages")
    return GlobalAuditResult(
        total_pages=len(pages),
        scanned_pages=len(pages),
        total_issues=total_issues,
        issues_by_type=dict(issues_by_type),
        pages_with_issues=pages_with_issues,
        page_results=page_results,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def get_audit_summary(result: GlobalAuditResult) -> AuditSummary:
    severities = Counter(
        issue.severity for page_result in result.page_results for issue in page_result.issues
    )
    critical = severities[Severity.ERROR]
    warning = severities[Severity.WARNING]
    info = severities[Severity.INFO]

    max_issues = result.total_pages * MAX_ISSUES_PER_PAGE
    if max_issues:
        score = 100 - (critical * 5 + warning * 2 + info) / max_issues * 100
        score = max(0.0, min(100.0, score))
    else:
        score = 100.0

    ranked = sorted(
        ((t, c) for t, c in result.issues_by_type.items() if c > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    return AuditSummary(
        health_score=int(math.floor(score + 0.5)),
        critical_issues=critical,
        warning_issues=warning,
        info_issues=info,
        top_issue_types=[{"type": t, "count": c} for t, c in ranked[:TOP_ISSUE_TYPES]],
    )


def audit_result_to_dict(result: GlobalAuditResult) -> Dict[str, Any]:
    # str-based enums serialize as their values
    return json.loads(json.dumps(asdict(result), ensure_ascii=False))


def export_audit_results(result: GlobalAuditResult) -> str:
    payload = {"version": EXPORT_VERSION, "type": EXPORT_TYPE}
    payload.update(audit_result_to_dict(result))
    return json.dumps(payload, ensure_ascii=False, indent=2)
