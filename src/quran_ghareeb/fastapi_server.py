"""
FastAPI service exposing ghareeb lookup, validation and audit results.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field
import uvicorn

from .config import Settings, load_settings
from .data_sources import DataSourceError, load_quran_data
from .ghareeb_index import GhareebIndex, render_page
from .ghareeb_typing import MatchingReport, QuranPage
from .matching_validator import (
    export_report_as_csv,
    translate_reason,
    validate_matching,
)
from .overrides import OverrideLayer, resolve_meaning
from .page_audit import get_audit_summary, run_global_audit


# Pydantic models for API responses
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    message: str
    data_loaded: bool
    pages: int = 0
    ghareeb_words: int = 0


class GhareebWordResponse(BaseModel):
    unique_key: str
    word_text: str
    meaning: str
    meaning_source: str
    surah_name: str
    surah_number: int
    verse_number: int
    word_index: int
    order: int


class SpanResponse(BaseModel):
    start_idx: int = Field(..., ge=0, description="Start offset in the displayed line")
    end_idx: int = Field(..., ge=0, description="End offset (exclusive)")
    unique_key: str


class LineResponse(BaseModel):
    line_index: int
    surah_context: str
    spans: List[SpanResponse]


class PageGhareebResponse(BaseModel):
    """Words highlighted on one page, in reading order."""
    page_number: int
    words: List[GhareebWordResponse]
    lines: List[LineResponse]


class MismatchResponse(BaseModel):
    unique_key: str
    word_text: str
    surah_name: str
    verse_number: int
    page_number: int
    reason: str
    reason_label: str
    detail: str
    found_in_pages: Optional[List[int]] = None


class ValidationReportResponse(BaseModel):
    total_entries: int
    matched_count: int
    unmatched_count: int
    coverage_percent: float
    generated_at: str
    strategy_counts: dict
    low_confidence_count: int
    mismatch_count: int
    mismatches: List[MismatchResponse]


class IssueTypeCount(BaseModel):
    type: str
    count: int


class AuditSummaryResponse(BaseModel):
    health_score: int
    critical_issues: int
    warning_issues: int
    info_issues: int
    top_issue_types: List[IssueTypeCount]
    pages_with_issues: int
    total_pages: int


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_data_on_startup()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="Quran Ghareeb API",
    description="Rare-word meanings aligned to mushaf pages, with validation and audit reports",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Loaded on startup
settings: Settings = load_settings()
pages: Optional[List[QuranPage]] = None
index: Optional[GhareebIndex] = None
overrides = OverrideLayer()
_report: Optional[MatchingReport] = None
logger = logging.getLogger(__name__)


def load_data_on_startup():
    """Load the page corpus and the ghareeb dataset."""
    global settings
    settings = load_settings()
    try:
        logger.info("Loading page corpus and ghareeb dataset...")
        loaded_pages, loaded_index = load_quran_data(
            settings.pages_source,
            settings.dataset_source,
            timeout=settings.request_timeout,
        )
        set_data(loaded_pages, loaded_index)
        logger.info("Data loaded successfully")
    except DataSourceError as e:
        # Keep serving; data endpoints answer 503
        logger.error(f"Failed to load data: {e}")


def set_data(new_pages: List[QuranPage], new_index: GhareebIndex) -> None:
    global pages, index, _report
    pages = list(new_pages)
    index = new_index
    _report = None


def _require_data():
    if pages is None or index is None:
        raise HTTPException(status_code=503, detail="Quran data not loaded")
    return pages, index


def _get_report() -> MatchingReport:
    global _report
    loaded_pages, loaded_index = _require_data()
    if _report is None:
        _report = validate_matching(loaded_index, loaded_pages, workers=settings.validation_workers)
    return _report


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    loaded = pages is not None and index is not None
    return HealthResponse(
        status="healthy" if loaded else "unhealthy",
        message="Quran ghareeb API is running",
        data_loaded=loaded,
        pages=len(pages) if pages else 0,
        ghareeb_words=len(index) if index is not None else 0
    )


@app.get("/pages/{page_number}/ghareeb", response_model=PageGhareebResponse)
def get_page_ghareeb(page_number: int):
    """Ghareeb words found in the text of one page, with their meanings."""
    loaded_pages, loaded_index = _require_data()
    page = next((p for p in loaded_pages if p.page_number == page_number), None)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page {page_number} not found")

    rendered = render_page(loaded_index, page, overrides)
    words = []
    for word in rendered.words:
        meaning, source = resolve_meaning(word, overrides)
        words.append(GhareebWordResponse(
            unique_key=word.unique_key,
            word_text=word.word_text,
            meaning=meaning,
            meaning_source=source.value,
            surah_name=word.surah_name,
            surah_number=word.surah_number,
            verse_number=word.verse_number,
            word_index=word.word_index,
            order=word.order
        ))

    lines = [
        LineResponse(
            line_index=line.line_index,
            surah_context=line.surah_context,
            spans=[
                SpanResponse(start_idx=m.start_idx, end_idx=m.end_idx, unique_key=m.entry.unique_key)
                for m in line.matches
            ]
        )
        for line in rendered.lines
    ]
    return PageGhareebResponse(page_number=page_number, words=words, lines=lines)


@app.get("/validation-report", response_model=ValidationReportResponse)
def get_validation_report():
    """Validation summary; the mismatch list is capped for display."""
    report = _get_report()
    shown = report.mismatches[:settings.report_display_limit]
    return ValidationReportResponse(
        total_entries=report.total_entries,
        matched_count=report.matched_count,
        unmatched_count=report.unmatched_count,
        coverage_percent=report.coverage_percent,
        generated_at=report.generated_at,
        strategy_counts=report.strategy_counts,
        low_confidence_count=len(report.low_confidence),
        mismatch_count=len(report.mismatches),
        mismatches=[
            MismatchResponse(
                unique_key=m.entry.unique_key,
                word_text=m.entry.word_text,
                surah_name=m.entry.surah_name,
                verse_number=m.entry.verse_number,
                page_number=m.entry.page_number,
                reason=m.reason.value,
                reason_label=translate_reason(m.reason),
                detail=m.detail,
                found_in_pages=m.found_in_pages
            )
            for m in shown
        ]
    )


@app.get("/validation-report.csv")
def get_validation_report_csv():
    """Full mismatch list as CSV."""
    report = _get_report()
    return Response(
        content=export_report_as_csv(report).encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="ghareeb-validation.csv"'}
    )


@app.get("/audit", response_model=AuditSummaryResponse)
def get_audit():
    """Run the global page audit and return its summary."""
    loaded_pages, loaded_index = _require_data()
    result = run_global_audit(loaded_pages, loaded_index, overrides)
    summary = get_audit_summary(result)
    return AuditSummaryResponse(
        health_score=summary.health_score,
        critical_issues=summary.critical_issues,
        warning_issues=summary.warning_issues,
        info_issues=summary.info_issues,
        top_issue_types=[IssueTypeCount(**item) for item in summary.top_issue_types],
        pages_with_issues=len(result.pages_with_issues),
        total_pages=result.total_pages
    )


# Development server function
def run_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run the FastAPI server."""
    uvicorn.run(
        "quran_ghareeb.fastapi_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    run_server(host=settings.host, port=settings.port)
