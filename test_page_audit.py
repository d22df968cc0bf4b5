import json
import os
import sys
import unittest
from unittest.mock import MagicMock, call

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from quran_ghareeb.ghareeb_index import GhareebIndex
from quran_ghareeb.ghareeb_typing import GhareebWord, QuranPage
from quran_ghareeb.overrides import HighlightOverride, OverrideLayer
from quran_ghareeb.page_audit import (
    AuditIssue,
    AuditIssueType,
    GlobalAuditResult,
    PageAuditResult,
    PageAuditStats,
    RendererType,
    Severity,
    audit_page,
    export_audit_results,
    get_audit_summary,
    is_stopword,
    run_global_audit,
)


def make_word(text, key, meaning="معنى", page=2):
    return GhareebWord(
        page_number=page,
        word_text=text,
        meaning=meaning,
        surah_name="البقرة",
        surah_number=2,
        verse_number=2,
        word_index=0,
        order=0,
        unique_key=key,
    )


def issue_types(result):
    return [issue.type for issue in result.issues]


class TestStopwords(unittest.TestCase):
    def test_particles_and_short_words(self):
        self.assertTrue(is_stopword("مِنۡ"))
        self.assertTrue(is_stopword("ٱلَّذِينَ"))
        self.assertTrue(is_stopword("إِلَى"))
        self.assertTrue(is_stopword("هُم"))

    def test_content_word(self):
        self.assertFalse(is_stopword("ٱلۡمَغۡضُوبِ"))


class TestAuditPage(unittest.TestCase):
    def test_clean_page(self):
        word = make_word("رَيۡبَۛ", "2_2_0")
        page = QuranPage(page_number=2, text="ذَٰلِكَ ٱلۡكِتَٰبُ لَا رَيۡبَۛ فِيهِۛ")
        result = audit_page(page, [word], [word])

        self.assertEqual(result.issues, [])
        self.assertEqual(result.stats.renderer_type, RendererType.WORD_SPANS)
        self.assertEqual(result.stats.tokens_count, 5)
        self.assertEqual(result.stats.matched_count, 1)

    def test_plain_text_fallback_and_unmatched(self):
        words = [make_word("رَيۡبَۛ", "2_2_0"), make_word("ٱلۡكِتَٰبُ", "2_2_1")]
        page = QuranPage(page_number=2, text="الٓمٓ")
        result = audit_page(page, words, [])

        types = issue_types(result)
        self.assertIn(AuditIssueType.PLAIN_TEXT_FALLBACK, types)
        self.assertEqual(types.count(AuditIssueType.UNMATCHED_GHAREEB), 2)
        self.assertEqual(result.stats.unmatched_count, 2)
        self.assertEqual(result.stats.renderer_type, RendererType.PLAIN_TEXT)

    def test_zero_tokens(self):
        page = QuranPage(page_number=2, text="سُورَةُ البقرة")
        result = audit_page(page, [], [])
        self.assertEqual(issue_types(result), [AuditIssueType.ZERO_TOKENS])
        self.assertEqual(result.issues[0].severity, Severity.ERROR)

    def test_word_level_issues(self):
        empty = make_word("﴿٥﴾", "2_5_0")
        no_meaning = make_word("ٱلۡمُفۡلِحُونَ", "2_5_1", meaning="")
        particle = make_word("مِنۡ", "2_5_2")
        page = QuranPage(page_number=2, text="وَأُوْلَٰٓئِكَ هُمُ ٱلۡمُفۡلِحُونَ مِنۡ")
        words = [empty, no_meaning, particle]
        result = audit_page(page, words, words)

        types = issue_types(result)
        self.assertIn(AuditIssueType.EMPTY_NORMALIZED, types)
        self.assertIn(AuditIssueType.MISSING_MEANING, types)
        self.assertIn(AuditIssueType.STOPWORD_HIGHLIGHTED, types)
        self.assertEqual(result.stats.meanings_missing, 1)

    def test_override_issues(self):
        overrides = OverrideLayer([HighlightOverride(
            position_key="2_0_3",
            identity_key="2_9_0",
            word_text="يُخَٰدِعُونَ",
            highlight=True,
            page_number=2,
        )])
        page = QuranPage(page_number=2, text="ذَٰلِكَ ٱلۡكِتَٰبُ")
        result = audit_page(page, [], [], overrides)

        self.assertEqual(
            issue_types(result),
            [AuditIssueType.HIGHLIGHT_NO_MEANING, AuditIssueType.STALE_OVERRIDE],
        )


class TestGlobalAudit(unittest.TestCase):
    def test_run_over_corpus(self):
        index = GhareebIndex({
            1: [make_word("ٱلۡحَمۡدُ", "1_2_0", page=1)],
            2: [make_word("ٱلزَّقُّومِ", "44_43_0", page=2)],
        })
        pages = [
            QuranPage(page_number=1, text="ٱلۡحَمۡدُ لِلَّهِ رَبِّ ٱلۡعَٰلَمِينَ"),
            QuranPage(page_number=2, text="ذَٰلِكَ ٱلۡكِتَٰبُ لَا رَيۡبَۛ فِيهِۛ"),
        ]
        progress = MagicMock()
        result = run_global_audit(pages, index, on_progress=progress)

        self.assertEqual(result.total_pages, 2)
        self.assertEqual(result.pages_with_issues, [2])
        self.assertEqual(result.issues_by_type["UNMATCHED_GHAREEB"], 1)
        self.assertEqual(result.issues_by_type["PLAIN_TEXT_FALLBACK"], 1)
        self.assertEqual(result.issues_by_type["ZERO_TOKENS"], 0)
        progress.assert_has_calls([call(1, 2), call(2, 2)])

    def test_summary_health_score(self):
        issues = [
            AuditIssue(AuditIssueType.ZERO_TOKENS, 1, Severity.ERROR, "x"),
            AuditIssue(AuditIssueType.UNMATCHED_GHAREEB, 1, Severity.WARNING, "y"),
            AuditIssue(AuditIssueType.STALE_OVERRIDE, 1, Severity.INFO, "z"),
        ]
        result = GlobalAuditResult(
            total_pages=1,
            scanned_pages=1,
            total_issues=3,
            issues_by_type={"ZERO_TOKENS": 1, "UNMATCHED_GHAREEB": 1, "STALE_OVERRIDE": 1, "MISSING_MEANING": 0},
            pages_with_issues=[1],
            page_results=[PageAuditResult(1, issues, PageAuditStats(0, 0, 0, 0, 0, RendererType.PLAIN_TEXT))],
            timestamp="2024-01-01T00:00:00+00:00",
        )
        summary = get_audit_summary(result)

        # 100 - (5 + 2 + 1) / 10 * 100
        self.assertEqual(summary.health_score, 20)
        self.assertEqual((summary.critical_issues, summary.warning_issues, summary.info_issues), (1, 1, 1))
        self.assertEqual(len(summary.top_issue_types), 3)

    def test_summary_clamped_at_zero(self):
        issues = [AuditIssue(AuditIssueType.ZERO_TOKENS, 1, Severity.ERROR, "x")] * 5
        result = GlobalAuditResult(1, 1, 5, {"ZERO_TOKENS": 5}, [1], [
            PageAuditResult(1, issues, PageAuditStats(0, 0, 0, 0, 0, RendererType.PLAIN_TEXT))
        ], "")
        self.assertEqual(get_audit_summary(result).health_score, 0)

    def test_export_has_header(self):
        result = run_global_audit([QuranPage(page_number=1, text="قُلۡ هُوَ ٱللَّهُ أَحَدٌ")], GhareebIndex({}))
        data = json.loads(export_audit_results(result))

        self.assertEqual(data["version"], "1.0")
        self.assertEqual(data["type"], "global-audit-report")
        self.assertEqual(data["page_results"][0]["stats"]["renderer_type"], "PLAIN_TEXT")


if __name__ == '__main__':
    unittest.main()
