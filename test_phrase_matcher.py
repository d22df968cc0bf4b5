import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from quran_ghareeb.ghareeb_typing import GhareebWord, QuranPage
from quran_ghareeb.phrase_matcher import (
    is_surah_compatible,
    match_line,
    match_page,
    match_quran_page,
    prepare_candidates,
)


def make_word(text, key, surah_name="الفاتحة", page=1, meaning="معنى"):
    return GhareebWord(
        page_number=page,
        word_text=text,
        meaning=meaning,
        surah_name=surah_name,
        surah_number=1,
        verse_number=1,
        word_index=0,
        order=0,
        unique_key=key,
    )


class TestPrepareCandidates(unittest.TestCase):
    def test_longest_phrase_first_stable(self):
        candidates = prepare_candidates([
            make_word("ٱلدِّينِ", "a"),
            make_word("يَوۡمِ ٱلدِّينِ", "b"),
            make_word("مَٰلِكِ", "c"),
        ])
        self.assertEqual([c.key for c in candidates], ["b", "a", "c"])


class TestSurahCompatibility(unittest.TestCase):
    def test_empty_context_accepts_everything(self):
        self.assertTrue(is_surah_compatible("البقره", ""))

    def test_equal_or_contained(self):
        self.assertTrue(is_surah_compatible("البقره", "البقره"))
        self.assertTrue(is_surah_compatible("سورهالبقره", "البقره"))
        self.assertFalse(is_surah_compatible("الفاتحه", "البقره"))


class TestMatchLine(unittest.TestCase):
    def test_multi_word_phrase_wins_over_contained_word(self):
        line = "مَٰلِكِ يَوۡمِ ٱلدِّينِ ٤"
        candidates = prepare_candidates([
            make_word("ٱلدِّينِ", "short"),
            make_word("يَوۡمِ ٱلدِّينِ", "long"),
        ])
        matches, used = match_line(line, candidates)

        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0].entry.unique_key, "long")
        self.assertEqual(line[matches[0].start_idx:matches[0].end_idx], "يَوۡمِ ٱلدِّينِ")
        self.assertEqual(used, frozenset({"long"}))

    def test_matches_sorted_and_never_overlap(self):
        line = "صِرَٰطَ ٱلَّذِينَ أَنۡعَمۡتَ عَلَيۡهِمۡ غَيۡرِ ٱلۡمَغۡضُوبِ عَلَيۡهِمۡ"
        candidates = prepare_candidates([
            make_word("ٱلۡمَغۡضُوبِ", "1_7_1"),
            make_word("صِرَٰطَ", "1_7_0"),
            make_word("أَنۡعَمۡتَ", "1_7_2"),
        ])
        matches, _ = match_line(line, candidates)

        self.assertEqual([m.entry.unique_key for m in matches], ["1_7_0", "1_7_2", "1_7_1"])
        for a, b in zip(matches, matches[1:]):
            self.assertLessEqual(a.end_idx, b.start_idx)

    def test_used_keys_skipped_and_not_mutated(self):
        line = "ٱلۡحَمۡدُ لِلَّهِ رَبِّ ٱلۡعَٰلَمِينَ"
        candidates = prepare_candidates([make_word("ٱلۡعَٰلَمِينَ", "k")])
        used = frozenset({"k"})

        matches, new_used = match_line(line, candidates, used_keys=used)
        self.assertEqual(matches, ())
        self.assertIs(new_used, used)

        fresh = frozenset()
        matches, new_used = match_line(line, candidates, used_keys=fresh)
        self.assertEqual(len(matches), 1)
        self.assertEqual(fresh, frozenset())
        self.assertEqual(new_used, frozenset({"k"}))

    def test_incompatible_surah_rejected(self):
        line = "ذَٰلِكَ ٱلۡكِتَٰبُ"
        candidates = prepare_candidates([make_word("ٱلۡكِتَٰبُ", "k", surah_name="آل عمران")])
        matches, _ = match_line(line, candidates, surah_context="البقرة")
        self.assertEqual(matches, ())

        matches, _ = match_line(line, candidates, surah_context="")
        self.assertEqual(len(matches), 1)

    def test_whole_token_hit_taken_before_substring_hit(self):
        line = "وَسَعَىٰ وَٰسِعٌ"
        candidates = prepare_candidates([make_word("وَٰسِعٌ", "k")])
        matches, _ = match_line(line, candidates)
        self.assertEqual(line[matches[0].start_idx:matches[0].end_idx], "وَٰسِعٌ")

    def test_single_letter_candidate_never_attempted(self):
        candidates = prepare_candidates([make_word("وَ", "k")])
        matches, used = match_line("وَٱلضُّحَىٰ", candidates)
        self.assertEqual(matches, ())
        self.assertEqual(used, frozenset())


class TestMatchPage(unittest.TestCase):
    def test_header_updates_context_and_is_never_matched(self):
        text = "\n".join([
            "وَأُوْلَٰٓئِكَ هُمُ ٱلۡمُفۡلِحُونَ",
            "سُورَةُ البقرة",
            "الٓمٓ ذَٰلِكَ ٱلۡكِتَٰبُ لَا رَيۡبَۛ فِيهِۛ",
        ])
        candidates = prepare_candidates([
            make_word("ٱلۡمُفۡلِحُونَ", "fatiha", surah_name="الفاتحة"),
            make_word("البقرة", "header-word", surah_name="البقرة"),
            make_word("رَيۡبَۛ", "baqara", surah_name="البقرة"),
        ])
        lines = match_page(text, candidates, page_number=2, opening_surah="الفاتحة")

        self.assertEqual([l.line_index for l in lines], [0, 2])
        self.assertEqual(lines[0].matches[0].entry.unique_key, "fatiha")
        self.assertEqual(lines[1].surah_context, "البقرة")
        self.assertEqual([m.entry.unique_key for m in lines[1].matches], ["baqara"])

    def test_key_highlighted_at_most_once_per_page(self):
        text = "فَبِأَيِّ ءَالَآءِ رَبِّكُمَا تُكَذِّبَانِ\nفَبِأَيِّ ءَالَآءِ رَبِّكُمَا تُكَذِّبَانِ"
        candidates = prepare_candidates([make_word("تُكَذِّبَانِ", "55_13_0", surah_name="الرحمن")])
        lines = match_page(text, candidates, page_number=532)

        keys = [m.entry.unique_key for line in lines for m in line.matches]
        self.assertEqual(keys, ["55_13_0"])

    def test_whole_word_preferred_over_earlier_partial_hit(self):
        # "وسع" is also a prefix of "وسعي" on the first line
        text = "وَسَعَىٰ فِي خَرَابِهَآ\nإِنَّ ٱللَّهَ وَٰسِعٌ عَلِيمٞ"
        candidates = prepare_candidates([make_word("وَٰسِعٌ", "2_115_0", surah_name="البقرة")])
        lines = match_page(text, candidates, page_number=18)

        self.assertEqual([l.line_index for l in lines], [1])
        match = lines[0].matches[0]
        self.assertEqual(lines[0].line[match.start_idx:match.end_idx], "وَٰسِعٌ")

    def test_substring_hit_used_when_no_whole_word(self):
        text = "وَسَعَىٰ فِي خَرَابِهَآ"
        candidates = prepare_candidates([make_word("وَٰسِعٌ", "2_115_0", surah_name="البقرة")])
        lines = match_page(text, candidates, page_number=18)

        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].matches[0].start_idx, 0)

    def test_separator_line_skipped_except_first_page(self):
        bismillah = "بِسۡمِ ٱللَّهِ ٱلرَّحۡمَٰنِ ٱلرَّحِيمِ"
        candidates = prepare_candidates([make_word("ٱلرَّحِيمِ", "k")])

        self.assertEqual(match_page(bismillah, candidates, page_number=2), [])
        first = match_quran_page(QuranPage(page_number=1, text=bismillah), candidates)
        self.assertEqual(len(first), 1)


if __name__ == '__main__':
    unittest.main()
