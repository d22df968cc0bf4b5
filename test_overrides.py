import json
import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from quran_ghareeb.ghareeb_typing import GhareebWord, MeaningSource
from quran_ghareeb.overrides import (
    HighlightOverride,
    OverrideLayer,
    make_identity_key,
    make_position_key,
    resolve_meaning,
)


def make_override(position="583_5_3", identity="78_1_2", highlight=True, meaning=None, page=583):
    return HighlightOverride(
        position_key=position,
        identity_key=identity,
        word_text="يَتَسَآءَلُونَ",
        highlight=highlight,
        page_number=page,
        meaning=meaning,
    )


def make_word(meaning="يسأل بعضهم بعضا", key="78_1_0", word_index=2):
    return GhareebWord(
        page_number=582,
        word_text="يَتَسَآءَلُونَ",
        meaning=meaning,
        surah_name="النبأ",
        surah_number=78,
        verse_number=1,
        word_index=word_index,
        order=0,
        unique_key=key,
    )


class TestKeys(unittest.TestCase):
    def test_key_formats(self):
        self.assertEqual(make_position_key(583, 5, 3), "583_5_3")
        self.assertEqual(make_identity_key(78, 1, 2), "78_1_2")


class TestOverrideLayer(unittest.TestCase):
    def setUp(self):
        self.layer = OverrideLayer()

    def test_set_replaces_same_position(self):
        self.layer.set_override(make_override(highlight=True))
        stored = self.layer.set_override(make_override(highlight=False))

        self.assertEqual(len(self.layer), 1)
        self.assertFalse(self.layer.get_override("583_5_3").highlight)
        self.assertTrue(stored.created_at)

    def test_should_highlight_by_position_or_identity(self):
        self.layer.set_override(make_override(highlight=False))

        self.assertFalse(self.layer.should_highlight("583_5_3", "x", True))
        self.assertFalse(self.layer.should_highlight("x", "78_1_2", True))
        self.assertTrue(self.layer.should_highlight("x", "y", True))

    def test_queries_and_removal(self):
        self.layer.set_override(make_override())
        self.layer.set_override(make_override(position="10_1_1", identity="2_5_0", page=10))

        self.assertEqual(self.layer.get_by_identity("2_5_0").page_number, 10)
        self.assertEqual(len(self.layer.for_page(583)), 1)

        self.layer.remove_override("10_1_1")
        self.assertIsNone(self.layer.get_override("10_1_1"))

        self.layer.clear_page(583)
        self.assertEqual(len(self.layer), 0)

    def test_clear_all_resets_version(self):
        self.layer.set_override(make_override())
        self.assertGreater(self.layer.version, 0)
        self.layer.clear_all()
        self.assertEqual(self.layer.version, 0)
        self.assertEqual(list(self.layer), [])

    def test_export_then_import(self):
        self.layer.set_override(make_override(meaning="يتساءل"))
        exported = self.layer.export_json()
        self.assertEqual(json.loads(exported)["type"], "highlight-overrides")

        other = OverrideLayer()
        self.assertEqual(other.import_json(exported), (True, 1))
        self.assertEqual(other.get_override("583_5_3").meaning, "يتساءل")

    def test_import_accepts_camel_case(self):
        payload = json.dumps({"overrides": [{
            "positionKey": "1_2_3",
            "identityKey": "1_1_0",
            "wordText": "ٱلرَّحۡمَٰنِ",
            "highlight": True,
            "pageNumber": 1,
            "createdAt": "2024-01-01T00:00:00Z",
        }]})
        self.assertEqual(self.layer.import_json(payload), (True, 1))
        self.assertEqual(self.layer.get_override("1_2_3").page_number, 1)

    def test_bad_imports_rejected(self):
        self.assertEqual(self.layer.import_json("not json"), (False, 0))
        self.assertEqual(self.layer.import_json('{"items": []}'), (False, 0))
        self.assertEqual(self.layer.import_json('{"overrides": [{"highlight": true}]}'), (False, 0))
        self.assertEqual(len(self.layer), 0)


class TestResolveMeaning(unittest.TestCase):
    def test_override_meaning_wins(self):
        layer = OverrideLayer([make_override(identity="78_1_0", meaning="معنى مصحح")])
        self.assertEqual(resolve_meaning(make_word(), layer), ("معنى مصحح", MeaningSource.OVERRIDE))

    def test_override_found_by_word_index_identity(self):
        layer = OverrideLayer([make_override(identity="78_1_2", meaning="معنى مصحح")])
        self.assertEqual(resolve_meaning(make_word(), layer)[1], MeaningSource.OVERRIDE)

    def test_override_without_meaning_falls_back(self):
        layer = OverrideLayer([make_override(identity="78_1_0", meaning="  ")])
        self.assertEqual(
            resolve_meaning(make_word(), layer),
            ("يسأل بعضهم بعضا", MeaningSource.CANONICAL),
        )

    def test_no_meaning_anywhere(self):
        self.assertEqual(resolve_meaning(make_word(meaning="")), ("", MeaningSource.NONE))


if __name__ == '__main__':
    unittest.main()
