import unittest

from subtitle_agent.agents import parser
from subtitle_agent.agents.parser import (
    DUPLICATE_INDEX,
    EMBEDDED_MARKER,
    EXTRA_INDEX,
    MISSING_INDEX,
    parse_response,
    parse_terminology,
    reconcile_indices,
)
from subtitle_agent.agents.prompts import TERMINOLOGY_SENTINEL


def render(translations):
    return "\n".join(f"[{index}] {text}" for index, text in translations.items())


class ParseResponseTests(unittest.TestCase):
    def test_round_trip_through_minimal_renderer(self):
        translations = {
            1: "你好",
            2: "第一句。第二句！",
            5: "换行\n的内容",
            40: "It's [not] a marker",
        }
        result = parse_response(render(translations))
        self.assertEqual(result.translations, translations)
        self.assertEqual(result.anomalies, [])
        self.assertEqual(result.glossary_delta, {})

    def test_never_raises_on_odd_input(self):
        samples = [
            "",
            "   \n\n",
            "no markers at all",
            TERMINOLOGY_SENTINEL,
            TERMINOLOGY_SENTINEL + '\n{"Rome": "罗马"}',
            "[",
            "[]",
            "[abc] text",
            "[99999999999999999999] huge",
            TERMINOLOGY_SENTINEL + "\n{not json",
            None,
            12345,
        ]
        for sample in samples:
            result = parse_response(sample)
            self.assertIsInstance(result.translations, dict)
            self.assertIsInstance(result.glossary_delta, dict)

    def test_pure_terminology_block(self):
        result = parse_response(TERMINOLOGY_SENTINEL + '\n{"Rome": "罗马"}')
        self.assertEqual(result.translations, {})
        self.assertEqual(result.glossary_delta, {"Rome": "罗马"})

    def test_multiline_content_and_preamble(self):
        raw = "Here are the translations:\n\n[1] 第一行\n继续第一行\n\n[2]  两个空格\n"
        result = parse_response(raw)
        self.assertEqual(result.translations, {1: "第一行\n继续第一行", 2: "两个空格"})

    def test_duplicate_index_last_write_wins(self):
        result = parse_response("[5] A\n[6] C\n[5] B")
        self.assertEqual(result.translations[5], "B")
        kinds = [(a.kind, a.index) for a in result.anomalies]
        self.assertEqual(kinds, [(DUPLICATE_INDEX, 5)])

    def test_embedded_marker_is_flagged_and_kept(self):
        result = parse_response("[7] 第七句 [8] 第八句\n[9] 第九句")
        self.assertEqual(result.translations[7], "第七句 [8] 第八句")
        self.assertEqual(result.translations[8], "第八句")
        self.assertEqual(result.translations[9], "第九句")
        embedded = [a for a in result.anomalies if a.kind == EMBEDDED_MARKER]
        self.assertEqual(len(embedded), 1)
        self.assertEqual(embedded[0].index, 7)
        self.assertEqual(embedded[0].content, "第七句 [8] 第八句")

    def test_two_markers_on_one_line_both_captured(self):
        result = parse_response("[1] one [2] two\n[3] three")
        self.assertEqual(result.translations[2], "two")
        self.assertEqual(result.translations[3], "three")
        self.assertEqual(reconcile_indices([1, 2, 3], result.translations), [])

    def test_inline_marker_does_not_override_anchored_index(self):
        result = parse_response("[1] room [2] is here\n[2] 第二句")
        self.assertEqual(result.translations[2], "第二句")
        self.assertEqual([a.kind for a in result.anomalies], [EMBEDDED_MARKER])

    def test_echoed_section_headers_are_dropped(self):
        raw = (
            "### TRANSLATE (2 segments)\n"
            "[1] 一\n"
            "[2] 二\n\n"
            "### FOLLOWING CONTEXT (read only, do not translate)\n"
        )
        result = parse_response(raw)
        self.assertEqual(result.translations, {1: "一", 2: "二"})
        self.assertEqual(result.anomalies, [])

    def test_preceding_context_header_does_not_leak(self):
        raw = "[4] 四\n### PRECEDING CONTEXT (read only, do not translate)\n[5] 五"
        self.assertEqual(parse_response(raw).translations, {4: "四", 5: "五"})

    def test_echoed_context_line_does_not_leak_into_previous_segment(self):
        result = parse_response("[10] 十\n[CONTEXT] [11] 十一")
        self.assertEqual(result.translations[10], "十")
        self.assertEqual(result.translations[11], "十一")

    def test_indented_marker_still_anchors(self):
        result = parse_response("  [1] one\n\t[2] two")
        self.assertEqual(result.translations, {1: "one", 2: "two"})

    def test_terminology_region_is_separated(self):
        raw = "[1] 我在罗马\n" + TERMINOLOGY_SENTINEL + '\n```json\n{"Rome": "罗马", "Marcus": "马库斯"}\n```\n'
        result = parse_response(raw)
        self.assertEqual(result.translations, {1: "我在罗马"})
        self.assertEqual(result.glossary_delta, {"Rome": "罗马", "Marcus": "马库斯"})

    def test_markers_after_sentinel_are_not_translations(self):
        result = parse_response("[1] a\n" + TERMINOLOGY_SENTINEL + '\n{"[2] b": "x"}')
        self.assertEqual(result.translations, {1: "a"})


class TerminologyTests(unittest.TestCase):
    def test_malformed_entries_are_skipped(self):
        region = '{"Rome": "罗马", "Bad": 3, "": "empty", "Blank": "  ", "Paris": "巴黎"}'
        self.assertEqual(parse_terminology(region), {"Rome": "罗马", "Paris": "巴黎"})

    def test_damaged_object_salvages_good_pairs(self):
        region = '{"Rome": "罗马", "Broken: "x", "Paris": "巴黎",'
        self.assertEqual(parse_terminology(region), {"Rome": "罗马", "Paris": "巴黎"})

    def test_escaped_quotes(self):
        region = '{"The \\"Boss\\"": "老大"'
        self.assertEqual(parse_terminology(region), {'The "Boss"': "老大"})

    def test_empty_region(self):
        self.assertEqual(parse_terminology(""), {})
        self.assertEqual(parse_terminology("{}"), {})
        self.assertEqual(parse_terminology("none found"), {})


class ReconcileTests(unittest.TestCase):
    def test_missing_and_extra(self):
        anomalies = reconcile_indices([1, 2, 3], {1: "a", 3: "c", 4: "d"})
        self.assertEqual([(a.kind, a.index) for a in anomalies], [(MISSING_INDEX, 2), (EXTRA_INDEX, 4)])

    def test_blank_content_counts_as_missing(self):
        anomalies = reconcile_indices([1, 2], {1: "a", 2: "   "})
        self.assertEqual([(a.kind, a.index) for a in anomalies], [(MISSING_INDEX, 2)])

    def test_clean_response(self):
        self.assertEqual(reconcile_indices([1, 2], {1: "a", 2: "b"}), [])

    def test_describe_is_readable(self):
        anomaly = parser.Anomaly(EMBEDDED_MARKER, 7, "x" * 100)
        text = anomaly.describe()
        self.assertTrue(text.startswith("embedded-marker [7]"))
        self.assertIn("...", text)


if __name__ == "__main__":
    unittest.main()
