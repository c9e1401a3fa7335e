import sys
import unittest
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from chartprep.settings import ChartprepSettings
from chartprep.structure import (
    build_generic_table,
    build_header_names,
    detect_header_row,
    determine_expected_column_count,
    process_raw_table,
)

REPORT_ROWS = [
    ["Quarterly Sales Report"],
    ["Prepared by Finance"],
    ["Region", "Month", "Revenue"],
    ["North", "Jan", "1,200"],
    ["South", "Feb", "900"],
    ["North", "Mar", "1,500"],
    ["Total", "", "3,600"],
]


class HeaderDetectionTests(unittest.TestCase):
    def test_skips_title_rows(self):
        index, cells = detect_header_row(REPORT_ROWS)
        self.assertEqual(index, 2)
        self.assertEqual(cells, ["Region", "Month", "Revenue"])

    def test_detection_is_deterministic(self):
        self.assertEqual(detect_header_row(REPORT_ROWS), detect_header_row(REPORT_ROWS))

    def test_falls_back_to_first_non_empty_row(self):
        rows = [[], ["1", "2"], ["3", "4"]]
        index, cells = detect_header_row(rows)
        self.assertEqual(index, 1)
        self.assertEqual(cells, ["1", "2"])

    def test_scan_limit_comes_from_settings(self):
        rows = [["x"]] * 3 + [["a", "b"], ["1", "2"], ["3", "4"], ["5", "6"]]
        index, _ = detect_header_row(rows, ChartprepSettings(max_header_scan_rows=2))
        # Nothing qualifies within two rows, so the first non-empty row wins
        self.assertEqual(index, 0)

    def test_expected_column_count_prefers_wider_on_tie(self):
        rows = [["a"], ["a", "b"], ["c"], ["c", "d"]]
        self.assertEqual(determine_expected_column_count(rows), 2)


class HeaderNameTests(unittest.TestCase):
    def test_names_are_distinct_and_filled(self):
        names = build_header_names(["Name", "name", "", "  Net   Amount "])
        self.assertEqual(names, ["Name", "name (2)", "Column 3", "Net Amount"])
        self.assertEqual(len({n.lower() for n in names}), len(names))

    def test_pads_to_expected_length(self):
        self.assertEqual(build_header_names(["A"], 3), ["A", "Column 2", "Column 3"])


class ProcessRawTableTests(unittest.TestCase):
    def test_total_row_is_original_only(self):
        table = process_raw_table(REPORT_ROWS)
        self.assertEqual(list(table.cleaned.columns), ["Region", "Month", "Revenue"])
        self.assertEqual(len(table.original), 4)
        self.assertEqual(len(table.cleaned), 3)
        self.assertNotIn("Total", table.cleaned["Region"].tolist())
        self.assertIn("Total", table.original["Region"].tolist())
        self.assertEqual(table.metadata.removed_summary_row_count, 1)

    def test_row_counts_are_bounded(self):
        table = process_raw_table(REPORT_ROWS)
        self.assertLessEqual(len(table.cleaned), len(table.original))
        self.assertLessEqual(len(table.original), len(REPORT_ROWS))

    def test_leading_rows_and_title(self):
        meta = process_raw_table(REPORT_ROWS).metadata
        self.assertEqual(meta.detected_header_index, 2)
        self.assertEqual(meta.report_title, "Quarterly Sales Report")
        self.assertEqual(meta.total_leading_rows, 2)
        self.assertEqual(meta.header_mapping["column_1"], "Region")

    def test_formula_cells_are_neutralised(self):
        rows = [["Item", "Amount"], ["=HYPERLINK(1)", "5"], ["Pens", "3"]]
        table = process_raw_table(rows)
        self.assertEqual(table.cleaned["Item"].tolist()[0], "'=HYPERLINK(1)")

    def test_empty_input(self):
        table = process_raw_table([])
        self.assertTrue(table.cleaned.empty)
        self.assertIsNone(table.metadata.detected_header_index)

    def test_generic_table_keeps_every_non_empty_row(self):
        generic = build_generic_table([["a"], [], ["b", "c"]])
        self.assertEqual(list(generic.columns), ["column_1", "column_2"])
        self.assertEqual(generic.values.tolist(), [["a", ""], ["b", "c"]])


if __name__ == "__main__":
    unittest.main()
