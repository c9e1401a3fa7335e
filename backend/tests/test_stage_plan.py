import sys
import unittest
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from chartprep.models import StagePlan
from chartprep.stage_plan import (
    derive_stage_plan_hints,
    execute_stage_plan,
    extract_row_indices,
    is_metadata_row,
)
from chartprep.structure import build_generic_table, process_raw_table

INCOME_STATEMENT_ROWS = [
    ["Acme Corp Income Statement"],
    ["Reporting Date: 01/01/2024 Through 12/31/2024"],
    ["Code", "Description", "Project A", "Project B", "Total"],
    ["4000", "Revenue", "100", "200", "300"],
    ["5000", "Expenses", "50", "", "50"],
]

UNPIVOT_PLAN = {
    "titleExtraction": {"goal": "Remove rows 0-1 containing the report title and reporting period."},
    "headerResolution": {"goal": "Header is row 2."},
    "dataNormalization": {
        "goal": "Unpivot the project columns into Project and Amount, and exclude total column.",
    },
}


class HintExtractionTests(unittest.TestCase):
    def test_row_ranges_are_expanded(self):
        self.assertEqual(extract_row_indices("rows 2-4 and row 7"), [2, 3, 4, 7])
        self.assertEqual(extract_row_indices("rows 1 and 3"), [1, 2, 3])
        self.assertEqual(extract_row_indices("nothing here"), [])

    def test_hints_from_camel_case_plan(self):
        hints = derive_stage_plan_hints(UNPIVOT_PLAN)
        self.assertEqual(hints.metadata_row_count, 2)
        self.assertEqual(hints.header_row_count, 1)
        self.assertTrue(hints.requires_unpivot)
        self.assertTrue(hints.exclude_totals)
        self.assertEqual(hints.pivot_field_label, "Project")
        self.assertEqual(hints.value_field_label, "Amount")

    def test_pivot_range_and_identifier_labels(self):
        plan = StagePlan.model_validate({
            "dataNormalization": {
                "goal": "Melt column_3 through column_14.",
                "heuristics": ["Keep account code", "Keep account description", "Keep payee name"],
            },
        })
        hints = derive_stage_plan_hints(plan)
        self.assertEqual((hints.pivot_range.start, hints.pivot_range.end), (3, 14))
        self.assertEqual(hints.identifier_labels, ["Account_Code", "Account_Description"])

    def test_empty_plan_has_no_hints(self):
        hints = derive_stage_plan_hints(None)
        self.assertIsNone(hints.metadata_row_count)
        self.assertFalse(hints.requires_unpivot)

    def test_metadata_row_shape(self):
        self.assertTrue(is_metadata_row(["Prepared by Finance", ""]))
        self.assertFalse(is_metadata_row(["Revenue", "100"]))
        self.assertFalse(is_metadata_row(["a", "b", "c", "d"]))


class UnpivotPipelineTests(unittest.TestCase):
    def setUp(self):
        self.generic = build_generic_table(INCOME_STATEMENT_ROWS)
        self.result = execute_stage_plan(self.generic, stage_plan=UNPIVOT_PLAN)

    def test_produces_tidy_rows(self):
        self.assertTrue(self.result.applied)
        records = self.result.data.to_dict(orient="records")
        self.assertEqual(self.result.row_count, 3)
        self.assertEqual(
            [(r["Code"], r["Description"], r["Project"], r["Amount"]) for r in records],
            [
                ("4000", "Revenue", "Project A", 100.0),
                ("4000", "Revenue", "Project B", 200.0),
                ("5000", "Expenses", "Project A", 50.0),
            ],
        )

    def test_total_column_is_excluded(self):
        self.assertNotIn("Total", set(self.result.data["Project"]))

    def test_reporting_period_is_attached(self):
        self.assertEqual(self.result.metadata.reporting_period_start, "01/01/2024")
        self.assertEqual(self.result.metadata.reporting_period_end, "12/31/2024")
        self.assertEqual(set(self.result.data["Reporting_Period_End"]), {"12/31/2024"})

    def test_every_stage_logs_progress_then_ready(self):
        statuses = [(log.stage, log.status) for log in self.result.logs]
        self.assertEqual(statuses, [
            ("titleExtraction", "in_progress"),
            ("titleExtraction", "ready"),
            ("headerResolution", "in_progress"),
            ("headerResolution", "ready"),
            ("dataNormalization", "in_progress"),
            ("dataNormalization", "ready"),
        ])
        self.assertEqual(self.result.stage_plan.data_normalization.status, "ready")

    def test_input_plan_is_not_mutated(self):
        plan = StagePlan.model_validate(UNPIVOT_PLAN)
        execute_stage_plan(self.generic, stage_plan=plan)
        self.assertEqual(plan.title_extraction.status, "pending")
        self.assertIsNone(plan.title_extraction.log_message)


class TidyPipelineTests(unittest.TestCase):
    def test_header_hint_and_summary_removal(self):
        rows = [
            ["Quarterly Sales"],
            ["Region", "Units"],
            ["North", "10"],
            ["South", "20"],
            ["Total", "30"],
        ]
        table = process_raw_table(rows)
        plan = {
            "titleExtraction": {"goal": "Title is in row 0."},
            "headerResolution": {"goal": "Header is row 1."},
        }
        result = execute_stage_plan(table.generic, table.metadata, plan)

        self.assertTrue(result.applied)
        self.assertEqual(list(result.data.columns), ["Region", "Units"])
        self.assertEqual(result.data["Region"].tolist(), ["North", "South"])
        self.assertEqual(result.original_row_count, 5)
        self.assertEqual(result.summary, "Rows 5 → 2 · summary rows removed 1")
        self.assertEqual(result.metadata.report_title, "Quarterly Sales")

    def test_all_metadata_rows_abort(self):
        generic = build_generic_table([["Title"], ["Prepared by Finance"]])
        result = execute_stage_plan(generic)
        self.assertFalse(result.applied)
        self.assertIn("metadata", result.reason)
        self.assertEqual(result.logs[-1].status, "abort")

    def test_zero_rows_after_cleaning_abort(self):
        generic = build_generic_table([["Sales Export"], ["Item", "Amount"], ["Total", "5"]])
        plan = {
            "titleExtraction": {"goal": "Title is row 0."},
            "headerResolution": {"goal": "Header is row 1."},
        }
        result = execute_stage_plan(generic, stage_plan=plan)
        self.assertFalse(result.applied)
        self.assertEqual(result.reason, "Data normalization produced zero rows.")

    def test_unpivot_without_numbers_aborts(self):
        generic = build_generic_table([
            ["Code", "Name", "Jan", "Feb"],
            ["1", "a", "x", "y"],
        ])
        plan = {
            "titleExtraction": {"goal": "No title rows."},
            "headerResolution": {"goal": "Header is row 0."},
            "dataNormalization": {"goal": "Unpivot month columns."},
        }
        result = execute_stage_plan(generic, stage_plan=plan)
        self.assertFalse(result.applied)
        self.assertIn("zero rows", result.reason)

    def test_empty_table(self):
        result = execute_stage_plan(build_generic_table([]))
        self.assertFalse(result.applied)
        self.assertEqual(result.reason, "No data available")


if __name__ == "__main__":
    unittest.main()
