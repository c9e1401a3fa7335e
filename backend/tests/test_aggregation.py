import sys
import unittest
from pathlib import Path

import pandas as pd

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from chartprep.aggregation import (
    OTHERS_LABEL,
    apply_top_n_with_others,
    build_display_rows,
    execute_plan,
    resolve_default_top_n,
    try_chronological_sort,
)
from chartprep.errors import PlanValidationError, ScatterAxisError, UnsupportedAggregationError
from chartprep.models import ROW_INDEX_AXIS, AnalysisPlan


def sales_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Region": ["North", "South", "North", "East", ""],
            "Revenue": ["1,200", "900", "1,500", "n/a", "50"],
            "Units": ["3", "2", "4", "1", "1"],
        },
        dtype=object,
    )


class ChronologicalSortTests(unittest.TestCase):
    def test_month_labels_with_short_years(self):
        labels = ["JAN/11", "MAY/10", "AUG/10", "OCT/10", "JUN/10", "NOV/10", "SEP/10",
                  "MAR/10", "APR/10", "JUL/10", "DEC/10", "JAN/10", "FEB/10"]
        rows = [{"Period": label, "value": i} for i, label in enumerate(labels)]
        ordered = try_chronological_sort(rows, "Period")
        self.assertEqual(
            [row["Period"] for row in ordered],
            ["JAN/10", "FEB/10", "MAR/10", "APR/10", "MAY/10", "JUN/10", "JUL/10",
             "AUG/10", "SEP/10", "OCT/10", "NOV/10", "DEC/10", "JAN/11"],
        )

    def test_quarter_labels_in_mixed_formats(self):
        rows = [{"Quarter": q} for q in ["FY24 Q1", "Q4 FY23", "Q2/23", "Q3 2022"]]
        ordered = try_chronological_sort(rows, "Quarter")
        self.assertEqual([row["Quarter"] for row in ordered], ["Q3 2022", "Q2/23", "Q4 FY23", "FY24 Q1"])

    def test_weekday_labels(self):
        rows = [{"Day": d} for d in ["Fri", "Mon", "Wed"]]
        self.assertEqual([row["Day"] for row in try_chronological_sort(rows, "Day")], ["Mon", "Wed", "Fri"])

    def test_non_time_labels_are_left_alone(self):
        rows = [{"Region": "North"}, {"Region": "South"}]
        self.assertIsNone(try_chronological_sort(rows, "Region"))


class DefaultAggregationTests(unittest.TestCase):
    def test_sum_sorted_by_value(self):
        plan = AnalysisPlan(chart_type="bar", aggregation="sum", group_by_column="Region", value_column="Revenue")
        rows, resolved = execute_plan(sales_frame(), plan)
        self.assertEqual(rows, [
            {"Region": "North", "Revenue": 2700.0},
            {"Region": "South", "Revenue": 900.0},
            {"Region": "", "Revenue": 50.0},
            {"Region": "East", "Revenue": 0.0},
        ])
        self.assertEqual(resolved.value_column, "Revenue")

    def test_count_ignores_value_column(self):
        plan = AnalysisPlan(chart_type="pie", aggregation="count", group_by_column="Region")
        rows, resolved = execute_plan(sales_frame(), plan)
        self.assertEqual(rows[0], {"Region": "North", "count": 2})
        self.assertEqual(resolved.value_column, "count")
        self.assertEqual(sum(row["count"] for row in rows), 5)

    def test_empty_keys_are_grouped_and_missing_cells_dropped(self):
        frame = pd.DataFrame({"R": ["A", "", "", "B", None], "V": ["1", "2", "3", "4", "5"]}, dtype=object)
        plan = AnalysisPlan(chart_type="bar", aggregation="sum", group_by_column="R", value_column="V")
        rows, _ = execute_plan(frame, plan)
        self.assertEqual(rows, [
            {"R": "", "V": 5.0},
            {"R": "B", "V": 4.0},
            {"R": "A", "V": 1.0},
        ])

    def test_iso_date_keys_beyond_timestamp_range_sort_last(self):
        frame = pd.DataFrame({"Day": ["2500-01-01", "2024-02-01", "2024-01-01"], "V": ["1", "2", "3"]}, dtype=object)
        plan = AnalysisPlan(chart_type="bar", aggregation="sum", group_by_column="Day", value_column="V")
        rows, _ = execute_plan(frame, plan)
        self.assertEqual([row["Day"] for row in rows], ["2024-01-01", "2024-02-01", "2500-01-01"])

    def test_avg(self):
        plan = AnalysisPlan(chart_type="bar", aggregation="avg", group_by_column="Region", value_column="Units")
        rows, _ = execute_plan(sales_frame(), plan)
        self.assertEqual(rows[0], {"Region": "North", "Units": 3.5})

    def test_chronological_groups_keep_time_order(self):
        frame = pd.DataFrame({"Month": ["Mar", "Jan", "Feb", "Jan"], "Sales": ["5", "1", "9", "2"]})
        plan = AnalysisPlan(chart_type="line", aggregation="sum", group_by_column="Month", value_column="Sales")
        rows, _ = execute_plan(frame, plan)
        self.assertEqual([row["Month"] for row in rows], ["Jan", "Feb", "Mar"])

    def test_accepts_camel_case_dict_and_leaves_plan_untouched(self):
        plan = {"chartType": "bar", "aggregation": "sum", "groupByColumn": "Region"}
        original = dict(plan)
        rows, resolved = execute_plan(sales_frame(), plan)
        self.assertEqual(plan, original)
        self.assertEqual(resolved.value_column, "value")
        self.assertEqual(rows[0], {"Region": "North", "value": 0.0})

    def test_unknown_group_column_returns_no_rows(self):
        plan = AnalysisPlan(chart_type="bar", aggregation="count", group_by_column="Missing")
        rows, _ = execute_plan(sales_frame(), plan)
        self.assertEqual(rows, [])

    def test_missing_group_by_is_rejected(self):
        with self.assertRaises(PlanValidationError):
            execute_plan(sales_frame(), AnalysisPlan(chart_type="bar", aggregation="sum"))

    def test_unsupported_aggregation(self):
        plan = AnalysisPlan(chart_type="bar", aggregation="median", group_by_column="Region")
        with self.assertRaises(UnsupportedAggregationError) as ctx:
            execute_plan(sales_frame(), plan)
        self.assertEqual(ctx.exception.aggregation, "median")


class ScatterTests(unittest.TestCase):
    def test_explicit_numeric_axes(self):
        plan = AnalysisPlan(chart_type="scatter", x_value_column="Units", y_value_column="Revenue")
        rows, resolved = execute_plan(sales_frame(), plan)
        self.assertEqual(rows[0], {"Units": 3.0, "Revenue": 1200.0})
        # "n/a" revenue is dropped
        self.assertEqual(len(rows), 4)
        self.assertFalse(resolved.x_uses_row_index or resolved.y_uses_row_index)

    def test_single_numeric_column_uses_row_index_for_one_axis(self):
        frame = pd.DataFrame({"Name": ["a", "b"], "Score": ["10", "20"]})
        rows, resolved = execute_plan(frame, AnalysisPlan(chart_type="scatter"))
        self.assertEqual(resolved.x_value_column, "Score")
        self.assertTrue(resolved.y_uses_row_index)
        self.assertEqual(rows, [{"Score": 10.0, ROW_INDEX_AXIS: 1.0}, {"Score": 20.0, ROW_INDEX_AXIS: 2.0}])

    def test_no_numeric_columns_raises(self):
        frame = pd.DataFrame({"Name": ["a", "b"]})
        with self.assertRaises(ScatterAxisError):
            execute_plan(frame, AnalysisPlan(chart_type="scatter"))


class TopNTests(unittest.TestCase):
    def setUp(self):
        self.rows = [{"Item": f"Item {i}", "Sales": float(i)} for i in range(1, 21)]

    def test_others_conserves_total(self):
        folded = apply_top_n_with_others(self.rows, "Item", "Sales", 5)
        self.assertEqual(len(folded), 5)
        self.assertEqual(folded[-1]["Item"], OTHERS_LABEL)
        self.assertEqual(sum(r["Sales"] for r in folded), sum(r["Sales"] for r in self.rows))
        self.assertEqual([r["Item"] for r in folded[:4]], ["Item 20", "Item 19", "Item 18", "Item 17"])

    def test_short_lists_are_untouched(self):
        self.assertEqual(apply_top_n_with_others(self.rows[:3], "Item", "Sales", 5), self.rows[:3])

    def test_default_top_n_above_threshold(self):
        plan = AnalysisPlan(chart_type="bar", aggregation="sum", group_by_column="Item", value_column="Sales")
        self.assertEqual(resolve_default_top_n(self.rows, plan), (8, True))
        self.assertEqual(resolve_default_top_n(self.rows[:10], plan), (None, False))
        explicit = plan.model_copy(update={"default_top_n": 3, "default_hide_others": False})
        self.assertEqual(resolve_default_top_n(self.rows, explicit), (3, False))

    def test_display_rows_hide_others_and_legend_labels(self):
        plan = AnalysisPlan(chart_type="bar", aggregation="sum", group_by_column="Item", value_column="Sales")
        display = build_display_rows(self.rows, plan, top_n=5, hide_others=True, hidden_labels=["Item 19"])
        self.assertEqual([r["Item"] for r in display], ["Item 20", "Item 18", "Item 17"])


if __name__ == "__main__":
    unittest.main()
