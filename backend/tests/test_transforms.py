import sys
import unittest
from pathlib import Path

import pandas as pd

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from chartprep.errors import TransformError
from chartprep.models import TableMetadata
from chartprep.transforms import build_transform_utils, execute_transform


class TransformTests(unittest.TestCase):
    def setUp(self):
        self.frame = pd.DataFrame(
            {"Region": ["North", "South", "Total"], "Revenue": ["$1,200", "(300)", "900"]},
            dtype=object,
        )

    def test_transform_rewrites_rows(self):
        body = """
rows = _util.remove_summary_rows(data)
return [dict(row, Revenue=_util.parse_number(row["Revenue"])) for row in rows]
"""
        result = execute_transform(self.frame, body)
        self.assertEqual(result.to_dict(orient="records"), [
            {"Region": "North", "Revenue": 1200.0},
            {"Region": "South", "Revenue": -300.0},
        ])

    def test_input_frame_is_untouched(self):
        execute_transform(self.frame, "for row in data:\n    row['Region'] = 'x'\nreturn data")
        self.assertEqual(self.frame["Region"].tolist(), ["North", "South", "Total"])

    def test_print_output_does_not_leak(self):
        result = execute_transform(self.frame, "print('debug')\nreturn data[:1]")
        self.assertEqual(len(result), 1)

    def test_unsafe_code_is_rejected(self):
        for body in (
            "import os\nreturn data",
            "return open('x')",
            "return data.__class__",
            "global data\nreturn data",
            "return eval('1')",
        ):
            with self.subTest(body=body):
                with self.assertRaises(TransformError):
                    execute_transform(self.frame, body)

    def test_runtime_errors_are_wrapped(self):
        with self.assertRaises(TransformError) as ctx:
            execute_transform(self.frame, "return [1 / 0]")
        self.assertIn("Data transformation failed", str(ctx.exception))

    def test_result_must_be_list_of_dicts(self):
        with self.assertRaises(TransformError):
            execute_transform(self.frame, "return 5")
        with self.assertRaises(TransformError):
            execute_transform(self.frame, "return [1, 2]")
        with self.assertRaises(TransformError):
            execute_transform(self.frame, "   ")

    def test_util_detect_headers_uses_metadata(self):
        meta = TableMetadata(inferred_headers=["Region", "Revenue"], detected_header_index=2)
        utils = build_transform_utils(meta)
        self.assertEqual(utils.detect_headers()["headers"], ["Region", "Revenue"])
        self.assertEqual(utils.detect_headers()["header_index"], 2)
        self.assertEqual(utils.split_numeric_string("1,500.00,2,000.00"), ["1,500.00", "2,000.00"])


if __name__ == "__main__":
    unittest.main()
