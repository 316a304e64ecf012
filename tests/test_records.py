import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from sheetkit.records import field_equals, join_list, merge_record, project_record, split_list, zip_row


class TestRecords(unittest.TestCase):
    def test_zip_row_pads_missing_trailing_cells(self) -> None:
        record = zip_row(["id", "title", "link"], ["p1", "X"])
        self.assertEqual(record, {"id": "p1", "title": "X", "link": ""})

    def test_zip_row_skips_blank_header_cells(self) -> None:
        record = zip_row(["id", "", "title"], ["p1", "stray", "X"])
        self.assertEqual(record, {"id": "p1", "title": "X"})

    def test_project_record_follows_header_order(self) -> None:
        values = project_record(["id", "title", "link"], {"link": "L", "id": "p1", "extra": "dropped"})
        self.assertEqual(values, ["p1", "", "L"])

    def test_project_record_stringifies_values(self) -> None:
        values = project_record(["a", "b", "c", "d"], {"a": 3, "b": None, "c": True, "d": 1.5})
        self.assertEqual(values, ["3", "", "true", "1.5"])

    def test_merge_record_patch_wins(self) -> None:
        merged = merge_record({"id": "u1", "name": "Old", "bio": "keep"}, {"name": "New"})
        self.assertEqual(merged, {"id": "u1", "name": "New", "bio": "keep"})

    def test_split_and_join_list(self) -> None:
        self.assertEqual(split_list(""), [])
        self.assertEqual(split_list(None), [])
        self.assertEqual(split_list("python, go,,rust "), ["python", "go", "rust"])
        self.assertEqual(join_list(["python", " go ", ""]), "python,go")
        self.assertEqual(join_list([]), "")

    def test_field_equals(self) -> None:
        predicate = field_equals(id="u1", status="approved")
        self.assertTrue(predicate({"id": "u1", "status": "approved", "name": "A"}))
        self.assertFalse(predicate({"id": "u1", "status": "pending"}))
        self.assertFalse(predicate({"status": "approved"}))


if __name__ == "__main__":
    unittest.main()
