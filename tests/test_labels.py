import tempfile
import unittest
from pathlib import Path

from det_kit.labels import LabelTable, load_label_table


class TestLabelTable(unittest.TestCase):
    def _write(self, text: str, name: str = "labels.txt") -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_one_label_per_line(self) -> None:
        table = load_label_table(self._write("person\nbicycle\ncar\n"))
        self.assertEqual(len(table), 3)
        self.assertEqual(table[0], "person")
        self.assertEqual(table.get(2), "car")
        self.assertEqual(list(table), ["person", "bicycle", "car"])

    def test_blank_lines_keep_indices_aligned(self) -> None:
        table = load_label_table(self._write("person\n\ncup\r\n"))
        self.assertEqual(table.names, ("person", "", "cup"))
        self.assertEqual(table.index_of("cup"), 2)

    def test_names_mapping_format(self) -> None:
        text = "# exported\nnames:\n  0: person\n  2: 'cup'\n  3: \"apple\"\n"
        table = load_label_table(self._write(text, "metadata.yaml"))
        self.assertEqual(table.names, ("person", "", "cup", "apple"))

    def test_get_out_of_range_returns_none(self) -> None:
        table = LabelTable(["person", "cup"])
        self.assertIsNone(table.get(-1))
        self.assertIsNone(table.get(2))
        self.assertEqual(table.get(1), "cup")

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_label_table("/nonexistent/labels.txt")

    def test_table_is_immutable_copy(self) -> None:
        names = ["person", "cup"]
        table = LabelTable(names)
        names.append("apple")
        self.assertEqual(len(table), 2)
        with self.assertRaises(TypeError):
            table.names[0] = "dog"  # type: ignore[index]


if __name__ == "__main__":
    unittest.main()
