from __future__ import annotations

import csv
import tempfile
import unittest
from pathlib import Path

import cv2

from sheet_omr.config_io import DEFAULT_LAYOUT, SheetConfig
from sheet_omr.grade_core import csv_header, grade_images, load_key_txt, score_against_key
from sheet_omr.results import MULTIPLE_MARKS, NO_MARK, DetectedAnswer

from sheet_fixtures import expected_choice, marked_sheet, photograph, standard_marks


class TestAnswerKey(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_letters_digits_and_unkeyed(self) -> None:
        p = self.tmp / "key.txt"
        p.write_text("ABCD-\n1 2 3 4 ?\n", encoding="utf-8")
        key = load_key_txt(p)
        self.assertEqual(key[0], [0, 1, 2, 3, None])
        self.assertEqual(key[1], [0, 1, 2, 3, None])

    def test_score_against_key(self) -> None:
        key = {0: [0, 1, None], 1: [3]}
        answers = [
            DetectedAnswer(0, 1, 0),               # correct
            DetectedAnswer(0, 2, MULTIPLE_MARKS),  # never scores
            DetectedAnswer(0, 3, 2),               # unkeyed
            DetectedAnswer(1, 1, NO_MARK),
            DetectedAnswer(2, 1, 0),               # test not in key
        ]
        self.assertEqual(score_against_key(answers, key), {0: 1, 1: 0})

    def test_header_layout(self) -> None:
        header = csv_header(DEFAULT_LAYOUT, {0: [0], 1: [1]})
        self.assertEqual(header[:3], ["source", "page_index", "sheet_found"])
        self.assertIn("T4_Q25", header)
        self.assertEqual(header[-2:], ["T1_score", "T2_score"])
        self.assertEqual(len(header), 6 + 100 + 2)


class TestGradeImages(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_batch_to_csv(self) -> None:
        photo = photograph(marked_sheet(DEFAULT_LAYOUT, standard_marks(DEFAULT_LAYOUT)))
        img_path = self.tmp / "sheet1.png"
        cv2.imwrite(str(img_path), photo)

        labels = DEFAULT_LAYOUT.choice_labels
        key_path = self.tmp / "key.txt"
        key_path.write_text("\n".join(
            "".join(labels[expected_choice(t, q, 4)] for q in range(1, 26)) for t in range(4)
        ) + "\n", encoding="utf-8")

        out_csv = self.tmp / "out" / "results.csv"
        annotated = self.tmp / "annotated"
        results = grade_images(
            [str(img_path), str(self.tmp / "missing.png")],
            SheetConfig(layout=DEFAULT_LAYOUT),
            out_csv=str(out_csv),
            key_txt=str(key_path),
            out_annotated_dir=str(annotated),
        )

        self.assertEqual(len(results), 1)
        self.assertTrue(results[0].sheet_found)

        with open(out_csv, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row["source"], "sheet1.png")
        self.assertEqual(row["sheet_found"], "yes")
        self.assertEqual(row["T1_Q1"], labels[expected_choice(0, 1, 4)])
        for t in range(1, 5):
            self.assertEqual(row[f"T{t}_score"], "25")
        self.assertTrue((annotated / "sheet1_p001_03_detected_boxes.png").exists())


if __name__ == "__main__":
    unittest.main()
