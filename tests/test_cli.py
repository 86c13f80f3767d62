from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

import cv2
from typer.testing import CliRunner

from sheet_omr.cli import app
from sheet_omr.config_io import DEFAULT_LAYOUT, load_sheet_config

from sheet_fixtures import marked_sheet, photograph, standard_marks

runner = CliRunner()


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_init_layout_writes_default(self) -> None:
        out = self.tmp / "layout.yaml"
        result = runner.invoke(app, ["init-layout", str(out)])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(load_sheet_config(out).layout, DEFAULT_LAYOUT)

        again = runner.invoke(app, ["init-layout", str(out)])
        self.assertEqual(again.exit_code, 2)

    def test_make_qr_then_decode(self) -> None:
        out = self.tmp / "qr.png"
        made = runner.invoke(app, ["make-qr", "-o", str(out), "--type", "C", "--set", "2", "--seat", "17"])
        self.assertEqual(made.exit_code, 0, made.output)
        self.assertTrue(out.exists())

        read = runner.invoke(app, ["qr", str(out)])
        self.assertEqual(read.exit_code, 0, read.output)
        self.assertIn("set=2", read.output)
        self.assertIn("seat=17", read.output)

    def test_make_qr_needs_a_field(self) -> None:
        result = runner.invoke(app, ["make-qr", "-o", str(self.tmp / "qr.png")])
        self.assertEqual(result.exit_code, 2)

    def test_scan_missing_file(self) -> None:
        result = runner.invoke(app, ["scan", str(self.tmp / "missing.jpg")])
        self.assertEqual(result.exit_code, 2)

    def test_scan_bad_layout(self) -> None:
        bad = self.tmp / "bad.yaml"
        bad.write_text("columns: []\n", encoding="utf-8")
        result = runner.invoke(app, ["scan", "-l", str(bad), str(self.tmp / "x.png")])
        self.assertEqual(result.exit_code, 2)

    def test_non_numeric_threshold_in_layout(self) -> None:
        bad = self.tmp / "bad.yaml"
        bad.write_text("columns: [{x: 0.1, y: 0.1, width: 0.2, height: 0.2}]\n"
                       "scoring: {min_fill_multiplier: x}\n", encoding="utf-8")
        result = runner.invoke(app, ["scan", "-l", str(bad), str(self.tmp / "x.png")])
        self.assertEqual(result.exit_code, 2)
        self.assertNotIsInstance(result.exception, TypeError)

    def test_make_qr_rejects_separator_in_type(self) -> None:
        result = runner.invoke(app, ["make-qr", "-o", str(self.tmp / "qr.png"), "--type", "A;SET=9", "--set", "2"])
        self.assertEqual(result.exit_code, 2)
        self.assertFalse((self.tmp / "qr.png").exists())

    def test_scan_json(self) -> None:
        img = self.tmp / "photo.png"
        cv2.imwrite(str(img), photograph(marked_sheet(DEFAULT_LAYOUT, standard_marks(DEFAULT_LAYOUT))))
        debug = self.tmp / "debug"

        result = runner.invoke(app, ["scan", "--json", "--no-qr", "--debug-dir", str(debug), str(img)])
        self.assertEqual(result.exit_code, 0, result.output)
        payloads = [json.loads(line) for line in result.stdout.splitlines() if line.startswith("{")]
        self.assertEqual(len(payloads), 1)
        self.assertTrue(payloads[0]["sheet_found"])
        self.assertEqual(len(payloads[0]["answers"]), 100)
        self.assertTrue((debug / "photo_p001_02_thresh.png").exists())

    def test_visualize(self) -> None:
        img = self.tmp / "photo.png"
        cv2.imwrite(str(img), photograph(marked_sheet(DEFAULT_LAYOUT, {})))
        out = self.tmp / "overlay.png"
        result = runner.invoke(app, ["visualize", str(img), "-o", str(out)])
        self.assertEqual(result.exit_code, 0, result.output)
        overlay = cv2.imread(str(out))
        self.assertEqual(overlay.shape, (1600, 1200, 3))


if __name__ == "__main__":
    unittest.main()
