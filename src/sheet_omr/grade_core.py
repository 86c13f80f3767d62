# src/sheet_omr/grade_core.py
from __future__ import annotations
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence
import csv
import logging
import os

from .analyze_core import analyze
from .config_io import SheetConfig, SheetLayout
from .results import AnalysisResult, DetectedAnswer
from .tools.image_io import directory_sink, load_images

logger = logging.getLogger(__name__)

AnswerKey = Dict[int, List[Optional[int]]]  # test_index -> choice index per question (None = unkeyed)


def _ensure_dir(path: str) -> None:
    if path and not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


# ------------------------------------------------------------------------------
# Key handling & scoring
# ------------------------------------------------------------------------------

def load_key_txt(path: str | Path, choice_labels: str = "ABCD") -> AnswerKey:
    """
    One line per test element, one character per question:
    choice letters (A, B, ...) or 1-based digits. '-' or '?' leaves a
    question unkeyed; spaces and other characters are ignored.
    """
    labels = choice_labels.upper()
    key: AnswerKey = {}
    with open(path, "r", encoding="utf-8") as f:
        for test_index, line in enumerate(f.read().splitlines()):
            entries: List[Optional[int]] = []
            for ch in line.upper():
                if ch in labels:
                    entries.append(labels.index(ch))
                elif ch.isdigit() and 1 <= int(ch) <= len(labels):
                    entries.append(int(ch) - 1)
                elif ch in "-?":
                    entries.append(None)
            key[test_index] = entries
    return key


def score_against_key(answers: Iterable[DetectedAnswer], key: AnswerKey) -> Dict[int, int]:
    """Correct answers per test index. Blank, multiple and unkeyed questions never score."""
    scores: Dict[int, int] = {t: 0 for t in key}
    for a in answers:
        entries = key.get(a.test_index)
        if entries is None or not 1 <= a.question_number <= len(entries):
            continue
        expected = entries[a.question_number - 1]
        if expected is not None and a.detected == expected:
            scores[a.test_index] += 1
    return scores


def keyed_totals(key: AnswerKey) -> Dict[int, int]:
    return {t: sum(1 for e in entries if e is not None) for t, entries in key.items()}


# ------------------------------------------------------------------------------
# CSV rows
# ------------------------------------------------------------------------------

def csv_header(layout: SheetLayout, key: Optional[AnswerKey] = None) -> List[str]:
    header = ["source", "page_index", "sheet_found", "test_type", "set_number", "seat_number"]
    for t in range(len(layout.columns)):
        header += [f"T{t + 1}_Q{q + 1}" for q in range(layout.questions_per_column)]
    if key:
        header += [f"T{t + 1}_score" for t in sorted(key)]
    return header


def result_row(source: str, page_index: int, result: AnalysisResult,
               layout: SheetLayout, key: Optional[AnswerKey] = None) -> List[str]:
    meta = result.metadata
    row = [
        source,
        str(page_index),
        "yes" if result.sheet_found else "no",
        (meta.test_type or "") if meta else "",
        str(meta.set_number) if meta and meta.set_number is not None else "",
        str(meta.seat_number) if meta and meta.seat_number is not None else "",
    ]
    labels = {(a.test_index, a.question_number): layout.label_for(a.detected) for a in result.answers}
    for t in range(len(layout.columns)):
        row += [labels.get((t, q + 1), "") for q in range(layout.questions_per_column)]
    if key:
        scores = score_against_key(result.answers, key)
        row += [str(scores[t]) for t in sorted(key)]
    return row


# ------------------------------------------------------------------------------
# Batch grading
# ------------------------------------------------------------------------------

def grade_images(
    inputs: Sequence[str],
    config: SheetConfig,
    out_csv: str,
    key_txt: Optional[str] = None,
    out_annotated_dir: Optional[str] = None,
    rotation: int = 0,
    dpi: int = 200,
) -> List[AnalysisResult]:
    """
    Analyse every page of every input and write one CSV row per page.
    Inputs that cannot be read are logged and skipped.
    """
    layout = config.layout
    key = load_key_txt(key_txt, layout.choice_labels) if key_txt else None

    _ensure_dir(os.path.dirname(out_csv) or ".")
    if out_annotated_dir:
        _ensure_dir(out_annotated_dir)

    results: List[AnalysisResult] = []
    with open(out_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(csv_header(layout, key))

        for path in inputs:
            try:
                pages = load_images(path, dpi=dpi)
            except (FileNotFoundError, RuntimeError) as e:
                logger.error("skipping %s: %s", path, e)
                continue

            stem = Path(path).stem
            for page_idx, img in enumerate(pages, start=1):
                sink = None
                if out_annotated_dir:
                    sink = directory_sink(out_annotated_dir, prefix=f"{stem}_p{page_idx:03d}_")
                result = analyze(
                    img, layout,
                    rotation=rotation,
                    scoring=config.scoring,
                    binarize_params=config.binarize,
                    debug_sink=sink,
                )
                if not result.sheet_found:
                    logger.warning("%s page %d: no sheet found", path, page_idx)
                writer.writerow(result_row(os.path.basename(path), page_idx, result, layout, key))
                results.append(result)

    logger.info("wrote %s (%d page(s))", out_csv, len(results))
    return results
