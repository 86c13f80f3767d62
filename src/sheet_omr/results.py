# src/sheet_omr/results.py
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

NO_MARK = -1
MULTIPLE_MARKS = -2


@dataclass(frozen=True)
class DetectedAnswer:
    test_index: int        # 0-based column position in the layout
    question_number: int   # 1-based within the column
    detected: int          # choice index, NO_MARK or MULTIPLE_MARKS

    @property
    def is_answered(self) -> bool:
        return self.detected >= 0


@dataclass(frozen=True)
class SheetMetadata:
    test_type: Optional[str] = None
    set_number: Optional[int] = None
    seat_number: Optional[int] = None
    raw: str = ""


@dataclass(frozen=True)
class AnalysisResult:
    metadata: Optional[SheetMetadata] = None
    answers: List[DetectedAnswer] = field(default_factory=list)
    sheet_found: bool = False
    rotation: int = 0

    def answers_for_test(self, test_index: int) -> List[DetectedAnswer]:
        return [a for a in self.answers if a.test_index == test_index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sheet_found": self.sheet_found,
            "rotation": self.rotation,
            "metadata": asdict(self.metadata) if self.metadata else None,
            "answers": [asdict(a) for a in self.answers],
        }
