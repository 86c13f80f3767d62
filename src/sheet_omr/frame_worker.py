# src/sheet_omr/frame_worker.py
#
# Keep-only-latest analysis for live camera callers:
# - one analyze() in flight at a time, on a single background thread
# - submit() never blocks; a frame waiting to start is replaced by a newer one
# - a failed analysis is logged and reported, the worker keeps running

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Tuple

import numpy as np

from .analyze_core import analyze
from .config_io import DEFAULT_LAYOUT, SheetLayout
from .results import AnalysisResult

logger = logging.getLogger(__name__)

ResultCallback = Callable[[AnalysisResult], None]
ErrorCallback = Callable[[BaseException], None]


class LatestFrameAnalyzer:
    def __init__(
        self,
        on_result: ResultCallback,
        layout: SheetLayout = DEFAULT_LAYOUT,
        *,
        on_error: Optional[ErrorCallback] = None,
        **analyze_kwargs,
    ):
        self._on_result = on_result
        self._on_error = on_error
        self._layout = layout
        self._analyze_kwargs = analyze_kwargs

        self._cond = threading.Condition()
        self._pending: Optional[Tuple[np.ndarray, int]] = None
        self._busy = False
        self._stopped = False
        self._dropped = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def dropped(self) -> int:
        """Number of frames replaced before they were analysed."""
        with self._cond:
            return self._dropped

    def start(self) -> "LatestFrameAnalyzer":
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name="omr-frame-analyzer", daemon=True)
        self._thread.start()
        return self

    def submit(self, frame: np.ndarray, rotation: int = 0) -> bool:
        """
        Queue a frame for analysis. Returns True if it replaced a frame that
        was still waiting; that older frame is dropped.
        """
        with self._cond:
            if self._stopped:
                raise RuntimeError("analyzer is stopped")
            replaced = self._pending is not None
            if replaced:
                self._dropped += 1
            self._pending = (frame, rotation)
            self._cond.notify()
            return replaced

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no frame is pending or in flight."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._busy, timeout)

    def stop(self, timeout: float = 5.0) -> None:
        with self._cond:
            self._stopped = True
            self._pending = None
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def __enter__(self) -> "LatestFrameAnalyzer":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()

    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._pending is not None or self._stopped)
                if self._stopped:
                    return
                frame, rotation = self._pending
                self._pending = None
                self._busy = True

            try:
                result = analyze(frame, self._layout, rotation=rotation, **self._analyze_kwargs)
                self._on_result(result)
            except Exception as e:
                logger.exception("frame analysis failed")
                if self._on_error is not None:
                    try:
                        self._on_error(e)
                    except Exception:
                        logger.exception("on_error callback failed")
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()
