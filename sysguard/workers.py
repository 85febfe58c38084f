from __future__ import annotations
from typing import Callable
from PySide6 import QtCore
import time
import traceback


class AnalysisSignals(QtCore.QObject):
    finished = QtCore.Signal(object)   # AnalysisResult
    failed   = QtCore.Signal(str)


class AnalysisRunnable(QtCore.QRunnable):
    """
    Runs one analysis on a pool thread so the live stream keeps flowing.
    `job` must only touch immutable inputs; the result is delivered to the
    GUI/event-loop thread through `signals.finished` (queued).
    """
    def __init__(self, job: Callable[[], object], delay_ms: int = 0):
        super().__init__()
        self.signals = AnalysisSignals()
        self._job = job
        self._delay_ms = delay_ms
        self.setAutoDelete(True)

    def run(self):
        try:
            start = time.time()
            if self._delay_ms:
                time.sleep(self._delay_ms / 1000.0)
            result = self._job()
            print(f"[AnalysisRunnable] Analysis complete in {time.time() - start:.2f}s")
        except Exception as e:
            print(f"[AnalysisRunnable] Error during analysis: {e}")
            traceback.print_exc()
            self.signals.failed.emit(str(e))
            return
        self.signals.finished.emit(result)
