"""
Personal neutral-face baseline, averaged over a warm-up window of frames.
"""
from __future__ import annotations
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional
import logging

logger = logging.getLogger(__name__)


class CalibrationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class BaselineCalibrator:
    """Accumulate action scores over the first ``frames`` observations, then freeze the average."""
    def __init__(self, frames: int = 10):
        if int(frames) < 1:
            raise ValueError(f"calibration window must be >= 1 frame, got {frames}")
        self.frames = int(frames)
        self._sums: Dict[str, float] = {}
        self._count = 0
        self._baseline: Optional[Mapping[str, float]] = None

    @property
    def complete(self) -> bool:
        return self._baseline is not None

    @property
    def frames_seen(self) -> int:
        return self._count

    @property
    def baseline(self) -> Optional[Mapping[str, float]]:
        return self._baseline

    def observe(self, vector: Optional[Mapping[str, float]]) -> CalibrationStatus:
        """
        Add one frame to the running sums.

        Returns IN_PROGRESS until the window is filled, COMPLETE on the final
        frame and on every call after it (later calls do not touch the baseline).
        A missing or empty vector contributes zeros but still counts as a frame.
        """
        if self._baseline is not None:
            return CalibrationStatus.COMPLETE

        for name, score in (vector or {}).items():
            self._sums[name] = self._sums.get(name, 0.0) + float(score)
        self._count += 1

        if self._count < self.frames:
            return CalibrationStatus.IN_PROGRESS

        self._baseline = MappingProxyType({k: v / self.frames for k, v in self._sums.items()})
        self._sums = {}
        logger.debug(f"[calibration] baseline finalized over {self.frames} frames ({len(self._baseline)} actions)")
        return CalibrationStatus.COMPLETE
