"""
Consumer side of the classifier for one camera activation.

- ReadingBatcher: majority vote over fixed-size batches of reported labels
- NoFaceMonitor: debounce consecutive no-face frames into a user-facing alert
- DetectionSession: classifier + batcher + monitor behind one object
"""
from __future__ import annotations
from collections import Counter
from typing import Any, List, Optional
import logging
import time
import uuid

import numpy as np

from mood.classifier import EmotionClassifier
from mood.config import Settings
from mood.landmarks import LandmarkService
from mood.models import (
    BatchSummary, ClassificationResult, EmotionLabel, InitResult, NoFaceSignal, SessionStatus, SessionUpdate,
)

logger = logging.getLogger(__name__)

NO_FACE_MESSAGE = "No face detected. Please position your face clearly in the camera frame."


class ReadingBatcher:
    """Collect labels; every ``size`` readings emit the majority label and start over."""
    def __init__(self, size: int = 10):
        self.size = int(size)
        self._readings: List[EmotionLabel] = []

    @property
    def pending(self) -> int:
        return len(self._readings)

    def add(self, label: EmotionLabel) -> Optional[BatchSummary]:
        self._readings.append(label)
        if len(self._readings) < self.size:
            return None
        counts = Counter(self._readings)
        # most_common keeps first-seen order among ties
        winner, n = counts.most_common(1)[0]
        self._readings = []
        return BatchSummary(emotion=winner, share=n / self.size, counts=dict(counts), size=self.size)


class NoFaceMonitor:
    """Latch an alert after N consecutive no-face frames; any face clears it."""
    def __init__(self, needed: int = 5):
        self.needed = int(needed)
        self.streak = 0
        self.alert: Optional[str] = None

    def step(self, face_seen: bool) -> Optional[str]:
        if face_seen:
            self.streak = 0
            self.alert = None
            return None
        self.streak += 1
        if self.streak >= self.needed:
            self.alert = NO_FACE_MESSAGE
        return self.alert


class DetectionSession:
    """One classifier plus its downstream consumers."""
    def __init__(self, settings: Optional[Settings] = None, landmarks: Optional[LandmarkService] = None,
                 session_id: Optional[str] = None):
        self.s = settings or Settings()
        self.id = session_id or uuid.uuid4().hex
        self.classifier = EmotionClassifier(self.s, landmarks=landmarks)
        self.batcher = ReadingBatcher(self.s.READINGS_BATCH_SIZE)
        self.monitor = NoFaceMonitor(self.s.NO_FACE_ALERT_FRAMES)
        self.last_batch: Optional[BatchSummary] = None
        self.last_active = time.monotonic()

    async def start(self) -> InitResult:
        res = await self.classifier.initialize()
        logger.debug(f"[session] {self.id} initialize ok={res.ok}")
        return res

    def _consume(self, outcome: ClassificationResult | NoFaceSignal | None) -> SessionUpdate:
        self.last_active = time.monotonic()
        if outcome is None:
            return SessionUpdate(skipped=True, alert=self.monitor.alert)
        if isinstance(outcome, NoFaceSignal):
            return SessionUpdate(no_face=True, alert=self.monitor.step(False))

        self.monitor.step(True)
        batch = None
        if not outcome.calibrating:
            batch = self.batcher.add(outcome.emotion)
            if batch is not None:
                self.last_batch = batch
                logger.info(f"[session] {self.id} batch dominant={batch.emotion.value} share={batch.share:.2f}")
        return SessionUpdate(result=outcome, batch=batch)

    def process_features(self, features: Any) -> SessionUpdate:
        return self._consume(self.classifier.classify(features))

    async def process_frame(self, frame: np.ndarray, timestamp_ms: Optional[int] = None) -> SessionUpdate:
        return self._consume(await self.classifier.classify_frame(frame, timestamp_ms))

    def status(self) -> SessionStatus:
        return SessionStatus(
            session_id=self.id,
            calibrated=self.classifier.calibrated,
            frames_seen=self.classifier.frames_seen,
            current_emotion=self.classifier.current_label,
            has_landmarks=self.classifier.has_landmarks,
            no_face_streak=self.monitor.streak,
            pending_readings=self.batcher.pending,
            last_batch=self.last_batch,
        )

    def dispose(self) -> None:
        self.classifier.dispose()
