"""
EmotionClassifier: one detection session's calibrate -> score -> normalize ->
smooth -> select pipeline.

Scoring, normalizing, smoothing and selecting are synchronous. The only
suspension point is ``classify_frame`` awaiting the landmark service, and at
most one such call is in flight per instance (extra ticks are dropped).
"""
from __future__ import annotations
from typing import Any, Dict, Mapping, Optional
import asyncio
import logging

import numpy as np

from mood.calibration import BaselineCalibrator
from mood.config import Settings
from mood.landmarks import LandmarkService, to_feature_vector
from mood.models import NO_FACE, ClassificationResult, EmotionLabel, InitResult, NoFaceSignal
from mood.scoring import normalize_scores, score_emotions
from mood.smoothing import DominantLabelSelector, ScoreSmoother

logger = logging.getLogger(__name__)


def placeholder_result(confidence: float = 0.35) -> ClassificationResult:
    """Near-neutral result reported while the baseline is still being learned."""
    others = [e for e in EmotionLabel if e is not EmotionLabel.NEUTRAL]
    rest = (1.0 - confidence) / len(others)
    scores = {EmotionLabel.NEUTRAL: confidence, **{e: rest for e in others}}
    return ClassificationResult(emotion=EmotionLabel.NEUTRAL, confidence=confidence,
                                all_scores=scores, calibrating=True)


class EmotionClassifier:
    """Stateful facade; create one per camera activation and dispose when done."""
    def __init__(self, settings: Optional[Settings] = None, landmarks: Optional[LandmarkService] = None):
        self.s = settings or Settings()
        self.scoring = self.s.scoring()
        self._landmarks = landmarks
        self._clear_state()
        self._ready = False
        self._disposed = False
        self._inflight: Optional[asyncio.Task] = None

    def _clear_state(self) -> None:
        self._calibrator = BaselineCalibrator(self.s.CALIBRATION_FRAMES)
        self._ema = ScoreSmoother(beta=self.s.SMOOTHING_BETA)
        self._selector = DominantLabelSelector(ratio=self.s.SWITCH_RATIO, delta=self.s.SWITCH_DELTA)

    # ---- introspection ----
    @property
    def ready(self) -> bool:
        return self._ready and not self._disposed

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def has_landmarks(self) -> bool:
        return self._landmarks is not None

    @property
    def calibrated(self) -> bool:
        return self._calibrator.complete

    @property
    def frames_seen(self) -> int:
        return self._calibrator.frames_seen

    @property
    def baseline(self) -> Optional[Mapping[str, float]]:
        return self._calibrator.baseline

    @property
    def current_label(self) -> EmotionLabel:
        return self._selector.current

    @property
    def smoothed(self) -> Optional[Dict[EmotionLabel, float]]:
        return dict(self._ema.state) if self._ema.state is not None else None

    # ---- lifecycle ----
    async def initialize(self) -> InitResult:
        """
        Bring the landmark service up within INIT_TIMEOUT seconds.

        Failures (timeout or service error) are returned, not raised; the
        classifier stays unusable until a later initialize() succeeds.
        """
        if self._disposed:
            raise RuntimeError("EmotionClassifier was disposed; create a new instance")
        if self._ready:
            return InitResult(ok=True)
        if self._landmarks is None:
            self._ready = True
            return InitResult(ok=True)

        timeout = self.s.INIT_TIMEOUT
        try:
            await asyncio.wait_for(asyncio.to_thread(self._landmarks.initialize), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"[classifier] landmark service initialization timed out after {timeout}s")
            return InitResult(ok=False, error=f"Landmark service initialization timed out after {timeout:g}s")
        except Exception as e:
            logger.exception("[classifier] landmark service initialization failed")
            return InitResult(ok=False, error=f"Landmark service failed to initialize: {e}")

        if self._disposed:
            # disposed while we were waiting; do not leave the service open
            return InitResult(ok=False, error="Classifier was disposed during initialization")
        self._ready = True
        logger.info("[classifier] ready")
        return InitResult(ok=True)

    def dispose(self) -> None:
        """Abandon any in-flight call and release all state. Safe to call repeatedly."""
        if self._disposed:
            return
        self._disposed = True
        self._ready = False

        task, self._inflight = self._inflight, None
        if task is not None and not task.done():
            task.cancel()

        landmarks, self._landmarks = self._landmarks, None
        if landmarks is not None:
            try:
                landmarks.close()
            except Exception:
                logger.exception("[classifier] landmark service close failed")

        self._clear_state()
        logger.debug("[classifier] disposed")

    def _check_usable(self) -> None:
        if self._disposed:
            raise RuntimeError("EmotionClassifier was disposed; create a new instance")
        if not self._ready:
            raise RuntimeError("EmotionClassifier is not initialized; call initialize() first")

    # ---- per-frame ----
    def classify(self, features: Any) -> ClassificationResult | NoFaceSignal:
        """
        Classify one frame's features (ordered ``{name, score}`` pairs or a mapping).

        Empty input means no face: NO_FACE is returned and no state changes.
        The first CALIBRATION_FRAMES face frames return the calibrating placeholder.
        """
        self._check_usable()
        vector = to_feature_vector(features)
        if not vector:
            logger.debug("[classifier] no face in frame")
            return NO_FACE

        if not self._calibrator.complete:
            status = self._calibrator.observe(vector)
            logger.debug(f"[classifier] calibrating frame {self._calibrator.frames_seen}/"
                         f"{self._calibrator.frames} status={status.value}")
            return placeholder_result(self.s.PLACEHOLDER_CONFIDENCE)

        raw = score_emotions(vector, self._calibrator.baseline, self.scoring, self.s.BASELINE_DAMPING)
        probs = normalize_scores(raw, self.s.SOFTMAX_SHARPNESS)
        smoothed = self._ema.update(probs)
        label = self._selector.select(smoothed)

        return ClassificationResult(
            emotion=label,
            confidence=min(1.0, max(0.0, smoothed[label])),
            all_scores={e: smoothed.get(e, 0.0) for e in EmotionLabel},
        )

    async def classify_frame(self, frame: np.ndarray, timestamp_ms: Optional[int] = None
                             ) -> ClassificationResult | NoFaceSignal | None:
        """
        Run the landmark service on ``frame`` and classify the result.

        Returns None when the tick was dropped (a previous frame is still in
        flight) or when the classifier was disposed before the service answered.
        """
        self._check_usable()
        if self._landmarks is None:
            raise RuntimeError("No landmark service attached; use classify() with precomputed features")
        if self._inflight is not None and not self._inflight.done():
            logger.debug("[classifier] previous frame still in flight; dropping tick")
            return None

        task = asyncio.ensure_future(asyncio.to_thread(self._landmarks.detect, frame, timestamp_ms))
        self._inflight = task
        try:
            features = await task
        except asyncio.CancelledError:
            if self._disposed:
                logger.debug("[classifier] in-flight frame abandoned on dispose")
                return None
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

        if self._disposed:
            return None
        return self.classify(features)
