"""
Boundary to the external landmark-detection service.

The service turns a video frame into an ordered list of ``{name, score}``
blendshape activations. ``to_feature_vector`` turns whatever the service (or an
HTTP client) hands us into the ``action -> score`` mapping the classifier reads.

NOTE: mediapipe is imported lazily so tests can inject a fake via sys.modules.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol
import logging
import math
import threading
import time

import cv2
import numpy as np

from mood.config import Settings

logger = logging.getLogger(__name__)


class LandmarkService(Protocol):
    """Per-frame blendshape extractor (owned and versioned externally)."""

    def initialize(self) -> None:
        """Load models; blocking. Raise on failure."""
        ...

    def detect(self, frame: np.ndarray, timestamp_ms: Optional[int] = None) -> List[Dict[str, float]]:
        """Return the first face's ``[{name, score}, ...]``; empty list when no face."""
        ...

    def close(self) -> None:
        ...


def _pair(item: Any) -> tuple[Optional[str], Any]:
    if isinstance(item, Mapping):
        name = item.get("name") or item.get("categoryName") or item.get("category_name")
        return name, item.get("score")
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return item[0], item[1]
    # FeatureScore models and mediapipe Category objects
    name = getattr(item, "name", None) or getattr(item, "category_name", None)
    return name, getattr(item, "score", None)


def _clamp_score(value: Any) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(v):
        return None
    return max(0.0, min(1.0, v))


def to_feature_vector(features: Mapping[str, Any] | Iterable[Any] | None) -> Dict[str, float]:
    """
    Normalize one frame's features into ``{action: score in [0,1]}``.

    Entries without a name or with a non-numeric score are skipped; the
    classifier reads a skipped action as 0. Later duplicates win.
    """
    if not features:
        return {}
    items = features.items() if isinstance(features, Mapping) else (_pair(f) for f in features)
    vector: Dict[str, float] = {}
    for name, raw in items:
        if not name or name == "_neutral":
            continue
        score = _clamp_score(raw)
        if score is None:
            logger.debug(f"[landmarks] dropping non-numeric score for {name!r}")
            continue
        vector[str(name)] = score
    return vector


class MediaPipeLandmarker:
    """MediaPipe FaceLandmarker (VIDEO mode, one face, blendshapes on)."""
    def __init__(self, settings: Settings):
        self.s = settings
        self._landmarker = None
        self._mp = None
        self._lock = threading.Lock()
        self._closed = False
        self._last_ts = -1

    def initialize(self) -> None:
        if self._closed:
            raise RuntimeError("Face landmarker was closed")
        if self._landmarker is not None:
            return
        import mediapipe as mp  # heavy; keep out of module import

        vision = mp.tasks.vision
        base = mp.tasks.BaseOptions
        delegate = base.Delegate.GPU if self.s.LANDMARK_DELEGATE == "gpu" else base.Delegate.CPU
        options = vision.FaceLandmarkerOptions(
            base_options=base(model_asset_path=self.s.LANDMARK_MODEL_PATH, delegate=delegate),
            running_mode=vision.RunningMode.VIDEO,
            num_faces=1,
            output_face_blendshapes=True,
        )
        logger.debug(f"[landmarks] loading {self.s.LANDMARK_MODEL_PATH} delegate={self.s.LANDMARK_DELEGATE}")
        # model loading happens outside the lock so close() never waits on it
        landmarker = vision.FaceLandmarker.create_from_options(options)
        with self._lock:
            if self._closed or self._landmarker is not None:
                landmarker.close()
                return
            self._landmarker = landmarker
            self._mp = mp
        if self._closed:
            self._release()
            return
        logger.info("[landmarks] face landmarker ready")

    def _next_timestamp(self, timestamp_ms: Optional[int]) -> int:
        # VIDEO mode rejects non-increasing timestamps
        ts = int(time.monotonic() * 1000) if timestamp_ms is None else int(timestamp_ms)
        ts = max(ts, self._last_ts + 1)
        self._last_ts = ts
        return ts

    def detect(self, frame: np.ndarray, timestamp_ms: Optional[int] = None) -> List[Dict[str, float]]:
        try:
            with self._lock:
                if self._landmarker is None or self._closed:
                    raise RuntimeError("Face landmarker is not initialized (or already closed)")
                rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
                result = self._landmarker.detect_for_video(image, self._next_timestamp(timestamp_ms))
        finally:
            # close() called while we held the lock left the release to us
            if self._closed:
                self._release()

        if not result.face_blendshapes:
            return []
        return [
            {"name": c.category_name, "score": float(c.score)}
            for c in result.face_blendshapes[0]
            if c.category_name != "_neutral"
        ]

    def _release(self) -> None:
        if not self._lock.acquire(blocking=False):
            return
        try:
            if self._landmarker is not None:
                self._landmarker.close()
                self._landmarker = None
                logger.debug("[landmarks] face landmarker closed")
        finally:
            self._lock.release()

    def close(self) -> None:
        """
        Mark the landmarker closed without waiting for a running detect.

        If a detect holds the model, that call releases it on its way out.
        """
        self._closed = True
        self._release()
