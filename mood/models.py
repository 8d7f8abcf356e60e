"""
Pydantic data models for classifier IO.
"""
from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Literal, Optional


class EmotionLabel(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    SURPRISED = "surprised"
    FEAR = "fear"


# MediaPipe FaceLandmarker blendshape vocabulary (the "_neutral" slot is dropped upstream)
BLENDSHAPE_NAMES = (
    "browDownLeft", "browDownRight", "browInnerUp", "browOuterUpLeft", "browOuterUpRight",
    "cheekPuff", "cheekSquintLeft", "cheekSquintRight",
    "eyeBlinkLeft", "eyeBlinkRight", "eyeLookDownLeft", "eyeLookDownRight",
    "eyeLookInLeft", "eyeLookInRight", "eyeLookOutLeft", "eyeLookOutRight",
    "eyeLookUpLeft", "eyeLookUpRight", "eyeSquintLeft", "eyeSquintRight",
    "eyeWideLeft", "eyeWideRight",
    "jawForward", "jawLeft", "jawOpen", "jawRight",
    "mouthClose", "mouthDimpleLeft", "mouthDimpleRight", "mouthFrownLeft", "mouthFrownRight",
    "mouthFunnel", "mouthLeft", "mouthLowerDownLeft", "mouthLowerDownRight",
    "mouthPressLeft", "mouthPressRight", "mouthPucker", "mouthRight",
    "mouthRollLower", "mouthRollUpper", "mouthShrugLower", "mouthShrugUpper",
    "mouthSmileLeft", "mouthSmileRight", "mouthStretchLeft", "mouthStretchRight",
    "mouthUpperUpLeft", "mouthUpperUpRight", "noseSneerLeft", "noseSneerRight",
)


class FeatureScore(BaseModel):
    name: str
    score: float


class ClassificationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    emotion: EmotionLabel
    confidence: float = Field(ge=0.0, le=1.0)
    all_scores: Dict[EmotionLabel, float] = Field(default_factory=dict, alias="allScores")
    calibrating: bool = False


class NoFaceSignal(BaseModel):
    flag: Literal["NO_FACE"] = "NO_FACE"


NO_FACE = NoFaceSignal()


class InitResult(BaseModel):
    ok: bool
    error: Optional[str] = None


# session models


class BatchSummary(BaseModel):
    emotion: EmotionLabel
    share: float
    counts: Dict[EmotionLabel, int]
    size: int


class SessionUpdate(BaseModel):
    result: Optional[ClassificationResult] = None
    no_face: bool = False
    skipped: bool = False
    alert: Optional[str] = None
    batch: Optional[BatchSummary] = None


class SessionStatus(BaseModel):
    session_id: str
    calibrated: bool
    frames_seen: int
    current_emotion: EmotionLabel
    has_landmarks: bool
    no_face_streak: int
    pending_readings: int
    last_batch: Optional[BatchSummary] = None
